"""Workspace resource records.

Every catalog entry is one variant of the closed ``Resource`` union, tagged by
``resource_type``. The tag is what the persisted JSON and the backend use to
pick the variant, and what ``ResourceCatalog`` dispatches on when resolving.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

GCS_PREFIX = "gs://"
BQ_DELIMITER = "."


class ResourceType(str, Enum):
    GCS_BUCKET = "GCS_BUCKET"
    GCS_OBJECT = "GCS_OBJECT"
    BQ_DATASET = "BQ_DATASET"
    BQ_TABLE = "BQ_TABLE"
    AI_NOTEBOOK = "AI_NOTEBOOK"
    AZURE_STORAGE_CONTAINER = "AZURE_STORAGE_CONTAINER"
    GIT_REPO = "GIT_REPO"
    DATA_COLLECTION = "DATA_COLLECTION"


class StewardshipType(str, Enum):
    """Whether the backend owns the resource's lifecycle or only points at it."""
    CONTROLLED = "CONTROLLED"
    REFERENCED = "REFERENCED"


class CloningInstructions(str, Enum):
    COPY_NOTHING = "COPY_NOTHING"
    COPY_DEFINITION = "COPY_DEFINITION"
    COPY_RESOURCE = "COPY_RESOURCE"
    COPY_REFERENCE = "COPY_REFERENCE"


class BqPathFormat(str, Enum):
    """Output format when resolving BigQuery datasets and tables."""
    FULL_PATH = "FULL_PATH"              # [project id].[dataset id](.[table id])
    DATASET_ID_ONLY = "DATASET_ID_ONLY"
    PROJECT_ID_ONLY = "PROJECT_ID_ONLY"
    TABLE_ID_ONLY = "TABLE_ID_ONLY"      # tables only


class CloudPlatform(str, Enum):
    GCP = "GCP"
    AZURE = "AZURE"


@dataclass(frozen=True)
class ResolveOptions:
    """Caller-selected formatting for ``ResourceCatalog.resolve``."""
    exclude_bucket_prefix: bool = False
    bq_path_format: BqPathFormat = BqPathFormat.FULL_PATH


class ResourceBase(BaseModel):
    """Attributes shared by every resource variant."""
    id: UUID
    name: str
    description: str = ""
    stewardship: StewardshipType = StewardshipType.REFERENCED
    cloning_instructions: CloningInstructions = CloningInstructions.COPY_NOTHING

    model_config = ConfigDict(extra="ignore")

    @property
    def kind(self) -> ResourceType:
        return ResourceType(getattr(self, "resource_type"))

    @property
    def is_controlled(self) -> bool:
        return self.stewardship == StewardshipType.CONTROLLED


class GcsBucket(ResourceBase):
    resource_type: Literal["GCS_BUCKET"] = "GCS_BUCKET"
    bucket_name: str


class GcsObject(ResourceBase):
    resource_type: Literal["GCS_OBJECT"] = "GCS_OBJECT"
    bucket_name: str
    object_name: str


class BqDataset(ResourceBase):
    resource_type: Literal["BQ_DATASET"] = "BQ_DATASET"
    project_id: str
    dataset_id: str


class BqTable(ResourceBase):
    resource_type: Literal["BQ_TABLE"] = "BQ_TABLE"
    project_id: str
    dataset_id: str
    table_id: str


class AiNotebookInstance(ResourceBase):
    resource_type: Literal["AI_NOTEBOOK"] = "AI_NOTEBOOK"
    project_id: str
    location: str
    instance_id: str


class AzureStorageContainer(ResourceBase):
    resource_type: Literal["AZURE_STORAGE_CONTAINER"] = "AZURE_STORAGE_CONTAINER"
    storage_account_id: UUID
    storage_container_name: str


class GitRepository(ResourceBase):
    resource_type: Literal["GIT_REPO"] = "GIT_REPO"
    git_repo_url: str


class DataCollection(ResourceBase):
    """Pulls another workspace's resources into this one by reference."""
    resource_type: Literal["DATA_COLLECTION"] = "DATA_COLLECTION"
    reference_workspace_id: str


Resource = Annotated[
    Union[
        GcsBucket,
        GcsObject,
        BqDataset,
        BqTable,
        AiNotebookInstance,
        AzureStorageContainer,
        GitRepository,
        DataCollection,
    ],
    Field(discriminator="resource_type"),
]

RESOURCE_ADAPTER: TypeAdapter[Resource] = TypeAdapter(Resource)


def parse_resource(data: dict[str, Any]) -> Resource:
    """Build the right variant from a plain dict (backend payload or disk)."""
    return RESOURCE_ADAPTER.validate_python(data)


class WorkspaceDescription(BaseModel):
    """What the backend reports about a workspace."""
    id: str
    name: str = ""
    description: str = ""
    cloud_platform: CloudPlatform = CloudPlatform.GCP
    google_project_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
