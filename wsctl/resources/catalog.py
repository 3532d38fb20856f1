"""Resource catalog: lookup, mutation and resolution of workspace resources."""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Optional, Union, assert_never

from wsctl.core.context import Context, ContextStore, require_workspace
from wsctl.core.errors import (
    DuplicateResourceNameError,
    FetchNotFoundError,
    FetchPermissionDeniedError,
    InvalidResourceNameError,
    ResolveOptionsInvalidError,
    ResourceNotFoundError,
    UnsupportedResolveError,
    WsctlError,
)
from wsctl.resources.fetcher import ResourceFetcher
from wsctl.resources.models import (
    BQ_DELIMITER,
    GCS_PREFIX,
    AiNotebookInstance,
    AzureStorageContainer,
    BqDataset,
    BqPathFormat,
    BqTable,
    DataCollection,
    GcsBucket,
    GcsObject,
    GitRepository,
    Resource,
    ResourceType,
    ResolveOptions,
    StewardshipType,
)

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,1024}$")
_ENV_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_]")

# A data collection resolves to {resource name: identifier}; everything else to one string.
Resolved = Union[str, dict[str, str]]


def validate_resource_name(name: str) -> str:
    if not NAME_PATTERN.match(name or ""):
        raise InvalidResourceNameError(name)
    return name


def sanitize_env_name(name: str) -> str:
    """Make a resource name usable as an environment variable suffix."""
    return _ENV_UNSAFE_RE.sub("_", name)


def _gcs_path(path: str, options: ResolveOptions) -> str:
    return path if options.exclude_bucket_prefix else GCS_PREFIX + path


def _bq_path(project_id: str, dataset_id: str, table_id: Optional[str], options: ResolveOptions) -> str:
    fmt = options.bq_path_format
    if fmt == BqPathFormat.FULL_PATH:
        parts = [project_id, dataset_id] + ([table_id] if table_id else [])
        return BQ_DELIMITER.join(parts)
    if fmt == BqPathFormat.DATASET_ID_ONLY:
        return dataset_id
    if fmt == BqPathFormat.PROJECT_ID_ONLY:
        return project_id
    if fmt == BqPathFormat.TABLE_ID_ONLY:
        if table_id is None:
            raise ResolveOptionsInvalidError(
                f"{BqPathFormat.TABLE_ID_ONLY.value} is only valid for BigQuery tables, not datasets."
            )
        return table_id
    raise ResolveOptionsInvalidError(f"Unknown BigQuery path format: {fmt}")


def check_options(resource: Resource, options: ResolveOptions) -> None:
    """Reject options that do not apply to the resource being resolved."""
    if isinstance(resource, DataCollection):
        return
    if options.bq_path_format != BqPathFormat.FULL_PATH and not isinstance(resource, (BqDataset, BqTable)):
        raise ResolveOptionsInvalidError(
            f"--bq-path applies only to BigQuery datasets and tables; {resource.name} is {resource.kind.value}."
        )
    if options.exclude_bucket_prefix and not isinstance(resource, (GcsBucket, GcsObject)):
        raise ResolveOptionsInvalidError(
            f"--exclude-bucket-prefix applies only to GCS buckets and objects; {resource.name} is {resource.kind.value}."
        )


class ResourceCatalog:
    """
    The resources of the bound workspace.

    Records live in ``context.resources``; every mutation is written back
    through the ContextStore. Resolution of Azure containers and data
    collections needs the backend, so those go through the ResourceFetcher.
    """

    def __init__(
        self,
        context: Context,
        store: Optional[ContextStore] = None,
        fetcher: Optional[ResourceFetcher] = None,
    ):
        self.context = context
        self._store = store
        self._fetcher = fetcher
        # referenced workspace id -> its resources, for the life of this catalog
        self._collection_cache: dict[str, list[Resource]] = {}

    @property
    def workspace_id(self) -> str:
        return require_workspace(self.context).workspace_id

    def __len__(self) -> int:
        return len(self.context.resources)

    def __contains__(self, name: object) -> bool:
        return name in self.context.resources

    def _require_fetcher(self) -> ResourceFetcher:
        if self._fetcher is None:
            raise WsctlError("No workspace backend configured for remote resource lookups.")
        return self._fetcher

    def _persist(self) -> None:
        if self._store is not None:
            self._store.persist(self.context)

    # ---- Lookup ----

    def list(self) -> list[Resource]:
        """All resources, sorted by name."""
        require_workspace(self.context)
        return sorted(self.context.resources.values(), key=lambda r: r.name)

    def get(self, name: str) -> Resource:
        require_workspace(self.context)
        resource = self.context.resources.get(name)
        if resource is None:
            raise ResourceNotFoundError(name)
        return resource

    def list_by_stewardship(self, stewardship: StewardshipType) -> list[Resource]:
        return [r for r in self.list() if r.stewardship == stewardship]

    # ---- Mutation ----

    def add(self, resource: Resource) -> Resource:
        require_workspace(self.context)
        validate_resource_name(resource.name)
        if resource.name in self.context.resources:
            raise DuplicateResourceNameError(resource.name)
        self.context.resources[resource.name] = resource
        logger.info("Added %s resource %s", resource.kind.value, resource.name)
        self._persist()
        return resource

    def add_by_id(self, resource_id: str) -> Resource:
        """Fetch a resource's description from the backend and add it."""
        resource = self._require_fetcher().get_resource(self.workspace_id, resource_id)
        return self.add(resource)

    def remove(self, name: str) -> Resource:
        resource = self.get(name)
        del self.context.resources[name]
        logger.info("Removed resource %s", name)
        self._persist()
        return resource

    def update(
        self,
        name: str,
        new_name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Resource:
        """Rename and/or re-describe a resource."""
        resource = self.get(name)
        changes: dict[str, str] = {}
        if new_name is not None and new_name != name:
            validate_resource_name(new_name)
            if new_name in self.context.resources:
                raise DuplicateResourceNameError(new_name)
            changes["name"] = new_name
        if description is not None:
            changes["description"] = description
        if not changes:
            return resource

        updated = resource.model_copy(update=changes)
        del self.context.resources[name]
        self.context.resources[updated.name] = updated
        self._persist()
        return updated

    def sync(self) -> list[Resource]:
        """Replace the catalog with the backend's current listing."""
        resources = self._require_fetcher().list_resources(self.workspace_id)
        self.context.resources = {r.name: r for r in resources}
        self._collection_cache.clear()
        logger.debug("Synced %d resources for workspace %s", len(resources), self.workspace_id)
        self._persist()
        return self.list()

    # ---- Data collections ----

    def collection_resources(self, collection: DataCollection) -> list[Resource]:
        """Resources of the workspace a data collection points at.

        A workspace the caller cannot read (or that no longer exists) counts
        as empty so that aggregate operations still succeed.
        """
        workspace_id = collection.reference_workspace_id
        if workspace_id not in self._collection_cache:
            try:
                resources = self._require_fetcher().list_resources(workspace_id)
            except (FetchPermissionDeniedError, FetchNotFoundError) as e:
                logger.warning(
                    "Failed to get data collection %s (workspace %s): %s",
                    collection.name, workspace_id, e,
                )
                resources = []
            self._collection_cache[workspace_id] = resources
        return self._collection_cache[workspace_id]

    def _resolve_collection(self, collection: DataCollection) -> dict[str, str]:
        # Formatting options only apply to a single named member, never to the whole mapping.
        options = ResolveOptions()
        workspace_id = collection.reference_workspace_id
        resolved: dict[str, str] = {}
        for resource in self.collection_resources(collection):
            # Data collection workspaces should not nest collections; skip them if they do.
            if isinstance(resource, DataCollection):
                continue
            resolved[resource.name] = self._resolve_one(resource, options, workspace_id)
        return resolved

    def _resolve_in_collection(self, collection: DataCollection, name: str, options: ResolveOptions) -> str:
        workspace_id = collection.reference_workspace_id
        for resource in self.collection_resources(collection):
            if resource.name == name and not isinstance(resource, DataCollection):
                check_options(resource, options)
                return self._resolve_one(resource, options, workspace_id)
        raise ResourceNotFoundError(f"{collection.name}/{name}", workspace_id)

    # ---- Resolution ----

    def _resolve_one(self, resource: Resource, options: ResolveOptions, workspace_id: str):
        if isinstance(resource, GcsBucket):
            return _gcs_path(resource.bucket_name, options)
        elif isinstance(resource, GcsObject):
            return _gcs_path(f"{resource.bucket_name}/{resource.object_name}", options)
        elif isinstance(resource, BqDataset):
            return _bq_path(resource.project_id, resource.dataset_id, None, options)
        elif isinstance(resource, BqTable):
            return _bq_path(resource.project_id, resource.dataset_id, resource.table_id, options)
        elif isinstance(resource, AiNotebookInstance):
            return f"projects/{resource.project_id}/locations/{resource.location}/instances/{resource.instance_id}"
        elif isinstance(resource, AzureStorageContainer):
            return self._require_fetcher().get_sas_token(workspace_id, str(resource.id)).token
        elif isinstance(resource, GitRepository):
            return resource.git_repo_url
        elif isinstance(resource, DataCollection):
            return self._resolve_collection(resource)
        else:
            assert_never(resource)

    def resolve(self, name: str, options: Optional[ResolveOptions] = None) -> Resolved:
        """
        Resolve a resource to its cloud identifier.

        Args:
            name: A resource name, or ``collection/resource`` for a resource
                inside a data collection.
            options: Formatting options; defaults to full paths with prefixes.

        Returns:
            The identifier string, or for a data collection given by its own
            name, a mapping of every resource name in it to its identifier.
        """
        options = options or ResolveOptions()
        parts = name.split("/")
        if len(parts) > 2 or not all(parts):
            raise ResolveOptionsInvalidError(
                f"Invalid path provided: {name}, only [resource name] or "
                "[data collection name]/[resource name] can be resolved."
            )

        resource = self.get(parts[0])
        if len(parts) == 2:
            if not isinstance(resource, DataCollection):
                raise ResolveOptionsInvalidError(
                    f"{resource.name} is {resource.kind.value}, not a data collection; "
                    "nested paths only apply to data collections."
                )
            return self._resolve_in_collection(resource, parts[1], options)

        check_options(resource, options)
        return self._resolve_one(resource, options, self.workspace_id)

    def resolve_to_mapping(self, name: str, options: Optional[ResolveOptions] = None) -> dict[str, str]:
        """Like ``resolve`` but always a mapping of resource name to identifier."""
        resolved = self.resolve(name, options)
        if isinstance(resolved, dict):
            return resolved
        return {name.split("/")[-1]: resolved}

    def reachable(self, kind: ResourceType, options: Optional[ResolveOptions] = None) -> list[str]:
        """Identifiers of every ``kind`` resource reachable from this workspace.

        Includes the workspace's own resources and, transitively, those of
        every data collection. Duplicates (same identifier reached twice)
        are dropped; order is first-seen.
        """
        if kind == ResourceType.DATA_COLLECTION:
            raise UnsupportedResolveError("Data collections do not resolve to a single identifier.")
        options = options or ResolveOptions()
        found: dict[str, None] = {}
        visited = {self.workspace_id}
        pending: deque[tuple[str, list[Resource]]] = deque([(self.workspace_id, self.list())])

        while pending:
            workspace_id, resources = pending.popleft()
            for resource in resources:
                if resource.kind == kind:
                    found.setdefault(self._resolve_one(resource, options, workspace_id), None)
                elif isinstance(resource, DataCollection):
                    target = resource.reference_workspace_id
                    if target not in visited:
                        visited.add(target)
                        pending.append((target, self.collection_resources(resource)))

        return list(found)

    def environment(self, prefix: str) -> dict[str, str]:
        """One ``<prefix><name>`` variable per resolvable resource in the workspace."""
        env: dict[str, str] = {}
        options = ResolveOptions()
        for resource in self.list():
            if isinstance(resource, DataCollection):
                continue
            env[prefix + sanitize_env_name(resource.name)] = self._resolve_one(resource, options, self.workspace_id)
        return env
