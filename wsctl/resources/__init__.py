"""Resources module - Resource model and the backend fetcher."""

from wsctl.resources.models import (
    BqPathFormat,
    Resource,
    ResourceType,
    ResolveOptions,
    StewardshipType,
    WorkspaceDescription,
    parse_resource,
)
from wsctl.resources.fetcher import HttpResourceFetcher, ResourceFetcher, SasToken
# ResourceCatalog is available via `from wsctl.resources.catalog import ...`
# Not re-exported here to avoid circular imports (catalog -> core.context -> resources.models).

__all__ = [
    "BqPathFormat",
    "Resource",
    "ResourceType",
    "ResolveOptions",
    "StewardshipType",
    "WorkspaceDescription",
    "parse_resource",
    "HttpResourceFetcher",
    "ResourceFetcher",
    "SasToken",
]
