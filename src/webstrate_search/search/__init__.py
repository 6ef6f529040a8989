"""Full-text search subsystem with Elasticsearch indexing and change feed synchronization."""

from webstrate_search.search.index import INDEX_MAPPINGS, SearchIndex
from webstrate_search.search.query import build_query
from webstrate_search.search.schemas import ANONYMOUS_USER, PermissionEntry, SearchRecord
from webstrate_search.search.subscriber import IndexSubscriber
from webstrate_search.search.transform import (
    extract_permissions,
    extract_title,
    flatten,
    to_search_record,
)

__all__ = [
    "ANONYMOUS_USER",
    "INDEX_MAPPINGS",
    "IndexSubscriber",
    "PermissionEntry",
    "SearchIndex",
    "SearchRecord",
    "build_query",
    "extract_permissions",
    "extract_title",
    "flatten",
    "to_search_record",
]
