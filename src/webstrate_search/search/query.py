"""Construction of permission-scoped Elasticsearch search requests."""

from datetime import datetime
from typing import Any

from webstrate_search.search.schemas import ANONYMOUS_USER

EXCERPT_SIZE = 150
SOURCE_FIELDS: tuple[str, ...] = ("title", "permissions", "ctime", "mtime")

# (window, boost) pairs rewarding recently modified documents.
RECENCY_BOOSTS: tuple[tuple[str, float], ...] = (
    ("now-1d", 5),
    ("now-30d", 2),
    ("now-90d", 1),
)


def _any_of(*clauses: dict[str, Any]) -> dict[str, Any]:
    return {"bool": {"should": list(clauses), "minimum_should_match": 1}}


def _text_clause(search_term: str) -> dict[str, Any]:
    return _any_of(
        {"match": {"body": {"query": search_term, "boost": 1}}},
        {"match": {"title": {"query": search_term, "boost": 2}}},
        {"term": {"_id": {"value": search_term, "boost": 2}}},
    )


def _permission_clause(user_id: str | None) -> dict[str, Any]:
    clauses: list[dict[str, Any]] = [{"term": {"permissions": ANONYMOUS_USER}}]
    if user_id:
        clauses.append({"term": {"permissions": {"value": user_id, "boost": 3}}})
    return _any_of(*clauses)


def _recency_clauses() -> list[dict[str, Any]]:
    clauses: list[dict[str, Any]] = [
        {"range": {"mtime": {"gte": since, "boost": boost}}}
        for since, boost in RECENCY_BOOSTS
    ]
    clauses.append({"exists": {"field": "mtime", "boost": 0}})
    return clauses


def _date_range_clause(
    from_date: datetime | None,
    to_date: datetime | None,
) -> dict[str, Any]:
    bounds: dict[str, str] = {}
    if from_date is not None:
        bounds["gte"] = from_date.isoformat()
    if to_date is not None:
        bounds["lte"] = to_date.isoformat()
    return _any_of(
        {"range": {"mtime": dict(bounds)}},
        {"range": {"ctime": dict(bounds)}},
    )


def build_query(
    user_id: str | None,
    search_term: str,
    limit: int = 10,
    page: int = 1,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
) -> dict[str, Any]:
    """Build the search request body for a user's query.

    A document matches when the term hits its body, title or id, and it
    is either public or readable by the user. Recently modified documents
    rank higher, but age never excludes a document. When a date window is
    given, a document must have been created or modified inside it.

    Args:
        user_id: Identity of the caller (``username:provider``), if any.
        search_term: Text entered by the user.
        limit: Results per page.
        page: Page number, starting at 1.
        from_date: Earliest creation/modification time, inclusive.
        to_date: Latest creation/modification time, inclusive.

    Returns:
        Elasticsearch request body.
    """
    must = [_text_clause(search_term), _permission_clause(user_id)]
    if from_date is not None or to_date is not None:
        must.append(_date_range_clause(from_date, to_date))

    return {
        "query": {
            "bool": {
                "must": must,
                "should": _recency_clauses(),
            }
        },
        "highlight": {
            "pre_tags": ["<strong>"],
            "post_tags": ["</strong>"],
            "fields": {
                # no_match_size still yields an excerpt when only the title
                # matched.
                "body": {
                    "fragment_size": EXCERPT_SIZE,
                    "number_of_fragments": 1,
                    "no_match_size": EXCERPT_SIZE,
                },
                "title": {},
            },
        },
        "from": limit * (page - 1),
        "size": limit,
        "_source": list(SOURCE_FIELDS),
    }
