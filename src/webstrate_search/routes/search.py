"""Full-text search API endpoint."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from elasticsearch import ApiError, TransportError
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from webstrate_search.search.query import build_query

if TYPE_CHECKING:
    from webstrate_search.search.index import SearchIndex

logger = structlog.get_logger()

router = APIRouter(tags=["search"])

MISSING_QUERY_ERROR = "No query, use /?q=<query>."
DEFAULT_LIMIT = 10
DEFAULT_PAGE = 1


def _positive_int(raw: str | None, default: int) -> int:
    """Parse a paging parameter, falling back to the default when unusable."""
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value >= 1 else default


def get_user_id(request: Request) -> str | None:
    """Resolve the caller's user id from the request session.

    Expects ``session["passport"]["user"]`` in ``username:provider`` form,
    the shape the document server's login flow stores. The session is
    whatever ``SessionMiddleware`` decoded from a Starlette signed cookie
    keyed with the shared secret; it does not read the document server's
    own encrypted session cookie. Deployments issuing a different cookie
    format override this dependency, and unresolvable callers are
    anonymous.

    Args:
        request: Incoming request.

    Returns:
        User id, or None for anonymous callers.
    """
    session = request.scope.get("session") or {}
    passport = session.get("passport") or {}
    user = passport.get("user")
    return user if isinstance(user, str) and user else None


@router.get(
    "/",
    summary="Full-text search across documents",
    description=(
        "Searches documents visible to the caller, ranking title and id "
        "matches and recently modified documents higher."
    ),
)
async def search(
    request: Request,
    user_id: str | None = Depends(get_user_id),
    q: str | None = Query(default=None, max_length=500, description="Search term"),
    limit: str | None = Query(default=None, alias="l", description="Results per page"),
    page: str | None = Query(default=None, alias="p", description="Page number"),
    from_date: datetime | None = Query(
        default=None,
        alias="fromDate",
        description="Earliest creation or modification time",
    ),
    to_date: datetime | None = Query(
        default=None,
        alias="toDate",
        description="Latest creation or modification time",
    ),
) -> JSONResponse:
    """Search documents the caller is allowed to see.

    Args:
        request: FastAPI request (provides access to app state).
        user_id: Caller identity resolved from the session.
        q: Search term.
        limit: Maximum results per page. Missing, non-numeric or
            non-positive values mean 10.
        page: Page number, starting at 1. Unusable values mean 1.
        from_date: Lower bound on creation/modification time.
        to_date: Upper bound on creation/modification time.

    Returns:
        Raw Elasticsearch result set with highlighted excerpts, or an error
        envelope when no search term is given.
    """
    if not q:
        return JSONResponse(content={"error": MISSING_QUERY_ERROR})

    per_page = _positive_int(limit, DEFAULT_LIMIT)
    page_number = _positive_int(page, DEFAULT_PAGE)
    logger.info(
        "search_request", user_id=user_id, query=q, limit=per_page, page=page_number
    )

    search_index: SearchIndex = request.app.state.search_index
    body = build_query(user_id, q, per_page, page_number, from_date, to_date)

    try:
        result = await search_index.search(body)
    except (ApiError, TransportError) as e:
        logger.error("search_failed", query=q, error=str(e))
        return JSONResponse(
            status_code=502,
            content={"error": "Search backend unavailable"},
        )

    return JSONResponse(content=result)
