"""Health check endpoints for liveness and readiness probes."""
from typing import Literal

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter(prefix="/health", tags=["health"])


class LivenessResponse(BaseModel):
    """Response model for liveness probe.

    Attributes:
        status: Always 'alive' when process is running.
    """

    status: Literal["alive"]


class ReadinessCheck(BaseModel):
    """Individual dependency check result.

    Attributes:
        name: Identifier for the dependency being checked.
        status: Result of the check ('ok' or 'failed').
        message: Error details when status is 'failed'.
    """

    name: str
    status: Literal["ok", "failed"]
    message: str | None = None


class ReadinessResponse(BaseModel):
    """Response model for readiness probe.

    Attributes:
        status: Overall readiness ('ready' or 'not_ready').
        checks: List of individual dependency check results.
    """

    status: Literal["ready", "not_ready"]
    checks: list[ReadinessCheck]


def _check(name: str, ok: bool, message: str) -> ReadinessCheck:
    if ok:
        return ReadinessCheck(name=name, status="ok")
    return ReadinessCheck(name=name, status="failed", message=message)


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe endpoint.

    Returns immediate success if the process is running.

    Returns:
        Liveness status response.
    """
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> JSONResponse:
    """Readiness probe endpoint.

    Validates that Elasticsearch and the MongoDB change feed answer.
    Returns 200 if all checks pass, 503 if any fail.

    Returns:
        Readiness status with individual check results.
    """
    state = request.app.state
    search_index = getattr(state, "search_index", None)
    change_feed = getattr(state, "change_feed", None)

    checks = [
        _check(
            "elasticsearch",
            search_index is not None and await search_index.health(),
            "Elasticsearch unreachable",
        ),
        _check(
            "mongodb",
            change_feed is not None and await change_feed.ping(),
            "MongoDB unreachable",
        ),
    ]
    all_ok = all(c.status == "ok" for c in checks)
    response = ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        checks=checks,
    )
    code = status.HTTP_200_OK if all_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response.model_dump(), status_code=code)
