"""CORS middleware configuration."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


def configure_cors(app: FastAPI, allowed_origins: list[str]) -> None:
    """Allow browsers on the configured origins to call the search API.

    Credentials are only allowed for explicit origins, since browsers
    reject credentialed responses for a wildcard origin.

    Args:
        app: FastAPI application instance.
        allowed_origins: List of allowed origin URLs, or ["*"].
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials="*" not in allowed_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )
