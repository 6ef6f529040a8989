"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from webstrate_search.app import create_app
from webstrate_search.config import Settings
from webstrate_search.search.schemas import SearchRecord

SEARCH_RESULT: dict[str, Any] = {
    "took": 3,
    "timed_out": False,
    "hits": {
        "total": {"value": 1, "relation": "eq"},
        "max_score": 7.5,
        "hits": [
            {
                "_index": "webstrate",
                "_id": "doc1",
                "_score": 7.5,
                "_source": {
                    "title": "Hello",
                    "permissions": ["anonymous:"],
                    "ctime": "2024-01-01T00:00:00Z",
                    "mtime": "2024-01-02T00:00:00Z",
                },
                "highlight": {"body": [" <strong>world</strong>"]},
            }
        ],
    },
}


class FakeSearchIndex:
    """In-memory stand-in for SearchIndex recording every write."""

    def __init__(self, write_delay: float = 0.0) -> None:
        self.records: dict[str, SearchRecord] = {}
        self.operations: list[tuple[str, str]] = []
        self.upserted: list[SearchRecord] = []
        self.fail_ids: set[str] = set()
        self.write_delay = write_delay
        self.closed = False

    async def ensure_index(self) -> bool:
        return False

    async def health(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True

    async def upsert(self, record: SearchRecord) -> None:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if record.id in self.fail_ids:
            raise RuntimeError(f"index rejected {record.id}")
        self.records[record.id] = record
        self.upserted.append(record)
        self.operations.append(("upsert", record.id))

    async def delete(self, document_id: str) -> bool:
        self.operations.append(("delete", document_id))
        return self.records.pop(document_id, None) is not None


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        host="127.0.0.1",
        port=7010,
        debug=True,
        secret="test-secret",
    )


@pytest.fixture
def search_index() -> AsyncMock:
    """Mock search index returning a canned result set."""
    index = AsyncMock()
    index.search.return_value = SEARCH_RESULT
    index.health.return_value = True
    return index


@pytest.fixture
def app(settings: Settings, search_index: AsyncMock) -> FastAPI:
    """Create app with mocked backends (lifespan is not run)."""
    app = create_app(settings)
    app.state.search_index = search_index
    change_feed = AsyncMock()
    change_feed.ping.return_value = True
    app.state.change_feed = change_feed
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client with configured app."""
    return TestClient(app)


@pytest.fixture
def fake_index() -> FakeSearchIndex:
    """In-memory search index."""
    return FakeSearchIndex()
