"""Elasticsearch index client tests."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import ApiError, NotFoundError

from webstrate_search.search.index import INDEX_MAPPINGS, SearchIndex
from webstrate_search.search.query import build_query
from webstrate_search.search.schemas import SearchRecord


def api_error(cls: type[ApiError], status: int) -> ApiError:
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return cls(message="error", meta=meta, body={"status": status})


@pytest.fixture
def es() -> AsyncMock:
    """Mock AsyncElasticsearch client."""
    return AsyncMock()


@pytest.fixture
def index(es: AsyncMock) -> SearchIndex:
    return SearchIndex("http://localhost:9200", "webstrate", client=es)


async def test_upsert_indexes_record_under_its_id(index: SearchIndex, es: AsyncMock) -> None:
    """Records are stored under their document id without the id field."""
    record = SearchRecord(
        id="doc1",
        title="Hello",
        body=" world",
        permissions=["anonymous:"],
        ctime=datetime(2024, 1, 1, tzinfo=UTC),
        mtime=datetime(2024, 1, 2, tzinfo=UTC),
    )

    await index.upsert(record)

    es.index.assert_awaited_once_with(
        index="webstrate",
        id="doc1",
        document={
            "title": "Hello",
            "body": " world",
            "permissions": ["anonymous:"],
            "ctime": "2024-01-01T00:00:00Z",
            "mtime": "2024-01-02T00:00:00Z",
        },
    )


async def test_upsert_failure_propagates(index: SearchIndex, es: AsyncMock) -> None:
    """Index errors on upsert reach the caller."""
    es.index.side_effect = api_error(ApiError, 500)

    with pytest.raises(ApiError):
        await index.upsert(SearchRecord(id="doc1"))


async def test_delete_existing_document(index: SearchIndex, es: AsyncMock) -> None:
    """Deleting an indexed document reports True."""
    assert await index.delete("doc1") is True
    es.delete.assert_awaited_once_with(index="webstrate", id="doc1")


async def test_delete_missing_document_is_noop(index: SearchIndex, es: AsyncMock) -> None:
    """Deleting an unknown document reports False instead of raising."""
    es.delete.side_effect = api_error(NotFoundError, 404)

    assert await index.delete("never-indexed") is False


async def test_drop_missing_index_is_noop(index: SearchIndex, es: AsyncMock) -> None:
    """Dropping a missing index reports False instead of raising."""
    es.indices.delete.side_effect = api_error(NotFoundError, 404)

    assert await index.drop_index() is False


async def test_drop_index(index: SearchIndex, es: AsyncMock) -> None:
    """Dropping an existing index reports True."""
    assert await index.drop_index() is True
    es.indices.delete.assert_awaited_once_with(index="webstrate")


async def test_create_index_uses_mapping(index: SearchIndex, es: AsyncMock) -> None:
    """New indexes get the english-analyzed text and date mappings."""
    await index.create_index()

    es.indices.create.assert_awaited_once_with(index="webstrate", mappings=INDEX_MAPPINGS)
    properties = INDEX_MAPPINGS["properties"]
    assert properties["body"] == {"type": "text", "analyzer": "english"}
    assert properties["title"] == {"type": "text", "analyzer": "english"}
    assert properties["ctime"]["type"] == "date"
    assert properties["mtime"]["type"] == "date"


async def test_ensure_index_creates_missing_index(index: SearchIndex, es: AsyncMock) -> None:
    """A missing index is created at startup."""
    es.indices.exists.return_value = False

    assert await index.ensure_index() is True
    es.indices.create.assert_awaited_once()


async def test_ensure_index_keeps_existing_index(index: SearchIndex, es: AsyncMock) -> None:
    """An existing index is left alone."""
    es.indices.exists.return_value = True

    assert await index.ensure_index() is False
    es.indices.create.assert_not_awaited()


async def test_search_passes_request_parts(index: SearchIndex, es: AsyncMock) -> None:
    """Each part of the built request is forwarded to the client."""
    es.search.return_value = MagicMock(body={"hits": {"hits": []}})
    request = build_query("kbadk:github", "hello", limit=5, page=2)

    result = await index.search(request)

    assert result == {"hits": {"hits": []}}
    es.search.assert_awaited_once_with(
        index="webstrate",
        query=request["query"],
        highlight=request["highlight"],
        from_=5,
        size=5,
        source=request["_source"],
    )


async def test_health_reports_ping_failure(index: SearchIndex, es: AsyncMock) -> None:
    """A failing ping reports unhealthy instead of raising."""
    es.ping.side_effect = ConnectionRefusedError()

    assert await index.health() is False


async def test_close_releases_client(index: SearchIndex, es: AsyncMock) -> None:
    """Closing the index closes the client."""
    await index.close()

    es.close.assert_awaited_once()
