"""Elasticsearch-backed full-text index of documents."""

from typing import Any

import structlog
from elasticsearch import AsyncElasticsearch, NotFoundError

from webstrate_search.search.schemas import SearchRecord

logger = structlog.get_logger()

INDEX_MAPPINGS: dict[str, Any] = {
    "properties": {
        "body": {"type": "text", "analyzer": "english"},
        "title": {"type": "text", "analyzer": "english"},
        "permissions": {"type": "keyword"},
        "ctime": {"type": "date"},
        "mtime": {"type": "date"},
    }
}


class SearchIndex:
    """Async wrapper around one Elasticsearch index.

    Missing documents on delete and a missing index on drop are treated as
    already done. Every other failure propagates to the caller.
    """

    def __init__(
        self,
        url: str,
        index_name: str = "webstrate",
        client: AsyncElasticsearch | None = None,
    ) -> None:
        """Initialize search index.

        Args:
            url: Elasticsearch node URL.
            index_name: Name of the index to use.
            client: Preconfigured client. Created lazily from url if None.
        """
        self._url = url
        self._index_name = index_name
        self._client = client

    def _get_client(self) -> AsyncElasticsearch:
        if self._client is None:
            self._client = AsyncElasticsearch(hosts=[self._url])
        return self._client

    async def upsert(self, record: SearchRecord) -> None:
        """Insert or replace the record stored under its id.

        Args:
            record: Search record to store.
        """
        await self._get_client().index(
            index=self._index_name,
            id=record.id,
            document=record.to_document(),
        )
        logger.info(
            "search_document_upserted",
            document_id=record.id,
            permissions=len(record.permissions),
        )

    async def delete(self, document_id: str) -> bool:
        """Remove a document from the index.

        Args:
            document_id: Identifier of the document.

        Returns:
            True if a document was removed, False if it wasn't indexed.
        """
        try:
            await self._get_client().delete(index=self._index_name, id=document_id)
        except NotFoundError:
            logger.debug("search_document_missing", document_id=document_id)
            return False

        logger.info("search_document_deleted", document_id=document_id)
        return True

    async def drop_index(self) -> bool:
        """Delete the whole index.

        Returns:
            True if the index existed and was deleted.
        """
        try:
            await self._get_client().indices.delete(index=self._index_name)
        except NotFoundError:
            logger.info("search_index_missing", index=self._index_name)
            return False

        logger.info("search_index_dropped", index=self._index_name)
        return True

    async def create_index(self, mappings: dict[str, Any] | None = None) -> None:
        """Create the index with its field mappings.

        Args:
            mappings: Field mappings. Defaults to INDEX_MAPPINGS.
        """
        await self._get_client().indices.create(
            index=self._index_name,
            mappings=mappings if mappings is not None else INDEX_MAPPINGS,
        )
        logger.info("search_index_created", index=self._index_name)

    async def ensure_index(self) -> bool:
        """Create the index if it does not exist yet.

        Returns:
            True if the index had to be created.
        """
        if await self._get_client().indices.exists(index=self._index_name):
            return False
        await self.create_index()
        return True

    async def search(self, request: dict[str, Any]) -> dict[str, Any]:
        """Execute a search request built by ``build_query``.

        Args:
            request: Elasticsearch request body.

        Returns:
            Raw response body with hits and highlights.
        """
        response = await self._get_client().search(
            index=self._index_name,
            query=request["query"],
            highlight=request.get("highlight"),
            from_=request.get("from"),
            size=request.get("size"),
            source=request.get("_source"),
        )
        return dict(response.body)

    async def health(self) -> bool:
        """Check if Elasticsearch answers."""
        try:
            return bool(await self._get_client().ping())
        except Exception as e:
            logger.warning("elasticsearch_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("search_index_closed")
