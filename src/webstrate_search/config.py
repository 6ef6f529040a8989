"""Service configuration loaded from environment variables."""
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration loaded from environment variables.

    Attributes:
        host: Bind address for the search HTTP server.
        port: Port number for the search HTTP server.
        debug: Enable debug logging and API documentation.
        cors_origins_raw: Raw comma-separated CORS origins string.
        shutdown_timeout: Seconds to wait for graceful shutdown.
        secret: Session secret shared with the document server.
        elasticsearch_url: Full URL of the Elasticsearch node.
        index_name: Name of the search index.
        mongodb_url: MongoDB connection URL (must point at a replica set).
        mongodb_database: Database holding the documents.
        mongodb_collection: Collection whose change stream is mirrored.
        index_permissionless_documents: Index documents with no data-auth
            attribute as visible to everyone.
        throttle_delay: Minimum seconds between index writes per document.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 7010
    debug: bool = False
    cors_origins_raw: str = "*"
    shutdown_timeout: float = 30.0
    secret: str = Field(min_length=1)

    elasticsearch_url: str = "http://localhost:9200"
    index_name: str = "webstrate"

    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "webstrate"
    mongodb_collection: str = "webstrates"

    # Indexing everything gives users more to search through, but may expose
    # documents whose owners never meant them to be found. After changing this
    # value the index has to be rebuilt.
    index_permissionless_documents: bool = False
    throttle_delay: float = Field(default=10.0, gt=0)

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string.

        Returns:
            List of allowed origin URLs.
        """
        return [
            origin.strip()
            for origin in self.cors_origins_raw.split(",")
            if origin.strip()
        ]
