"""Pydantic schemas for indexed search records and permission annotations."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ANONYMOUS_USER = "anonymous:"
"""Permission sentinel marking a document as searchable by everyone."""


class PermissionEntry(BaseModel):
    """One entry of a document's ``data-auth`` attribute.

    Attributes:
        username: Account name of the user.
        provider: Login provider of the account (e.g. github).
        permissions: Granted permissions, any of ``r`` and ``w``.
    """

    username: str
    provider: str
    permissions: str

    @property
    def user_id(self) -> str:
        """User identifier in ``username:provider`` form."""
        return f"{self.username}:{self.provider}"

    @property
    def can_view(self) -> bool:
        """Whether the entry grants read or write access."""
        return "r" in self.permissions or "w" in self.permissions


class SearchRecord(BaseModel):
    """Flat, permission-annotated representation of a document.

    Attributes:
        id: Document identifier, used as the index document id.
        title: Contents of the document's title element, markup-escaped.
        body: Flattened text of the document, markup-escaped.
        permissions: User ids allowed to find the document.
        ctime: Creation time of the document.
        mtime: Last modification time of the document.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str | None = None
    body: str = ""
    permissions: list[str] = Field(default_factory=list)
    ctime: datetime | None = None
    mtime: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        """Serialize the record into the stored index document.

        Returns:
            JSON-compatible document without the id.
        """
        return self.model_dump(mode="json", exclude={"id"})
