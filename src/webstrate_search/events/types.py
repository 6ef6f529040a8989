"""Change event types for the document store's change feed."""
from datetime import datetime
from enum import Enum
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, model_validator

JsonML: TypeAlias = list[Any]
"""Array-based markup tree: ``[tagName, attributes?, child...]``."""


class ChangeOperation(str, Enum):
    """Kinds of change reported by the document store."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """Typed change event for a single document.

    Attributes:
        operation: Whether the document was inserted, updated or deleted.
        document_id: Identifier of the changed document.
        document: JsonML tree of the document (insert and update only).
        ctime: Creation time of the document (insert and update only).
        mtime: Last modification time of the document (insert and update only).
    """

    model_config = ConfigDict(frozen=True)

    operation: ChangeOperation = Field(description="Change operation")
    document_id: str = Field(description="Changed document identifier")
    document: JsonML | None = Field(default=None, description="JsonML document tree")
    ctime: datetime | None = Field(default=None, description="Creation time (UTC)")
    mtime: datetime | None = Field(default=None, description="Modification time (UTC)")

    @model_validator(mode="after")
    def _require_document(self) -> "ChangeEvent":
        if self.operation is not ChangeOperation.DELETE and self.document is None:
            raise ValueError(f"{self.operation.value} event requires a document")
        return self
