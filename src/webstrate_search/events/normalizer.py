"""Normalization of raw MongoDB change stream documents into change events."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError

from webstrate_search.events.types import ChangeEvent, ChangeOperation

logger = structlog.get_logger()

OPERATION_MAP: dict[str, ChangeOperation] = {
    "insert": ChangeOperation.INSERT,
    "replace": ChangeOperation.UPDATE,
    "update": ChangeOperation.UPDATE,
    "delete": ChangeOperation.DELETE,
}


def to_datetime(value: Any) -> datetime | None:
    """Convert a stored timestamp into an aware UTC datetime.

    Documents keep their timestamps as epoch milliseconds, but BSON dates
    come back from the driver as datetimes.

    Args:
        value: Epoch milliseconds, a datetime, or None.

    Returns:
        UTC datetime, or None if the value is missing or unusable.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, UTC)
    return None


def extract_document_id(raw: Mapping[str, Any]) -> str | None:
    """Extract the document identifier from a change document.

    Args:
        raw: Raw change stream document.

    Returns:
        Document id as a string, or None if absent.
    """
    key = raw.get("documentKey") or {}
    if not isinstance(key, Mapping):
        return None
    document_id = key.get("_id")
    if document_id is None:
        return None
    return str(document_id)


def _invalid(operation: ChangeOperation, document_id: str, error: str) -> None:
    logger.warning(
        "change_invalid",
        operation=operation.value,
        document_id=document_id,
        error=error,
    )


def normalize_change(raw: Mapping[str, Any]) -> ChangeEvent | None:
    """Transform a raw change stream document into a typed change event.

    Inserts, replacements and updates need the full document, so the
    stream must be opened with ``full_document="updateLookup"``. An update
    whose document is gone by lookup time is dropped; the delete that
    follows it in the stream takes care of the index.

    Args:
        raw: Raw change stream document.

    Returns:
        Normalized change event, or None if the change should be dropped.
    """
    operation = OPERATION_MAP.get(raw.get("operationType", ""))
    if operation is None:
        logger.debug("change_ignored", operation=raw.get("operationType"))
        return None

    document_id = extract_document_id(raw)
    if document_id is None:
        logger.warning("change_missing_id", operation=operation.value)
        return None

    if operation is ChangeOperation.DELETE:
        return ChangeEvent(operation=operation, document_id=document_id)

    full_document = raw.get("fullDocument")
    if not full_document:
        logger.debug(
            "change_document_gone",
            operation=operation.value,
            document_id=document_id,
        )
        return None

    if not isinstance(full_document, Mapping):
        return _invalid(operation, document_id, "fullDocument is not a mapping")
    meta = full_document.get("_m") or {}
    if not isinstance(meta, Mapping):
        return _invalid(operation, document_id, "_m is not a mapping")

    try:
        return ChangeEvent(
            operation=operation,
            document_id=document_id,
            document=full_document.get("_data"),
            ctime=to_datetime(meta.get("ctime")),
            mtime=to_datetime(meta.get("mtime")),
        )
    except ValidationError as e:
        return _invalid(operation, document_id, str(e))
