"""Transformation of JsonML documents into flat search records."""

from datetime import datetime
from typing import Any

import structlog
from pydantic import TypeAdapter, ValidationError

from webstrate_search.events.types import JsonML
from webstrate_search.search.schemas import ANONYMOUS_USER, PermissionEntry, SearchRecord

logger = structlog.get_logger()

_PERMISSIONS_ADAPTER: TypeAdapter[list[PermissionEntry]] = TypeAdapter(
    list[PermissionEntry]
)


def _is_element(node: Any, tag: str) -> bool:
    return isinstance(node, list) and len(node) > 0 and node[0] == tag


def _element_text(element: JsonML) -> str | None:
    """Return the text of an element like ``["title", {...}?, "text"]``."""
    if len(element) > 1 and isinstance(element[1], str):
        return element[1]
    if len(element) > 2 and isinstance(element[2], str):
        return element[2]
    return None


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def escape_markup(text: str) -> str:
    """Neutralize markup so it renders as text in search results."""
    return text.replace("<", "&lt;")


def extract_title(tree: Any) -> tuple[Any, str | None]:
    """Find the document title and return a copy of the tree without it.

    Only the first ``head`` element among the root's children is inspected,
    and only its direct ``title`` children. The input tree is left intact;
    the lists on the path to the removed title are copied.

    Args:
        tree: JsonML document.

    Returns:
        Tuple of (tree without the title element, title text). The title is
        None and the tree is returned as-is when there is no head or title.
    """
    if not isinstance(tree, list):
        return tree, None

    head_index = next(
        (i for i, node in enumerate(tree) if i > 0 and _is_element(node, "head")),
        None,
    )
    if head_index is None:
        return tree, None

    head = tree[head_index]
    for i in range(1, len(head)):
        if _is_element(head[i], "title"):
            new_head = head[:i] + head[i + 1 :]
            new_tree = tree[:head_index] + [new_head] + tree[head_index + 1 :]
            return new_tree, _element_text(head[i])

    return tree, None


def flatten(tree: Any) -> str:
    """Flatten a JsonML tree into one string without tag names or attributes.

    Every text or number leaf is prefixed with a space, and so is every
    nested element, so ``["p", {"x": 1}, "a", ["b", "c"]]`` becomes
    ``" a  c"``.

    Args:
        tree: JsonML element.

    Returns:
        Text content in document order.
    """
    if not isinstance(tree, list):
        return ""

    parts: list[str] = []
    for node in tree[1:]:
        if isinstance(node, str):
            parts.append(" " + node)
        elif isinstance(node, bool):
            continue
        elif isinstance(node, int | float):
            parts.append(" " + _format_number(node))
        elif isinstance(node, list):
            parts.append(" " + flatten(node))
    return "".join(parts)


def extract_permissions(tree: Any, index_permissionless: bool = False) -> list[str]:
    """Get the user ids allowed to find a document.

    Permissions live in the ``data-auth`` attribute of the root ``html``
    element as a JSON list of ``{username, provider, permissions}``
    entries. The attribute may have been entity-encoded when it was
    stored.

    Args:
        tree: JsonML document.
        index_permissionless: Make documents without ``data-auth``
            searchable by everyone.

    Returns:
        User ids (``username:provider``) with read or write access. Empty
        when the annotation is malformed.
    """
    attributes = (
        tree[1]
        if _is_element(tree, "html") and len(tree) > 1 and isinstance(tree[1], dict)
        else {}
    )
    raw = attributes.get("data-auth")

    if not raw:
        return [ANONYMOUS_USER] if index_permissionless else []

    if not isinstance(raw, str):
        logger.warning("permissions_malformed", error="data-auth is not a string")
        return []

    # FIXME: &amp; is decoded last, so "&amp;quot;" inside a value decodes to
    # a bare quote and breaks the JSON.
    decoded = raw.replace("'", '"').replace("&quot;", '"').replace("&amp;", "&")
    try:
        entries = _PERMISSIONS_ADAPTER.validate_json(decoded)
    except ValidationError as e:
        # Fail closed: nobody gets to find the document.
        logger.warning("permissions_malformed", error=str(e))
        return []

    return [entry.user_id for entry in entries if entry.can_view]


def to_search_record(
    document_id: str,
    tree: Any,
    ctime: datetime | None,
    mtime: datetime | None,
    index_permissionless: bool = False,
) -> SearchRecord:
    """Build the search record for a document.

    The title is removed from the body so it doesn't show up again in the
    result excerpt.

    Args:
        document_id: Document identifier.
        tree: JsonML document.
        ctime: Creation time of the document.
        mtime: Last modification time of the document.
        index_permissionless: Policy for documents without ``data-auth``.

    Returns:
        Search record ready to be indexed.
    """
    permissions = extract_permissions(tree, index_permissionless)
    tree, title = extract_title(tree)
    body = flatten(tree)

    return SearchRecord(
        id=document_id,
        title=escape_markup(title) if title else title,
        body=escape_markup(body),
        permissions=permissions,
        ctime=ctime,
        mtime=mtime,
    )
