"""Slash-joined workspace paths for vaults and logs."""

from typing import Any, Mapping, Optional

PATH_SEPARATOR = "/"


def _parent_path(parent: Any) -> str:
    if isinstance(parent, Mapping):
        return str(parent.get("path") or "")
    return str(getattr(parent, "path", "") or "")


def resolve_path(name: str, parent: Optional[Any] = None) -> str:
    """
    Full path of a node named ``name`` under ``parent``.

    ``parent`` is anything with a ``path`` (an ORM row or a serialized dict).
    Without a parent the path is the bare name. Names are not sanitized.
    """
    if parent is None:
        return name
    return f"{_parent_path(parent)}{PATH_SEPARATOR}{name}"
