"""Utility functions for stickyboard."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import fsspec
from fsspec.core import url_to_fs

NOTE_ID_PREFIX = "note-"


def get_fs_and_path(
    path: str | Path,
    fs: fsspec.AbstractFileSystem | None = None,
) -> tuple[fsspec.AbstractFileSystem, str]:
    """Return the filesystem for ``path`` and the path inside it.

    Args:
        path: Local path or fsspec URL (``memory://...``, ``file://...``).
        fs: Optional filesystem override. When given, ``path`` is used as-is.

    Returns:
        A ``(filesystem, path)`` tuple.

    """
    path_str = str(path)
    if fs is not None:
        return fs, path_str.rstrip("/") or "/"
    fs_obj, fs_path = url_to_fs(path_str)
    return fs_obj, fs_path.rstrip("/") or "/"


def fs_join(*parts: str) -> str:
    """Join path components with ``/`` regardless of platform."""
    head, *rest = parts
    joined = head.rstrip("/")
    for part in rest:
        joined = f"{joined}/{part.strip('/')}"
    return joined


def fs_exists(fs: fsspec.AbstractFileSystem, path: str) -> bool:
    """Return ``True`` when ``path`` exists on ``fs``."""
    return bool(fs.exists(path))


def fs_makedirs(fs: fsspec.AbstractFileSystem, path: str) -> None:
    """Create ``path`` and any missing parents."""
    fs.makedirs(path, exist_ok=True)


def fs_read_json(fs: fsspec.AbstractFileSystem, path: str) -> Any:  # noqa: ANN401
    """Load a JSON document from ``fs``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        json.JSONDecodeError: If the file is not valid JSON.

    """
    with fs.open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def fs_write_json(
    fs: fsspec.AbstractFileSystem,
    path: str,
    payload: Any,  # noqa: ANN401
) -> None:
    """Write ``payload`` as pretty-printed JSON, creating the parent directory.

    Args:
        fs: Target filesystem.
        path: Target file path.
        payload: JSON-serializable value.

    """
    parent = path.rsplit("/", 1)[0]
    if parent and parent != path:
        fs_makedirs(fs, parent)
    with fs.open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)


def new_note_id() -> str:
    """Return a fresh, globally unique note identifier."""
    return f"{NOTE_ID_PREFIX}{uuid.uuid4().hex}"


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()
