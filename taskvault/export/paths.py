"""Filesystem-safe names and vault-relative paths for mirrored entities.

Layout inside the vault::

    Project/_project.md
    Project/Feature/_feature.md
    Project/Feature/Task.md
    Project/Task.md                      (task with no feature)
    Task.md                              (task with no parents)

A terminal status (completed, cancelled, deferred, archived) adds a subfolder
immediately around the entity's own file or folder::

    Completed/Project/_project.md
    Project/Archived/Feature/_feature.md
    Project/Feature/Completed/Task.md

Everything here is pure: no I/O, same inputs give the same path.
"""
from __future__ import annotations

import re

MAX_FILENAME_LENGTH = 200
UNNAMED = "_unnamed"

PROJECT_FILE = "_project.md"
FEATURE_FILE = "_feature.md"

_INVALID_CHARS_RE = re.compile(r'[/\\:*?"<>|]')
_EDGE_RE = re.compile(r"^[\s.]+|[\s.]+$")

_RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

_TERMINAL_SUBFOLDERS = {
    "COMPLETED": "Completed",
    "CANCELLED": "Cancelled",
    "DEFERRED": "Deferred",
    "ARCHIVED": "Archived",
}


def _is_reserved(name: str) -> bool:
    # Windows reserves the device name with or without an extension ("CON", "con.txt").
    stem = name.split(".", 1)[0]
    return stem.upper() in _RESERVED_NAMES


def sanitize_file_name(raw: str | None) -> str:
    """Make ``raw`` safe as a single path segment on common filesystems."""
    name = _INVALID_CHARS_RE.sub("", raw or "")
    name = _EDGE_RE.sub("", name)
    if len(name) > MAX_FILENAME_LENGTH:
        name = _EDGE_RE.sub("", name[:MAX_FILENAME_LENGTH])
    if not name:
        return UNNAMED
    if _is_reserved(name):
        name = f"_{name}"[:MAX_FILENAME_LENGTH]
    return name


def terminal_subfolder(status: str | None) -> str | None:
    if not status:
        return None
    token = status.strip().upper().replace("-", "_").replace(" ", "_")
    return _TERMINAL_SUBFOLDERS.get(token)


def _join(*segments: str | None) -> str:
    return "/".join(s for s in segments if s)


def _parent(name: str | None) -> str | None:
    if name is None or not name.strip():
        return None
    return sanitize_file_name(name)


def resolve_project_path(name: str, status: str | None = None) -> str:
    return _join(terminal_subfolder(status), sanitize_file_name(name), PROJECT_FILE)


def resolve_feature_path(
    name: str,
    project_name: str | None = None,
    status: str | None = None,
) -> str:
    return _join(
        _parent(project_name),
        terminal_subfolder(status),
        sanitize_file_name(name),
        FEATURE_FILE,
    )


def resolve_task_path(
    name: str,
    feature_name: str | None = None,
    project_name: str | None = None,
    status: str | None = None,
) -> str:
    return _join(
        _parent(project_name),
        _parent(feature_name),
        terminal_subfolder(status),
        f"{sanitize_file_name(name)}.md",
    )
