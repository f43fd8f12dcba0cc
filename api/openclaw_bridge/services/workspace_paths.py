"""Workspace path normalization.

Paths are logical, rooted at ``/`` inside the remote workspace. Resolution is
purely lexical; nothing touches a filesystem.
"""

from __future__ import annotations

from openclaw_bridge.services.openclaw_errors import InvalidPath

DOCS_ROOT = "/workspace/docs"


class WorkspacePath(str):
    """A normalized workspace path. Build it with ``normalize``."""

    __slots__ = ()

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(part for part in self.split("/") if part)

    @property
    def parent(self) -> "WorkspacePath":
        parts = self.segments[:-1]
        return WorkspacePath("/" + "/".join(parts))

    @property
    def name(self) -> str:
        parts = self.segments
        return parts[-1] if parts else ""


def normalize(raw_path: object) -> WorkspacePath:
    """Return the canonical form of ``raw_path`` or raise ``InvalidPath``.

    >>> normalize("/a/./b/../c")
    '/a/c'
    """
    if not isinstance(raw_path, str):
        raise InvalidPath("Path must be a string", raw_path=raw_path)
    text = raw_path.strip()
    if not text:
        raise InvalidPath("Path is required", raw_path=raw_path)
    if "\x00" in text:
        raise InvalidPath("Invalid path", raw_path=raw_path)

    resolved: list[str] = []
    for segment in text.replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not resolved:
                # Fail closed on anything that climbs above the workspace root.
                raise InvalidPath("Invalid path", raw_path=raw_path)
            resolved.pop()
            continue
        resolved.append(segment)
    return WorkspacePath("/" + "/".join(resolved))


def is_docs_path(path: str) -> bool:
    return path == DOCS_ROOT or path.startswith(DOCS_ROOT + "/")
