from __future__ import annotations

import os
import posixpath

from .errors import UnsafePathError


def to_archive_path(p: str) -> str:
    """Normalize a filesystem path to the canonical archive form.

    Rules:
    - Convert OS separators and backslashes to slashes
    - Collapse '.', empty and inner '..' segments; a trailing slash is dropped
    - Keep a leading '/' and leading '..' segments: they mark paths that lie
      outside the directory the archive was made from
    - The working directory itself becomes ''
    """
    if "\x00" in p:
        raise ValueError(f"Path may not contain NUL: {p!r}")
    p = p.replace(os.sep, "/").replace("\\", "/")
    if not p:
        return ""
    p = posixpath.normpath(p)
    if p.startswith("//"):
        p = "/" + p.lstrip("/")
    return "" if p == "." else p


def is_outside(arc_path: str) -> bool:
    """True for absolute paths and paths that climb out with '..'."""
    return arc_path.startswith("/") or arc_path.split("/", 1)[0] == ".."


def names_entry(arc_path: str) -> bool:
    """False for paths made only of '/' and '..' (the root or an ancestor of it)."""
    return any(q not in ("", "..") for q in arc_path.split("/"))


def safe_join(outdir: str, arc_path: str, allow_unsafe: bool = False) -> str:
    """Map an archive path onto the filesystem below ``outdir``.

    Absolute and parent-relative paths raise :class:`UnsafePathError` unless
    ``allow_unsafe`` is set; then absolute paths are used as they are and
    parent-relative ones are resolved against ``outdir``.
    """
    rel = to_archive_path(arc_path)
    if not names_entry(rel):
        raise ValueError("Empty archive path")
    if is_outside(rel):
        if not allow_unsafe:
            raise UnsafePathError(rel)
        if rel.startswith("/"):
            return os.path.normpath(rel)
        return os.path.normpath(os.path.join(outdir or ".", *rel.split("/")))
    return os.path.join(outdir or ".", *rel.split("/"))
