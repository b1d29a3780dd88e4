from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from .constants import KIND_DIR
from .errors import WalkError
from .header import EntryHeader, kind_from_mode


@dataclass
class FilesystemEntry:
    path: str       # filesystem path, usable with open()
    arc_path: str   # path as stored in the archive
    kind: int
    size: int
    mode: int
    mtime_ns: int
    atime_ns: int

    @classmethod
    def from_stat(cls, path: str, arc_path: str, st: os.stat_result) -> "FilesystemEntry":
        kind = kind_from_mode(st.st_mode)
        return cls(
            path=path,
            arc_path=arc_path,
            kind=kind,
            size=st.st_size if stat.S_ISREG(st.st_mode) else 0,
            mode=st.st_mode & 0o7777,
            mtime_ns=st.st_mtime_ns,
            atime_ns=st.st_atime_ns,
        )

    def to_header(self) -> EntryHeader:
        return EntryHeader(
            path=self.arc_path,
            kind=self.kind,
            size=self.size,
            mode=self.mode,
            mtime_ns=self.mtime_ns,
            atime_ns=self.atime_ns,
        )


def _lstat(path: str) -> os.stat_result:
    try:
        return os.lstat(path)
    except OSError as exc:
        raise WalkError(path, exc) from exc


def _children(path: str, arc_path: str) -> List[Tuple[str, str]]:
    try:
        with os.scandir(path) as it:
            names = sorted(e.name for e in it)
    except OSError as exc:
        raise WalkError(path, exc) from exc
    return [(os.path.join(path, n), f"{arc_path}/{n}" if arc_path else n) for n in names]


def walk(root: str, root_dir: Optional[str] = None) -> Iterator[FilesystemEntry]:
    """Yield ``root`` and everything below it, parents before children.

    Children are visited in sorted name order. Symbolic links are reported,
    never followed. ``root`` is taken relative to ``root_dir`` when given, and
    its spelling (with separators normalized) becomes the archive path.
    """
    fs_root = os.path.join(root_dir, root) if root_dir else root
    arc_root = root.replace(os.sep, "/").rstrip("/") or root
    stack: List[Tuple[str, str]] = [(fs_root, arc_root)]
    while stack:
        path, arc_path = stack.pop()
        entry = FilesystemEntry.from_stat(path, arc_path, _lstat(path))
        yield entry
        if entry.kind == KIND_DIR:
            stack.extend(reversed(_children(path, arc_path)))
