from __future__ import annotations

import glob
import os
from typing import Iterable, List, Optional, Set, Tuple

from .diagnostics import DiagnosticEvent, Sink, null_sink
from .errors import InvalidPatternError


def check_pattern(pattern: str) -> None:
    """Reject patterns glob would silently misread.

    Python's fnmatch treats an unterminated ``[`` as a literal; here it is a
    malformed pattern, as is an empty pattern or one containing NUL.
    """
    if not pattern:
        raise InvalidPatternError(pattern, "empty pattern")
    if "\x00" in pattern:
        raise InvalidPatternError(pattern, "contains NUL byte")
    i, n = 0, len(pattern)
    while i < n:
        if pattern[i] == "[":
            j = i + 1
            if j < n and pattern[j] == "!":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            while j < n and pattern[j] != "]":
                j += 1
            if j >= n:
                raise InvalidPatternError(pattern, f"unterminated character class at offset {i}")
            i = j
        i += 1


def _covered_by_root(path: str, roots: Set[str]) -> bool:
    """True when walking some other root reaches ``path``.

    The walker does not follow symbolic links, so a root below a linked
    directory is only covered by an ancestor root when no component in
    between (the ancestor included) is a link.
    """
    parent = os.path.dirname(path)
    while parent and parent != path:
        if os.path.islink(parent):
            return False
        if parent in roots:
            return True
        path, parent = parent, os.path.dirname(parent)
    return False


def expand(patterns: Iterable[str], root_dir: Optional[str] = None, sink: Sink = null_sink) -> List[str]:
    """Expand glob patterns into the roots to archive.

    Matches are relative to ``root_dir`` (or the working directory) unless the
    pattern is absolute; ``**`` matches across directories, and wildcards
    match hidden names too. Roots are deduplicated by resolved path, and roots
    reached by walking another root are dropped, so every entry is archived
    once. A pattern that matches nothing is not an error.
    """
    patterns = list(patterns)
    for pattern in patterns:
        check_pattern(pattern)
    base = os.path.abspath(root_dir or os.getcwd())
    roots: List[Tuple[str, str]] = []
    resolved: Set[str] = set()
    for pattern in patterns:
        matches = sorted(glob.glob(pattern, root_dir=root_dir, recursive=True, include_hidden=True))
        sink(DiagnosticEvent("pattern", f"Expanding pattern: {pattern}", {"pattern": pattern, "matches": len(matches)}))
        for match in matches:
            full = os.path.normpath(os.path.join(base, match))
            if full in resolved:
                continue
            resolved.add(full)
            roots.append((match, full))
    return [match for match, full in roots if not _covered_by_root(full, resolved)]
