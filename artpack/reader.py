from __future__ import annotations

import hashlib
import hmac
from typing import BinaryIO, Iterator, Optional, Tuple

from .constants import (
    CONTENT_TAG_SIZE,
    DEFAULT_CHUNK_SIZE,
    KIND_FILE,
    RFLAG_CONTENT_TAG,
    RTYPE_END,
    RTYPE_ENTRY,
)
from .errors import ContainerError
from .header import EntryHeader
from .pathutil import names_entry, to_archive_path
from .records import read_exact, read_record_header, read_stream_header


class ContentReader:
    """File-like view over one entry's content.

    Reads never cross into the next record. Once the last byte is consumed the
    content tag that follows it is verified. The reader is invalidated when
    the owning :class:`ContainerReader` advances.
    """

    def __init__(self, fh: BinaryIO, header: EntryHeader, size: int, tagged: bool):
        self._fh = fh
        self.header = header
        self.remaining = size
        self._tagged = tagged
        self._hasher = hashlib.blake2s(digest_size=CONTENT_TAG_SIZE) if tagged else None
        self._finished = False
        self._valid = True
        if size == 0:
            self._finish()

    def readable(self) -> bool:
        return True

    def read(self, n: int = -1) -> bytes:
        if not self._valid:
            raise ContainerError(f"Content reader for {self.header.path} used after advancing")
        if self.remaining == 0:
            return b""
        want = self.remaining if n is None or n < 0 else min(n, self.remaining)
        if want == 0:
            return b""
        data = read_exact(self._fh, want)
        self.remaining -= len(data)
        if self._hasher is not None:
            self._hasher.update(data)
        if self.remaining == 0:
            self._finish()
        return data

    def drain(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        while self.remaining:
            self.read(chunk_size)

    def invalidate(self) -> None:
        self._valid = False

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        if not self._tagged:
            return
        tag = read_exact(self._fh, CONTENT_TAG_SIZE)
        if not hmac.compare_digest(tag, self._hasher.digest()):
            raise ContainerError(f"Content tag mismatch for {self.header.path}; data corrupted")


class ContainerReader:
    """Sequential reader yielding ``(EntryHeader, ContentReader)`` pairs in write order."""

    def __init__(self, fh: BinaryIO):
        self.fh = fh
        self.version = read_stream_header(fh)
        self._current: Optional[ContentReader] = None
        self._done = False

    def __iter__(self) -> Iterator[Tuple[EntryHeader, ContentReader]]:
        while True:
            item = self.next()
            if item is None:
                return
            yield item

    def next(self) -> Optional[Tuple[EntryHeader, ContentReader]]:
        """Advance to the next entry; ``None`` once the end record is reached."""
        if self._done:
            return None
        if self._current is not None:
            self._current.drain()
            self._current.invalidate()
            self._current = None
        rec = read_record_header(self.fh)
        if rec.rtype == RTYPE_END:
            if rec.meta or rec.content_len:
                raise ContainerError("Malformed end record")
            if self.fh.read(1):
                raise ContainerError("Unexpected data after end of archive")
            self._done = True
            return None
        if rec.rtype != RTYPE_ENTRY:
            raise ContainerError(f"Unknown record type {rec.rtype}")
        try:
            header = EntryHeader.unpack(rec.meta)
            header.path = to_archive_path(header.path)
        except ValueError as exc:
            raise ContainerError(f"Malformed entry metadata: {exc}") from exc
        if not names_entry(header.path):
            raise ContainerError(f"Entry path {header.path!r} names no file or directory")
        if header.kind == KIND_FILE:
            if rec.content_len != header.size:
                raise ContainerError(
                    f"Size mismatch for {header.path}: header {header.size}, record {rec.content_len}"
                )
        elif rec.content_len:
            raise ContainerError(f"{header.kind_name} entry {header.path} carries content")
        self._current = ContentReader(self.fh, header, rec.content_len, bool(rec.rflags & RFLAG_CONTENT_TAG))
        return header, self._current
