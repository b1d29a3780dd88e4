from __future__ import annotations

import hashlib
from typing import BinaryIO, Optional

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
from .records import RecordHeader, pack_stream_header


class ContainerWriter:
    """Streaming writer for the sequential (header, content) record stream.

    Content is copied from its source in ``chunk_size`` pieces, so memory use
    stays bounded no matter how large an entry is.
    """

    def __init__(self, fh: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.fh = fh
        self.chunk_size = chunk_size
        self.entries_written = 0
        self.bytes_written = 0
        self._closed = False
        self.fh.write(pack_stream_header())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        # Only seal a stream that was written completely.
        if exc_type is None:
            self.close()

    def write_entry(self, header: EntryHeader, source: Optional[BinaryIO] = None) -> None:
        """Append one header followed by its content streamed from ``source``."""
        if self._closed:
            raise ContainerError("Container already closed")
        if header.kind == KIND_FILE:
            if source is None and header.size:
                raise ContainerError(f"No content source for {header.path}")
            rec = RecordHeader(RTYPE_ENTRY, RFLAG_CONTENT_TAG, header.pack(), header.size)
            self.fh.write(rec.pack())
            self.fh.write(self._copy_content(header, source))
        else:
            if source is not None:
                raise ContainerError(f"{header.kind_name} entry {header.path} cannot carry content")
            self.fh.write(RecordHeader(RTYPE_ENTRY, 0, header.pack(), 0).pack())
        self.entries_written += 1

    def close(self) -> None:
        """Write the end record and flush. Safe to call more than once."""
        if self._closed:
            return
        self.fh.write(RecordHeader(RTYPE_END, 0, b"", 0).pack())
        self.fh.flush()
        self._closed = True

    def _copy_content(self, header: EntryHeader, source: Optional[BinaryIO]) -> bytes:
        """Stream exactly ``header.size`` bytes and return the content tag."""
        hasher = hashlib.blake2s(digest_size=CONTENT_TAG_SIZE)
        remaining = header.size
        while remaining:
            buf = source.read(min(self.chunk_size, remaining))
            if not buf:
                raise ContainerError(
                    f"{header.path} shrank while archiving ({header.size - remaining} of {header.size} bytes)"
                )
            hasher.update(buf)
            self.fh.write(buf)
            remaining -= len(buf)
            self.bytes_written += len(buf)
        if source is not None and source.read(1):
            raise ContainerError(f"{header.path} grew while archiving (expected {header.size} bytes)")
        return hasher.digest()
