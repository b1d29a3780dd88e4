"""
artpack: snapshot build artifacts into one compressed archive and restore them.

Features:

- Glob pattern selection (``*``, ``?``, ``[...]``, recursive ``**``) with
  overlapping roots collapsed so every entry is stored once.
- Sequential record stream (stream header, entry records, end record) with
  CRC32C-checked headers and a BLAKE2s tag per file.
- Multi-threaded zstd compression around the whole stream.
- Restore recreates directories and files with their permission bits and
  access/modification times.

Everything is streamed: memory use is bounded by the copy buffer, never by
file or archive size.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "errors",
    "patterns",
    "walker",
    "writer",
    "reader",
    "codec",
    "service",
]

# Programmatic API: artpack.service.archive / restore / list_entries, or
# ArchiveService for a configured instance with a diagnostics sink.
