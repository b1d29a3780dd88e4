from __future__ import annotations

from typing import BinaryIO

import zstandard

from .constants import DEFAULT_LEVEL, DEFAULT_WORKERS
from .errors import CodecError


class _DecodingReader:
    """Pass-through reader translating zstd failures into :class:`CodecError`."""

    def __init__(self, stream):
        self._stream = stream

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def readable(self) -> bool:
        return True

    def read(self, n: int = -1) -> bytes:
        try:
            return self._stream.read(n)
        except zstandard.ZstdError as exc:
            raise CodecError(f"zstd decompression failed: {exc}") from exc

    def close(self) -> None:
        self._stream.close()


class _EncodingWriter:
    """Pass-through writer translating zstd failures into :class:`CodecError`."""

    def __init__(self, stream):
        self._stream = stream

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        try:
            return self._stream.write(data)
        except zstandard.ZstdError as exc:
            raise CodecError(f"zstd compression failed: {exc}") from exc

    def flush(self) -> None:
        pass

    def close(self) -> None:
        try:
            self._stream.close()
        except zstandard.ZstdError as exc:
            raise CodecError(f"zstd compression failed: {exc}") from exc


class CompressionCodec:
    """zstd wrapper applied around the container stream.

    ``workers`` is the compressor thread count (0 disables threading, -1 uses
    every CPU). Decoding in python-zstandard is single threaded.
    """

    def __init__(self, level: int = DEFAULT_LEVEL, workers: int = DEFAULT_WORKERS):
        self.level = level
        self.workers = workers

    def encode_stream(self, raw_writer: BinaryIO) -> _EncodingWriter:
        try:
            cctx = zstandard.ZstdCompressor(level=self.level, threads=self.workers, write_checksum=True)
            return _EncodingWriter(cctx.stream_writer(raw_writer, closefd=False))
        except zstandard.ZstdError as exc:
            raise CodecError(f"zstd compressor setup failed: {exc}") from exc

    def decode_stream(self, raw_reader: BinaryIO) -> _DecodingReader:
        try:
            dctx = zstandard.ZstdDecompressor()
            return _DecodingReader(dctx.stream_reader(raw_reader, read_across_frames=True, closefd=False))
        except zstandard.ZstdError as exc:
            raise CodecError(f"zstd decompressor setup failed: {exc}") from exc
