from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

from .constants import REC_SYNC, STREAM_MAGIC, VERSION_MAJOR, VERSION_MINOR
from .crc32c import crc32c
from .errors import ContainerError


# Stream header (fixed 16 bytes)
# struct: <8s H H I
#  - magic[8]
#  - version_major u16
#  - version_minor u16
#  - crc32c u32 (over the preceding 12 bytes)
_STREAM_HDR_STRUCT = struct.Struct("<8sHHI")

# Record header (fixed 20 bytes)
# struct: <4s B B H Q I
#  - sync[4]
#  - rtype u8
#  - rflags u8
#  - meta_len u16 (TLV metadata bytes following the fixed header)
#  - content_len u64
#  - crc32c u32 (over fixed header without crc, plus metadata)
_REC_HDR_STRUCT = struct.Struct("<4sBBHQI")
_REC_PRE_CRC = _REC_HDR_STRUCT.size - 4

MAX_META_LEN = 0xFFFF


@dataclass
class RecordHeader:
    rtype: int
    rflags: int
    meta: bytes
    content_len: int

    def pack(self) -> bytes:
        if len(self.meta) > MAX_META_LEN:
            raise ContainerError(f"entry metadata too large ({len(self.meta)} bytes)")
        pre_crc = _REC_HDR_STRUCT.pack(REC_SYNC, self.rtype, self.rflags, len(self.meta), self.content_len, 0)
        crc = crc32c(pre_crc[:_REC_PRE_CRC] + self.meta)
        return pre_crc[:_REC_PRE_CRC] + struct.pack("<I", crc) + self.meta


def pack_stream_header() -> bytes:
    pre = _STREAM_HDR_STRUCT.pack(STREAM_MAGIC, VERSION_MAJOR, VERSION_MINOR, 0)
    return pre[:-4] + struct.pack("<I", crc32c(pre[:-4]))


def read_exact(f: BinaryIO, n: int) -> bytes:
    """Read exactly ``n`` bytes, looping over short reads from stream wrappers."""
    parts = []
    remaining = n
    while remaining:
        b = f.read(remaining)
        if not b:
            raise ContainerError("Unexpected end of archive stream")
        parts.append(b)
        remaining -= len(b)
    return b"".join(parts)


def read_stream_header(f: BinaryIO) -> tuple:
    raw = read_exact(f, _STREAM_HDR_STRUCT.size)
    magic, vmaj, vmin, crc = _STREAM_HDR_STRUCT.unpack(raw)
    if magic != STREAM_MAGIC:
        raise ContainerError("Bad archive magic")
    if crc32c(raw[:-4]) != crc:
        raise ContainerError("Archive header CRC mismatch")
    if vmaj != VERSION_MAJOR:
        raise ContainerError(f"Unsupported archive version {vmaj}.{vmin}")
    return vmaj, vmin


def read_record_header(f: BinaryIO) -> RecordHeader:
    fixed = read_exact(f, _REC_HDR_STRUCT.size)
    sync, rtype, rflags, meta_len, content_len, hdr_crc = _REC_HDR_STRUCT.unpack(fixed)
    if sync != REC_SYNC:
        raise ContainerError("Bad record sync")
    meta = read_exact(f, meta_len) if meta_len else b""
    if crc32c(fixed[:_REC_PRE_CRC] + meta) != hdr_crc:
        raise ContainerError("Record header CRC32C mismatch")
    return RecordHeader(rtype=rtype, rflags=rflags, meta=meta, content_len=content_len)
