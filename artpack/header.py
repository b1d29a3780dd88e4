from __future__ import annotations

import stat
from dataclasses import dataclass

from .constants import KIND_DIR, KIND_FILE, KIND_OTHER
from .tlv import decode_time, decode_uint, encode_time, iter_tlv, tlv, varint_encode

KIND_NAMES = {KIND_FILE: "file", KIND_DIR: "dir", KIND_OTHER: "other"}


def kind_from_mode(st_mode: int) -> int:
    if stat.S_ISREG(st_mode):
        return KIND_FILE
    if stat.S_ISDIR(st_mode):
        return KIND_DIR
    return KIND_OTHER


@dataclass
class EntryHeader:
    """Metadata for one archived entry; precedes its content in the stream."""

    path: str
    kind: int
    size: int = 0
    mode: int = 0
    mtime_ns: int = 0
    atime_ns: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind == KIND_DIR

    @property
    def kind_name(self) -> str:
        return KIND_NAMES.get(self.kind, "other")

    def pack(self) -> bytes:
        meta = bytearray()
        meta += tlv(1, varint_encode(self.kind))
        meta += tlv(2, self.path.encode("utf-8"))
        meta += tlv(3, varint_encode(self.mode))
        meta += tlv(4, encode_time(self.mtime_ns))
        meta += tlv(5, encode_time(self.atime_ns))
        if self.kind == KIND_FILE:
            meta += tlv(6, varint_encode(self.size))
        return bytes(meta)

    @classmethod
    def unpack(cls, meta: bytes) -> "EntryHeader":
        fields = {}
        for tag, payload in iter_tlv(meta):
            if tag == 1:
                fields["kind"] = decode_uint(payload)
            elif tag == 2:
                fields["path"] = payload.decode("utf-8")
            elif tag == 3:
                fields["mode"] = decode_uint(payload)
            elif tag == 4:
                fields["mtime_ns"] = decode_time(payload)
            elif tag == 5:
                fields["atime_ns"] = decode_time(payload)
            elif tag == 6:
                fields["size"] = decode_uint(payload)
        if "kind" not in fields or "path" not in fields:
            raise ValueError("entry metadata missing kind or path")
        if fields["kind"] not in KIND_NAMES:
            fields["kind"] = KIND_OTHER
        if fields["kind"] != KIND_FILE:
            fields["size"] = 0
        return cls(**fields)
