"""
Minimal TLV encoder/decoder for entry metadata.

Encoding
- TLV: varint(tag) || varint(length) || payload
- Integers: unsigned LEB128 varint
- Strings: UTF-8 bytes (length provided by TLV len)
- Timestamps: varint sec || varint nsec

Entry metadata tags
- 1: kind (varint)
- 2: path (utf8)
- 3: mode (varint)
- 4: mtime (sec, nsec)
- 5: atime (sec, nsec)
- 6: size (varint)

Decoders skip tags they do not know so newer writers stay readable.
"""

from __future__ import annotations

from typing import Iterator, Tuple


def varint_encode(n: int) -> bytes:
    if n < 0:
        raise ValueError("varint: negative not supported")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            break
    return bytes(out)


def varint_decode(data: bytes, pos: int) -> Tuple[int, int]:
    shift = 0
    result = 0
    while True:
        if pos >= len(data):
            raise ValueError("varint: truncated")
        b = data[pos]
        pos += 1
        result |= (b & 0x7F) << shift
        if not (b & 0x80):
            return result, pos
        shift += 7
        if shift > 63:
            raise ValueError("varint: too long")


def tlv(tag: int, payload: bytes) -> bytes:
    return varint_encode(tag) + varint_encode(len(payload)) + payload


def iter_tlv(data: bytes) -> Iterator[Tuple[int, bytes]]:
    pos = 0
    end = len(data)
    while pos < end:
        tag, pos = varint_decode(data, pos)
        ln, pos = varint_decode(data, pos)
        if pos + ln > end:
            raise ValueError("tlv: length exceeds buffer")
        yield tag, data[pos : pos + ln]
        pos += ln


def encode_time(ns: int) -> bytes:
    sec, nsec = divmod(ns, 1_000_000_000)
    return varint_encode(sec) + varint_encode(nsec)


def decode_time(payload: bytes) -> int:
    sec, pos = varint_decode(payload, 0)
    nsec, _ = varint_decode(payload, pos)
    if nsec >= 1_000_000_000:
        raise ValueError("timestamp: nanoseconds out of range")
    return sec * 1_000_000_000 + nsec


def decode_uint(payload: bytes) -> int:
    value, pos = varint_decode(payload, 0)
    if pos != len(payload):
        raise ValueError("varint: trailing bytes")
    return value
