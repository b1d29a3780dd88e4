"""
CRC32C (Castagnoli) over record and stream headers.
Table driven; headers are small so pure Python is fast enough.
"""

_POLY = 0x82F63B78  # reflected 0x1EDC6F41


def _make_table():
    tbl = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (c >> 1) ^ _POLY if c & 1 else c >> 1
        tbl.append(c)
    return tuple(tbl)


_TABLE = _make_table()


def crc32c(data: bytes, crc: int = 0) -> int:
    c = crc ^ 0xFFFFFFFF
    for b in data:
        c = _TABLE[(c ^ b) & 0xFF] ^ (c >> 8)
    return c ^ 0xFFFFFFFF
