from __future__ import annotations

import argparse
import os
import random
import shutil
import sys
import tempfile
from typing import Optional

from artpack.codec import CompressionCodec
from artpack.errors import ArtpackError


def _flip_byte(path: str, offset: int, xor_val: int = 0xFF) -> None:
    if offset < 0:
        raise ValueError("Offset must be non-negative")
    with open(path, "r+b") as f:
        f.seek(offset)
        b = f.read(1)
        if not b:
            raise ValueError("Offset beyond end of file")
        f.seek(offset)
        f.write(bytes([b[0] ^ (xor_val & 0xFF)]))
        f.flush()
        os.fsync(f.fileno())


def cmd_by_offset(args: argparse.Namespace) -> None:
    _flip_byte(args.archive, args.offset, xor_val=args.xor)
    print(f"Flipped 1 byte at offset {args.offset}")


def cmd_random(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    size = os.path.getsize(args.archive)
    if size == 0:
        raise ValueError("Archive is empty")
    for _ in range(args.count):
        _flip_byte(args.archive, rng.randrange(0, size), xor_val=args.xor)
    print(f"Flipped {args.count} byte(s) at random offsets")


def cmd_truncate(args: argparse.Namespace) -> None:
    size = os.path.getsize(args.archive)
    keep = args.keep if args.keep is not None else size // 2
    if keep < 0 or keep > size:
        raise ValueError(f"--keep must be within 0..{size}")
    with open(args.archive, "r+b") as f:
        f.truncate(keep)
    print(f"Truncated archive from {size} to {keep} bytes")


def cmd_container(args: argparse.Namespace) -> None:
    """Flip a byte of the uncompressed container stream and recompress.

    The result is a valid zstd file, so only the container's own checks
    (header CRCs, content tags) can catch the damage.
    """
    codec = CompressionCodec()
    fd, tmp = tempfile.mkstemp(dir=os.path.dirname(os.path.abspath(args.archive)))
    pos = 0
    flipped = False
    try:
        with open(args.archive, "rb") as src, os.fdopen(fd, "wb") as dst:
            with codec.decode_stream(src) as zr, codec.encode_stream(dst) as zw:
                while True:
                    buf = zr.read(65536)
                    if not buf:
                        break
                    if pos <= args.offset < pos + len(buf):
                        ba = bytearray(buf)
                        ba[args.offset - pos] ^= args.xor & 0xFF
                        buf = bytes(ba)
                        flipped = True
                    zw.write(buf)
                    pos += len(buf)
        if not flipped:
            raise ValueError(f"Offset beyond end of container stream ({pos} bytes)")
        shutil.move(tmp, args.archive)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise
    print(f"Flipped 1 container byte at offset {args.offset}")


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="artpack.corrupt", description="Corrupt artpack archives for testing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_off = sub.add_parser("by-offset", help="Flip one byte at an absolute (compressed) archive offset")
    p_off.add_argument("archive", help="Path to archive")
    p_off.add_argument("--offset", type=int, required=True, help="Absolute byte offset in archive")
    p_off.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_off.set_defaults(func=cmd_by_offset)

    p_rand = sub.add_parser("random", help="Flip N random bytes anywhere in the archive")
    p_rand.add_argument("archive", help="Path to archive")
    p_rand.add_argument("--count", type=int, default=1, help="Number of random byte flips (default 1)")
    p_rand.add_argument("--seed", type=int, default=None, help="PRNG seed for reproducibility")
    p_rand.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_rand.set_defaults(func=cmd_random)

    p_trunc = sub.add_parser("truncate", help="Cut the archive short")
    p_trunc.add_argument("archive", help="Path to archive")
    p_trunc.add_argument("--keep", type=int, default=None, help="Bytes to keep (default: half)")
    p_trunc.set_defaults(func=cmd_truncate)

    p_cont = sub.add_parser("container", help="Flip a byte inside the decompressed container stream")
    p_cont.add_argument("archive", help="Path to archive")
    p_cont.add_argument("--offset", type=int, required=True, help="Offset in the uncompressed container stream")
    p_cont.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_cont.set_defaults(func=cmd_container)

    args = ap.parse_args(argv)
    try:
        args.func(args)
    except (ArtpackError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
