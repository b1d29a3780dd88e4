from __future__ import annotations

import argparse
import logging
import stat
import sys
import time
from typing import List, Optional

from artpack.constants import DEFAULT_CHUNK_SIZE, DEFAULT_LEVEL, DEFAULT_WORKERS, KIND_DIR, KIND_FILE
from artpack.diagnostics import LoggingSink
from artpack.errors import ArtpackError, CorruptArchiveError
from artpack.service import ArchiveService, readable_bytes


def _configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Timestamped stderr logging; -v shows per-entry progress, -q only warnings."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(message)s",
        datefmt="%Y/%m/%d %H:%M:%S",
        stream=sys.stderr,
    )


def _service(*, level: int = DEFAULT_LEVEL, workers: int = DEFAULT_WORKERS, chunk_size: int = DEFAULT_CHUNK_SIZE, memory_stats: bool = False) -> ArchiveService:
    return ArchiveService(
        LoggingSink(),
        level=level,
        workers=workers,
        chunk_size=chunk_size,
        memory_stats=memory_stats,
    )


def cmd_archive(
    output: str,
    patterns: List[str],
    *,
    root: Optional[str] = None,
    level: int = DEFAULT_LEVEL,
    workers: int = DEFAULT_WORKERS,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    memory_stats: bool = False,
) -> bool:
    """Archive every path matched by ``patterns`` into ``output``.

    Args:
        output: Path of the archive to write (replaced atomically).
        patterns: Glob patterns, relative to ``root`` or the working directory.
        root: Directory patterns are resolved against.
        level: zstd compression level.
        workers: zstd compression threads.
        chunk_size: Copy buffer size in bytes.
        memory_stats: Sample memory usage for every archived entry.
    """
    svc = _service(level=level, workers=workers, chunk_size=chunk_size, memory_stats=memory_stats)
    summary = svc.archive(output, patterns, root_dir=root)
    if summary.entries == 0:
        print(f"Warning: no paths matched; {output} is an empty archive", file=sys.stderr)
    print(
        f"Done: {summary.files} files, {summary.directories} dirs "
        f"({readable_bytes(summary.bytes_in)}) -> {readable_bytes(summary.size)} in {summary.elapsed:.1f}s"
    )
    return True


def cmd_restore(archive: str, *, outdir: str = ".", chunk_size: int = DEFAULT_CHUNK_SIZE, allow_unsafe_paths: bool = False) -> bool:
    """Restore ``archive`` below ``outdir`` (absolute and ``..`` entries only with ``allow_unsafe_paths``)."""
    svc = _service(chunk_size=chunk_size)
    summary = svc.restore(archive, outdir=outdir, allow_unsafe_paths=allow_unsafe_paths)
    print(
        f"Done: restored {summary.files} files ({readable_bytes(summary.bytes_out)}), "
        f"dirs={summary.directories} skipped={summary.skipped} in {summary.elapsed:.1f}s"
    )
    return True


def cmd_list(archive: str) -> bool:
    """Print the entries stored in ``archive`` in stream order."""
    count = 0
    for h in _service().list_entries(archive):
        when = time.strftime("%Y-%m-%d %H:%M", time.localtime(h.mtime_ns / 1e9))
        suffix = "/" if h.is_dir else ""
        print(f"{stat.filemode(h.mode | _type_bits(h.kind))} {h.size:>12} {when} {h.path}{suffix}")
        count += 1
    print(f"{count} entries")
    return True


def _type_bits(kind: int) -> int:
    if kind == KIND_DIR:
        return stat.S_IFDIR
    if kind == KIND_FILE:
        return stat.S_IFREG
    return 0


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="artpack",
        description="Pack build artifacts matched by glob patterns into a zstd-compressed archive",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Log every entry")
    ap.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_archive = sub.add_parser("archive", help="Create an archive from glob patterns")
    ap_archive.add_argument("output", help="Output archive path")
    ap_archive.add_argument("patterns", nargs="+", help="Glob patterns (quote them; ** matches directories)")
    ap_archive.add_argument("--root", help="Resolve patterns against this directory instead of the working directory")
    ap_archive.add_argument("--level", type=int, default=DEFAULT_LEVEL, help=f"zstd level (default {DEFAULT_LEVEL})")
    ap_archive.add_argument("--workers", type=int, default=DEFAULT_WORKERS, help=f"zstd compression threads (default {DEFAULT_WORKERS})")
    ap_archive.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Copy buffer size in bytes")
    ap_archive.add_argument("--memstats", action="store_true", help="Log memory usage for every entry (implies -v)")

    ap_restore = sub.add_parser("restore", help="Restore an archive")
    ap_restore.add_argument("archive", help="Archive path")
    ap_restore.add_argument("--outdir", default=".", help="Output directory")
    ap_restore.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Copy buffer size in bytes")
    ap_restore.add_argument(
        "--allow-unsafe-paths",
        action="store_true",
        help="Write entries archived from absolute or .. patterns back to their original location",
    )

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    args = ap.parse_args(argv)
    _configure_logging(verbose=args.verbose or getattr(args, "memstats", False), quiet=args.quiet)
    try:
        if args.cmd == "archive":
            cmd_archive(
                args.output,
                args.patterns,
                root=args.root,
                level=args.level,
                workers=args.workers,
                chunk_size=args.chunk_size,
                memory_stats=args.memstats,
            )
        elif args.cmd == "restore":
            cmd_restore(args.archive, outdir=args.outdir, chunk_size=args.chunk_size, allow_unsafe_paths=args.allow_unsafe_paths)
        elif args.cmd == "list":
            cmd_list(args.archive)
        else:
            raise RuntimeError("Unknown command")
    except CorruptArchiveError as e:
        print(f"Error: archive is corrupt or truncated: {e}", file=sys.stderr)
        sys.exit(2)
    except (ArtpackError, OSError, RuntimeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
