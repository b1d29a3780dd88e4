from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Set, Tuple

import psutil

from .codec import CompressionCodec
from .constants import (
    ARCHIVE_MODE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_LEVEL,
    DEFAULT_WORKERS,
    KIND_DIR,
    KIND_FILE,
    PARENT_DIR_MODE,
)
from .diagnostics import DiagnosticEvent, Sink, null_sink, sample_memory
from .errors import ArchiveIOError, ContainerError, UnsafePathError
from .header import EntryHeader
from .pathutil import names_entry, safe_join, to_archive_path
from .patterns import expand
from .reader import ContainerReader, ContentReader
from .walker import FilesystemEntry, walk
from .writer import ContainerWriter


def readable_bytes(n: int) -> str:
    """Human readable size in SI units, e.g. ``1.5 MB``."""
    unit = 1000
    if n < unit:
        return f"{n} B"
    div, exp = unit, 0
    q = n // unit
    while q >= unit:
        div *= unit
        exp += 1
        q //= unit
    return f"{n / div:.1f} {'kMGTPE'[exp]}B"


@dataclass
class ArchiveSummary:
    destination: str
    entries: int = 0
    files: int = 0
    directories: int = 0
    others: int = 0
    bytes_in: int = 0
    size: int = 0
    elapsed: float = 0.0


@dataclass
class RestoreSummary:
    source: str
    outdir: str
    files: int = 0
    directories: int = 0
    skipped: int = 0
    bytes_out: int = 0
    elapsed: float = 0.0


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class ArchiveService:
    """Archive glob-selected trees into one zstd-compressed container, and restore them.

    Every failure aborts the whole operation with an :class:`ArtpackError`;
    nothing is retried. Progress goes to ``sink``.
    """

    def __init__(
        self,
        sink: Optional[Sink] = None,
        *,
        level: int = DEFAULT_LEVEL,
        workers: int = DEFAULT_WORKERS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        memory_stats: bool = False,
    ):
        self.sink: Sink = sink or null_sink
        self.codec = CompressionCodec(level=level, workers=workers)
        self.chunk_size = chunk_size
        self.memory_stats = memory_stats
        self._process = psutil.Process() if memory_stats else None

    def _emit(self, kind: str, message: str, **fields) -> None:
        self.sink(DiagnosticEvent(kind, message, fields))

    def _fail(self, phase: str, path: str, action: str, exc: OSError) -> ArchiveIOError:
        err = ArchiveIOError(path, action, exc)
        self._emit(f"{phase}.error", f"Failed {action} {path}", path=path, error=str(exc))
        return err

    # -------- Archive --------

    def archive(self, destination: str, patterns: Iterable[str], root_dir: Optional[str] = None) -> ArchiveSummary:
        """Write every entry matched by ``patterns`` into ``destination``.

        The archive is staged in a temporary file next to ``destination`` and
        moved into place only once complete, so a failed run never leaves a
        partial archive behind.
        """
        t0 = time.monotonic()
        self._emit("archive.start", f"Starting to archive: {destination}", destination=destination)
        roots = expand(patterns, root_dir=root_dir, sink=self.sink)
        summary = ArchiveSummary(destination=destination)

        dest_dir = os.path.dirname(os.path.abspath(destination))
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".artpack-", suffix=".tmp", dir=dest_dir)
        except OSError as exc:
            raise self._fail("archive", destination, "creating staging file for", exc) from exc
        # Never archive the archive: the staging file may sit inside a matched tree.
        exclude = {os.path.abspath(tmp_path), os.path.abspath(destination)}
        try:
            try:
                with os.fdopen(fd, "wb") as raw:
                    with self.codec.encode_stream(raw) as zw:
                        with ContainerWriter(zw, chunk_size=self.chunk_size) as cw:
                            for root in roots:
                                for entry in walk(root, root_dir=root_dir):
                                    self._write_entry(cw, entry, summary, exclude)
            except OSError as exc:
                raise self._fail("archive", destination, "writing", exc) from exc
            try:
                os.replace(tmp_path, destination)
            except OSError as exc:
                raise self._fail("archive", destination, "moving staging file to", exc) from exc
        except BaseException:
            _remove_quietly(tmp_path)
            raise
        try:
            os.chmod(destination, ARCHIVE_MODE)
            summary.size = os.stat(destination).st_size
        except OSError as exc:
            raise self._fail("archive", destination, "setting mode on", exc) from exc

        summary.elapsed = time.monotonic() - t0
        self._emit(
            "archive.done",
            f"Successfully archived {readable_bytes(summary.size)} in {summary.elapsed:.3f}s!",
            destination=destination,
            size=summary.size,
            entries=summary.entries,
            elapsed=summary.elapsed,
        )
        return summary

    def _write_entry(self, cw: ContainerWriter, entry: FilesystemEntry, summary: ArchiveSummary, exclude: Set[str]) -> None:
        if os.path.abspath(entry.path) in exclude:
            self._emit("archive.skip", f"Skipping archive output: {entry.path}", path=entry.path)
            return
        header = entry.to_header()
        header.path = to_archive_path(entry.arc_path)
        if not names_entry(header.path):
            # The working directory or one of its ancestors ("." or ".."); never stored.
            return
        self._emit("archive.entry", f"File: {entry.path}", path=header.path, entry_kind=header.kind_name, size=header.size)
        if self.memory_stats:
            snap = sample_memory(self._process)
            self._emit("memory", snap.describe(), snapshot=snap)
        if header.kind == KIND_FILE:
            try:
                src = open(entry.path, "rb")
            except OSError as exc:
                raise self._fail("archive", entry.path, "opening", exc) from exc
            with src:
                try:
                    cw.write_entry(header, src)
                except OSError as exc:
                    raise self._fail("archive", entry.path, "archiving", exc) from exc
            summary.files += 1
            summary.bytes_in += header.size
        else:
            cw.write_entry(header)
            if header.kind == KIND_DIR:
                summary.directories += 1
            else:
                summary.others += 1
        summary.entries += 1

    # -------- Restore --------

    def restore(self, source: str, outdir: str = ".", *, allow_unsafe_paths: bool = False) -> RestoreSummary:
        """Extract ``source`` below ``outdir``, recreating directories and files.

        Files get their permission bits and access/modification times back
        right after their content is written. Directory metadata is applied
        once the stream ends, deepest first; the directory headers are held
        until then, so memory grows with the number of directories (not
        files or bytes).

        Entries archived from absolute or ``..`` patterns raise
        :class:`UnsafePathError` unless ``allow_unsafe_paths`` is set, in
        which case they are written back to where they were archived from.
        """
        t0 = time.monotonic()
        self._emit("restore.start", f"Starting to restore: {source}", source=source, outdir=outdir)
        summary = RestoreSummary(source=source, outdir=outdir)
        dirs: List[Tuple[str, EntryHeader]] = []
        with contextlib.closing(self._iter_targets(source, outdir, allow_unsafe_paths)) as targets:
            for target, header, content in targets:
                if header.kind == KIND_DIR:
                    self._make_dirs(target)
                    dirs.append((target, header))
                    summary.directories += 1
                elif header.kind == KIND_FILE:
                    self._emit("restore.entry", f"File: {header.path}", path=header.path, size=header.size)
                    self._restore_file(target, header, content)
                    summary.files += 1
                    summary.bytes_out += header.size
                else:
                    self._emit("restore.skip", f"Skipping {header.kind_name} entry: {header.path}", path=header.path)
                    summary.skipped += 1
        dirs.sort(key=lambda item: item[1].path.count("/"), reverse=True)
        for target, header in dirs:
            self._apply_metadata(target, header)

        summary.elapsed = time.monotonic() - t0
        self._emit(
            "restore.done",
            f"Successfully restored: {source} in {summary.elapsed:.3f}s",
            source=source,
            files=summary.files,
            elapsed=summary.elapsed,
        )
        return summary

    def list_entries(self, source: str) -> Iterator[EntryHeader]:
        """Yield the headers stored in ``source``; content is verified, not written."""
        with contextlib.closing(self._iter_targets(source, None)) as targets:
            for _target, header, _content in targets:
                yield header

    def _iter_targets(
        self, source: str, outdir: Optional[str], allow_unsafe: bool = False
    ) -> Iterator[Tuple[Optional[str], EntryHeader, ContentReader]]:
        try:
            raw = open(source, "rb")
        except OSError as exc:
            raise self._fail("restore", source, "opening", exc) from exc
        try:
            with raw, self.codec.decode_stream(raw) as zr:
                for header, content in ContainerReader(zr):
                    target = None
                    if outdir is not None:
                        try:
                            target = safe_join(outdir, header.path, allow_unsafe)
                        except UnsafePathError as exc:
                            self._emit("restore.error", str(exc), path=header.path, error=str(exc))
                            raise
                        except ValueError as exc:
                            raise ContainerError(f"Unsafe entry path {header.path!r}: {exc}") from exc
                    yield target, header, content
        except OSError as exc:
            raise self._fail("restore", source, "reading", exc) from exc

    def _make_dirs(self, path: str) -> None:
        if not path:
            return
        try:
            os.makedirs(path, PARENT_DIR_MODE, exist_ok=True)
        except OSError as exc:
            raise self._fail("restore", path, "creating directory", exc) from exc

    def _restore_file(self, target: str, header: EntryHeader, content: ContentReader) -> None:
        self._make_dirs(os.path.dirname(target))
        # One handle per entry, closed before the next entry is read.
        try:
            with open(target, "wb") as wf:
                shutil.copyfileobj(content, wf, self.chunk_size)
        except OSError as exc:
            raise self._fail("restore", target, "writing", exc) from exc
        self._apply_metadata(target, header)

    def _apply_metadata(self, target: str, header: EntryHeader) -> None:
        try:
            os.chmod(target, header.mode)
        except OSError as exc:
            raise self._fail("restore", target, "setting mode on", exc) from exc
        try:
            os.utime(target, ns=(header.atime_ns, header.mtime_ns))
        except OSError as exc:
            raise self._fail("restore", target, "setting timestamps on", exc) from exc


def archive(destination: str, patterns: Iterable[str], *, root_dir: Optional[str] = None, **kwargs) -> ArchiveSummary:
    return ArchiveService(**kwargs).archive(destination, patterns, root_dir=root_dir)


def restore(source: str, outdir: str = ".", *, allow_unsafe_paths: bool = False, **kwargs) -> RestoreSummary:
    return ArchiveService(**kwargs).restore(source, outdir=outdir, allow_unsafe_paths=allow_unsafe_paths)


def list_entries(source: str, **kwargs) -> Iterator[EntryHeader]:
    return ArchiveService(**kwargs).list_entries(source)
