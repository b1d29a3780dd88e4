from __future__ import annotations

import gc
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import psutil

# Event kinds that fire once per entry; logged at DEBUG so INFO stays readable.
_CHATTY_KINDS = {"archive.entry", "restore.entry", "memory"}


@dataclass
class DiagnosticEvent:
    kind: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Sink = Callable[[DiagnosticEvent], None]


def null_sink(event: DiagnosticEvent) -> None:
    return None


class LoggingSink:
    """Forward diagnostic events to a stdlib logger (``artpack`` by default)."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("artpack")

    def __call__(self, event: DiagnosticEvent) -> None:
        level = logging.DEBUG if event.kind in _CHATTY_KINDS else logging.INFO
        if event.kind.endswith(".error"):
            level = logging.ERROR
        elif event.kind.endswith(".skip"):
            level = logging.WARNING
        self.logger.log(level, "%s", event.message, extra={"event_kind": event.kind, "event_fields": event.fields})


@dataclass
class MemorySnapshot:
    rss: int
    vms: int
    collections: Tuple[int, ...]

    def describe(self) -> str:
        return (
            f"RSS = {self.rss // (1024 * 1024)} MiB\t"
            f"VMS = {self.vms // (1024 * 1024)} MiB\t"
            f"NumGC = {sum(self.collections)}"
        )


def sample_memory(process: Optional[psutil.Process] = None) -> MemorySnapshot:
    """Resident and virtual size of this process plus per-generation GC counts."""
    info = (process or psutil.Process()).memory_info()
    return MemorySnapshot(
        rss=info.rss,
        vms=info.vms,
        collections=tuple(s.get("collections", 0) for s in gc.get_stats()),
    )
