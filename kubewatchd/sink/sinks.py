"""Event sinks: where kept events are written.

EventSink            -- ABC every sink must implement.
FileEventSink        -- Appends one line per event to <root>/<context>/<kind>.log,
                        opening and closing the file on every write.
LogEventSink         -- Emits each event as a structured ``resource_event`` log record.

Sinks never swallow write failures: they raise SinkWriteError so the owning
session ends FAILED while the supervisor and other sessions carry on.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

from kubewatchd.errors import SinkWriteError
from kubewatchd.models.events import ResourceKind
from kubewatchd.sink.formatting import safe_component

_log = structlog.get_logger(component="sink")


class EventSink(ABC):
    """Abstract base class for event destinations."""

    @property
    @abstractmethod
    def sink_name(self) -> str:
        """Identifier used in logs."""

    @abstractmethod
    async def write(self, context_name: str, kind: ResourceKind, record: str) -> None:
        """Append *record* to the destination for (context_name, kind).

        Raises:
            SinkWriteError: the record could not be written.
        """


class FileEventSink(EventSink):
    """Appends records to per-context, per-kind files under *root*.

    Args:
        root: Output root directory. Created on first write if missing.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def sink_name(self) -> str:
        return "file"

    @property
    def root(self) -> Path:
        return self._root

    def target(self, context_name: str, kind: ResourceKind) -> Path:
        """Destination file for (context_name, kind)."""
        return self._root / safe_component(context_name) / f"{kind.value.lower()}.log"

    async def write(self, context_name: str, kind: ResourceKind, record: str) -> None:
        target = self.target(context_name, kind)
        try:
            await asyncio.to_thread(_append_line, target, record)
        except OSError as exc:
            raise SinkWriteError(f"cannot append to {target}: {exc}") from exc


def _append_line(target: Path, record: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("a", encoding="utf-8") as fh:
        fh.write(record.rstrip("\n") + "\n")


class LogEventSink(EventSink):
    """Writes records to the structured log stream."""

    @property
    def sink_name(self) -> str:
        return "log"

    async def write(self, context_name: str, kind: ResourceKind, record: str) -> None:
        try:
            _log.info("resource_event", context=context_name, kind=kind.value, record=record)
        except (OSError, ValueError) as exc:
            raise SinkWriteError(f"cannot log record: {exc}") from exc


def build_sink(output_dir: Path | None) -> EventSink:
    """Return a file sink when an output root is configured, else the log sink."""
    if output_dir is None:
        return LogEventSink()
    return FileEventSink(output_dir)
