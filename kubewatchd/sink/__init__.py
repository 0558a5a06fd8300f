"""Event sink layer for kubewatchd.

Submodules:
    formatting -- One-line rendering of resource events and path-safe context names.
    sinks      -- File and log-stream sinks behind the EventSink ABC.
"""

from kubewatchd.sink.formatting import format_event, safe_component
from kubewatchd.sink.sinks import EventSink, FileEventSink, LogEventSink, build_sink

__all__ = [
    "EventSink",
    "FileEventSink",
    "LogEventSink",
    "build_sink",
    "format_event",
    "safe_component",
]
