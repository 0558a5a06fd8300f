"""Exception hierarchy for kubewatchd.

SessionError and its subclasses are local to a single watch session: they end
that session and nothing else. WatchRegistrationError belongs to the discovery
watcher and is fatal only when raised for the root directory.
"""

from __future__ import annotations

from pathlib import Path


class KubeWatchError(Exception):
    """Base class for all kubewatchd errors."""


class SessionError(KubeWatchError):
    """A watch session cannot continue."""


class ConfigError(SessionError):
    """The credential file is unreadable or malformed."""


class ClusterConnectionError(SessionError):
    """Authentication or transport setup against the cluster failed."""


class StreamError(SessionError):
    """A change-event subscription failed or delivered an unusable event."""

    def __init__(self, message: str, kind: str = "") -> None:
        super().__init__(f"{kind} stream: {message}" if kind else message)
        self.kind = kind


class SinkWriteError(SessionError):
    """The event sink could not append a record."""


class WatchRegistrationError(KubeWatchError):
    """A directory could not be registered for creation events."""

    def __init__(self, path: Path, cause: Exception) -> None:
        super().__init__(f"cannot watch {path}: {cause}")
        self.path = path
        self.cause = cause
