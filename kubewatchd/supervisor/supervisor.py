"""Session supervisor.

Owns the set of live watch sessions keyed by kubeconfig path. The set is
touched only on the event loop thread, through ``on_discovered``,
``on_removed`` and the per-task completion callback, so inserts driven by
discovery and removals driven by session completion never race.

There is no restart: a FAILED session is dropped from the set, and only a
later rediscovery of the same path starts a new one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import structlog

from kubewatchd.errors import SessionError
from kubewatchd.models.events import CredentialFile
from kubewatchd.models.sessions import SessionState, SessionView

_log = structlog.get_logger(component="supervisor")

_STOP_GRACE_SECONDS = 10.0


class _Runnable(Protocol):
    def run(self) -> Coroutine[Any, Any, None]: ...


SessionFactory = Callable[[CredentialFile, Callable[[str], None]], _Runnable]
"""(credential, on_active) -> object with an async ``run()``."""


@dataclass
class _SessionHandle:
    credential: CredentialFile
    task: asyncio.Task[None] | None = None
    state: SessionState = SessionState.STARTING
    context_name: str = ""


class SessionSupervisor:
    """Starts, tracks and reclaims watch sessions.

    Args:
        session_factory: Builds the session for a discovered kubeconfig.
        stop_grace:      Seconds ``stop()`` waits for cancelled sessions.
    """

    def __init__(self, session_factory: SessionFactory, stop_grace: float = _STOP_GRACE_SECONDS) -> None:
        self._factory = session_factory
        self._stop_grace = stop_grace
        self._sessions: dict[Path, _SessionHandle] = {}
        self._draining: set[asyncio.Task[None]] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def on_discovered(self, credential: CredentialFile) -> bool:
        """Start a session for *credential* unless a live one exists.

        Must be called from the event loop. Returns True if a session was
        launched.
        """
        if self._closed:
            return False
        key = credential.path
        existing = self._sessions.get(key)
        if existing is not None and existing.state.is_live:
            _log.debug("session_already_running", path=str(key), state=existing.state.value)
            return False

        handle = _SessionHandle(credential=credential)
        session = self._factory(credential, lambda context: self._on_active(handle, context))
        task = asyncio.create_task(session.run(), name=f"session:{key}")
        handle.task = task
        self._sessions[key] = handle
        task.add_done_callback(lambda t: self._on_session_ended(handle, t))
        _log.info("session_started", path=str(key))
        return True

    def on_removed(self, path: Path) -> int:
        """Cancel sessions for *path*, or for every kubeconfig beneath it.

        Returns the number of sessions cancelled. Each one leaves the live set
        immediately, so a file re-created at the same path can start a new
        session while the old task is still unwinding.
        """
        cancelled = 0
        for key, handle in list(self._sessions.items()):
            if key != path and path not in key.parents:
                continue
            del self._sessions[key]
            handle.state = SessionState.STOPPED
            if handle.task is not None and not handle.task.done():
                handle.task.cancel()
                self._draining.add(handle.task)
                handle.task.add_done_callback(self._draining.discard)
                cancelled += 1
                _log.info("session_cancelled", path=str(key), reason="credential_removed")
        return cancelled

    # ------------------------------------------------------------------
    # Session callbacks
    # ------------------------------------------------------------------

    def _on_active(self, handle: _SessionHandle, context_name: str) -> None:
        if handle.state is not SessionState.STARTING:
            return
        handle.state = SessionState.ACTIVE
        handle.context_name = context_name
        _log.info("session_active", path=str(handle.credential.path), context=context_name)

    def _on_session_ended(self, handle: _SessionHandle, task: asyncio.Task[None]) -> None:
        path = str(handle.credential.path)
        if task.cancelled():
            handle.state = SessionState.STOPPED
            _log.info("session_stopped", path=path, context=handle.context_name)
        else:
            exc = task.exception()
            if exc is None:
                handle.state = SessionState.STOPPED
                _log.warning("session_returned", path=path, context=handle.context_name)
            else:
                handle.state = SessionState.FAILED
                log_fn = _log.warning if isinstance(exc, SessionError) else _log.error
                log_fn(
                    "session_failed",
                    path=path,
                    context=handle.context_name,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )

        if self._sessions.get(handle.credential.path) is handle:
            del self._sessions[handle.credential.path]

    # ------------------------------------------------------------------
    # Introspection and shutdown
    # ------------------------------------------------------------------

    def sessions(self) -> dict[Path, SessionView]:
        """Snapshot of live sessions."""
        return {
            key: SessionView(path=key, state=handle.state, context_name=handle.context_name)
            for key, handle in self._sessions.items()
        }

    def __len__(self) -> int:
        return len(self._sessions)

    async def stop(self) -> None:
        """Cancel every session and wait for them to release their resources."""
        self._closed = True
        tasks = [h.task for h in self._sessions.values() if h.task is not None and not h.task.done()]
        tasks.extend(t for t in self._draining if not t.done())
        for task in tasks:
            task.cancel()
        if not tasks:
            return
        _done, pending = await asyncio.wait(tasks, timeout=self._stop_grace)
        if pending:
            _log.warning("sessions_did_not_stop", count=len(pending), timeout=self._stop_grace)
