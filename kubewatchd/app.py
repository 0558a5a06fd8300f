"""Application bootstrap for kubewatchd.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → sink → filters → supervisor → discovery
              → discovery loop

Shutdown runs in reverse: the discovery loop is cancelled first so no new
sessions start, then every session is cancelled and awaited, then the
filesystem observer is stopped.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubewatchd.config import load_config
from kubewatchd.discovery import DirectoryWatcher
from kubewatchd.errors import WatchRegistrationError
from kubewatchd.models.config import KubeWatchConfig
from kubewatchd.models.events import CredentialFile
from kubewatchd.observability.logging import get_logger, setup_logging
from kubewatchd.session import FilterChain, WatchSession
from kubewatchd.session.client import Connector, connect_cluster
from kubewatchd.sink import EventSink, build_sink
from kubewatchd.supervisor import SessionSupervisor

if TYPE_CHECKING:
    from collections.abc import Callable

    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeWatchApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.

    Args:
        config:    Use this configuration instead of reading the environment.
        connector: Cluster connector handed to every session.
    """

    def __init__(
        self,
        config: KubeWatchConfig | None = None,
        connector: Connector = connect_cluster,
    ) -> None:
        self.config = config
        self._connector = connector

        self.sink: EventSink | None = None
        self.filters: FilterChain | None = None
        self.supervisor: SessionSupervisor | None = None
        self.watcher: DirectoryWatcher | None = None

        self._discovery_task: asyncio.Task[None] | None = None
        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            try:
                self.config = load_config()
            except ValueError as exc:
                raise _ComponentError("config", exc) from exc

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("kubewatchd starting", version=_kubewatchd_version())

        # --- 3. Event sink ----------------------------------------------
        self.sink = build_sink(self.config.sink.output_dir)
        self._log.info(
            "event sink ready",
            sink=self.sink.sink_name,
            output_dir=str(self.config.sink.output_dir or ""),
        )

        # --- 4. Filter chain --------------------------------------------
        self.filters = FilterChain(self.config.filters)
        self._log.info("filter chain ready", policy=self.filters.describe())

        # --- 5. Session supervisor --------------------------------------
        self.supervisor = SessionSupervisor(self._session_factory(), stop_grace=_SHUTDOWN_GRACE_SECONDS)

        # --- 6. Discovery watcher ---------------------------------------
        await self._start_discovery()

        # --- 7. Discovery → supervisor loop -----------------------------
        self._discovery_task = asyncio.create_task(self._discovery_loop(), name="discovery-loop")

        self._running = True
        self._log.info("kubewatchd started", watch_dir=str(self.config.discovery.watch_dir))

    def _session_factory(self) -> Callable[[CredentialFile, Callable[[str], None]], WatchSession]:
        sink = self.sink
        filters = self.filters
        connector = self._connector
        assert sink is not None
        assert filters is not None

        def factory(credential: CredentialFile, on_active: Callable[[str], None]) -> WatchSession:
            return WatchSession(
                credential,
                sink=sink,
                filters=filters,
                on_active=on_active,
                connector=connector,
            )

        return factory

    async def _start_discovery(self) -> None:
        """Watch the root directory. Failing to watch the root is fatal."""
        assert self._log is not None
        assert self.config is not None
        assert self.supervisor is not None
        discovery = self.config.discovery
        on_removed = self.supervisor.on_removed if discovery.stop_on_delete else None
        watcher = DirectoryWatcher(
            discovery.watch_dir,
            suffix=discovery.credential_suffix,
            on_removed=on_removed,
            settle_seconds=discovery.settle_seconds,
        )
        try:
            await watcher.start()
        except WatchRegistrationError as exc:
            raise _ComponentError("discovery", exc) from exc
        self.watcher = watcher

    async def _discovery_loop(self) -> None:
        assert self.watcher is not None
        assert self.supervisor is not None
        async for credential in self.watcher.discover():
            if self._log is not None:
                self._log.info("credential discovered", path=str(credential.path))
            self.supervisor.on_discovered(credential)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop components in reverse startup order.

        Each step is wrapped independently; a failure in one does not keep
        the others from stopping.
        """
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubewatchd shutting down")
        self._running = False

        task, self._discovery_task = self._discovery_task, None
        if task is not None and not task.done():
            task.cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

        if self.supervisor is not None:
            live = len(self.supervisor)
            try:
                await asyncio.wait_for(self.supervisor.stop(), timeout=_SHUTDOWN_GRACE_SECONDS + 1)
            except TimeoutError:
                log.warning("supervisor stop timed out", sessions=live)
            except Exception as exc:
                log.error("supervisor stop raised an error", error=str(exc))

        if self.watcher is not None:
            try:
                await asyncio.to_thread(self.watcher.stop)
            except Exception as exc:
                log.error("discovery stop raised an error", error=str(exc))

        log.info("kubewatchd stopped")


def _kubewatchd_version() -> str:
    from kubewatchd import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeWatchApp()
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        # Block until a signal arrives or the discovery loop dies.
        shutdown_waiter = asyncio.create_task(shutdown.wait(), name="shutdown-waiter")
        discovery_task = app._discovery_task
        waiters: set[asyncio.Task[object]] = {shutdown_waiter}
        if discovery_task is not None:
            waiters.add(discovery_task)  # type: ignore[arg-type]
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        shutdown_waiter.cancel()
        if discovery_task is not None and discovery_task.done() and not discovery_task.cancelled():
            crash = discovery_task.exception()
            if crash is not None:
                get_logger("app").critical("discovery loop crashed", error=str(crash))
                raise SystemExit(1) from crash
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
