"""Directory discovery watcher.

Finds kubeconfig files anywhere under a root directory, now and later.

Every directory gets its own non-recursive watchdog watch, and the watch is
registered before the directory is listed. Anything created after the
registration produces an event; anything created before it shows up in the
listing. A directory that appears later (including one moved in already
populated) is registered and then listed the moment its creation event is
processed.

A matching file is not reported when it is first seen. Writers such as
``kubectl config view --raw > kubeconfig`` create the file empty and fill it
afterwards, so each candidate waits until it is non-empty and its size and
mtime have held still for ``settle_seconds``. Writes to a file after it was
reported make it a candidate again. The same file can therefore be reported
more than once; the supervisor treats rediscovery of a live path as a no-op,
and a path whose session failed on a half-written file gets another chance.

Watchdog delivers events on its own thread. The handler only forwards them
onto the event loop with ``call_soon_threadsafe``; all interpretation happens
in ``discover()`` on the loop.
"""

from __future__ import annotations

import asyncio
import os
import stat
import threading
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer

from kubewatchd.errors import WatchRegistrationError
from kubewatchd.models.events import CredentialFile

_log = structlog.get_logger(component="discovery")

_OBSERVER_JOIN_SECONDS = 5.0
_SETTLE_SECONDS = 1.0
_MIN_POLL_SECONDS = 0.05


class _Change(StrEnum):
    CREATED = "created"
    WRITTEN = "written"
    REMOVED = "removed"


@dataclass(frozen=True)
class _FsChange:
    change: _Change
    path: Path
    is_directory: bool


class _CreationHandler(FileSystemEventHandler):
    """Forwards creations, writes, removals and moves from the watchdog thread to the loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[_FsChange]) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(_Change.CREATED, event.src_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(_Change.REMOVED, event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(_Change.WRITTEN, event.src_path, False)

    def on_closed(self, event: FileSystemEvent) -> None:
        self._forward(_Change.WRITTEN, event.src_path, False)

    def on_moved(self, event: FileSystemMovedEvent) -> None:  # type: ignore[override]
        self._forward(_Change.REMOVED, event.src_path, event.is_directory)
        self._forward(_Change.CREATED, event.dest_path, event.is_directory)

    def _forward(self, change: _Change, raw_path: str | bytes, is_directory: bool) -> None:
        if self._loop.is_closed():
            return
        item = _FsChange(change, Path(os.fsdecode(raw_path)), is_directory)
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Loop closed between the check and the call; shutdown is under way.
            return


class DirectoryWatcher:
    """Discovers kubeconfig files under *root*.

    Usage::

        watcher = DirectoryWatcher(root)
        await watcher.start()          # fatal WatchRegistrationError if root can't be watched
        async for credential in watcher.discover():
            ...
        watcher.stop()

    Args:
        root:           Directory to watch.
        suffix:         Filename suffix that marks a kubeconfig.
        on_removed:     Optional callback, invoked on the loop with the path of a
                        removed kubeconfig or directory.
        settle_seconds: How long a candidate file must stay unchanged.
        observer_factory: Builds the watchdog observer.
    """

    def __init__(
        self,
        root: Path,
        suffix: str = "kubeconfig",
        on_removed: Callable[[Path], Any] | None = None,
        settle_seconds: float = _SETTLE_SECONDS,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self.root = Path(root).absolute()
        self.suffix = suffix
        self.settle_seconds = settle_seconds
        self._on_removed = on_removed
        # path -> (loop time of last change, (size, mtime_ns) at that time)
        self._candidates: dict[Path, tuple[float, tuple[int, int] | None]] = {}
        self._observer_factory = observer_factory
        self._observer: Any | None = None
        self._handler: _CreationHandler | None = None
        self._queue: asyncio.Queue[_FsChange] | None = None
        self._watches: dict[Path, _Watched] = {}
        self._lock = threading.Lock()

    # ---- lifecycle ----

    async def start(self) -> None:
        """Start the observer, watch the root and walk the existing tree.

        Raises:
            WatchRegistrationError: the root directory cannot be watched.
        """
        if self._observer is not None:
            raise RuntimeError("DirectoryWatcher already started")
        if not self.root.is_dir():
            raise WatchRegistrationError(self.root, NotADirectoryError(f"not a directory: {self.root}"))

        self._queue = asyncio.Queue()
        self._handler = _CreationHandler(asyncio.get_running_loop(), self._queue)
        observer = self._observer_factory()
        observer.start()
        self._observer = observer

        try:
            found = await asyncio.to_thread(self._watch_tree, self.root)
        except WatchRegistrationError:
            self.stop()
            raise
        for path in found:
            self._track(path)
        _log.info(
            "discovery_started",
            root=str(self.root),
            suffix=self.suffix,
            directories=len(self._watches),
            credentials=len(found),
        )

    def stop(self) -> None:
        """Stop the observer and drop all watches."""
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=_OBSERVER_JOIN_SECONDS)
        with self._lock:
            self._watches.clear()
        _log.info("discovery_stopped", root=str(self.root))

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    @property
    def watched_directories(self) -> list[Path]:
        with self._lock:
            return sorted(self._watches)

    # ---- discovery ----

    async def discover(self) -> AsyncIterator[CredentialFile]:
        """Yield a CredentialFile per kubeconfig found, at walk time or later.

        Never ends on its own; cancel the consuming task to stop.
        """
        if self._queue is None:
            raise RuntimeError("DirectoryWatcher.start() must be awaited first")
        queue = self._queue
        while True:
            timeout = max(self.settle_seconds, _MIN_POLL_SECONDS) if self._candidates else None
            try:
                item: _FsChange | None = await asyncio.wait_for(queue.get(), timeout)
            except TimeoutError:
                item = None

            if item is not None and self._in_tree(item.path):
                if item.change is _Change.REMOVED:
                    self._handle_removed(item)
                elif item.is_directory:
                    for path in await asyncio.to_thread(self._watch_tree, item.path):
                        self._track(path)
                elif self.matches(item.path.name):
                    self._track(item.path)

            for path in self._settled():
                yield CredentialFile(path=path)

    def matches(self, name: str) -> bool:
        return name.endswith(self.suffix)

    @property
    def pending_files(self) -> list[Path]:
        return sorted(self._candidates)

    def _in_tree(self, path: Path) -> bool:
        return path == self.root or path.is_relative_to(self.root)

    def _handle_removed(self, item: _FsChange) -> None:
        for path in [p for p in self._candidates if p == item.path or p.is_relative_to(item.path)]:
            del self._candidates[path]
        if item.is_directory:
            self._forget(item.path)
        if self._on_removed is not None and (item.is_directory or self.matches(item.path.name)):
            self._on_removed(item.path)

    # ---- write settling (runs on the loop) ----

    def _track(self, path: Path) -> None:
        self._candidates[path] = (asyncio.get_running_loop().time(), _signature(path))

    def _settled(self) -> list[Path]:
        """Pop and return candidates that are non-empty and unchanged for settle_seconds."""
        if not self._candidates:
            return []
        now = asyncio.get_running_loop().time()
        ready: list[Path] = []
        for path, (seen, signature) in list(self._candidates.items()):
            current = _signature(path)
            if current is None:
                del self._candidates[path]
            elif current != signature:
                self._candidates[path] = (now, current)
            elif current[0] > 0 and now - seen >= self.settle_seconds:
                del self._candidates[path]
                ready.append(path)
        return ready

    # ---- watch registration (runs in a worker thread) ----

    def _watch_tree(self, top: Path) -> list[Path]:
        """Register *top* and every directory under it, returning kubeconfigs found.

        Each directory is registered before it is listed. A registration
        failure is fatal only for the root; elsewhere that directory is left
        unmonitored and its current contents are still walked.
        """
        found: list[Path] = []
        pending = [top]
        while pending:
            directory = pending.pop()
            try:
                self._register(directory)
            except WatchRegistrationError as exc:
                if directory == self.root:
                    raise
                _log.warning("watch_registration_failed", path=str(directory), error=str(exc.cause))

            try:
                with os.scandir(directory) as entries:
                    for entry in entries:
                        if entry.is_dir(follow_symlinks=False):
                            pending.append(Path(entry.path))
                        elif self.matches(entry.name) and entry.is_file():
                            found.append(Path(entry.path))
            except OSError as exc:
                _log.warning("directory_scan_failed", path=str(directory), error=str(exc))
        return found

    def _register(self, directory: Path) -> None:
        observer = self._observer
        if observer is None or self._handler is None:
            raise WatchRegistrationError(directory, RuntimeError("observer not running"))
        with self._lock:
            current = self._watches.get(directory)
            if current is not None:
                if current.inode == _inode(directory):
                    return
                # Same path, new directory: the old emitter watches a dead inode.
                del self._watches[directory]
                self._unschedule(observer, directory, current.watch)
            try:
                watch = observer.schedule(self._handler, str(directory), recursive=False)
            except OSError as exc:
                raise WatchRegistrationError(directory, exc) from exc
            self._watches[directory] = _Watched(watch, _inode(directory))
        _log.debug("directory_watched", path=str(directory))

    def _forget(self, directory: Path) -> None:
        """Drop watches for a removed directory and everything below it.

        Entries whose path still resolves to the inode they were registered
        for are kept: the removal event is stale and the watch is live.
        """
        observer = self._observer
        with self._lock:
            stale = [
                p
                for p, watched in self._watches.items()
                if (p == directory or p.is_relative_to(directory)) and watched.inode != _inode(p)
            ]
            removed = [(p, self._watches.pop(p)) for p in stale]
        if observer is None:
            return
        for path, watched in removed:
            self._unschedule(observer, path, watched.watch)

    @staticmethod
    def _unschedule(observer: Any, path: Path, watch: Any) -> None:
        try:
            observer.unschedule(watch)
        except (KeyError, OSError) as exc:
            _log.debug("directory_unwatch_raised", path=str(path), error=str(exc))


@dataclass(frozen=True)
class _Watched:
    watch: Any
    inode: tuple[int, int] | None


def _signature(path: Path) -> tuple[int, int] | None:
    """(size, mtime_ns) of a regular file, or None if it is gone or not a file."""
    try:
        st = os.stat(path)
    except OSError:
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return (st.st_size, st.st_mtime_ns)


def _inode(path: Path) -> tuple[int, int] | None:
    """(st_dev, st_ino) of a directory, or None if nothing is there now."""
    try:
        st = os.stat(path, follow_symlinks=False)
    except OSError:
        return None
    return (st.st_dev, st.st_ino)
