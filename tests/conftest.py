"""Shared fakes and fixtures for kubewatchd tests.

Provides in-memory stand-ins for the cluster boundary (connector, client,
subscriptions) and the event sink, plus kubeconfig file helpers, so tests can
drive sessions and the supervisor without a real Kubernetes API server.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from kubewatchd.errors import ClusterConnectionError, SinkWriteError, StreamError
from kubewatchd.models.events import ResourceKind
from kubewatchd.session.client import ClusterClient, ClusterCredentials, Subscription
from kubewatchd.sink.sinks import EventSink

# ---------------------------------------------------------------------------
# Kubeconfig helpers
# ---------------------------------------------------------------------------

_KUBECONFIG_TEMPLATE = """\
apiVersion: v1
kind: Config
clusters:
- name: {context}-cluster
  cluster:
    server: https://127.0.0.1:6443
contexts:
{contexts}
current-context: {current}
users:
- name: {context}-user
  user:
    token: not-a-real-token
"""


def write_kubeconfig(path: Path, context: str = "ctx", *extra_contexts: str) -> Path:
    """Write a minimal kubeconfig declaring *context* first."""
    names = [context, *extra_contexts]
    contexts = "\n".join(
        f"- name: {name}\n  context:\n    cluster: {context}-cluster\n    user: {context}-user" for name in names
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        _KUBECONFIG_TEMPLATE.format(context=context, contexts=contexts, current=names[-1]),
        encoding="utf-8",
    )
    return path


def make_watch_event(
    event_type: str = "ADDED",
    name: str = "web-1",
    namespace: str = "default",
    phase: str | None = "Running",
) -> dict[str, Any]:
    """Build a raw watch event shaped like kubernetes-asyncio output."""
    obj: dict[str, Any] = {"metadata": {"name": name, "namespace": namespace}}
    if phase is not None:
        obj["status"] = {"phase": phase}
    return {"type": event_type, "object": obj, "raw_object": obj}


async def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll *predicate* until it holds or fail the test after *timeout* seconds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail(f"condition not met within {timeout}s")
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Cluster fakes
# ---------------------------------------------------------------------------

_END = object()


class FakeSubscription(Subscription):
    """Subscription fed by the test through push/fail/end."""

    def __init__(self, kind: ResourceKind) -> None:
        super().__init__(kind)
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def push(self, event_type: str = "ADDED", name: str = "web-1", namespace: str = "default", **kw: Any) -> None:
        self._queue.put_nowait(make_watch_event(event_type, name, namespace, **kw))

    def push_raw(self, raw: Any) -> None:
        self._queue.put_nowait(raw)

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    async def __anext__(self) -> dict[str, Any]:
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[no-any-return]

    async def close(self) -> None:
        self.closed = True


class FakeCluster(ClusterClient):
    """ClusterClient whose subscriptions are FakeSubscriptions."""

    def __init__(self, fail_kinds: set[ResourceKind] | None = None) -> None:
        self.fail_kinds = fail_kinds or set()
        self.subscriptions: dict[ResourceKind, FakeSubscription] = {}
        self.subscribe_calls: list[ResourceKind] = []
        self.closed = False

    async def subscribe(self, kind: ResourceKind) -> Subscription:
        self.subscribe_calls.append(kind)
        if kind in self.fail_kinds:
            raise StreamError("forbidden", kind=kind.value)
        subscription = FakeSubscription(kind)
        self.subscriptions[kind] = subscription
        return subscription

    async def close(self) -> None:
        self.closed = True

    @property
    def ready(self) -> bool:
        return len(self.subscriptions) == len(ResourceKind)


class FakeConnector:
    """Connector recording every call and handing out one FakeCluster per kubeconfig path."""

    def __init__(self) -> None:
        self.calls: list[ClusterCredentials] = []
        self.clusters: dict[Path, FakeCluster] = {}
        self.refuse: set[Path] = set()
        self.fail_kinds: dict[Path, set[ResourceKind]] = {}

    async def __call__(self, credentials: ClusterCredentials) -> ClusterClient:
        self.calls.append(credentials)
        if credentials.path in self.refuse:
            raise ClusterConnectionError(f"connection refused for {credentials.context_name}")
        cluster = FakeCluster(self.fail_kinds.get(credentials.path))
        self.clusters[credentials.path] = cluster
        return cluster

    def cluster(self, path: Path) -> FakeCluster:
        return self.clusters[path]


# ---------------------------------------------------------------------------
# Sink fake
# ---------------------------------------------------------------------------


class RecordingSink(EventSink):
    """EventSink keeping records in memory; can be told to fail per context."""

    def __init__(self) -> None:
        self.records: list[tuple[str, ResourceKind, str]] = []
        self.fail_contexts: set[str] = set()

    @property
    def sink_name(self) -> str:
        return "recording"

    async def write(self, context_name: str, kind: ResourceKind, record: str) -> None:
        if context_name in self.fail_contexts:
            raise SinkWriteError(f"disk full for {context_name}")
        self.records.append((context_name, kind, record))

    def for_context(self, context_name: str) -> list[str]:
        return [record for ctx, _kind, record in self.records if ctx == context_name]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def kubeconfig(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing kubeconfigs under tmp_path: kubeconfig("a/kubeconfig", "ctx")."""

    def _write(relative: str = "a/kubeconfig", context: str = "ctx", *extra: str) -> Path:
        return write_kubeconfig(tmp_path / relative, context, *extra)

    return _write


@pytest.fixture
def waiter() -> Callable[..., Awaitable[None]]:
    return wait_for
