"""Watch session: one kubeconfig, one connection, three merged event streams.

Lifecycle of ``WatchSession.run``:

1. Parse the kubeconfig (ConfigError).
2. Connect to the cluster (ClusterConnectionError).
3. Open pod, network policy and deployment subscriptions. All three must
   succeed; any failure aborts the session (StreamError).
4. Merge loop: one pump task per subscription feeds a shared queue, so each
   kind keeps its own delivery order while the loop waits on whichever is
   ready first. Error events, missing payloads and stream ends are fatal.
   Surviving events pass the FilterChain and are appended via the EventSink.

``run`` only returns by raising (SessionError on failure, CancelledError on
shutdown). Subscriptions and the connection are released on every exit path.

Watches are opened without ``timeout_seconds`` or ``resource_version``, so the
API server closes each of them after its own watch timeout (typically 30 to
60 minutes). That close is a stream end like any other: the session fails
with "subscription closed by server" and is not restarted. Monitoring of the
cluster resumes only when its kubeconfig is rediscovered (written again,
renamed into place, or its directory re-created).
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from kubewatchd.errors import StreamError
from kubewatchd.models.events import CredentialFile, ResourceKind
from kubewatchd.observability.logging import bind_session
from kubewatchd.session.client import (
    ClusterClient,
    ClusterCredentials,
    Connector,
    Subscription,
    connect_cluster,
    load_credentials,
)
from kubewatchd.session.events import parse_watch_event
from kubewatchd.session.filters import FilterChain
from kubewatchd.sink.formatting import format_event
from kubewatchd.sink.sinks import EventSink

_log = structlog.get_logger(component="session")

_MERGE_QUEUE_SIZE = 256


@dataclass(frozen=True)
class _StreamEnd:
    """Queued by a pump when its subscription stops yielding events."""

    kind: ResourceKind
    error: BaseException | None = None


class WatchSession:
    """Watches one cluster on behalf of one discovered kubeconfig.

    Args:
        credential:  The discovered kubeconfig.
        sink:        Destination for kept events.
        filters:     Keep/drop policy.
        on_active:   Called with the context name once all subscriptions are
                     open. The supervisor uses it to record the ACTIVE state.
        connector:   Builds a ClusterClient from parsed credentials.
        loader:      Parses the kubeconfig.
    """

    def __init__(
        self,
        credential: CredentialFile,
        *,
        sink: EventSink,
        filters: FilterChain,
        on_active: Callable[[str], None] | None = None,
        connector: Connector = connect_cluster,
        loader: Callable[[Any], ClusterCredentials] = load_credentials,
    ) -> None:
        self.credential = credential
        self.context_name = ""
        self._sink = sink
        self._filters = filters
        self._on_active = on_active
        self._connector = connector
        self._loader = loader

    async def run(self) -> None:
        """Run until a stream fails or the task is cancelled."""
        bind_session(self.credential.path)
        credentials = await asyncio.to_thread(self._loader, self.credential.path)
        self.context_name = credentials.context_name
        bind_session(self.credential.path, self.context_name)

        cluster = await self._connector(credentials)
        try:
            async with contextlib.AsyncExitStack() as stack:
                subscriptions: list[Subscription] = []
                for kind in ResourceKind:
                    subscription = await cluster.subscribe(kind)
                    stack.push_async_callback(_close_quietly, subscription, kind.value)
                    subscriptions.append(subscription)

                if self._on_active is not None:
                    self._on_active(self.context_name)
                _log.info("session_subscribed", kinds=[s.kind.value for s in subscriptions])
                await self._merge(subscriptions)
        finally:
            await _close_quietly(cluster, "cluster")

    async def _merge(self, subscriptions: list[Subscription]) -> None:
        queue: asyncio.Queue[tuple[ResourceKind, Any]] = asyncio.Queue(maxsize=_MERGE_QUEUE_SIZE)
        pumps = [
            asyncio.create_task(_pump(subscription, queue), name=f"pump:{subscription.kind.value}")
            for subscription in subscriptions
        ]
        try:
            while True:
                kind, raw = await queue.get()
                if isinstance(raw, _StreamEnd):
                    if raw.error is not None:
                        raise StreamError(f"subscription failed: {raw.error}", kind=kind.value) from raw.error
                    raise StreamError("subscription closed by server", kind=kind.value)

                event = parse_watch_event(kind, raw)
                if not self._filters.accepts(event):
                    continue
                await self._sink.write(self.context_name, event.resource_kind, format_event(event))
        finally:
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)


async def _pump(subscription: Subscription, queue: asyncio.Queue[tuple[ResourceKind, Any]]) -> None:
    """Copy events from one subscription into the merge queue, then an end marker."""
    kind = subscription.kind
    try:
        async for raw in subscription:
            await queue.put((kind, raw))
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        await queue.put((kind, _StreamEnd(kind, exc)))
        return
    await queue.put((kind, _StreamEnd(kind)))


async def _close_quietly(resource: Subscription | ClusterClient, what: str) -> None:
    try:
        await resource.close()
    except Exception as exc:
        _log.debug("session_close_raised", resource=what, error=str(exc))
