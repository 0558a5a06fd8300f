"""Remote API boundary for watch sessions.

load_credentials   -- Parse a kubeconfig and pick its first declared context.
ClusterClient      -- ABC for an authenticated connection that opens subscriptions.
Subscription       -- ABC for one change-event stream (async iterator of raw watch events).
connect_cluster    -- kubernetes-asyncio implementation of the connector.

Everything above this module speaks in terms of ResourceKind and raw watch
event dicts ``{"type": ..., "object": ..., "raw_object": ...}``; tests swap in
in-memory fakes at this seam.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

from kubewatchd.errors import ClusterConnectionError, ConfigError, StreamError
from kubewatchd.models.events import ResourceKind

_log = structlog.get_logger(component="session.client")


@dataclass(frozen=True)
class ClusterCredentials:
    """Connection parameters resolved from one kubeconfig."""

    path: Path
    context_name: str


def load_credentials(path: Path) -> ClusterCredentials:
    """Parse *path* and return its first declared context.

    Raises:
        ConfigError: the file cannot be read, is not a YAML mapping, or
            declares no named context.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"malformed kubeconfig {path}: {exc}") from exc
    if not isinstance(doc, dict):
        raise ConfigError(f"malformed kubeconfig {path}: top level is not a mapping")

    contexts = doc.get("contexts") or []
    if not isinstance(contexts, list):
        raise ConfigError(f"malformed kubeconfig {path}: contexts is not a list")
    names = [str(c["name"]) for c in contexts if isinstance(c, dict) and c.get("name")]
    if not names:
        raise ConfigError(f"kubeconfig {path} declares no contexts")
    return ClusterCredentials(path=Path(path), context_name=names[0])


class Subscription(ABC):
    """One change-event stream for a single resource kind across all namespaces.

    Iteration yields raw watch events and ends (StopAsyncIteration) when the
    server closes the stream. ``close`` must be safe to call more than once.
    """

    def __init__(self, kind: ResourceKind) -> None:
        self.kind = kind

    def __aiter__(self) -> Subscription:
        return self

    @abstractmethod
    async def __anext__(self) -> dict[str, Any]:
        """Return the next raw watch event."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""


class ClusterClient(ABC):
    """An authenticated connection to one cluster."""

    @abstractmethod
    async def subscribe(self, kind: ResourceKind) -> Subscription:
        """Open a change-event subscription for *kind*.

        Raises:
            StreamError: the subscription could not be established.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection pool."""


Connector = Callable[[ClusterCredentials], Awaitable[ClusterClient]]


class _WatchSubscription(Subscription):
    """Subscription backed by ``kubernetes_asyncio.watch.Watch``."""

    def __init__(self, kind: ResourceKind, list_fn: Callable[..., Any]) -> None:
        from kubernetes_asyncio import watch  # type: ignore[import-untyped]

        super().__init__(kind)
        self._watch = watch.Watch()
        self._stream = self._watch.stream(list_fn)

    async def __anext__(self) -> dict[str, Any]:
        return await self._stream.__anext__()  # type: ignore[no-any-return]

    async def close(self) -> None:
        self._watch.stop()
        close = getattr(self._watch, "close", None)
        if close is not None:
            await close()


class KubernetesClusterClient(ClusterClient):
    """ClusterClient over a kubernetes-asyncio ApiClient."""

    def __init__(self, api_client: Any) -> None:
        from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

        self._api_client = api_client
        self._list_fns: dict[ResourceKind, Callable[..., Any]] = {
            ResourceKind.POD: k8s_client.CoreV1Api(api_client).list_pod_for_all_namespaces,
            ResourceKind.NETWORK_POLICY: (
                k8s_client.NetworkingV1Api(api_client).list_network_policy_for_all_namespaces
            ),
            ResourceKind.DEPLOYMENT: k8s_client.AppsV1Api(api_client).list_deployment_for_all_namespaces,
        }

    async def subscribe(self, kind: ResourceKind) -> Subscription:
        list_fn = self._list_fns[kind]
        try:
            # A one-item list surfaces RBAC and transport errors before the
            # watch is handed to the merge loop.
            await list_fn(limit=1)
        except Exception as exc:
            raise StreamError(f"cannot open subscription: {exc}", kind=kind.value) from exc
        return _WatchSubscription(kind, list_fn)

    async def close(self) -> None:
        await self._api_client.close()


async def connect_cluster(credentials: ClusterCredentials) -> ClusterClient:
    """Build an ApiClient for *credentials* and verify the server answers.

    Raises:
        ClusterConnectionError: auth plugin, TLS material or transport failure.
    """
    from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
    from kubernetes_asyncio import config as k8s_config  # type: ignore[import-untyped]

    configuration = k8s_client.Configuration()
    try:
        await k8s_config.load_kube_config(
            config_file=str(credentials.path),
            context=credentials.context_name,
            client_configuration=configuration,
            persist_config=False,
        )
    except Exception as exc:
        raise ClusterConnectionError(f"cannot load context {credentials.context_name!r}: {exc}") from exc

    api_client = k8s_client.ApiClient(configuration=configuration)
    try:
        version = await k8s_client.VersionApi(api_client).get_code()
    except Exception as exc:
        await api_client.close()
        raise ClusterConnectionError(f"cluster unreachable for {credentials.context_name!r}: {exc}") from exc

    _log.debug(
        "cluster_connected",
        context=credentials.context_name,
        server_version=getattr(version, "git_version", ""),
    )
    return KubernetesClusterClient(api_client)
