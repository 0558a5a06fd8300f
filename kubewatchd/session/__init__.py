"""Watch sessions for kubewatchd.

Submodules:
    client   -- Kubeconfig parsing and the kubernetes-asyncio connection/subscription boundary.
    events   -- Raw watch event -> ResourceEvent translation.
    filters  -- FilterChain keep/drop policy.
    session  -- WatchSession: three-way subscription merge feeding the sink.
"""

from kubewatchd.session.client import (
    ClusterClient,
    ClusterCredentials,
    Subscription,
    connect_cluster,
    load_credentials,
)
from kubewatchd.session.filters import FilterChain
from kubewatchd.session.session import WatchSession

__all__ = [
    "ClusterClient",
    "ClusterCredentials",
    "FilterChain",
    "Subscription",
    "WatchSession",
    "connect_cluster",
    "load_credentials",
]
