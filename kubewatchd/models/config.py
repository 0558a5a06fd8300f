"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from kubewatchd.models.events import ChangeType, ResourceKind


def _default_keep() -> dict[ResourceKind, frozenset[ChangeType]]:
    return {
        ResourceKind.POD: frozenset({ChangeType.ADDED, ChangeType.DELETED}),
        ResourceKind.NETWORK_POLICY: frozenset({ChangeType.MODIFIED}),
        ResourceKind.DEPLOYMENT: frozenset({ChangeType.MODIFIED}),
    }


@dataclass
class DiscoveryConfig:
    """Directory discovery configuration."""

    watch_dir: Path = Path("/var/lib/kubewatchd/kubeconfigs")
    credential_suffix: str = "kubeconfig"
    stop_on_delete: bool = False
    settle_seconds: float = 1.0


@dataclass
class FilterConfig:
    """Event filter policy: per-kind change types to keep, plus ignored namespaces."""

    keep: dict[ResourceKind, frozenset[ChangeType]] = field(default_factory=_default_keep)
    excluded_namespaces: frozenset[str] = frozenset({"kube-system"})


@dataclass
class SinkConfig:
    """Event sink configuration. No output_dir means the log stream is used."""

    output_dir: Path | None = None


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class KubeWatchConfig:
    """Top-level kubewatchd configuration."""

    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    sink: SinkConfig = field(default_factory=SinkConfig)
    log: LogConfig = field(default_factory=LogConfig)
