"""Configuration loading from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from kubewatchd.models.config import (
    DiscoveryConfig,
    FilterConfig,
    KubeWatchConfig,
    LogConfig,
    SinkConfig,
)
from kubewatchd.models.events import ChangeType, ResourceKind

_DEFAULT_FILTERS = FilterConfig()


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEWATCHD_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_list(key: str, default: str = "") -> list[str]:
    return [item.strip() for item in _env(key, default).split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in ("json", "console"):
        raise ValueError(f"Invalid log format: {value}. Must be json or console")
    return value.lower()


def _validate_settle(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as exc:
        raise ValueError(f"Invalid settle interval: {value!r}") from exc
    if seconds < 0:
        raise ValueError(f"Settle interval must not be negative: {value}")
    return seconds


def _validate_suffix(value: str) -> str:
    if not value or "/" in value:
        raise ValueError(f"Invalid credential suffix: {value!r}")
    return value


def _validate_change_types(key: str, values: list[str]) -> frozenset[ChangeType]:
    try:
        return frozenset(ChangeType(v.upper()) for v in values)
    except ValueError as exc:
        raise ValueError(f"Invalid change type in KUBEWATCHD_{key}: {values}") from exc


def _filter_key(kind: ResourceKind) -> str:
    return f"FILTER_{kind.value.upper()}"


def _load_filters() -> FilterConfig:
    keep: dict[ResourceKind, frozenset[ChangeType]] = {}
    for kind in ResourceKind:
        key = _filter_key(kind)
        default = ",".join(sorted(ct.value for ct in _DEFAULT_FILTERS.keep[kind]))
        keep[kind] = _validate_change_types(key, _env_list(key, default))
    return FilterConfig(
        keep=keep,
        excluded_namespaces=frozenset(_env_list("EXCLUDED_NAMESPACES", "kube-system")),
    )


def load_config() -> KubeWatchConfig:
    """Load configuration from KUBEWATCHD_* environment variables."""
    output_dir = _env("OUTPUT_DIR", "")
    return KubeWatchConfig(
        discovery=DiscoveryConfig(
            watch_dir=Path(_env("WATCH_DIR", "/var/lib/kubewatchd/kubeconfigs")),
            credential_suffix=_validate_suffix(_env("CREDENTIAL_SUFFIX", "kubeconfig")),
            stop_on_delete=_env_bool("STOP_ON_DELETE", False),
            settle_seconds=_validate_settle(_env("SETTLE_SECONDS", "1.0")),
        ),
        filters=_load_filters(),
        sink=SinkConfig(
            output_dir=Path(output_dir) if output_dir else None,
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
