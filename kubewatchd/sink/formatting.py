"""Human-readable single-line rendering of resource events."""

from __future__ import annotations

import re
from datetime import UTC, datetime

from kubewatchd.models.events import ResourceEvent, ResourceKind

_KIND_LABELS = {
    ResourceKind.POD: "pod",
    ResourceKind.NETWORK_POLICY: "netpol",
    ResourceKind.DEPLOYMENT: "deploy",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def format_event(event: ResourceEvent, now: datetime | None = None) -> str:
    """Render *event* as one line (no trailing newline).

    Example::

        2026-10-19T09:12:44+00:00 pod ADDED web-6d4b9 (default) phase=Running
    """
    ts = (now or datetime.now(tz=UTC)).isoformat(timespec="seconds")
    label = _KIND_LABELS.get(event.resource_kind, str(event.resource_kind).lower())
    line = f"{ts} {label} {event.change_type.value} {event.name} ({event.namespace})"
    if event.resource_kind is ResourceKind.POD:
        line += f" phase={event.phase or 'Unknown'}"
    return line


def safe_component(name: str) -> str:
    """Make a context name usable as a single path component.

    EKS-style contexts (``arn:aws:eks:...:cluster/prod``) contain ``/`` and
    ``:``; both become ``_``. Names that reduce to dots are prefixed.
    """
    cleaned = _UNSAFE_CHARS.sub("_", name) or "_"
    if cleaned.strip(".") == "":
        cleaned = f"_{cleaned}"
    return cleaned
