"""Core event data structures and enumerations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any


class ResourceKind(StrEnum):
    """Kubernetes object categories a session subscribes to."""

    POD = "Pod"
    NETWORK_POLICY = "NetworkPolicy"
    DEPLOYMENT = "Deployment"


class ChangeType(StrEnum):
    """Watch event type as reported by the API server."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class CredentialFile:
    """A discovered kubeconfig. Identity is the path."""

    path: Path
    discovered_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC), compare=False)


@dataclass(frozen=True)
class ResourceEvent:
    """One change notification from a subscription.

    Produced by a session's subscription pump and consumed once by the filter
    chain; never persisted.
    """

    resource_kind: ResourceKind
    change_type: ChangeType
    namespace: str
    name: str
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def phase(self) -> str | None:
        """Pod status phase, if the event carries one."""
        phase = self.extra.get("phase")
        return str(phase) if phase else None
