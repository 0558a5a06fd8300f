"""Core data structures for kubewatchd."""

from kubewatchd.models.config import KubeWatchConfig
from kubewatchd.models.events import ChangeType, CredentialFile, ResourceEvent, ResourceKind
from kubewatchd.models.sessions import SessionState, SessionView

__all__ = [
    "ChangeType",
    "CredentialFile",
    "KubeWatchConfig",
    "ResourceEvent",
    "ResourceKind",
    "SessionState",
    "SessionView",
]
