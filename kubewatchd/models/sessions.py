"""Watch session lifecycle structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class SessionState(StrEnum):
    """Session lifecycle. FAILED and STOPPED are terminal."""

    STARTING = "starting"
    ACTIVE = "active"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_live(self) -> bool:
        return self in (SessionState.STARTING, SessionState.ACTIVE)


@dataclass(frozen=True)
class SessionView:
    """Read-only snapshot of one supervised session."""

    path: Path
    state: SessionState
    context_name: str = ""
