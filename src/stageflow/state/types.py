"""Session state models."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    WAITING_FOR_INPUT = "waiting_for_input"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES: frozenset[SessionStatus] = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.ERROR}
)

ALLOWED_STATUS_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.IDLE: {
        SessionStatus.ACTIVE,
        SessionStatus.WAITING_FOR_INPUT,
        SessionStatus.COMPLETED,
        SessionStatus.ERROR,
    },
    SessionStatus.ACTIVE: {
        SessionStatus.WAITING_FOR_INPUT,
        SessionStatus.COMPLETED,
        SessionStatus.ERROR,
    },
    SessionStatus.WAITING_FOR_INPUT: {
        SessionStatus.ACTIVE,
        SessionStatus.COMPLETED,
        SessionStatus.ERROR,
    },
    SessionStatus.COMPLETED: set(),
    SessionStatus.ERROR: set(),
}


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class StateSnapshot(BaseModel):
    """One session's state at a point in time.

    The envelope fields (status, stage, agent, timestamps) are fixed; `domain`
    carries the workflow-specific payload and is schema-less.
    """

    model_config = ConfigDict(extra="forbid")

    session_id: str
    task_type: str | None = None
    status: SessionStatus = SessionStatus.IDLE
    current_stage: str | None = None
    current_agent: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)
    domain: dict[str, Any] = Field(default_factory=dict)


class StateChange(BaseModel):
    """A single leaf that differs between the state before and after an update."""

    path: list[str]
    previous_value: Any = None
    new_value: Any = None
    timestamp: datetime = Field(default_factory=_utc_now)
    source: str = "system"

    @property
    def dotted_path(self) -> str:
        return ".".join(self.path)


StateSubscriber = Callable[[StateSnapshot, list[StateChange]], None]


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """Opaque rollback token: the history length of a session at some moment."""

    session_id: str
    index: int
