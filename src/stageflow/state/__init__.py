"""Session state: snapshots, change records, history and rollback."""

from stageflow.state.manager import SessionState, StateManager
from stageflow.state.types import (
    Checkpoint,
    SessionStatus,
    StateChange,
    StateSnapshot,
    StateSubscriber,
)

__all__ = [
    "Checkpoint",
    "SessionState",
    "SessionStatus",
    "StateChange",
    "StateManager",
    "StateSnapshot",
    "StateSubscriber",
]
