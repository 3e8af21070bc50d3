from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from stageflow.errors import IllegalTransitionError


class RunPhase(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_PHASE_TRANSITIONS: dict[RunPhase, set[RunPhase]] = {
    RunPhase.NOT_STARTED: {RunPhase.RUNNING, RunPhase.FAILED},
    RunPhase.RUNNING: {RunPhase.RUNNING, RunPhase.COMPLETED, RunPhase.FAILED},
    RunPhase.COMPLETED: set(),
    RunPhase.FAILED: set(),
}


def transition(*, current: RunPhase, to: RunPhase) -> RunPhase:
    allowed = ALLOWED_PHASE_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


def is_terminal(phase: RunPhase) -> bool:
    return not ALLOWED_PHASE_TRANSITIONS.get(phase)


@dataclass(frozen=True, slots=True)
class RunSnapshot:
    """Where a run is: its phase and, while running, the stage in flight."""

    phase: RunPhase = RunPhase.NOT_STARTED
    stage_id: str | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"phase": self.phase.value}
        if self.stage_id is not None:
            out["stage_id"] = self.stage_id
        return out


def advance(current: RunSnapshot, *, to: RunPhase, stage_id: str | None = None) -> RunSnapshot:
    return RunSnapshot(phase=transition(current=current.phase, to=to), stage_id=stage_id)
