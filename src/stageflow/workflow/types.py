"""Workflow definitions and run results.

Definitions are data supplied by configuration. Fields that may carry logic
(the next-stage rule, input projectors, custom preconditions) are explicit
callables or tagged variants rather than free-form values.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel

from stageflow.agents.types import AgentResult
from stageflow.errors import StageNotFoundError
from stageflow.state.types import StateSnapshot


class ConditionKind(str, Enum):
    EXISTS = "exists"
    EQUALS = "equals"
    NOT_EMPTY = "not_empty"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class Precondition:
    """Guard evaluated against the state before a stage runs.

    `field` is a dotted path into the snapshot, e.g. `domain.city` or
    `status`. `value` is used by `equals`, `check` by `custom`.
    """

    field: str
    condition: ConditionKind
    error_message: str
    value: Any = None
    check: Callable[[StateSnapshot], bool] | None = None


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 1
    delay_ms: float = 0.0
    backoff_multiplier: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        if self.backoff_multiplier is not None and self.backoff_multiplier <= 0:
            raise ValueError("backoff_multiplier must be > 0")


@dataclass(frozen=True, slots=True)
class StaticNext:
    stage_id: str


@dataclass(frozen=True, slots=True)
class ComputedNext:
    """Next stage computed from the post-update state; `None` ends the run."""

    resolve: Callable[[StateSnapshot], str | None]


@dataclass(frozen=True, slots=True)
class Terminal:
    pass


TERMINAL = Terminal()

NextRule = Union[StaticNext, ComputedNext, Terminal]


def next_rule(value: NextRule | str | Callable[[StateSnapshot], str | None] | None) -> NextRule:
    """Coerce a literal stage id, a callable or `None` into a `NextRule`."""
    if isinstance(value, (StaticNext, ComputedNext, Terminal)):
        return value
    if value is None:
        return TERMINAL
    if isinstance(value, str):
        return StaticNext(value)
    if callable(value):
        return ComputedNext(value)
    raise TypeError(f"Unsupported next rule: {value!r}")


InputProjector = Callable[[StateSnapshot], Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class StageDefinition:
    id: str
    name: str
    agent: str
    next: NextRule = TERMINAL
    description: str = ""
    input: InputProjector | None = None
    preconditions: Sequence[Precondition] = ()
    retry: RetryPolicy | None = None
    timeout_ms: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "next", next_rule(self.next))
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")


StateHook = Callable[[StateSnapshot], Awaitable[None]]
ErrorHook = Callable[[Exception, StateSnapshot], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class WorkflowDefinition:
    """A named graph of stages.

    `create_initial_state` seeds the domain payload (caller input wins on key
    collisions). `state_schema`, when given, validates the seeded payload
    before the first stage runs.
    """

    id: str
    name: str
    stages: Sequence[StageDefinition]
    initial_stage: str
    description: str = ""
    version: str = "1.0.0"
    create_initial_state: Callable[[], Mapping[str, Any]] | None = None
    state_schema: type[BaseModel] | None = None
    on_start: StateHook | None = None
    on_complete: StateHook | None = None
    on_error: ErrorHook | None = None

    def get_stage(self, stage_id: str) -> StageDefinition:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        raise StageNotFoundError(stage_id)

    @property
    def stage_ids(self) -> list[str]:
        return [stage.id for stage in self.stages]


@dataclass(frozen=True, slots=True)
class StageExecution:
    """Execution-log entry for one stage.

    A stage that asked for user input ran twice; `interim_result` holds the
    first sub-step and `result` the one the engine acted on.
    """

    stage_id: str
    agent_id: str
    result: AgentResult
    attempts: int
    duration_ms: float
    interim_result: AgentResult | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "stage_id": self.stage_id,
            "agent_id": self.agent_id,
            "success": self.result.success,
            "next_action": self.result.next_action.type,
            "attempts": self.attempts,
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.result.tools_used:
            out["tools_used"] = [execution.tool for execution in self.result.tools_used]
        if self.interim_result is not None:
            out["interim_next_action"] = self.interim_result.next_action.type
        return out


@dataclass(frozen=True, slots=True)
class WorkflowResult:
    success: bool
    session_id: str
    final_state: StateSnapshot
    execution_log: list[StageExecution] = field(default_factory=list)
    output: Any = None
    error: str | None = None
    duration_ms: float = 0.0

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "success": self.success,
            "session_id": self.session_id,
            "status": self.final_state.status.value,
            "stages": [entry.to_json() for entry in self.execution_log],
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.error is not None:
            out["error"] = self.error
        return out
