"""Contract between the engine and the units of work ("agents") stages delegate to."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Protocol, Union, runtime_checkable

from stageflow.state.types import StateSnapshot
from stageflow.tools.types import ToolExecution


@dataclass(frozen=True, slots=True)
class AgentTask:
    """The unit of work handed to an agent for one stage attempt."""

    id: str
    type: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Continue:
    """Proceed; optionally naming the next stage explicitly."""

    type: ClassVar[str] = "continue"
    next_stage: str | None = None


@dataclass(frozen=True, slots=True)
class WaitForInput:
    type: ClassVar[str] = "wait_for_input"
    prompt: str
    options: list[str] | None = None


@dataclass(frozen=True, slots=True)
class Handoff:
    """Redirect control to another stage, overriding static wiring."""

    type: ClassVar[str] = "handoff"
    target: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class Complete:
    type: ClassVar[str] = "complete"
    summary: str = ""


@dataclass(frozen=True, slots=True)
class ErrorAction:
    """Executor-signalled error.

    Non-recoverable errors fail the run immediately; recoverable ones leave the
    path forward to the stage's static `next` rule.
    """

    type: ClassVar[str] = "error"
    message: str
    recoverable: bool = False


NextAction = Union[Continue, WaitForInput, Handoff, Complete, ErrorAction]


@dataclass(frozen=True, slots=True)
class ExecutionMetadata:
    execution_time_ms: float = 0.0
    reasoning: str | None = None


@dataclass(frozen=True, slots=True)
class AgentResult:
    success: bool
    output: Any = None
    state_updates: dict[str, Any] = field(default_factory=dict)
    next_action: NextAction = field(default_factory=Continue)
    metadata: ExecutionMetadata = field(default_factory=ExecutionMetadata)
    tools_used: list[ToolExecution] = field(default_factory=list)


class AgentEventType(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"
    TOOL_CALLED = "tool_called"
    TOOL_RESULT = "tool_result"
    STATE_UPDATED = "state_updated"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AgentEvent:
    """Progress signal emitted by an agent while it works."""

    type: AgentEventType
    agent_id: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, object]:
        return {"type": self.type.value, "agent_id": self.agent_id, "data": dict(self.data)}


InputRequest = Callable[[str, Sequence[str] | None], Awaitable[str | None]]


@dataclass(frozen=True, slots=True)
class AgentExecutionContext:
    """Everything an agent may look at or call during one invocation.

    `state` is a private deep copy; mutating it has no effect on the session.
    """

    session_id: str
    stage_id: str
    task: AgentTask
    state: StateSnapshot
    emit: Callable[[AgentEvent], None]
    request_input: InputRequest

    @property
    def input(self) -> Mapping[str, Any]:
        return self.task.input


@runtime_checkable
class Agent(Protocol):
    """A pluggable unit of work a stage delegates to."""

    id: str
    name: str
    capabilities: Sequence[str]

    async def execute(self, context: AgentExecutionContext) -> AgentResult: ...

    def can_handle(self, task: AgentTask) -> bool: ...
