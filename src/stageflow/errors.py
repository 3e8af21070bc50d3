"""Exception taxonomy for the workflow engine.

Configuration, precondition, executor-signalled and cancellation errors are
fatal for a run. Anything else raised while a stage attempt is in flight
(including `StageTimeoutError`) is treated as transient and retried within the
stage's attempt budget.
"""

from __future__ import annotations


class StageflowError(Exception):
    """Base class for all engine errors."""


class IllegalTransitionError(StageflowError, ValueError):
    pass


class WorkflowConfigurationError(StageflowError):
    """The workflow definition (or the agents wired to it) is malformed."""


class StageNotFoundError(WorkflowConfigurationError):
    def __init__(self, stage_id: str) -> None:
        super().__init__(f"Stage not found: {stage_id}")
        self.stage_id = stage_id


class AgentNotRegisteredError(WorkflowConfigurationError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent not registered: {agent_id}")
        self.agent_id = agent_id


class DuplicateAgentError(WorkflowConfigurationError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent already registered: {agent_id}")
        self.agent_id = agent_id


class DuplicateToolError(WorkflowConfigurationError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool already registered: {tool_name}")
        self.tool_name = tool_name


class InvalidInitialStateError(WorkflowConfigurationError):
    pass


class PreconditionFailedError(StageflowError):
    """A stage guard rejected the current state.

    The message is the authored precondition message, verbatim.
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class StageTimeoutError(StageflowError):
    def __init__(self, stage_id: str, timeout_ms: float) -> None:
        super().__init__("Stage timeout")
        self.stage_id = stage_id
        self.timeout_ms = timeout_ms


class ExecutorError(StageflowError):
    """Non-recoverable error reported by an executor result."""


class WorkflowCancelledError(StageflowError):
    def __init__(self, message: str = "Workflow cancelled") -> None:
        super().__init__(message)


FATAL_ERRORS: tuple[type[Exception], ...] = (
    WorkflowConfigurationError,
    PreconditionFailedError,
    ExecutorError,
    WorkflowCancelledError,
)
