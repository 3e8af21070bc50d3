"""Abstract base class for agents."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

from stageflow.agents.types import (
    AgentEvent,
    AgentEventType,
    AgentExecutionContext,
    AgentResult,
    AgentTask,
    Complete,
    Continue,
    ErrorAction,
    ExecutionMetadata,
    Handoff,
    WaitForInput,
)
from stageflow.tools.base import BaseTool
from stageflow.tools.executor import ToolExecutor
from stageflow.tools.types import ToolCall, ToolContext, ToolExecution


class BaseAgent(ABC):
    """Abstract base class for agents.

    Subclasses set `id`, `name` and `capabilities` and implement `execute`.
    The `*_result` helpers build well-formed results from a start time taken
    with `time.monotonic()`. Tools passed to the constructor are reachable
    through `execute_tool_calls`.
    """

    id: str
    name: str
    capabilities: Sequence[str] = ()

    def __init__(self, tools: Iterable[BaseTool] = ()) -> None:
        self.tool_executor = ToolExecutor(tools)

    @abstractmethod
    async def execute(self, context: AgentExecutionContext) -> AgentResult:
        """Perform the stage's work.

        Args:
            context: Session id, task, state snapshot and the emit/input hooks.

        Returns:
            The result describing success, state updates and routing intent.
        """

    def can_handle(self, task: AgentTask) -> bool:
        return task.type == self.id

    async def execute_tool_calls(
        self, calls: Iterable[ToolCall], context: AgentExecutionContext
    ) -> list[ToolExecution]:
        """Run tool calls in order, emitting `tool_called`/`tool_result` around each.

        Failed calls are recorded, not raised; the caller decides what a failed
        execution means for the stage.
        """
        tool_context = ToolContext(session_id=context.session_id, state=context.state)
        executions: list[ToolExecution] = []
        for call in calls:
            context.emit(
                AgentEvent(
                    type=AgentEventType.TOOL_CALLED,
                    agent_id=self.id,
                    data={"tool": call.name, "input": call.arguments},
                )
            )
            execution = await self.tool_executor.execute(call.name, call.arguments, tool_context)
            context.emit(
                AgentEvent(
                    type=AgentEventType.TOOL_RESULT,
                    agent_id=self.id,
                    data={
                        "tool": call.name,
                        "output": execution.output,
                        "success": execution.success,
                    },
                )
            )
            executions.append(execution)
        return executions

    @staticmethod
    def elapsed_ms(started: float) -> float:
        return (time.monotonic() - started) * 1000

    def success_result(
        self,
        output: Any,
        state_updates: dict[str, Any] | None = None,
        started: float | None = None,
        *,
        next_stage: str | None = None,
        tools_used: Sequence[ToolExecution] = (),
    ) -> AgentResult:
        return AgentResult(
            success=True,
            output=output,
            state_updates=state_updates or {},
            next_action=Continue(next_stage=next_stage),
            metadata=self._metadata(started),
            tools_used=list(tools_used),
        )

    def error_result(
        self, message: str, recoverable: bool, started: float | None = None
    ) -> AgentResult:
        return AgentResult(
            success=False,
            output=None,
            next_action=ErrorAction(message=message, recoverable=recoverable),
            metadata=self._metadata(started),
        )

    def wait_for_input_result(
        self,
        prompt: str,
        options: Sequence[str] | None = None,
        started: float | None = None,
        *,
        state_updates: dict[str, Any] | None = None,
        output: Any = None,
    ) -> AgentResult:
        return AgentResult(
            success=True,
            output=output,
            state_updates=state_updates or {},
            next_action=WaitForInput(prompt=prompt, options=list(options) if options else None),
            metadata=self._metadata(started),
        )

    def complete_result(
        self,
        output: Any,
        summary: str,
        state_updates: dict[str, Any] | None = None,
        started: float | None = None,
    ) -> AgentResult:
        return AgentResult(
            success=True,
            output=output,
            state_updates=state_updates or {},
            next_action=Complete(summary=summary),
            metadata=self._metadata(started),
        )

    def handoff_result(
        self,
        target: str,
        reason: str,
        output: Any = None,
        state_updates: dict[str, Any] | None = None,
        started: float | None = None,
    ) -> AgentResult:
        return AgentResult(
            success=True,
            output=output,
            state_updates=state_updates or {},
            next_action=Handoff(target=target, reason=reason),
            metadata=self._metadata(started),
        )

    def _metadata(self, started: float | None) -> ExecutionMetadata:
        if started is None:
            return ExecutionMetadata()
        return ExecutionMetadata(execution_time_ms=self.elapsed_ms(started))
