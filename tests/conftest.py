"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

import pytest

from stageflow.agents.base import BaseAgent
from stageflow.agents.types import AgentExecutionContext, AgentResult
from stageflow.config import StageflowSettings
from stageflow.state.manager import StateManager
from stageflow.tools.base import BaseTool
from stageflow.workflow.events import EventBus

AgentBehaviour = Callable[[AgentExecutionContext], Awaitable[AgentResult]]


class FunctionAgent(BaseAgent):
    """Agent whose behaviour is an async function; records every call."""

    capabilities = ("test",)

    def __init__(
        self, agent_id: str, behaviour: AgentBehaviour, tools: Iterable[BaseTool] = ()
    ) -> None:
        super().__init__(tools)
        self.id = agent_id
        self.name = f"Test agent {agent_id}"
        self._behaviour = behaviour
        self.calls: list[AgentExecutionContext] = []

    async def execute(self, context: AgentExecutionContext) -> AgentResult:
        self.calls.append(context)
        return await self._behaviour(context)


@pytest.fixture
def settings() -> StageflowSettings:
    """Provide settings that ignore the environment's `.env`."""
    return StageflowSettings(
        _env_file=None,
        log_level="DEBUG",
        default_stage_timeout_ms=2_000,
        default_max_attempts=1,
        default_backoff_multiplier=1.0,
    )


@pytest.fixture
def state_manager() -> StateManager:
    return StateManager()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def make_agent() -> Callable[[str, AgentBehaviour], FunctionAgent]:
    """Provide a factory for function-backed agents."""
    return FunctionAgent
