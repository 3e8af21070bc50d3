"""Explicit agent registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from stageflow.agents.types import Agent, AgentTask
from stageflow.errors import AgentNotRegisteredError, DuplicateAgentError

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Maps executor keys to agent instances.

    One registry is built by the entry point and handed to each engine, so
    tests and concurrent sessions never share hidden global state.
    """

    def __init__(self, agents: Iterable[Agent] = ()) -> None:
        self._agents: dict[str, Agent] = {}
        self.register_many(agents)

    def register(self, agent: Agent) -> None:
        if agent.id in self._agents:
            raise DuplicateAgentError(agent.id)
        self._agents[agent.id] = agent
        logger.debug(f"Agent registered: {agent.id}")

    def register_many(self, agents: Iterable[Agent]) -> None:
        for agent in agents:
            self.register(agent)

    def get(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def require(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotRegisteredError(agent_id)
        return agent

    def find_for_task(self, task: AgentTask) -> Agent | None:
        """Return the first registered agent whose `can_handle` accepts the task."""
        for agent in self._agents.values():
            if agent.can_handle(task):
                return agent
        return None

    def list(self) -> list[Agent]:
        return list(self._agents.values())

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)
