"""Agents: the pluggable units of work that stages delegate to."""

from stageflow.agents.base import BaseAgent
from stageflow.agents.registry import AgentRegistry
from stageflow.agents.shared import (
    ConfirmationAgent,
    FieldDefinition,
    ReviewAgent,
    SelectionAgent,
    UserInputAgent,
)
from stageflow.agents.types import (
    Agent,
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
    NextAction,
    WaitForInput,
)

__all__ = [
    "Agent",
    "AgentEvent",
    "AgentEventType",
    "AgentExecutionContext",
    "AgentRegistry",
    "AgentResult",
    "AgentTask",
    "BaseAgent",
    "Complete",
    "ConfirmationAgent",
    "Continue",
    "ErrorAction",
    "ExecutionMetadata",
    "FieldDefinition",
    "Handoff",
    "NextAction",
    "ReviewAgent",
    "SelectionAgent",
    "UserInputAgent",
    "WaitForInput",
]
