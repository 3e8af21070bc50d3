"""Workflow definitions and the engine that runs them."""

from stageflow.workflow.engine import WorkflowEngine
from stageflow.workflow.events import EngineEvent, EventBus
from stageflow.workflow.types import (
    TERMINAL,
    ComputedNext,
    ConditionKind,
    NextRule,
    Precondition,
    RetryPolicy,
    StageDefinition,
    StageExecution,
    StaticNext,
    Terminal,
    WorkflowDefinition,
    WorkflowResult,
    next_rule,
)

__all__ = [
    "TERMINAL",
    "ComputedNext",
    "ConditionKind",
    "EngineEvent",
    "EventBus",
    "NextRule",
    "Precondition",
    "RetryPolicy",
    "StageDefinition",
    "StageExecution",
    "StaticNext",
    "Terminal",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowResult",
    "next_rule",
]
