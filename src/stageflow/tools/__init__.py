"""Tools: named, schema-checked capabilities agents can call."""

from stageflow.tools.base import BaseTool
from stageflow.tools.executor import ToolExecutor
from stageflow.tools.registry import ToolRegistry
from stageflow.tools.types import (
    ToolCall,
    ToolCategory,
    ToolContext,
    ToolExecution,
    ToolResult,
    ValidationResult,
)

__all__ = [
    "BaseTool",
    "ToolCall",
    "ToolCategory",
    "ToolContext",
    "ToolExecution",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "ValidationResult",
]
