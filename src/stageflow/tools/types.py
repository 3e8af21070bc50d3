"""Value types shared by tools, the tool executor and agents."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from stageflow.state.types import StateSnapshot


class ToolCategory(str, Enum):
    SEARCH = "search"
    DATA = "data"
    COMMUNICATION = "communication"
    USER = "user"
    STORAGE = "storage"
    EXTERNAL = "external"


@dataclass(frozen=True, slots=True)
class ToolContext:
    """What a tool may see: the calling session and a private state copy."""

    session_id: str
    state: StateSnapshot


@dataclass(frozen=True, slots=True)
class ToolCall:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResult:
    success: bool
    output: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ToolExecution:
    """Record of one tool invocation, successful or not."""

    tool: str
    input: Any
    output: Any
    success: bool
    duration_ms: float
    error: str | None = None

    def to_json(self) -> dict[str, object]:
        return {
            "tool": self.tool,
            "input": self.input,
            "output": self.output,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }
