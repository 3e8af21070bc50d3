"""Abstract base class for tools."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from stageflow.tools.types import ToolCategory, ToolContext, ToolResult, ValidationResult


class BaseTool(ABC):
    """A named capability an agent can invoke with structured arguments.

    Subclasses set `name`, `description`, `category` and `parameters` (a
    pydantic model describing the accepted arguments) and implement `execute`.
    Arguments are parsed into `parameters` before `validate` and `execute`
    see them.
    """

    name: str
    description: str
    category: ToolCategory
    parameters: type[BaseModel]

    @abstractmethod
    async def execute(self, params: Any, context: ToolContext) -> ToolResult:
        """Run the tool.

        Args:
            params: An instance of `parameters`.
            context: The calling session and a copy of its state.

        Returns:
            The tool's output, or an error description.
        """

    def validate(self, params: Any) -> ValidationResult:
        """Check rules the parameter model cannot express. Accepts by default."""
        return ValidationResult(valid=True)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "parameters": self.parameters.model_json_schema(),
        }
