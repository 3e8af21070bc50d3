"""Runs tool calls against a fixed set of tools."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from stageflow.errors import DuplicateToolError
from stageflow.tools.base import BaseTool
from stageflow.tools.types import ToolContext, ToolExecution

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Dispatches calls by tool name and records each one as a `ToolExecution`.

    `execute` never raises for a bad call: unknown tools, arguments the
    parameter model rejects, failed `validate` checks and errors raised by the
    tool all come back as an unsuccessful execution carrying the reason.
    """

    def __init__(self, tools: Iterable[BaseTool] = ()) -> None:
        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool

    async def execute(self, name: str, params: Any, context: ToolContext) -> ToolExecution:
        tool = self._tools.get(name)
        if tool is None:
            return ToolExecution(
                tool=name,
                input=params,
                output=None,
                success=False,
                duration_ms=0.0,
                error=f"Tool not found: {name}",
            )

        started = time.monotonic()
        try:
            parsed = tool.parameters.model_validate(params)
        except ValidationError as e:
            return self._failed(name, params, started, f"Invalid parameters: {e}")

        validation = tool.validate(parsed)
        if not validation.valid:
            return self._failed(name, params, started, ", ".join(validation.errors))

        try:
            result = await tool.execute(parsed, context)
        except Exception as e:
            logger.warning(
                "Tool failed",
                extra={"session_id": context.session_id, "tool": name, "error": str(e)},
                exc_info=True,
            )
            return self._failed(name, params, started, str(e) or type(e).__name__)

        return ToolExecution(
            tool=name,
            input=params,
            output=result.output,
            success=result.success,
            duration_ms=_elapsed_ms(started),
            error=result.error,
        )

    def list_tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get_tool(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @staticmethod
    def _failed(name: str, params: Any, started: float, error: str) -> ToolExecution:
        return ToolExecution(
            tool=name,
            input=params,
            output=None,
            success=False,
            duration_ms=_elapsed_ms(started),
            error=error,
        )


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000
