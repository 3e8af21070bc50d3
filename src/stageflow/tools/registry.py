"""Explicit tool registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from stageflow.errors import DuplicateToolError
from stageflow.tools.base import BaseTool
from stageflow.tools.executor import ToolExecutor
from stageflow.tools.types import ToolCategory

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Catalogue of available tools, from which per-agent executors are built."""

    def __init__(self, tools: Iterable[BaseTool] = ()) -> None:
        self._tools: dict[str, BaseTool] = {}
        self.register_many(tools)

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            raise DuplicateToolError(tool.name)
        self._tools[tool.name] = tool
        logger.debug(f"Tool registered: {tool.name}")

    def register_many(self, tools: Iterable[BaseTool]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def get_by_category(self, category: ToolCategory) -> list[BaseTool]:
        return [tool for tool in self._tools.values() if tool.category is category]

    def create_executor(self, names: Sequence[str] | None = None) -> ToolExecutor:
        """Build an executor over the named tools, or over every tool.

        Names that are not registered are skipped with a warning.
        """
        if names is None:
            return ToolExecutor(self._tools.values())
        tools = []
        for name in names:
            tool = self._tools.get(name)
            if tool is None:
                logger.warning("Unknown tool skipped", extra={"tool": name})
                continue
            tools.append(tool)
        return ToolExecutor(tools)

    def list(self) -> list[BaseTool]:
        return list(self._tools.values())

    def clear(self) -> None:
        self._tools.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
