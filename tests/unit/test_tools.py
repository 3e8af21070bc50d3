"""Unit tests for tools: parameter checking, execution records and agent tool calls."""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import BaseModel, Field

from stageflow.agents.types import AgentEvent, AgentExecutionContext, AgentResult, AgentTask
from stageflow.errors import DuplicateToolError
from stageflow.io import ScriptedInputProvider
from stageflow.state.types import StateSnapshot
from stageflow.tools import (
    BaseTool,
    ToolCall,
    ToolCategory,
    ToolContext,
    ToolExecutor,
    ToolRegistry,
    ToolResult,
    ValidationResult,
)
from stageflow.workflow.engine import WorkflowEngine
from stageflow.workflow.events import AGENT_EVENT, EngineEvent, EventBus
from stageflow.workflow.types import StageDefinition, WorkflowDefinition


class LookupParams(BaseModel):
    city: str
    limit: int = Field(default=3, ge=1)


class CityLookupTool(BaseTool):
    name = "city_lookup"
    description = "Find places in a city"
    category = ToolCategory.SEARCH
    parameters = LookupParams

    def __init__(self) -> None:
        self.seen: list[tuple[LookupParams, ToolContext]] = []

    async def execute(self, params: LookupParams, context: ToolContext) -> ToolResult:
        self.seen.append((params, context))
        return ToolResult(success=True, output=[f"{params.city} #{n}" for n in range(params.limit)])

    def validate(self, params: LookupParams) -> ValidationResult:
        if params.city.lower() == "atlantis":
            return ValidationResult(valid=False, errors=["Unknown city", "Try another"])
        return ValidationResult(valid=True)


class EchoParams(BaseModel):
    text: str


class ExplodingTool(BaseTool):
    name = "explode"
    description = "Always raises"
    category = ToolCategory.EXTERNAL
    parameters = EchoParams

    async def execute(self, params: EchoParams, context: ToolContext) -> ToolResult:
        raise RuntimeError("upstream down")


class NoteTool(BaseTool):
    name = "note"
    description = "Store a note"
    category = ToolCategory.STORAGE
    parameters = EchoParams

    async def execute(self, params: EchoParams, context: ToolContext) -> ToolResult:
        return ToolResult(success=True, output={"stored": params.text})


def _tool_context() -> ToolContext:
    return ToolContext(session_id="sess", state=StateSnapshot(session_id="sess"))


@pytest.mark.asyncio
async def test_executor_parses_params_before_execute() -> None:
    tool = CityLookupTool()
    executor = ToolExecutor([tool])

    execution = await executor.execute("city_lookup", {"city": "Oslo", "limit": 2}, _tool_context())

    assert execution.success is True
    assert execution.output == ["Oslo #0", "Oslo #1"]
    assert execution.input == {"city": "Oslo", "limit": 2}
    assert execution.error is None
    params, context = tool.seen[0]
    assert isinstance(params, LookupParams)
    assert context.session_id == "sess"


@pytest.mark.asyncio
async def test_executor_rejects_params_the_model_refuses() -> None:
    tool = CityLookupTool()
    executor = ToolExecutor([tool])

    execution = await executor.execute("city_lookup", {"limit": 0}, _tool_context())

    assert execution.success is False
    assert execution.output is None
    assert execution.error.startswith("Invalid parameters:")
    assert tool.seen == []


@pytest.mark.asyncio
async def test_executor_reports_custom_validation_errors() -> None:
    executor = ToolExecutor([CityLookupTool()])

    execution = await executor.execute("city_lookup", {"city": "Atlantis"}, _tool_context())

    assert execution.success is False
    assert execution.error == "Unknown city, Try another"


@pytest.mark.asyncio
async def test_executor_unknown_tool_is_a_failed_execution() -> None:
    execution = await ToolExecutor().execute("missing", {"a": 1}, _tool_context())

    assert execution.success is False
    assert execution.error == "Tool not found: missing"
    assert execution.duration_ms == 0.0


@pytest.mark.asyncio
async def test_executor_turns_tool_exceptions_into_failures() -> None:
    execution = await ToolExecutor([ExplodingTool()]).execute(
        "explode", {"text": "hi"}, _tool_context()
    )

    assert execution.success is False
    assert execution.error == "upstream down"
    assert execution.to_json()["tool"] == "explode"


def test_executor_rejects_duplicate_names() -> None:
    executor = ToolExecutor([NoteTool()])

    with pytest.raises(DuplicateToolError):
        executor.register(NoteTool())
    assert "note" in executor
    assert executor.get_tool("nope") is None


def test_registry_groups_by_category_and_builds_executors() -> None:
    registry = ToolRegistry([CityLookupTool(), NoteTool(), ExplodingTool()])

    assert [tool.name for tool in registry.get_by_category(ToolCategory.SEARCH)] == ["city_lookup"]
    assert registry.get_by_category(ToolCategory.USER) == []
    assert len(registry.create_executor().list_tools()) == 3

    subset = registry.create_executor(["note", "unknown"])
    assert [tool.name for tool in subset.list_tools()] == ["note"]

    registry.clear()
    assert len(registry) == 0


def test_describe_exposes_parameter_schema() -> None:
    description = CityLookupTool().describe()

    assert description["name"] == "city_lookup"
    assert description["category"] == "search"
    assert description["parameters"]["required"] == ["city"]


@pytest.mark.asyncio
async def test_agent_tool_calls_emit_events_and_record_executions(make_agent) -> None:
    events: list[AgentEvent] = []
    agent = make_agent("planner", None, tools=[CityLookupTool(), NoteTool()])
    context = AgentExecutionContext(
        session_id="sess",
        stage_id="plan",
        task=AgentTask(id="sess-plan-1", type="plan"),
        state=StateSnapshot(session_id="sess", domain={"city": "Oslo"}),
        emit=events.append,
        request_input=ScriptedInputProvider([]).request_input,
    )

    executions = await agent.execute_tool_calls(
        [ToolCall("city_lookup", {"city": "Oslo", "limit": 1}), ToolCall("note", {})],
        context,
    )

    assert [execution.success for execution in executions] == [True, False]
    assert [(event.type.value, event.data["tool"]) for event in events] == [
        ("tool_called", "city_lookup"),
        ("tool_result", "city_lookup"),
        ("tool_called", "note"),
        ("tool_result", "note"),
    ]
    assert events[0].data["input"] == {"city": "Oslo", "limit": 1}
    assert events[1].data["output"] == ["Oslo #0"]


@pytest.mark.asyncio
async def test_engine_forwards_tool_events_and_logs_tools_used(settings, make_agent) -> None:
    async def plan(context: AgentExecutionContext) -> AgentResult:
        city: Any = context.state.domain["city"]
        executions = await agent.execute_tool_calls(
            [ToolCall("city_lookup", {"city": city})], context
        )
        return agent.success_result(executions[0].output, tools_used=executions)

    agent = make_agent("planner", plan, tools=[CityLookupTool()])
    forwarded: list[EngineEvent] = []
    bus = EventBus()
    bus.on(AGENT_EVENT, forwarded.append)
    engine = WorkflowEngine(ScriptedInputProvider([]), settings=settings, events=bus)
    engine.register_agent(agent)
    workflow = WorkflowDefinition(
        id="wf",
        name="Tools",
        initial_stage="plan",
        stages=[StageDefinition(id="plan", name="Plan", agent="planner")],
    )

    result = await engine.execute(workflow, {"city": "Oslo"})

    assert result.success is True
    assert result.output == ["Oslo #0", "Oslo #1", "Oslo #2"]
    assert [event.payload["type"] for event in forwarded] == ["tool_called", "tool_result"]
    assert result.execution_log[0].result.tools_used[0].tool == "city_lookup"
    assert result.execution_log[0].to_json()["tools_used"] == ["city_lookup"]
