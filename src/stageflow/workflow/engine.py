"""Workflow engine.

Interprets a `WorkflowDefinition` against one session, one stage at a time:

1. seed the domain payload and create the session (status `active`)
2. for each stage: guard, execute with timeout/retry, merge updates,
   optionally collect user input and re-run the agent once, route
3. finish as `completed`, or as `error` on the first fatal error

Every run returns a `WorkflowResult`; errors never escape `execute()` except
task cancellation, which is recorded and then re-raised.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from functools import partial
from typing import Any

from pydantic import ValidationError

from stageflow.agents.registry import AgentRegistry
from stageflow.agents.types import (
    Agent,
    AgentEvent,
    AgentExecutionContext,
    AgentResult,
    AgentTask,
    InputRequest,
    WaitForInput,
)
from stageflow.config import StageflowSettings
from stageflow.errors import FATAL_ERRORS, InvalidInitialStateError
from stageflow.io import InputProvider
from stageflow.state.manager import SessionState, StateManager
from stageflow.state.types import TERMINAL_STATUSES, SessionStatus
from stageflow.workflow.events import (
    AGENT_EVENT,
    STAGE_COMPLETE,
    STAGE_START,
    WORKFLOW_COMPLETE,
    WORKFLOW_ERROR,
    WORKFLOW_START,
    EventBus,
    EventHandler,
)
from stageflow.workflow.preconditions import check_preconditions
from stageflow.workflow.retry import (
    compute_delay_ms,
    run_with_deadline,
    sleep_or_cancel,
    wait_or_cancel,
)
from stageflow.workflow.routing import resolve_next_stage
from stageflow.workflow.state_machine import RunPhase, RunSnapshot, advance, is_terminal
from stageflow.workflow.types import (
    StageDefinition,
    StageExecution,
    WorkflowDefinition,
    WorkflowResult,
)

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


class WorkflowEngine:
    """Runs workflow definitions against agents registered on it.

    Args:
        input_provider: Answers `wait_for_input` requests and agents' direct
            `request_input` calls.
        agents: Registry to resolve stage agents from. A fresh one is created
            when omitted.
        state_manager: Owns the sessions created for each run.
        settings: Default timeout and retry values.
        events: Lifecycle event bus shared with observers.
    """

    def __init__(
        self,
        input_provider: InputProvider,
        agents: AgentRegistry | None = None,
        state_manager: StateManager | None = None,
        settings: StageflowSettings | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.input_provider = input_provider
        self.agents = agents if agents is not None else AgentRegistry()
        self.state_manager = state_manager if state_manager is not None else StateManager()
        self.settings = settings if settings is not None else StageflowSettings()
        self.events = events if events is not None else EventBus()

    def register_agent(self, agent: Agent) -> None:
        self.agents.register(agent)

    def register_agents(self, agents: Iterable[Agent]) -> None:
        self.agents.register_many(agents)

    def get_agent(self, agent_id: str) -> Agent | None:
        return self.agents.get(agent_id)

    def list_agents(self) -> list[Agent]:
        return self.agents.list()

    def on(self, event: str, handler: EventHandler) -> Callable[[], None]:
        return self.events.on(event, handler)

    async def execute(
        self,
        workflow: WorkflowDefinition,
        initial_input: Mapping[str, Any] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkflowResult:
        """Run a workflow to completion or to its first fatal error.

        Args:
            workflow: The stage graph to run.
            initial_input: Domain fields; they override the workflow's own
                initial state on key collisions.
            cancel_event: Optional signal that aborts the run at its next
                suspension point.

        Returns:
            The result bundle; `success` is False when the run failed.
        """
        started = time.monotonic()
        run = RunSnapshot()
        log: list[StageExecution] = []

        try:
            domain = self._initial_domain(workflow, initial_input)
        except Exception as e:
            session = self._create_session(workflow, dict(initial_input or {}))
            return await self._fail(workflow, session, run, e, log, started)

        session = self._create_session(workflow, domain)
        self.events.emit(
            WORKFLOW_START,
            {"workflow_id": workflow.id, "session_id": session.id, "stage_id": workflow.initial_stage},
        )
        logger.info(
            "Workflow started",
            extra={"workflow_id": workflow.id, "session_id": session.id},
        )

        try:
            if workflow.on_start is not None:
                await workflow.on_start(session.read())

            stage_id: str | None = workflow.initial_stage
            while stage_id is not None:
                run = advance(run, to=RunPhase.RUNNING, stage_id=stage_id)
                stage = workflow.get_stage(stage_id)
                entry = await self._run_stage(stage, session, cancel_event)
                log.append(entry)
                stage_id = resolve_next_stage(stage, entry.result, session.read())
                logger.debug(
                    "Next stage resolved",
                    extra={"session_id": session.id, "stage_id": stage.id, "next_stage": stage_id},
                )

            run = advance(run, to=RunPhase.COMPLETED)
        except asyncio.CancelledError as e:
            await self._fail(workflow, session, run, e, log, started)
            raise
        except Exception as e:
            return await self._fail(workflow, session, run, e, log, started)

        final = session.update({"status": SessionStatus.COMPLETED})
        duration_ms = _elapsed_ms(started)
        self.events.emit(
            WORKFLOW_COMPLETE,
            {
                "workflow_id": workflow.id,
                "session_id": session.id,
                "stages": [entry.stage_id for entry in log],
                "duration_ms": duration_ms,
            },
        )
        logger.info(
            "Workflow completed",
            extra={
                "workflow_id": workflow.id,
                "session_id": session.id,
                "stages": len(log),
                "duration_ms": round(duration_ms, 3),
            },
        )

        if workflow.on_complete is not None:
            try:
                await workflow.on_complete(session.read())
            except Exception:
                logger.exception("on_complete hook failed", extra={"session_id": session.id})

        return WorkflowResult(
            success=True,
            session_id=session.id,
            final_state=final,
            execution_log=log,
            output=self._last_output(log),
            duration_ms=duration_ms,
        )

    @staticmethod
    def _initial_domain(
        workflow: WorkflowDefinition, initial_input: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        domain: dict[str, Any] = {}
        if workflow.create_initial_state is not None:
            domain.update(workflow.create_initial_state())
        domain.update(initial_input or {})

        if workflow.state_schema is not None:
            try:
                workflow.state_schema.model_validate(domain)
            except ValidationError as e:
                raise InvalidInitialStateError(
                    f"Invalid initial state for workflow {workflow.id}: {e}"
                ) from e
        return domain

    def _create_session(self, workflow: WorkflowDefinition, domain: Mapping[str, Any]) -> SessionState:
        return self.state_manager.create_session(
            {
                "status": SessionStatus.ACTIVE,
                "task_type": workflow.id,
                "domain": domain,
                "metadata": {"workflow_id": workflow.id, "workflow_version": workflow.version},
            }
        )

    async def _run_stage(
        self,
        stage: StageDefinition,
        session: SessionState,
        cancel_event: asyncio.Event | None,
    ) -> StageExecution:
        started = time.monotonic()
        self.events.emit(STAGE_START, {"session_id": session.id, "stage_id": stage.id})
        session.update({"current_stage": stage.id})

        check_preconditions(stage, session.read())

        agent = self.agents.require(stage.agent)
        session.update({"current_agent": agent.id})

        task_input = dict(stage.input(session.read())) if stage.input is not None else {}
        result, attempts = await self._execute_with_retry(
            stage, agent, session, task_input, cancel_event
        )
        self._apply_updates(session, result, agent.id)

        interim: AgentResult | None = None
        if isinstance(result.next_action, WaitForInput):
            interim = result
            answer = await self._await_input(
                session, result.next_action.prompt, result.next_action.options, cancel_event
            )
            result, more = await self._execute_with_retry(
                stage,
                agent,
                session,
                {**task_input, "user_input": answer},
                cancel_event,
                attempt_offset=attempts,
            )
            attempts += more
            self._apply_updates(session, result, agent.id)

        entry = StageExecution(
            stage_id=stage.id,
            agent_id=agent.id,
            result=result,
            attempts=attempts,
            duration_ms=_elapsed_ms(started),
            interim_result=interim,
        )
        self.events.emit(
            STAGE_COMPLETE,
            {
                "session_id": session.id,
                "stage_id": stage.id,
                "agent_id": agent.id,
                "success": result.success,
                "next_action": result.next_action.type,
                "attempts": attempts,
            },
        )
        logger.info(
            "Stage completed",
            extra={
                "session_id": session.id,
                "stage_id": stage.id,
                "agent_id": agent.id,
                "attempts": attempts,
                "duration_ms": round(entry.duration_ms, 3),
            },
        )
        return entry

    async def _execute_with_retry(
        self,
        stage: StageDefinition,
        agent: Agent,
        session: SessionState,
        task_input: Mapping[str, Any],
        cancel_event: asyncio.Event | None,
        attempt_offset: int = 0,
    ) -> tuple[AgentResult, int]:
        """Run attempts sequentially until one returns a result.

        Returns:
            The result and the number of attempts it took.

        Raises:
            Exception: The last attempt's error once the budget is spent, or
                any fatal error immediately.
        """
        policy = stage.retry
        max_attempts = policy.max_attempts if policy is not None else self.settings.default_max_attempts
        timeout_ms = stage.timeout_ms or self.settings.default_stage_timeout_ms

        attempt = 0
        while True:
            attempt += 1
            task = AgentTask(
                id=f"{session.id}-{stage.id}-{attempt_offset + attempt}",
                type=stage.id,
                input=copy.deepcopy(dict(task_input)),
            )
            context = AgentExecutionContext(
                session_id=session.id,
                stage_id=stage.id,
                task=task,
                state=session.read(),
                emit=partial(self._forward_agent_event, session.id, stage.id),
                request_input=self._input_requester(session, cancel_event),
            )
            try:
                result = await run_with_deadline(
                    agent.execute(context), timeout_ms, cancel_event, stage.id
                )
                return result, attempt
            except FATAL_ERRORS:
                raise
            except Exception as e:
                logger.warning(
                    "Stage attempt failed",
                    extra={
                        "session_id": session.id,
                        "stage_id": stage.id,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error": str(e),
                    },
                )
                if attempt >= max_attempts:
                    raise
                delay_ms = (
                    compute_delay_ms(policy, attempt, self.settings.default_backoff_multiplier)
                    if policy is not None
                    else 0.0
                )
                logger.info(
                    "Retrying stage",
                    extra={
                        "session_id": session.id,
                        "stage_id": stage.id,
                        "attempt": attempt + 1,
                        "delay_ms": delay_ms,
                    },
                )
                await sleep_or_cancel(delay_ms, cancel_event)

    def _input_requester(
        self, session: SessionState, cancel_event: asyncio.Event | None
    ) -> InputRequest:
        async def request_input(prompt: str, options: Sequence[str] | None = None) -> str | None:
            return await self._await_input(session, prompt, options, cancel_event)

        return request_input

    async def _await_input(
        self,
        session: SessionState,
        prompt: str,
        options: Sequence[str] | None,
        cancel_event: asyncio.Event | None,
    ) -> str | None:
        session.update({"status": SessionStatus.WAITING_FOR_INPUT})
        logger.debug(
            "Waiting for user input",
            extra={"session_id": session.id, "stage_id": session.read().current_stage},
        )
        try:
            return await wait_or_cancel(
                self.input_provider.request_input(prompt, options), cancel_event
            )
        finally:
            if session.status is SessionStatus.WAITING_FOR_INPUT:
                session.update({"status": SessionStatus.ACTIVE})

    def _forward_agent_event(self, session_id: str, stage_id: str, event: AgentEvent) -> None:
        self.events.emit(AGENT_EVENT, {"session_id": session_id, "stage_id": stage_id, **event.to_json()})

    @staticmethod
    def _apply_updates(session: SessionState, result: AgentResult, agent_id: str) -> None:
        if result.state_updates:
            session.update_domain(result.state_updates, source=agent_id)

    @staticmethod
    def _last_output(log: Sequence[StageExecution]) -> Any:
        for entry in reversed(log):
            if entry.result.success:
                return entry.result.output
        return None

    async def _fail(
        self,
        workflow: WorkflowDefinition,
        session: SessionState,
        run: RunSnapshot,
        error: BaseException,
        log: list[StageExecution],
        started: float,
    ) -> WorkflowResult:
        message = str(error) or type(error).__name__
        if not is_terminal(run.phase):
            run = advance(run, to=RunPhase.FAILED, stage_id=run.stage_id)
        if session.status not in TERMINAL_STATUSES:
            session.update({"status": SessionStatus.ERROR, "metadata": {"error": message}})

        duration_ms = _elapsed_ms(started)
        self.events.emit(
            WORKFLOW_ERROR,
            {
                "workflow_id": workflow.id,
                "session_id": session.id,
                "stage_id": run.stage_id,
                "error": message,
            },
        )
        logger.error(
            "Workflow failed",
            extra={
                "workflow_id": workflow.id,
                "session_id": session.id,
                "stage_id": run.stage_id,
                "error": message,
                "error_type": type(error).__name__,
            },
        )

        if workflow.on_error is not None and isinstance(error, Exception):
            try:
                await workflow.on_error(error, session.read())
            except Exception:
                logger.exception("on_error hook failed", extra={"session_id": session.id})

        return WorkflowResult(
            success=False,
            session_id=session.id,
            final_state=session.read(),
            execution_log=log,
            output=self._last_output(log),
            error=message,
            duration_ms=duration_ms,
        )
