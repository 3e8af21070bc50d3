"""Reusable interactive agents.

These agents only talk to the user through `context.request_input` (or the
engine's input sub-step) and write what they learn into the domain payload.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from stageflow.agents.base import BaseAgent
from stageflow.agents.types import (
    AgentEvent,
    AgentEventType,
    AgentExecutionContext,
    AgentResult,
    AgentTask,
    Complete,
    Continue,
    ErrorAction,
    ExecutionMetadata,
    WaitForInput,
)

logger = logging.getLogger(__name__)


class ConfirmationAgent(BaseAgent):
    """Ask the user to confirm before the workflow proceeds.

    Task input (all optional): `message`, `details` (mapping rendered below the
    message), `confirm_text`, `cancel_text`. A declined or cancelled prompt
    completes the workflow with the summary "User cancelled".
    """

    id = "shared:confirmation"
    name = "Confirmation Agent"
    capabilities = ("information-gathering",)

    def can_handle(self, task: AgentTask) -> bool:
        return task.type == "confirmation"

    async def execute(self, context: AgentExecutionContext) -> AgentResult:
        started = time.monotonic()
        task_input = context.input

        message = str(task_input.get("message") or "Please confirm:")
        details = task_input.get("details")
        if isinstance(details, Mapping) and details:
            lines = [f"  {key}: {value}" for key, value in details.items()]
            message += "\n\n" + "\n".join(lines)

        confirm_text = str(task_input.get("confirm_text") or "Yes, proceed")
        cancel_text = str(task_input.get("cancel_text") or "No, cancel")

        answer = await context.request_input(message, [confirm_text, cancel_text])
        response = cancel_text if answer is None else answer
        confirmed = response == confirm_text or "yes" in response.lower()

        return AgentResult(
            success=True,
            output={"confirmed": confirmed},
            next_action=Continue() if confirmed else Complete(summary="User cancelled"),
            metadata=ExecutionMetadata(execution_time_ms=self.elapsed_ms(started)),
        )


class SelectionAgent(BaseAgent):
    """Let the user pick one of several options.

    Task input: `options` (strings or `{"label": ..., "value": ...}` mappings),
    optional `prompt` and `state_field`. When `state_field` is set, the chosen
    value is written to that domain field.
    """

    id = "shared:selection"
    name = "Selection Agent"
    capabilities = ("information-gathering",)

    def can_handle(self, task: AgentTask) -> bool:
        return task.type == "selection" and "options" in task.input

    async def execute(self, context: AgentExecutionContext) -> AgentResult:
        started = time.monotonic()
        task_input = context.input
        options: Sequence[Any] = task_input.get("options") or []

        if not options:
            return self.error_result("No options provided", recoverable=False, started=started)

        labels = [self._label(option) for option in options]
        answer = await context.request_input(
            str(task_input.get("prompt") or "Please select an option:"), labels
        )

        index = labels.index(answer) if answer in labels else 0
        value = self._value(options[index])

        state_field = task_input.get("state_field")
        updates = {str(state_field): value} if state_field else {}

        return self.success_result(
            {"selected": value, "index": index}, updates, started
        )

    @staticmethod
    def _label(option: Any) -> str:
        if isinstance(option, Mapping):
            return str(option.get("label", option.get("value", "")))
        return str(option)

    @staticmethod
    def _value(option: Any) -> Any:
        if isinstance(option, Mapping):
            return option.get("value", option.get("label"))
        return option


class ReviewAgent(BaseAgent):
    """Show content to the user for approval or revision.

    Task input: `content` (text, or any JSON-able value rendered indented),
    plus optional `title`, `approve_text`, `revise_text`, `state_field` and
    `revise_stage`. An approval continues along the stage's static route and,
    when `state_field` is set, writes "approved" there. Anything else asks for
    feedback, stores it as `user_feedback` and continues to `revise_stage`
    ("refining" unless given). A cancelled review prompt counts as a revision
    request.
    """

    id = "shared:review"
    name = "Review Agent"
    capabilities = ("information-gathering",)

    def can_handle(self, task: AgentTask) -> bool:
        return task.type == "review" and "content" in task.input

    async def execute(self, context: AgentExecutionContext) -> AgentResult:
        started = time.monotonic()
        task_input = context.input

        content = task_input.get("content")
        if isinstance(content, str):
            display = content
        else:
            display = json.dumps(content, indent=2, default=str)
        title = str(task_input.get("title") or "Please review:")

        approve_text = str(task_input.get("approve_text") or "Approve")
        revise_text = str(task_input.get("revise_text") or "Request changes")

        answer = await context.request_input(f"{title}\n\n{display}\n", [approve_text, revise_text])
        response = revise_text if answer is None else answer
        approved = response == approve_text or "approve" in response.lower()

        if approved:
            state_field = task_input.get("state_field")
            updates = {str(state_field): "approved"} if state_field else {}
            return self.success_result({"approved": True}, updates, started)

        feedback = await context.request_input("What changes would you like to make?", None)
        feedback = feedback or ""
        logger.info(
            "Review sent back for changes",
            extra={"session_id": context.session_id, "stage_id": context.stage_id},
        )
        return self.success_result(
            {"approved": False, "feedback": feedback},
            {"user_feedback": feedback},
            started,
            next_stage=str(task_input.get("revise_stage") or "refining"),
        )


@dataclass(frozen=True, slots=True)
class FieldDefinition:
    """One piece of information `UserInputAgent` should collect."""

    name: str
    prompt: str
    options: list[str] | None = None
    required: bool = True
    validator: Callable[[str], bool] | None = None
    validation_message: str | None = None
    transformer: Callable[[str], Any] | None = None


class UserInputAgent(BaseAgent):
    """Collect required domain fields from the user.

    On the first invocation the first missing field is asked directly and the
    next one is requested from the engine via `WaitForInput`. When the engine
    re-invokes the agent with that answer as `user_input`, every field still
    missing is collected in the same invocation before the stage continues.
    An invalid answer re-prompts for the same field; a cancelled prompt fails
    the stage.
    """

    id = "shared:user-input"
    name = "User Input Agent"
    capabilities = ("information-gathering",)

    def __init__(self, fields: Sequence[FieldDefinition] = ()) -> None:
        super().__init__()
        self.fields = list(fields)

    def can_handle(self, task: AgentTask) -> bool:
        return task.type in {"gather-input", "user-input"}

    async def execute(self, context: AgentExecutionContext) -> AgentResult:
        started = time.monotonic()
        fields: Sequence[FieldDefinition] = context.input.get("fields") or self.fields

        missing = self.missing_fields(context.state.domain, fields)
        if not missing:
            return self.success_result(
                {"message": "All required information gathered"}, started=started
            )

        if "user_input" in context.input:
            return await self._collect_remaining(
                context, missing, context.input["user_input"], started
            )

        pending = missing[0]
        answer = await context.request_input(pending.prompt, pending.options)
        try:
            value = self._validate(pending, answer)
        except ValueError as e:
            self._log_rejected(context, pending, e)
            return AgentResult(
                success=False,
                next_action=WaitForInput(
                    prompt=self._retry_prompt(pending), options=pending.options
                ),
                metadata=ExecutionMetadata(execution_time_ms=self.elapsed_ms(started)),
            )

        self._emit_updated(context, pending.name)
        updates = {pending.name: value}
        remaining = missing[1:]
        if remaining:
            return self.wait_for_input_result(
                remaining[0].prompt,
                remaining[0].options,
                started,
                state_updates=updates,
                output={"field": pending.name, "value": value},
            )
        return self.success_result({"field": pending.name, "value": value}, updates, started)

    async def _collect_remaining(
        self,
        context: AgentExecutionContext,
        missing: Sequence[FieldDefinition],
        supplied: str | None,
        started: float,
    ) -> AgentResult:
        updates: dict[str, Any] = {}
        answer = supplied
        for index, pending in enumerate(missing):
            if index > 0:
                answer = await context.request_input(pending.prompt, pending.options)
            while True:
                if answer is None:
                    logger.info(
                        "User input cancelled",
                        extra={"session_id": context.session_id, "field": pending.name},
                    )
                    return AgentResult(
                        success=False,
                        output={"values": updates},
                        state_updates=updates,
                        next_action=ErrorAction(
                            message=f"Input cancelled for {pending.name}", recoverable=False
                        ),
                        metadata=ExecutionMetadata(execution_time_ms=self.elapsed_ms(started)),
                    )
                try:
                    updates[pending.name] = self._validate(pending, answer)
                    break
                except ValueError as e:
                    self._log_rejected(context, pending, e)
                    answer = await context.request_input(
                        self._retry_prompt(pending), pending.options
                    )
            self._emit_updated(context, pending.name)

        return self.success_result({"values": updates}, updates, started)

    def _emit_updated(self, context: AgentExecutionContext, field_name: str) -> None:
        context.emit(
            AgentEvent(
                type=AgentEventType.STATE_UPDATED,
                agent_id=self.id,
                data={"field": field_name},
            )
        )

    @staticmethod
    def _log_rejected(
        context: AgentExecutionContext, definition: FieldDefinition, error: ValueError
    ) -> None:
        logger.info(
            "Rejected user input",
            extra={"session_id": context.session_id, "field": definition.name, "reason": str(error)},
        )

    @staticmethod
    def _retry_prompt(definition: FieldDefinition) -> str:
        hint = definition.validation_message or "Please try again."
        return f"Invalid input. {hint}\n{definition.prompt}"

    @staticmethod
    def missing_fields(
        domain: Mapping[str, Any], fields: Sequence[FieldDefinition]
    ) -> list[FieldDefinition]:
        return [
            f for f in fields if f.required and domain.get(f.name) in (None, "")
        ]

    @staticmethod
    def _validate(definition: FieldDefinition, answer: str | None) -> Any:
        if answer is None or answer == "":
            raise ValueError(f"No value given for {definition.name}")
        if definition.validator is not None and not definition.validator(answer):
            raise ValueError(
                f"Invalid input for {definition.name}: "
                f"{definition.validation_message or 'Invalid value'}"
            )
        if definition.transformer is None:
            return answer
        try:
            return definition.transformer(answer)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid input for {definition.name}: {e}") from e
