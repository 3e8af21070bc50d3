"""CLI entrypoint.

`stageflow demo` runs a small built-in workflow (collect a name and a city,
then confirm) against the console, or against answers given with `--answer`.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from pydantic import ValidationError

from stageflow import __version__
from stageflow.agents.shared import ConfirmationAgent, FieldDefinition, UserInputAgent
from stageflow.config import StageflowSettings
from stageflow.io import ConsoleInputProvider, InputProvider, ScriptedInputProvider
from stageflow.state.types import StateSnapshot
from stageflow.workflow.engine import WorkflowEngine
from stageflow.workflow.types import (
    ConditionKind,
    Precondition,
    StageDefinition,
    WorkflowDefinition,
)

logger = logging.getLogger(__name__)

# Interactive stages wait on a human.
DEMO_STAGE_TIMEOUT_MS = 600_000

DEMO_FIELDS = (
    FieldDefinition(name="name", prompt="What is your name?"),
    FieldDefinition(
        name="city",
        prompt="Which city are you in?",
        validator=lambda value: bool(value.strip()),
        validation_message="City cannot be blank.",
        transformer=lambda value: value.strip().title(),
    ),
)


def _confirmation_input(state: StateSnapshot) -> dict[str, object]:
    return {
        "message": "Is this correct?",
        "details": {"Name": state.domain.get("name"), "City": state.domain.get("city")},
    }


def build_demo_workflow() -> WorkflowDefinition:
    return WorkflowDefinition(
        id="demo",
        name="Greeting demo",
        description="Collect a name and a city, then confirm them",
        initial_stage="collect",
        stages=[
            StageDefinition(
                id="collect",
                name="Collect details",
                agent=UserInputAgent.id,
                next="confirm",
                timeout_ms=DEMO_STAGE_TIMEOUT_MS,
            ),
            StageDefinition(
                id="confirm",
                name="Confirm details",
                agent=ConfirmationAgent.id,
                input=_confirmation_input,
                preconditions=[
                    Precondition(
                        field="domain.name",
                        condition=ConditionKind.NOT_EMPTY,
                        error_message="A name is required before confirming",
                    ),
                    Precondition(
                        field="domain.city",
                        condition=ConditionKind.NOT_EMPTY,
                        error_message="A city is required before confirming",
                    ),
                ],
                timeout_ms=DEMO_STAGE_TIMEOUT_MS,
            ),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stageflow",
        description="Stage-based workflow engine",
    )
    parser.add_argument("--version", action="version", version=f"stageflow {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    demo = subparsers.add_parser("demo", help="Run the built-in demo workflow")
    demo.add_argument(
        "--answer",
        dest="answers",
        action="append",
        default=None,
        help="Scripted answer for the next prompt (repeatable); omit to answer interactively",
    )

    return parser


async def run_demo(settings: StageflowSettings, provider: InputProvider) -> int:
    engine = WorkflowEngine(provider, settings=settings)
    engine.register_agents([UserInputAgent(DEMO_FIELDS), ConfirmationAgent()])

    result = await engine.execute(build_demo_workflow())

    payload = result.to_json()
    payload["domain"] = result.final_state.domain
    payload["output"] = result.output
    print(json.dumps(payload, default=str))
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = StageflowSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    settings.setup_logging()

    try:
        if args.command == "demo":
            provider: InputProvider
            if args.answers is not None:
                provider = ScriptedInputProvider(args.answers)
            else:
                provider = ConsoleInputProvider()
            return asyncio.run(run_demo(settings, provider))

        parser.error(f"Unknown command: {args.command}")
    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
