from __future__ import annotations

from stageflow.agents.types import AgentResult, Complete, Continue, ErrorAction, Handoff
from stageflow.errors import ExecutorError
from stageflow.state.types import StateSnapshot
from stageflow.workflow.types import ComputedNext, StageDefinition, StaticNext, Terminal


def resolve_next_stage(
    stage: StageDefinition, result: AgentResult, state: StateSnapshot
) -> str | None:
    """Pick the stage to run after `stage`, or `None` to finish the run.

    Precedence: non-recoverable error, completion, hand-off, explicit
    continue target, then the stage's static rule evaluated over the
    post-update state.

    Raises:
        ExecutorError: The result carries a non-recoverable error.
    """
    action = result.next_action

    if isinstance(action, ErrorAction) and not action.recoverable:
        raise ExecutorError(action.message)
    if isinstance(action, Complete):
        return None
    if isinstance(action, Handoff):
        return action.target
    if isinstance(action, Continue) and action.next_stage:
        return action.next_stage

    rule = stage.next
    if isinstance(rule, StaticNext):
        return rule.stage_id
    if isinstance(rule, ComputedNext):
        return rule.resolve(state.model_copy(deep=True))
    if isinstance(rule, Terminal):
        return None
    raise TypeError(f"Unsupported next rule: {rule!r}")
