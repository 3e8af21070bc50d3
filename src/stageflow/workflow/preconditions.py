from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from stageflow.errors import PreconditionFailedError
from stageflow.state.types import StateSnapshot
from stageflow.workflow.types import ConditionKind, Precondition, StageDefinition

logger = logging.getLogger(__name__)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def snapshot_fields(snapshot: StateSnapshot) -> dict[str, Any]:
    """Top-level snapshot fields as live values, envelope enums by their value.

    Domain and metadata values are left as they are, so guards work with any
    object an agent stored there.
    """
    fields: dict[str, Any] = {}
    for name in StateSnapshot.model_fields:
        value = getattr(snapshot, name)
        fields[name] = value.value if isinstance(value, Enum) else value
    return fields


def resolve_path(data: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through nested mappings.

    Returns `MISSING` when a segment is absent or the value at that point is
    not a mapping. A present key holding `None` resolves to `None`.
    """
    current: Any = data
    for segment in path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return MISSING
        current = current[segment]
    return current


def evaluate_precondition(
    precondition: Precondition, snapshot: StateSnapshot, data: Mapping[str, Any] | None = None
) -> bool:
    if precondition.condition is ConditionKind.CUSTOM:
        if precondition.check is None:
            return False
        return bool(precondition.check(snapshot.model_copy(deep=True)))

    if data is None:
        data = snapshot_fields(snapshot)
    value = resolve_path(data, precondition.field)

    if precondition.condition is ConditionKind.EXISTS:
        return value is not MISSING
    if precondition.condition is ConditionKind.NOT_EMPTY:
        return value is not MISSING and value is not None and value != ""
    if precondition.condition is ConditionKind.EQUALS:
        # Strict: 1 does not equal True or 1.0.
        return (
            value is not MISSING
            and type(value) is type(precondition.value)
            and value == precondition.value
        )
    raise ValueError(f"Unknown condition: {precondition.condition!r}")


def check_preconditions(stage: StageDefinition, snapshot: StateSnapshot) -> None:
    """Evaluate a stage's guards in order.

    Raises:
        PreconditionFailedError: For the first guard that fails, carrying its
            authored message.
    """
    if not stage.preconditions:
        return

    data = snapshot_fields(snapshot)
    for precondition in stage.preconditions:
        if not evaluate_precondition(precondition, snapshot, data):
            logger.warning(
                "Precondition failed",
                extra={
                    "stage_id": stage.id,
                    "field": precondition.field,
                    "condition": precondition.condition.value,
                },
            )
            raise PreconditionFailedError(precondition.error_message, field=precondition.field)
