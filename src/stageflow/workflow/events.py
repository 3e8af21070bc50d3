from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

WORKFLOW_START = "workflow:start"
STAGE_START = "stage:start"
STAGE_COMPLETE = "stage:complete"
WORKFLOW_COMPLETE = "workflow:complete"
WORKFLOW_ERROR = "workflow:error"
AGENT_EVENT = "agent:event"

LIFECYCLE_EVENTS: tuple[str, ...] = (
    WORKFLOW_START,
    STAGE_START,
    STAGE_COMPLETE,
    WORKFLOW_COMPLETE,
    WORKFLOW_ERROR,
    AGENT_EVENT,
)


@dataclass(frozen=True, slots=True)
class EngineEvent:
    """A lifecycle signal emitted by the engine.

    Observers (loggers, progress indicators, UIs) react to events; they never
    influence the run.
    """

    name: str
    payload: dict[str, object] = field(default_factory=dict)


EventHandler = Callable[[EngineEvent], None]


class EventBus:
    """Name-keyed, best-effort event dispatch.

    Handlers run synchronously in subscription order. A failing handler is
    logged and skipped.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, dict[int, EventHandler]] = {}
        self._tokens = itertools.count()

    def on(self, name: str, handler: EventHandler) -> Callable[[], None]:
        token = next(self._tokens)
        self._handlers.setdefault(name, {})[token] = handler

        def unsubscribe() -> None:
            self._handlers.get(name, {}).pop(token, None)

        return unsubscribe

    def emit(self, name: str, payload: Mapping[str, object] | None = None) -> EngineEvent:
        event = EngineEvent(name=name, payload=dict(payload or {}))
        for handler in list(self._handlers.get(name, {}).values()):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed", extra={"event": name})
        return event

    def handler_count(self, name: str) -> int:
        return len(self._handlers.get(name, {}))
