"""In-memory session state with change tracking, history and rollback."""

from __future__ import annotations

import copy
import itertools
import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

from stageflow.errors import IllegalTransitionError
from stageflow.state.types import (
    ALLOWED_STATUS_TRANSITIONS,
    Checkpoint,
    SessionStatus,
    StateChange,
    StateSnapshot,
    StateSubscriber,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {"status", "task_type", "current_stage", "current_agent", "metadata", "domain"}
)
MERGED_FIELDS: frozenset[str] = frozenset({"metadata", "domain"})

_MISSING = object()

SessionChangeListener = Callable[[str, StateSnapshot, list[StateChange]], None]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _value_at_path(root: Mapping[str, Any], path: list[str]) -> Any:
    current: Any = root
    for key in path:
        if not isinstance(current, Mapping) or key not in current:
            return _MISSING
        current = current[key]
    return current


def _merge_mapping(current: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    # Top level is key-wise; nested mappings are merged exactly one level deep.
    merged = dict(current)
    for key, value in patch.items():
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            merged[key] = {**existing, **value}
        else:
            merged[key] = value
    return merged


class SessionState:
    """Single source of truth for one session's mutable state.

    Every `update()` pushes a deep copy of the previous snapshot onto the
    history, so index 0 is the state at creation and the last entry is the
    state immediately before the latest mutation. All snapshots handed out are
    deep copies.
    """

    def __init__(
        self,
        session_id: str,
        initial_state: Mapping[str, Any] | None = None,
        on_change: SessionChangeListener | None = None,
    ) -> None:
        """Create the session with its initial snapshot.

        Args:
            session_id: Immutable identifier of the session.
            initial_state: Optional partial snapshot (status, domain, ...).
            on_change: Optional hook notified after subscribers on real changes.
        """
        data = copy.deepcopy(dict(initial_state or {}))
        data["session_id"] = session_id
        self.id = session_id
        self._state = StateSnapshot.model_validate(data)
        self._history: list[StateSnapshot] = []
        self._subscribers: dict[int, StateSubscriber] = {}
        self._tokens = itertools.count()
        self._on_change = on_change

    def read(self) -> StateSnapshot:
        """Return a deep copy of the current snapshot."""
        return self._state.model_copy(deep=True)

    def get_domain(self) -> dict[str, Any]:
        return copy.deepcopy(self._state.domain)

    def select(self, selector: Callable[[StateSnapshot], T]) -> T:
        return selector(self.read())

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def history_length(self) -> int:
        return len(self._history)

    def update(self, updates: Mapping[str, Any], source: str = "system") -> StateSnapshot:
        """Merge a partial update into the state.

        Args:
            updates: Partial snapshot. `domain` and `metadata` are merged
                key-wise (nested mappings one level deep); other fields are
                replaced.
            source: Tag recorded on each change (usually an agent id).

        Returns:
            The new snapshot.

        Raises:
            ValueError: If a managed or unknown field is updated.
            IllegalTransitionError: If the status change is not allowed.
        """
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update managed or unknown fields: {sorted(unknown)}")
        for name in MERGED_FIELDS:
            if name in updates and not isinstance(updates[name], Mapping):
                raise ValueError(f"'{name}' updates must be mappings")

        patch = copy.deepcopy(dict(updates))
        if "status" in patch:
            self._check_status(SessionStatus(patch["status"]))

        changes = self._compute_changes(patch, source)

        self._history.append(self._state.model_copy(deep=True))
        self._state = self._merge(patch)

        if changes:
            logger.debug(
                "State updated",
                extra={
                    "session_id": self.id,
                    "source": source,
                    "changed": [change.dotted_path for change in changes],
                },
            )
            self._notify(changes)

        return self.read()

    def update_domain(self, updates: Mapping[str, Any], source: str = "system") -> StateSnapshot:
        return self.update({"domain": updates}, source)

    def subscribe(self, subscriber: StateSubscriber) -> Callable[[], None]:
        """Register a change listener.

        Args:
            subscriber: Called with `(snapshot, changes)` after every update
                that changed at least one field.

        Returns:
            A function that removes the listener.
        """
        token = next(self._tokens)
        self._subscribers[token] = subscriber

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    def checkpoint(self) -> Checkpoint:
        return Checkpoint(session_id=self.id, index=len(self._history))

    def rollback(self, checkpoint: Checkpoint) -> bool:
        """Restore the snapshot remembered by a checkpoint.

        This is a direct restore: no history entry is pushed and subscribers
        are not notified.

        Args:
            checkpoint: Token returned by `checkpoint()` on this session.

        Returns:
            True if the state was restored, False if the token is unknown.
        """
        if checkpoint.session_id != self.id:
            logger.warning(
                "Checkpoint belongs to another session",
                extra={"session_id": self.id, "checkpoint_session_id": checkpoint.session_id},
            )
            return False
        if not 0 <= checkpoint.index < len(self._history):
            return False

        self._state = self._history[checkpoint.index].model_copy(deep=True)
        logger.info(f"Session {self.id} rolled back to history entry {checkpoint.index}")
        return True

    def get_history(self) -> list[StateSnapshot]:
        return [snapshot.model_copy(deep=True) for snapshot in self._history]

    def _fields(self) -> dict[str, Any]:
        # Attribute access keeps domain values as-is; model_dump would coerce
        # nested models and dataclasses into dicts.
        return {name: getattr(self._state, name) for name in StateSnapshot.model_fields}

    def _check_status(self, to: SessionStatus) -> None:
        current = self._state.status
        if to == current:
            return
        if to not in ALLOWED_STATUS_TRANSITIONS.get(current, set()):
            raise IllegalTransitionError(
                f"Illegal status transition: {current.value} -> {to.value}"
            )

    def _compute_changes(self, patch: Mapping[str, Any], source: str) -> list[StateChange]:
        current = self._fields()
        now = _utc_now()
        changes: list[StateChange] = []

        def walk(obj: Mapping[str, Any], path: list[str]) -> None:
            for key, value in obj.items():
                key_path = [*path, str(key)]
                if isinstance(value, Mapping):
                    walk(value, key_path)
                    continue
                previous = _value_at_path(current, key_path)
                if previous is _MISSING or previous != value:
                    changes.append(
                        StateChange(
                            path=key_path,
                            previous_value=None if previous is _MISSING else previous,
                            new_value=value,
                            timestamp=now,
                            source=source,
                        )
                    )

        walk(patch, [])
        return changes

    def _merge(self, patch: Mapping[str, Any]) -> StateSnapshot:
        data = self._fields()
        for key, value in patch.items():
            if key in MERGED_FIELDS:
                data[key] = _merge_mapping(data[key], value)
            else:
                data[key] = value
        data["updated_at"] = max(_utc_now(), self._state.updated_at)
        return StateSnapshot.model_validate(data)

    def _notify(self, changes: list[StateChange]) -> None:
        for subscriber in list(self._subscribers.values()):
            try:
                subscriber(self.read(), [change.model_copy(deep=True) for change in changes])
            except Exception:
                logger.exception("State subscriber failed", extra={"session_id": self.id})

        if self._on_change is not None:
            try:
                self._on_change(self.id, self.read(), [c.model_copy(deep=True) for c in changes])
            except Exception:
                logger.exception("State change hook failed", extra={"session_id": self.id})


class StateManager:
    """Registry of live sessions.

    Constructed once by the entry point and passed to whatever needs session
    lookup; it is not a process-wide singleton.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionState] = {}
        self._listeners: dict[int, tuple[str | None, StateSubscriber]] = {}
        self._tokens = itertools.count()

    def create_session(self, initial_state: Mapping[str, Any] | None = None) -> SessionState:
        """Create and register a session with a fresh id.

        Args:
            initial_state: Optional partial snapshot for the new session.

        Returns:
            The new session.
        """
        session_id = str(uuid.uuid4())
        session = SessionState(session_id, initial_state, on_change=self._dispatch)
        self._sessions[session_id] = session
        logger.debug("Session created", extra={"session_id": session_id})
        return session

    def get_session(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def remove_session(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def list_sessions(self) -> list[str]:
        return list(self._sessions)

    def subscribe(self, subscriber: StateSubscriber) -> Callable[[], None]:
        """Listen to changes of every session."""
        return self._add_listener(None, subscriber)

    def subscribe_to_session(
        self, session_id: str, subscriber: StateSubscriber
    ) -> Callable[[], None]:
        """Listen to changes of one session only."""
        return self._add_listener(session_id, subscriber)

    def _add_listener(self, session_id: str | None, subscriber: StateSubscriber) -> Callable[[], None]:
        token = next(self._tokens)
        self._listeners[token] = (session_id, subscriber)

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def _dispatch(self, session_id: str, state: StateSnapshot, changes: list[StateChange]) -> None:
        for wanted, subscriber in list(self._listeners.values()):
            if wanted is not None and wanted != session_id:
                continue
            try:
                subscriber(state.model_copy(deep=True), [c.model_copy(deep=True) for c in changes])
            except Exception:
                logger.exception("State manager subscriber failed", extra={"session_id": session_id})
