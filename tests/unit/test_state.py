"""Unit tests for session state: updates, history, rollback and notifications."""

from __future__ import annotations

import logging

import pytest

from stageflow.errors import IllegalTransitionError
from stageflow.state.manager import SessionState, StateManager
from stageflow.state.types import Checkpoint, SessionStatus


def _session(**initial) -> SessionState:
    return SessionState("sess-1", initial or None)


def test_read_returns_independent_copies() -> None:
    session = _session(domain={"items": [1, 2]})

    snapshot = session.read()
    snapshot.domain["items"].append(3)

    assert session.read().domain == {"items": [1, 2]}


def test_update_does_not_alias_caller_payload() -> None:
    session = _session()
    payload = {"items": [1]}

    session.update_domain(payload)
    payload["items"].append(2)

    assert session.get_domain() == {"items": [1]}


def test_each_update_pushes_previous_snapshot() -> None:
    session = _session(domain={"a": 1})
    updates = [{"a": 2}, {"b": {"x": 1}}, {"b": {"y": 2}}]

    for update in updates:
        before = session.read()
        session.update_domain(update)
        history = session.get_history()
        assert history[-1].domain == before.domain

    assert session.history_length == 3
    assert session.get_history()[0].domain == {"a": 1}


def test_nested_mappings_merge_one_level_deep() -> None:
    session = _session(domain={"profile": {"name": "Ada", "address": {"city": "Oslo", "zip": "1"}}})

    session.update_domain({"profile": {"address": {"city": "Bergen"}}})

    assert session.get_domain() == {"profile": {"name": "Ada", "address": {"city": "Bergen"}}}


def test_non_mapping_values_replace() -> None:
    session = _session(domain={"tags": ["a"], "profile": {"name": "Ada"}})

    session.update_domain({"tags": ["b"], "profile": None})

    assert session.get_domain() == {"tags": ["b"], "profile": None}


def test_noop_update_records_history_but_does_not_notify() -> None:
    session = _session(domain={"a": 1, "b": {"c": 2}})
    calls: list[object] = []
    session.subscribe(lambda state, changes: calls.append(changes))

    session.update_domain({"a": 1, "b": {"c": 2}})

    assert calls == []
    assert session.history_length == 1


def test_changes_describe_each_touched_leaf() -> None:
    session = _session(domain={"a": 1})
    received = []
    session.subscribe(lambda state, changes: received.append((state, changes)))

    session.update({"domain": {"a": 2, "b": {"c": 3}}, "current_stage": "s1"}, source="agent-x")

    [(state, changes)] = received
    by_path = {change.dotted_path: change for change in changes}
    assert set(by_path) == {"domain.a", "domain.b.c", "current_stage"}
    assert by_path["domain.a"].previous_value == 1
    assert by_path["domain.a"].new_value == 2
    assert by_path["domain.b.c"].previous_value is None
    assert all(change.source == "agent-x" for change in changes)
    assert state.domain == {"a": 2, "b": {"c": 3}}
    assert state.current_stage == "s1"


def test_failing_subscriber_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    session = _session()
    seen: list[str] = []

    def broken(state, changes) -> None:
        raise RuntimeError("listener bug")

    session.subscribe(broken)
    session.subscribe(lambda state, changes: seen.append("ok"))

    with caplog.at_level(logging.ERROR, logger="stageflow.state.manager"):
        session.update_domain({"a": 1})

    assert seen == ["ok"]
    assert any(r.getMessage() == "State subscriber failed" for r in caplog.records)


def test_unsubscribe_stops_notifications() -> None:
    session = _session()
    seen: list[int] = []
    unsubscribe = session.subscribe(lambda state, changes: seen.append(1))

    session.update_domain({"a": 1})
    unsubscribe()
    session.update_domain({"a": 2})

    assert seen == [1]


def test_rollback_restores_state_before_update() -> None:
    session = _session(domain={"a": 1})
    session.update({"current_stage": "s1"})
    before = session.read()

    token = session.checkpoint()
    session.update_domain({"a": 99, "b": 2})
    assert session.rollback(token) is True

    restored = session.read()
    assert restored.domain == before.domain
    assert restored.current_stage == before.current_stage
    assert restored.status == before.status


def test_rollback_does_not_push_history_or_notify() -> None:
    session = _session()
    seen: list[int] = []
    session.subscribe(lambda state, changes: seen.append(1))
    token = session.checkpoint()
    session.update_domain({"a": 1})

    session.rollback(token)

    assert seen == [1]
    assert session.history_length == 1


def test_rollback_without_intervening_update_is_rejected() -> None:
    session = _session()

    assert session.rollback(session.checkpoint()) is False


def test_rollback_rejects_foreign_or_unknown_tokens() -> None:
    session = _session()
    session.update_domain({"a": 1})

    assert session.rollback(Checkpoint(session_id="other", index=0)) is False
    assert session.rollback(Checkpoint(session_id="sess-1", index=5)) is False
    assert session.get_domain() == {"a": 1}


def test_status_transitions_are_enforced() -> None:
    session = _session(status="active")

    session.update({"status": SessionStatus.WAITING_FOR_INPUT})
    session.update({"status": SessionStatus.ACTIVE})
    session.update({"status": SessionStatus.COMPLETED})

    with pytest.raises(IllegalTransitionError):
        session.update({"status": SessionStatus.ACTIVE})


def test_managed_fields_cannot_be_updated() -> None:
    session = _session()

    with pytest.raises(ValueError):
        session.update({"session_id": "other"})
    with pytest.raises(ValueError):
        session.update({"domain": ["not", "a", "mapping"]})


def test_updated_at_never_moves_backwards() -> None:
    session = _session()
    stamps = [session.read().updated_at]

    for n in range(5):
        stamps.append(session.update_domain({"n": n}).updated_at)

    assert stamps == sorted(stamps)


def test_select_projects_a_copy() -> None:
    session = _session(domain={"items": [1]})

    items = session.select(lambda state: state.domain["items"])
    items.append(2)

    assert session.get_domain() == {"items": [1]}


def test_manager_creates_and_removes_sessions() -> None:
    manager = StateManager()

    session = manager.create_session({"status": "active", "domain": {"a": 1}})

    assert manager.get_session(session.id) is session
    assert manager.list_sessions() == [session.id]
    assert session.status == SessionStatus.ACTIVE
    assert manager.remove_session(session.id) is True
    assert manager.get_session(session.id) is None
    assert manager.remove_session(session.id) is False


def test_manager_dispatches_to_global_and_session_listeners() -> None:
    manager = StateManager()
    first = manager.create_session()
    second = manager.create_session()
    everything: list[str] = []
    only_first: list[str] = []
    manager.subscribe(lambda state, changes: everything.append(state.session_id))
    manager.subscribe_to_session(first.id, lambda state, changes: only_first.append(state.session_id))

    first.update_domain({"a": 1})
    second.update_domain({"a": 1})

    assert everything == [first.id, second.id]
    assert only_first == [first.id]
