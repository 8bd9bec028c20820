from dataclasses import replace

import pytest

from blackbox.domain.entities.interaction import InteractionRecord
from blackbox.domain.services.app_catalog import (
    FILE_EXPLORER_APP_ID,
    NOTES_APP_ID,
    TERMINAL_APP_ID,
    UnknownAppError,
    initial_path_for,
    require_app,
)
from blackbox.domain.services.interaction_builder import (
    build_app_open_record,
    build_interaction_turn,
)
from blackbox.domain.value_objects.session_state import SessionState


def _state_with_app(app_id: str, path: tuple[str, ...], **fields: object) -> SessionState:
    return replace(
        SessionState.initial(),
        active_app=require_app(app_id),
        current_path=path,
        **fields,
    )


def _explorer_record(interaction_id: str, value: str | None = None) -> InteractionRecord:
    return InteractionRecord(
        id=interaction_id,
        kind="click",
        element_kind="div",
        element_label=value or interaction_id,
        app_context=FILE_EXPLORER_APP_ID,
        value=value,
    )


def test_element_label_is_trimmed_and_capped() -> None:
    record = InteractionRecord(id="x", kind="click", element_kind="div", element_label="  " + "a" * 100 + " ")

    assert record.element_label == "a" * 75


def test_payload_omits_missing_fields_and_round_trips() -> None:
    record = InteractionRecord(
        id="terminal_run_command",
        kind="click",
        element_kind="button",
        element_label="Run",
        app_context=TERMINAL_APP_ID,
        value="ls",
        terminal_history=("ls",),
        path=("home", "user"),
    )

    payload = record.to_payload(include_vfs=False)

    assert "vfs" not in payload
    assert payload["terminal_history"] == ["ls"]
    assert InteractionRecord.from_payload(payload) == record


def test_record_requires_id_and_kind() -> None:
    with pytest.raises(ValueError):
        InteractionRecord(id="", kind="click", element_kind="div")
    with pytest.raises(ValueError):
        InteractionRecord.from_payload({"kind": "click"})


def test_initial_paths_per_app() -> None:
    assert initial_path_for(require_app(TERMINAL_APP_ID)) == ("home", "user")
    assert initial_path_for(require_app(FILE_EXPLORER_APP_ID)) == ("home",)
    assert initial_path_for(require_app(NOTES_APP_ID)) == (NOTES_APP_ID,)
    with pytest.raises(UnknownAppError):
        require_app("missing_app")


def test_file_explorer_navigation_moves_path() -> None:
    state = _state_with_app(FILE_EXPLORER_APP_ID, ("home",))

    opened = build_interaction_turn(state, _explorer_record("file_explorer_open_dir", "user"))
    assert opened.current_path == ("home", "user")
    assert opened.interaction_history[0].path == ("home", "user")
    assert opened.interaction_history[0].vfs == state.vfs

    state = replace(state, current_path=opened.current_path)
    up = build_interaction_turn(state, _explorer_record("file_explorer_up"))
    assert up.current_path == ("home",)

    state = replace(state, current_path=up.current_path)
    assert build_interaction_turn(state, _explorer_record("file_explorer_up")).current_path == ("home",)


def test_open_dir_without_value_keeps_path() -> None:
    state = _state_with_app(FILE_EXPLORER_APP_ID, ("home",))

    turn = build_interaction_turn(state, _explorer_record("file_explorer_open_dir"))

    assert turn.current_path == ("home",)


def test_terminal_command_is_appended_to_history() -> None:
    state = _state_with_app(TERMINAL_APP_ID, ("home", "user"), terminal_history=("pwd",))
    record = InteractionRecord(
        id="terminal_run_command",
        kind="click",
        element_kind="button",
        app_context=TERMINAL_APP_ID,
        value="ls -la",
    )

    turn = build_interaction_turn(state, record)

    assert turn.terminal_history == ("pwd", "ls -la")
    assert turn.interaction_history[0].terminal_history == ("pwd", "ls -la")
    assert turn.interaction_history[0].path == ("home", "user")


def test_record_vfs_takes_precedence_over_session_vfs() -> None:
    state = _state_with_app(TERMINAL_APP_ID, ("home", "user"))
    uploaded_vfs = {"home": {"user": {"new.txt": "data"}}}
    record = InteractionRecord(
        id="terminal_file_uploaded",
        kind="system_event",
        element_kind="system",
        app_context=TERMINAL_APP_ID,
        vfs=uploaded_vfs,
    )

    turn = build_interaction_turn(state, record)

    assert turn.interaction_history[0].vfs == uploaded_vfs


def test_history_is_newest_first_and_bounded() -> None:
    state = _state_with_app(NOTES_APP_ID, (NOTES_APP_ID,), max_history_length=2)
    for label in ("first", "second", "third"):
        record = InteractionRecord(id=label, kind="click", element_kind="div", app_context=NOTES_APP_ID)
        turn = build_interaction_turn(state, record)
        state = replace(state, interaction_history=turn.interaction_history)

    assert [record.id for record in state.interaction_history] == ["third", "second"]
    assert state.interaction_history[0].vfs is None


def test_zero_bound_produces_empty_history() -> None:
    state = _state_with_app(NOTES_APP_ID, (NOTES_APP_ID,), max_history_length=0)
    record = InteractionRecord(id="x", kind="click", element_kind="div", app_context=NOTES_APP_ID)

    assert build_interaction_turn(state, record).interaction_history == ()


def test_app_open_record_carries_context_for_file_system_apps() -> None:
    vfs = {"home": {}}

    terminal_record = build_app_open_record(require_app(TERMINAL_APP_ID), initial_path=("home", "user"), vfs=vfs)
    notes_record = build_app_open_record(require_app(NOTES_APP_ID), initial_path=(NOTES_APP_ID,), vfs=vfs)

    assert terminal_record.kind == "app_open"
    assert terminal_record.element_label == "Terminal"
    assert terminal_record.vfs == vfs
    assert terminal_record.terminal_history == ()
    assert notes_record.vfs is None
    assert notes_record.terminal_history is None
    assert notes_record.path == (NOTES_APP_ID,)
