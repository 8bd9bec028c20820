from dataclasses import replace

import pytest

from blackbox.domain.entities.interaction import InteractionRecord
from blackbox.domain.entities.response_cache import ResponseCache, cache_key_for
from blackbox.domain.services import session_transitions as transitions
from blackbox.domain.services.app_catalog import NOTES_APP_ID, TERMINAL_APP_ID, require_app
from blackbox.domain.services.window_title import window_title
from blackbox.domain.value_objects.session_state import SessionState


def _records(*ids: str) -> tuple[InteractionRecord, ...]:
    return tuple(InteractionRecord(id=item, kind="click", element_kind="div") for item in ids)


def test_initial_state_is_idle_with_seed_vfs() -> None:
    state = SessionState.initial()

    assert state.active_app is None
    assert state.is_loading is False
    assert state.max_history_length == 3
    assert "etc" in state.vfs


def test_history_bound_is_validated() -> None:
    with pytest.raises(ValueError):
        SessionState.initial(max_history_length=11)


def test_open_app_resets_screen_and_terminal_history_only_for_terminal() -> None:
    state = replace(SessionState.initial(), content="old", error="boom", terminal_history=("ls",))

    notes = transitions.open_app(state, require_app(NOTES_APP_ID), (NOTES_APP_ID,), _records("open"))
    terminal = transitions.open_app(state, require_app(TERMINAL_APP_ID), ("home", "user"), _records("open"))

    assert notes.active_app_id == NOTES_APP_ID
    assert notes.content == ""
    assert notes.error is None
    assert notes.current_path == (NOTES_APP_ID,)
    assert notes.terminal_history == ("ls",)
    assert terminal.terminal_history == ()
    assert state.content == "old"


def test_close_app_returns_to_idle() -> None:
    state = transitions.open_app(
        SessionState.initial(), require_app(NOTES_APP_ID), (NOTES_APP_ID,), _records("open")
    )
    state = transitions.set_editor_baseline(state, "text")

    closed = transitions.close_app(state)

    assert closed.active_app is None
    assert closed.interaction_history == ()
    assert closed.current_path == ()
    assert closed.editor_baseline is None


def test_stream_lifecycle() -> None:
    state = transitions.begin_interaction(
        replace(SessionState.initial(), content="stale", error="old"),
        _records("a", "b", "c", "d"),
        ("home",),
        ("ls",),
    )
    assert state.is_loading is True
    assert state.content == ""
    assert state.error is None
    assert [record.id for record in state.interaction_history] == ["a", "b", "c"]

    state = transitions.append_chunk(transitions.append_chunk(state, "<p>"), "hi</p>")
    assert state.content == "<p>hi</p>"

    done = transitions.complete_stream(state)
    assert done.is_loading is False
    assert done.content == "<p>hi</p>"

    failed = transitions.fail_stream(state, "Failed", "<div>error</div>")
    assert failed.is_loading is False
    assert failed.error == "Failed"
    assert failed.content == "<div>error</div>"

    cached = transitions.resolve_from_cache(state, "<p>cached</p>")
    assert cached.is_loading is False
    assert cached.content == "<p>cached</p>"


def test_toggle_parameters_remembers_and_restores_app() -> None:
    state = transitions.open_app(
        SessionState.initial(), require_app(NOTES_APP_ID), (NOTES_APP_ID,), _records("open")
    )
    state = replace(state, content="screen")

    opened = transitions.toggle_parameters(state)
    assert opened.is_parameters_open is True
    assert opened.active_app is None
    assert opened.content == ""
    assert opened.interaction_history == state.interaction_history

    closed = transitions.toggle_parameters(opened)
    assert closed.is_parameters_open is False
    assert closed.active_app_id == NOTES_APP_ID
    assert closed.interaction_history == ()
    assert closed.current_path == ()


def test_update_settings_truncates_history_including_zero() -> None:
    state = replace(SessionState.initial(max_history_length=5), interaction_history=_records("a", "b", "c"))

    shorter = transitions.update_settings(state, max_history_length=2)
    emptied = transitions.update_settings(state, max_history_length=0)
    toggled = transitions.update_settings(state, statefulness=True, quiet_mode=True)

    assert [record.id for record in shorter.interaction_history] == ["a", "b"]
    assert emptied.interaction_history == ()
    assert emptied.max_history_length == 0
    assert toggled.interaction_history == state.interaction_history
    assert toggled.statefulness_enabled is True
    assert toggled.quiet_mode_enabled is True


def test_terminal_settings_and_clear_history() -> None:
    state = replace(
        SessionState.initial(),
        interaction_history=_records("a"),
        terminal_history=("ls",),
        current_path=("home",),
    )

    styled = transitions.update_terminal_settings(state, color_scheme="amber", font_size=18)
    cleared = transitions.clear_history(styled)

    assert styled.terminal_color_scheme == "amber"
    assert styled.terminal_font_size == 18
    assert cleared.interaction_history == ()
    assert cleared.terminal_history == ()
    assert cleared.current_path == ("home",)


def test_replace_state_accepts_only_allowed_fields() -> None:
    state = SessionState.initial()

    replaced = transitions.replace_state(state, current_path=["home", "user"], quiet_mode_enabled=True)

    assert replaced.current_path == ("home", "user")
    assert replaced.quiet_mode_enabled is True
    with pytest.raises(ValueError):
        transitions.replace_state(state, is_loading=True)
    with pytest.raises(ValueError):
        transitions.replace_state(state, vfs="not a tree")


def test_response_cache_keys_and_idempotent_store() -> None:
    cache = ResponseCache()

    assert cache_key_for(("home", "user")) == "home__user"
    assert cache.store(("home", "user"), "<p>a</p>") is True
    assert cache.store(("home", "user"), "<p>a</p>") is False
    assert cache.lookup(["home", "user"]) == "<p>a</p>"
    assert "home__user" in cache
    assert cache.lookup(("home",)) is None

    cache.clear()
    assert len(cache) == 0


def test_window_title_follows_app_and_path() -> None:
    state = SessionState.initial()
    assert window_title(state) == "Blackbox OS"

    terminal = transitions.open_app(state, require_app(TERMINAL_APP_ID), ("home", "user"), ())
    assert window_title(terminal) == "Terminal: /home/user"

    notes = transitions.open_app(state, require_app(NOTES_APP_ID), (NOTES_APP_ID,), ())
    assert window_title(replace(notes, quiet_mode_enabled=True)) == "Notepad 🤫 (Quiet Mode)"
    assert window_title(transitions.toggle_parameters(notes)) == "Blackbox OS"
