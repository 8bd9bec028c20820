from collections.abc import Sequence

from fastapi.testclient import TestClient

from blackbox.adapters.inbound.http.app import (
    _resolve_model_name,
    _resolve_non_negative_int_env,
    create_app,
)
from blackbox.adapters.outbound.in_memory_components import (
    InMemorySnapshotStore,
    ScriptedContentModelAdapter,
)
from blackbox.application.use_cases.desktop_session import DesktopSessionUseCase

_NOTES_SCREEN = (
    '<textarea id="notepad-textarea">draft</textarea>',
    '<button id="save" data-interaction-id="notepad_save" data-value-from="notepad-textarea">Save</button>',
)


def _build_test_client(chunks: Sequence[str] = ("<div>", "hello", "</div>")) -> TestClient:
    use_case = DesktopSessionUseCase(
        content_model=ScriptedContentModelAdapter(chunks),
        snapshot_store=InMemorySnapshotStore(),
        max_sessions=10,
    )
    app = create_app(desktop_session_use_case=use_case)
    return TestClient(app)


def _create_session(client: TestClient) -> str:
    return client.post("/api/sessions").json()["session_id"]


def test_health_endpoint_returns_ok() -> None:
    client = _build_test_client()

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_apps_endpoint_lists_catalog() -> None:
    client = _build_test_client()

    response = client.get("/api/apps")
    ids = [app["id"] for app in response.json()]

    assert response.status_code == 200
    assert "notes_app" in ids
    assert "terminal_app" in ids
    assert all(app["name"] and app["icon"] for app in response.json())


def test_open_app_streams_html_and_updates_state() -> None:
    client = _build_test_client()
    session_response = client.post("/api/sessions")
    session_id = session_response.json()["session_id"]

    open_response = client.post(f"/api/sessions/{session_id}/apps/notes_app/open")
    state = client.get(f"/api/sessions/{session_id}/state").json()
    content = client.get(f"/api/sessions/{session_id}/content").json()

    assert session_response.status_code == 200
    assert session_response.json()["has_saved_snapshot"] is False
    assert open_response.status_code == 200
    assert "text/html" in open_response.headers["content-type"]
    assert open_response.text == "<div>hello</div>"
    assert state["active_app_id"] == "notes_app"
    assert state["is_loading"] is False
    assert state["window_title"] == "Notepad"
    assert state["interaction_history"][0]["kind"] == "app_open"
    assert "vfs" not in state["interaction_history"][0]
    assert content["html"] == '<div data-node-id="0">hello</div>'
    assert content["executed_scripts"] == []


def test_click_by_node_id_submits_interaction() -> None:
    client = _build_test_client(
        ('<button data-interaction-id="mail_compose" data-interaction-value="1">Compose</button>',)
    )
    session_id = _create_session(client)
    client.post(f"/api/sessions/{session_id}/apps/mail_app/open")

    response = client.post(f"/api/sessions/{session_id}/click", json={"node_id": "0"})
    history = client.get(f"/api/sessions/{session_id}/state").json()["interaction_history"]

    assert response.status_code == 200
    assert history[0]["id"] == "mail_compose"
    assert history[0]["value"] == "1"
    assert history[0]["app_context"] == "mail_app"


def test_unknown_session_app_and_node_return_404() -> None:
    client = _build_test_client()
    session_id = _create_session(client)

    missing_session = client.get("/api/sessions/missing-session/state")
    missing_app = client.post(f"/api/sessions/{session_id}/apps/solitaire_app/open")
    missing_node = client.post(f"/api/sessions/{session_id}/click", json={"node_id": "42"})

    assert missing_session.status_code == 404
    assert "missing-session" in missing_session.json()["detail"]
    assert missing_app.status_code == 404
    assert missing_node.status_code == 404


def test_invalid_settings_return_400_and_keep_state() -> None:
    client = _build_test_client()
    session_id = _create_session(client)
    settings = client.get(f"/api/sessions/{session_id}/settings").json()

    rejected = client.put(
        f"/api/sessions/{session_id}/settings",
        json={**settings, "terminal_font_size": "40", "quiet_mode_enabled": True},
    )
    accepted = client.put(
        f"/api/sessions/{session_id}/settings",
        json={**settings, "max_history_length": "5", "quiet_mode_enabled": True},
    )

    assert rejected.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json()["max_history_length"] == 5
    assert accepted.json()["quiet_mode_enabled"] is True


def test_closing_notes_with_unsaved_changes_returns_409_until_confirmed() -> None:
    client = _build_test_client(_NOTES_SCREEN)
    session_id = _create_session(client)
    client.post(f"/api/sessions/{session_id}/apps/notes_app/open")

    blocked = client.post(f"/api/sessions/{session_id}/close", json={"editor_buffer": "changed"})
    confirmed = client.post(
        f"/api/sessions/{session_id}/close",
        json={"editor_buffer": "changed", "confirmed": True},
    )

    assert blocked.status_code == 409
    assert confirmed.status_code == 200
    assert confirmed.json()["active_app_id"] is None
    assert confirmed.json()["window_title"] == "Blackbox OS"


def test_state_update_endpoint_replaces_vfs_and_path() -> None:
    client = _build_test_client()
    session_id = _create_session(client)

    response = client.post(
        f"/api/sessions/{session_id}/state-update",
        json={"vfs": {"tmp": {"a.txt": "1"}}, "path": ["tmp"]},
    )

    assert response.status_code == 200
    assert response.json()["virtual_file_system"] == {"tmp": {"a.txt": "1"}}
    assert response.json()["current_path"] == ["tmp"]


def test_snapshot_save_load_and_clear() -> None:
    client = _build_test_client(("<p>restored</p>",))
    first = _create_session(client)
    client.post(f"/api/sessions/{first}/apps/terminal_app/open")

    saved = client.post(f"/api/sessions/{first}/snapshot")
    second_session = client.post("/api/sessions").json()
    loaded = client.post(f"/api/sessions/{second_session['session_id']}/snapshot/load")
    state = client.get(f"/api/sessions/{second_session['session_id']}/state").json()
    cleared = client.delete("/api/snapshot")
    missing = client.post(f"/api/sessions/{first}/snapshot/load")

    assert saved.json() == {"has_saved_snapshot": True}
    assert second_session["has_saved_snapshot"] is True
    assert loaded.status_code == 200
    assert loaded.text == "<p>restored</p>"
    assert state["active_app_id"] == "terminal_app"
    assert state["window_title"] == "Terminal: /home/user"
    assert cleared.json() == {"has_saved_snapshot": False}
    assert client.get("/api/snapshot").json() == {"has_saved_snapshot": False}
    assert missing.status_code == 404


def test_root_serves_html() -> None:
    client = _build_test_client()

    response = client.get("/")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "Blackbox OS" in response.text


def test_resolve_model_name_prefers_app_specific_env(monkeypatch) -> None:
    monkeypatch.setenv("BLACKBOX_MODEL", "gpt-4.1-nano")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4.1-mini")

    assert _resolve_model_name(primary_env="BLACKBOX_MODEL") == "gpt-4.1-nano"


def test_resolve_model_name_falls_back_to_openai_model_and_default(monkeypatch) -> None:
    monkeypatch.delenv("BLACKBOX_MODEL", raising=False)
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4.1")
    assert _resolve_model_name(primary_env="BLACKBOX_MODEL") == "gpt-4.1"

    monkeypatch.delenv("OPENAI_MODEL", raising=False)
    assert _resolve_model_name(primary_env="BLACKBOX_MODEL") == "gpt-4.1-mini"


def test_resolve_non_negative_int_env_uses_default_on_invalid_values(monkeypatch) -> None:
    monkeypatch.delenv("BLACKBOX_MAX_HISTORY_LENGTH", raising=False)
    assert _resolve_non_negative_int_env("BLACKBOX_MAX_HISTORY_LENGTH", default=3) == 3

    monkeypatch.setenv("BLACKBOX_MAX_HISTORY_LENGTH", "abc")
    assert _resolve_non_negative_int_env("BLACKBOX_MAX_HISTORY_LENGTH", default=3) == 3

    monkeypatch.setenv("BLACKBOX_MAX_HISTORY_LENGTH", "-1")
    assert _resolve_non_negative_int_env("BLACKBOX_MAX_HISTORY_LENGTH", default=3) == 3


def test_resolve_non_negative_int_env_accepts_zero_and_positive(monkeypatch) -> None:
    monkeypatch.setenv("BLACKBOX_MAX_HISTORY_LENGTH", "0")
    assert _resolve_non_negative_int_env("BLACKBOX_MAX_HISTORY_LENGTH", default=3) == 0

    monkeypatch.setenv("BLACKBOX_MAX_HISTORY_LENGTH", "5")
    assert _resolve_non_negative_int_env("BLACKBOX_MAX_HISTORY_LENGTH", default=3) == 5
