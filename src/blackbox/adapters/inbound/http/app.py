"""FastAPI ベースの Blackbox OS API。"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, HTTPException, status
from fastapi.responses import FileResponse, StreamingResponse

from blackbox.adapters.inbound.dom.bridge import StateUpdateSignal
from blackbox.adapters.inbound.http.schemas import (
    AppResponse,
    ClickRequest,
    CloseAppRequest,
    ContentResponse,
    CreateSessionResponse,
    ErrorResponse,
    FileUploadRequest,
    HealthResponse,
    InteractionRequest,
    InteractionResponse,
    SessionStateResponse,
    SettingsPayload,
    SnapshotStatusResponse,
    StateUpdateRequest,
    SystemCommandRequest,
    TerminalKeyRequest,
    TerminalKeyResponse,
)
from blackbox.adapters.outbound.json_file_snapshot_store import JsonFileSnapshotStore
from blackbox.adapters.outbound.openai_content_model import OpenAIContentModelAdapter
from blackbox.application.use_cases.desktop_session import (
    DesktopSessionUseCase,
    UnsavedChangesError,
)
from blackbox.domain.entities.interaction import InteractionRecord
from blackbox.domain.services.settings_form import SettingsDraft
from blackbox.domain.services.window_title import window_title
from blackbox.domain.value_objects.session_state import (
    DEFAULT_MAX_HISTORY_LENGTH,
    MAX_HISTORY_LENGTH_LIMIT,
)

_LOG = logging.getLogger(__name__)

_BASE_DIR = Path(__file__).resolve().parent
_STATIC_HTML = _BASE_DIR / "static" / "index.html"
_DEFAULT_MODEL = "gpt-4.1-mini"
_DEFAULT_MAX_SESSIONS = 200
_HTML_MEDIA_TYPE = "text/html; charset=utf-8"

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


def create_app(*, desktop_session_use_case: DesktopSessionUseCase | None = None) -> FastAPI:
    """Blackbox OS API アプリを構築する。"""
    _load_runtime_env()
    use_case = desktop_session_use_case or _build_default_desktop_session_use_case()

    app = FastAPI(
        title="Blackbox OS API",
        version="0.1.0",
    )
    app.state.desktop_session_use_case = use_case
    _register_routes(app)
    return app


@contextmanager
def _translated_errors() -> Iterator[None]:
    """ユースケースの例外を HTTP ステータスへ変換する。"""
    try:
        yield
    except UnsavedChangesError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except KeyError as exc:
        detail = str(exc.args[0]) if exc.args else str(exc)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _register_routes(app: FastAPI) -> None:
    api = APIRouter(prefix="/api")

    def use_case() -> DesktopSessionUseCase:
        return app.state.desktop_session_use_case

    def state_response(session_id: str) -> SessionStateResponse:
        current = use_case()
        state = current.get_state(session_id)
        return SessionStateResponse(
            session_id=session_id,
            window_title=window_title(state),
            active_app_id=state.active_app_id,
            is_loading=state.is_loading,
            error=state.error,
            is_parameters_open=state.is_parameters_open,
            current_path=list(state.current_path),
            terminal_history=list(state.terminal_history),
            interaction_history=[
                InteractionResponse(**record.to_payload(include_vfs=False))
                for record in state.interaction_history
            ],
            virtual_file_system=dict(state.vfs),
            max_history_length=state.max_history_length,
            statefulness_enabled=state.statefulness_enabled,
            quiet_mode_enabled=state.quiet_mode_enabled,
            terminal_color_scheme=state.terminal_color_scheme,
            terminal_font_size=state.terminal_font_size,
            cached_entries=current.cached_entry_count(session_id),
        )

    def turn_stream(session_id: str) -> StreamingResponse:
        return StreamingResponse(use_case().stream_turn(session_id), media_type=_HTML_MEDIA_TYPE)

    @api.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @api.get("/apps", response_model=list[AppResponse])
    def list_apps() -> list[AppResponse]:
        return [
            AppResponse(
                id=app_definition.id,
                name=app_definition.name,
                icon=app_definition.icon,
                color=app_definition.color,
            )
            for app_definition in use_case().catalog
        ]

    @api.post("/sessions", response_model=CreateSessionResponse)
    def create_session() -> CreateSessionResponse:
        current = use_case()
        session_id = current.create_session()
        return CreateSessionResponse(
            session_id=session_id,
            has_saved_snapshot=current.has_saved_snapshot(),
        )

    @api.get("/sessions/{session_id}/state", response_model=SessionStateResponse, responses=_ERROR_RESPONSES)
    def get_state(session_id: str) -> SessionStateResponse:
        with _translated_errors():
            return state_response(session_id)

    @api.get("/sessions/{session_id}/content", response_model=ContentResponse, responses=_ERROR_RESPONSES)
    def get_content(session_id: str) -> ContentResponse:
        with _translated_errors():
            current = use_case()
            return ContentResponse(
                html=current.rendered_content(session_id, with_node_ids=True),
                executed_scripts=list(current.executed_scripts(session_id)),
            )

    @api.post("/sessions/{session_id}/apps/{app_id}/open", responses=_ERROR_RESPONSES)
    def open_app(session_id: str, app_id: str) -> StreamingResponse:
        with _translated_errors():
            use_case().open_app(session_id, app_id)
        return turn_stream(session_id)

    @api.post(
        "/sessions/{session_id}/close",
        response_model=SessionStateResponse,
        responses={**_ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    )
    def close_app(session_id: str, request: CloseAppRequest) -> SessionStateResponse:
        with _translated_errors():
            use_case().close_app(
                session_id,
                editor_buffer=request.editor_buffer,
                confirmed=request.confirmed,
            )
            return state_response(session_id)

    @api.post("/sessions/{session_id}/interactions", responses=_ERROR_RESPONSES)
    def submit_interaction(session_id: str, request: InteractionRequest) -> StreamingResponse:
        with _translated_errors():
            use_case().submit_interaction(
                session_id,
                InteractionRecord(
                    id=request.id,
                    kind=request.kind,
                    value=request.value,
                    element_kind=request.element_kind,
                    element_label=request.element_label,
                    app_context=request.app_context,
                ),
            )
        return turn_stream(session_id)

    @api.post("/sessions/{session_id}/click", responses=_ERROR_RESPONSES)
    def click(session_id: str, request: ClickRequest) -> StreamingResponse:
        with _translated_errors():
            use_case().click(session_id, request.node_id, field_values=request.field_values)
        return turn_stream(session_id)

    @api.post(
        "/sessions/{session_id}/terminal/key",
        response_model=TerminalKeyResponse,
        responses=_ERROR_RESPONSES,
    )
    def press_terminal_key(session_id: str, request: TerminalKeyRequest) -> TerminalKeyResponse:
        with _translated_errors():
            return TerminalKeyResponse(value=use_case().press_terminal_key(session_id, request.key))

    @api.post("/sessions/{session_id}/upload", responses=_ERROR_RESPONSES)
    def upload_file(session_id: str, request: FileUploadRequest) -> StreamingResponse:
        with _translated_errors():
            use_case().upload_file(session_id, request.name, request.content)
        return turn_stream(session_id)

    @api.post(
        "/sessions/{session_id}/state-update",
        response_model=SessionStateResponse,
        responses=_ERROR_RESPONSES,
    )
    def apply_state_update(session_id: str, request: StateUpdateRequest) -> SessionStateResponse:
        with _translated_errors():
            use_case().apply_state_update(
                session_id,
                StateUpdateSignal(
                    vfs=request.vfs,
                    path=tuple(request.path) if request.path is not None else None,
                ),
            )
            return state_response(session_id)

    @api.post(
        "/sessions/{session_id}/system-command",
        response_model=SessionStateResponse,
        responses=_ERROR_RESPONSES,
    )
    def run_system_command(session_id: str, request: SystemCommandRequest) -> SessionStateResponse:
        with _translated_errors():
            use_case().run_system_command(session_id, request.command)
            return state_response(session_id)

    @api.post(
        "/sessions/{session_id}/parameters/toggle",
        response_model=SessionStateResponse,
        responses=_ERROR_RESPONSES,
    )
    def toggle_parameters(session_id: str) -> SessionStateResponse:
        with _translated_errors():
            use_case().toggle_parameters(session_id)
            return state_response(session_id)

    @api.get("/sessions/{session_id}/settings", response_model=SettingsPayload, responses=_ERROR_RESPONSES)
    def get_settings(session_id: str) -> SettingsPayload:
        with _translated_errors():
            draft = use_case().settings_draft(session_id)
        return SettingsPayload(
            max_history_length=draft.max_history_length,
            statefulness_enabled=draft.statefulness_enabled,
            quiet_mode_enabled=draft.quiet_mode_enabled,
            terminal_color_scheme=draft.terminal_color_scheme,
            terminal_font_size=draft.terminal_font_size,
        )

    @api.put("/sessions/{session_id}/settings", response_model=SessionStateResponse, responses=_ERROR_RESPONSES)
    def apply_settings(session_id: str, request: SettingsPayload) -> SessionStateResponse:
        with _translated_errors():
            use_case().apply_settings(
                session_id,
                SettingsDraft(
                    max_history_length=request.max_history_length,
                    statefulness_enabled=request.statefulness_enabled,
                    quiet_mode_enabled=request.quiet_mode_enabled,
                    terminal_color_scheme=request.terminal_color_scheme,
                    terminal_font_size=request.terminal_font_size,
                ),
            )
            return state_response(session_id)

    @api.post(
        "/sessions/{session_id}/history/clear",
        response_model=SessionStateResponse,
        responses=_ERROR_RESPONSES,
    )
    def clear_history(session_id: str) -> SessionStateResponse:
        with _translated_errors():
            use_case().clear_history(session_id)
            return state_response(session_id)

    @api.post(
        "/sessions/{session_id}/snapshot",
        response_model=SnapshotStatusResponse,
        responses=_ERROR_RESPONSES,
    )
    def save_snapshot(session_id: str) -> SnapshotStatusResponse:
        with _translated_errors():
            use_case().save_snapshot(session_id)
        return SnapshotStatusResponse(has_saved_snapshot=True)

    @api.post("/sessions/{session_id}/snapshot/load", responses=_ERROR_RESPONSES)
    def load_snapshot(session_id: str) -> StreamingResponse:
        with _translated_errors():
            use_case().load_snapshot(session_id)
        return turn_stream(session_id)

    @api.get("/snapshot", response_model=SnapshotStatusResponse)
    def snapshot_status() -> SnapshotStatusResponse:
        return SnapshotStatusResponse(has_saved_snapshot=use_case().has_saved_snapshot())

    @api.delete("/snapshot", response_model=SnapshotStatusResponse)
    def clear_snapshot() -> SnapshotStatusResponse:
        use_case().clear_snapshot()
        return SnapshotStatusResponse(has_saved_snapshot=False)

    @app.get("/", response_class=FileResponse)
    def serve_index() -> FileResponse:
        if not _STATIC_HTML.exists():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="UI ファイルがありません。"
            )
        return FileResponse(path=_STATIC_HTML)

    app.include_router(api)


def _build_default_desktop_session_use_case() -> DesktopSessionUseCase:
    content_model = OpenAIContentModelAdapter(
        model=_resolve_model_name(primary_env="BLACKBOX_MODEL"),
        temperature=0.7,
        max_output_tokens=8000,
    )
    snapshot_path = os.getenv("BLACKBOX_SNAPSHOT_PATH", "").strip()
    snapshot_store = (
        JsonFileSnapshotStore(Path(snapshot_path).expanduser()) if snapshot_path else JsonFileSnapshotStore()
    )
    max_history_length = min(
        _resolve_non_negative_int_env("BLACKBOX_MAX_HISTORY_LENGTH", default=DEFAULT_MAX_HISTORY_LENGTH),
        MAX_HISTORY_LENGTH_LIMIT,
    )
    max_sessions = max(1, _resolve_non_negative_int_env("BLACKBOX_MAX_SESSIONS", default=_DEFAULT_MAX_SESSIONS))
    return DesktopSessionUseCase(
        content_model=content_model,
        snapshot_store=snapshot_store,
        max_history_length=max_history_length,
        max_sessions=max_sessions,
    )


def _resolve_model_name(*, primary_env: str) -> str:
    """用途別の環境変数、OPENAI_MODEL、既定値の順にモデル名を決める。"""
    for name in (primary_env, "OPENAI_MODEL"):
        value = os.getenv(name, "").strip()
        if value:
            return value
    return _DEFAULT_MODEL


def _resolve_non_negative_int_env(name: str, *, default: int) -> int:
    """0 以上の整数を環境変数から読む。不正値は既定値にする。"""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        _LOG.warning("invalid integer in environment, using default: name=%s value=%r", name, raw)
        return default
    if value < 0:
        _LOG.warning("negative integer in environment, using default: name=%s value=%d", name, value)
        return default
    return value


def _load_runtime_env() -> None:
    app_env = os.getenv("APP_ENV", "development")
    env_file = Path(f".env.{app_env}")
    if env_file.exists():
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)
