"""HTTP API の入出力スキーマ。"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス。"""

    status: str = "ok"


class AppResponse(BaseModel):
    """デスクトップに並ぶアプリ 1 件。"""

    id: str
    name: str
    icon: str
    color: str


class CreateSessionResponse(BaseModel):
    """セッション作成レスポンス。"""

    session_id: str
    has_saved_snapshot: bool


class InteractionResponse(BaseModel):
    """履歴に積まれたインタラクション。VFS は含めない。"""

    id: str
    kind: str
    element_kind: str
    element_label: str
    app_context: str | None = None
    value: str | None = None
    terminal_history: list[str] | None = None
    path: list[str] | None = None


class SessionStateResponse(BaseModel):
    """クライアントが描画に使うセッション状態。"""

    session_id: str
    window_title: str
    active_app_id: str | None
    is_loading: bool
    error: str | None
    is_parameters_open: bool
    current_path: list[str]
    terminal_history: list[str]
    interaction_history: list[InteractionResponse]
    virtual_file_system: dict[str, Any]
    max_history_length: int
    statefulness_enabled: bool
    quiet_mode_enabled: bool
    terminal_color_scheme: str
    terminal_font_size: int
    cached_entries: int = Field(ge=0)


class ContentResponse(BaseModel):
    """描画領域の HTML と再実行対象の script。"""

    html: str
    executed_scripts: list[str]


class InteractionRequest(BaseModel):
    """クライアントから直接送るインタラクション。"""

    id: str = Field(min_length=1)
    kind: str = Field(default="generic_click", min_length=1)
    value: str | None = None
    element_kind: str = "div"
    element_label: str = Field(default="", max_length=10_000)
    app_context: str | None = None


class ClickRequest(BaseModel):
    """描画済み要素のクリック。"""

    node_id: str = Field(min_length=1)
    field_values: dict[str, str] = Field(default_factory=dict)


class CloseAppRequest(BaseModel):
    """デスクトップへ戻るリクエスト。"""

    editor_buffer: str | None = None
    confirmed: bool = False


class TerminalKeyRequest(BaseModel):
    """端末入力欄でのキー入力。"""

    key: str = Field(min_length=1)


class TerminalKeyResponse(BaseModel):
    """キー入力後に入力欄へ表示する値。対象外なら null。"""

    value: str | None


class FileUploadRequest(BaseModel):
    """テキストファイルのアップロード。"""

    name: str = Field(min_length=1, max_length=255)
    content: str = Field(max_length=1_000_000)


class StateUpdateRequest(BaseModel):
    """VFS とパスの直接更新。"""

    vfs: dict[str, Any] | None = None
    path: list[str] | None = None


class SystemCommandRequest(BaseModel):
    """システムコマンド実行リクエスト。"""

    command: str = Field(min_length=1)


class SettingsPayload(BaseModel):
    """パラメータパネルの設定値。数値はフォーム入力の文字列も受け付ける。"""

    max_history_length: int | str
    statefulness_enabled: bool
    quiet_mode_enabled: bool
    terminal_color_scheme: str
    terminal_font_size: int | str


class SnapshotStatusResponse(BaseModel):
    """保存済みスナップショットの有無。"""

    has_saved_snapshot: bool


class ErrorResponse(BaseModel):
    """API エラーレスポンス。"""

    error: str
