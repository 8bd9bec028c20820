"""デスクトップセッションの状態を表す値オブジェクト。"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from blackbox.domain.entities.interaction import AppDefinition, InteractionRecord
from blackbox.domain.entities.response_cache import cache_key_for
from blackbox.domain.services.virtual_file_system import seed_file_system

MAX_HISTORY_LENGTH_LIMIT = 10
DEFAULT_MAX_HISTORY_LENGTH = 3
DEFAULT_TERMINAL_COLOR_SCHEME = "default"
DEFAULT_TERMINAL_FONT_SIZE = 14


@dataclass(frozen=True, slots=True)
class SessionState:
    """描画を駆動する唯一の状態。遷移関数でのみ置換する。"""

    active_app: AppDefinition | None = None
    previous_active_app: AppDefinition | None = None
    content: str = ""
    is_loading: bool = False
    error: str | None = None
    interaction_history: tuple[InteractionRecord, ...] = ()
    is_parameters_open: bool = False
    current_path: tuple[str, ...] = ()
    vfs: Mapping[str, Any] = field(default_factory=seed_file_system)
    terminal_history: tuple[str, ...] = ()
    max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH
    statefulness_enabled: bool = False
    quiet_mode_enabled: bool = False
    terminal_color_scheme: str = DEFAULT_TERMINAL_COLOR_SCHEME
    terminal_font_size: int = DEFAULT_TERMINAL_FONT_SIZE
    editor_baseline: str | None = None

    def __post_init__(self) -> None:
        """履歴上限の範囲を検証する。"""
        if not 0 <= self.max_history_length <= MAX_HISTORY_LENGTH_LIMIT:
            raise ValueError(
                f"max_history_length は 0 以上 {MAX_HISTORY_LENGTH_LIMIT} 以下である必要があります。"
            )

    @classmethod
    def initial(cls, *, max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH) -> SessionState:
        """セッション開始時の状態を返す。"""
        return cls(max_history_length=max_history_length)

    @property
    def cache_key(self) -> str:
        """現在パスからレスポンスキャッシュのキーを返す。"""
        return cache_key_for(self.current_path)

    @property
    def active_app_id(self) -> str | None:
        """起動中アプリの ID を返す。"""
        return self.active_app.id if self.active_app is not None else None
