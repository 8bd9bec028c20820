"""SessionState の名前付き遷移。

各関数は直前の状態と payload だけから次の状態を返す純粋関数で、
引数の状態を変更しない。
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any

from blackbox.domain.entities.interaction import AppDefinition, InteractionRecord
from blackbox.domain.services.app_catalog import TERMINAL_APP_ID
from blackbox.domain.value_objects.session_state import SessionState

REPLACEABLE_FIELDS: frozenset[str] = frozenset(
    {
        "active_app",
        "interaction_history",
        "current_path",
        "vfs",
        "terminal_history",
        "max_history_length",
        "statefulness_enabled",
        "quiet_mode_enabled",
        "terminal_color_scheme",
        "terminal_font_size",
        "is_parameters_open",
    }
)


def open_app(
    state: SessionState,
    app: AppDefinition,
    initial_path: Sequence[str],
    initial_history: Sequence[InteractionRecord],
) -> SessionState:
    return replace(
        state,
        active_app=app,
        is_parameters_open=False,
        content="",
        error=None,
        current_path=tuple(initial_path),
        interaction_history=tuple(initial_history),
        terminal_history=() if app.id == TERMINAL_APP_ID else state.terminal_history,
        editor_baseline=None,
    )


def close_app(state: SessionState) -> SessionState:
    return replace(
        state,
        active_app=None,
        content="",
        error=None,
        interaction_history=(),
        current_path=(),
        editor_baseline=None,
    )


def begin_interaction(
    state: SessionState,
    interaction_history: Sequence[InteractionRecord],
    current_path: Sequence[str],
    terminal_history: Sequence[str],
) -> SessionState:
    """新しい履歴・パス・端末履歴を取り込みロード中にする。"""
    return replace(
        state,
        is_loading=True,
        error=None,
        content="",
        interaction_history=tuple(interaction_history)[: state.max_history_length],
        current_path=tuple(current_path),
        terminal_history=tuple(terminal_history),
    )


def resolve_from_cache(state: SessionState, content: str) -> SessionState:
    return replace(state, is_loading=False, content=content)


def append_chunk(state: SessionState, chunk: str) -> SessionState:
    return replace(state, content=state.content + chunk)


def complete_stream(state: SessionState) -> SessionState:
    return replace(state, is_loading=False)


def fail_stream(state: SessionState, message: str, fragment: str) -> SessionState:
    """生成失敗を記録し、エラー断片を表示内容にする。"""
    return replace(state, is_loading=False, error=message, content=fragment)


def toggle_parameters(state: SessionState) -> SessionState:
    """パラメータパネルを開閉する。閉じると直前のアプリへ戻る。"""
    if state.is_parameters_open:
        return replace(
            state,
            is_parameters_open=False,
            active_app=state.previous_active_app,
            previous_active_app=None,
            content="",
            error=None,
            interaction_history=(),
            current_path=(),
        )
    return replace(
        state,
        is_parameters_open=True,
        active_app=None,
        previous_active_app=state.active_app,
        content="",
        error=None,
    )


def update_settings(
    state: SessionState,
    *,
    max_history_length: int | None = None,
    statefulness: bool | None = None,
    quiet_mode: bool | None = None,
) -> SessionState:
    """設定をマージする。履歴上限の変更は保存済み履歴も切り詰める。"""
    next_length = state.max_history_length if max_history_length is None else max_history_length
    history = state.interaction_history
    if max_history_length is not None:
        history = history[:max_history_length]
    return replace(
        state,
        max_history_length=next_length,
        statefulness_enabled=state.statefulness_enabled if statefulness is None else statefulness,
        quiet_mode_enabled=state.quiet_mode_enabled if quiet_mode is None else quiet_mode,
        interaction_history=history,
    )


def update_terminal_settings(
    state: SessionState,
    *,
    color_scheme: str | None = None,
    font_size: int | None = None,
) -> SessionState:
    return replace(
        state,
        terminal_color_scheme=color_scheme or state.terminal_color_scheme,
        terminal_font_size=state.terminal_font_size if font_size is None else font_size,
    )


def clear_history(state: SessionState) -> SessionState:
    return replace(state, interaction_history=(), terminal_history=())


def replace_state(state: SessionState, **fields: Any) -> SessionState:
    """スナップショット復元用に許可された項目だけを一括置換する。"""
    unknown = sorted(set(fields) - REPLACEABLE_FIELDS)
    if unknown:
        raise ValueError(f"置換できない項目です: {', '.join(unknown)}")
    normalized: dict[str, Any] = dict(fields)
    for name in ("interaction_history", "current_path", "terminal_history"):
        if name in normalized:
            normalized[name] = tuple(normalized[name])
    if "vfs" in normalized and not isinstance(normalized["vfs"], Mapping):
        raise ValueError("vfs は mapping である必要があります。")
    return replace(state, **normalized)


def set_editor_baseline(state: SessionState, baseline: str | None) -> SessionState:
    return replace(state, editor_baseline=baseline)
