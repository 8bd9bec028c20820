"""インタラクションから次ターンの履歴・パス・端末履歴を組み立てる。"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from blackbox.domain.entities.interaction import AppDefinition, InteractionRecord
from blackbox.domain.services.app_catalog import (
    FILE_EXPLORER_APP_ID,
    FILE_SYSTEM_AWARE_APP_IDS,
    TERMINAL_APP_ID,
)
from blackbox.domain.value_objects.session_state import SessionState

OPEN_DIR_INTERACTION_ID = "file_explorer_open_dir"
OPEN_FILE_INTERACTION_ID = "file_explorer_open_file"
GO_UP_INTERACTION_ID = "file_explorer_up"
RUN_COMMAND_INTERACTION_ID = "terminal_run_command"


@dataclass(frozen=True, slots=True)
class InteractionTurn:
    """begin_interaction に渡す 3 つ組。"""

    interaction_history: tuple[InteractionRecord, ...]
    current_path: tuple[str, ...]
    terminal_history: tuple[str, ...]


def build_interaction_turn(state: SessionState, record: InteractionRecord) -> InteractionTurn:
    """現在状態とインタラクションから次ターンの入力を返す。"""
    next_path = _next_path(state.active_app, state.current_path, record)

    terminal_history = state.terminal_history
    if (
        record.app_context == TERMINAL_APP_ID
        and record.id == RUN_COMMAND_INTERACTION_ID
        and record.value
    ):
        terminal_history = (*terminal_history, record.value)

    stamped = record
    if record.app_context in FILE_SYSTEM_AWARE_APP_IDS:
        stamped = stamped.with_context(
            vfs=record.vfs if record.vfs is not None else state.vfs,
            path=next_path,
        )
    if record.app_context == TERMINAL_APP_ID:
        stamped = stamped.with_context(terminal_history=terminal_history)

    history = (stamped, *state.interaction_history)[: state.max_history_length]
    return InteractionTurn(
        interaction_history=history,
        current_path=next_path,
        terminal_history=terminal_history,
    )


def build_app_open_record(
    app: AppDefinition,
    *,
    initial_path: tuple[str, ...],
    vfs: Mapping[str, Any],
) -> InteractionRecord:
    """アプリ起動を表す合成インタラクションを返す。"""
    record = InteractionRecord(
        id=app.id,
        kind="app_open",
        element_kind="icon",
        element_label=app.name,
        app_context=app.id,
        path=initial_path,
    )
    if app.id in FILE_SYSTEM_AWARE_APP_IDS:
        record = record.with_context(vfs=vfs)
    if app.id == TERMINAL_APP_ID:
        record = record.with_context(terminal_history=())
    return record


def _next_path(
    active_app: AppDefinition | None,
    current_path: tuple[str, ...],
    record: InteractionRecord,
) -> tuple[str, ...]:
    if active_app is None or active_app.id != FILE_EXPLORER_APP_ID:
        return current_path
    if record.id in (OPEN_DIR_INTERACTION_ID, OPEN_FILE_INTERACTION_ID) and record.value:
        return (*current_path, record.value)
    if record.id == GO_UP_INTERACTION_ID and len(current_path) > 1:
        return current_path[:-1]
    return current_path
