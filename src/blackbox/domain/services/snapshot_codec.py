"""SessionState と永続スナップショット payload の相互変換。"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from blackbox.domain.entities.interaction import AppDefinition, InteractionRecord
from blackbox.domain.services.app_catalog import DEFAULT_APP_CATALOG, find_app
from blackbox.domain.services.settings_form import (
    MAX_TERMINAL_FONT_SIZE,
    MIN_TERMINAL_FONT_SIZE,
    TERMINAL_COLOR_SCHEMES,
)
from blackbox.domain.value_objects.session_state import MAX_HISTORY_LENGTH_LIMIT, SessionState

SNAPSHOT_FIELDS: tuple[str, ...] = (
    "active_app_id",
    "interaction_history",
    "current_path",
    "virtual_file_system",
    "terminal_command_history",
    "max_history_length",
    "statefulness_enabled",
    "quiet_mode_enabled",
    "terminal_color_scheme",
    "terminal_font_size",
)


class SnapshotFormatError(ValueError):
    """保存済みスナップショットが想定形式でない場合の例外。"""


def encode_snapshot(state: SessionState) -> dict[str, Any]:
    """永続化対象の項目だけを JSON 化可能な dict にする。"""
    return {
        "active_app_id": state.active_app_id,
        "interaction_history": [record.to_payload() for record in state.interaction_history],
        "current_path": list(state.current_path),
        "virtual_file_system": state.vfs,
        "terminal_command_history": list(state.terminal_history),
        "max_history_length": state.max_history_length,
        "statefulness_enabled": state.statefulness_enabled,
        "quiet_mode_enabled": state.quiet_mode_enabled,
        "terminal_color_scheme": state.terminal_color_scheme,
        "terminal_font_size": state.terminal_font_size,
    }


def decode_snapshot(
    payload: Mapping[str, object],
    *,
    catalog: Sequence[AppDefinition] = DEFAULT_APP_CATALOG,
) -> dict[str, Any]:
    """payload を replace_state に渡せる項目 dict へ変換する。

    payload に無い項目は返さないので、呼び出し側の初期値が残る。
    """
    fields: dict[str, Any] = {}
    if "active_app_id" in payload:
        app_id = payload["active_app_id"]
        fields["active_app"] = find_app(app_id if isinstance(app_id, str) else None, catalog)
    if "interaction_history" in payload:
        history = _require_list(payload["interaction_history"], "interaction_history")
        try:
            fields["interaction_history"] = tuple(
                InteractionRecord.from_payload(_require_mapping(item, "interaction_history[]"))
                for item in history
            )
        except ValueError as exc:
            raise SnapshotFormatError(str(exc)) from exc
    if "current_path" in payload:
        fields["current_path"] = _string_tuple(payload["current_path"], "current_path")
    if "virtual_file_system" in payload:
        fields["vfs"] = dict(_require_mapping(payload["virtual_file_system"], "virtual_file_system"))
    if "terminal_command_history" in payload:
        fields["terminal_history"] = _string_tuple(
            payload["terminal_command_history"], "terminal_command_history"
        )
    for name in ("max_history_length", "terminal_font_size"):
        if name in payload:
            value = payload[name]
            if isinstance(value, bool) or not isinstance(value, int):
                raise SnapshotFormatError(f"{name} は整数である必要があります。")
            fields[name] = value
    if not 0 <= fields.get("max_history_length", 0) <= MAX_HISTORY_LENGTH_LIMIT:
        raise SnapshotFormatError(
            f"max_history_length は 0 以上 {MAX_HISTORY_LENGTH_LIMIT} 以下である必要があります。"
        )
    font_size = fields.get("terminal_font_size", MIN_TERMINAL_FONT_SIZE)
    if not MIN_TERMINAL_FONT_SIZE <= font_size <= MAX_TERMINAL_FONT_SIZE:
        raise SnapshotFormatError(
            f"terminal_font_size は {MIN_TERMINAL_FONT_SIZE} 以上 {MAX_TERMINAL_FONT_SIZE} 以下である必要があります。"
        )
    for name in ("statefulness_enabled", "quiet_mode_enabled"):
        if name in payload:
            fields[name] = bool(payload[name])
    if "terminal_color_scheme" in payload:
        scheme = payload["terminal_color_scheme"]
        if scheme not in TERMINAL_COLOR_SCHEMES:
            raise SnapshotFormatError(f"terminal_color_scheme が不正です: {scheme!r}")
        fields["terminal_color_scheme"] = scheme
    return fields


def _require_list(value: object, field_name: str) -> list[object]:
    if not isinstance(value, list):
        raise SnapshotFormatError(f"{field_name} は配列である必要があります。")
    return value


def _require_mapping(value: object, field_name: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise SnapshotFormatError(f"{field_name} は object である必要があります。")
    return value


def _string_tuple(value: object, field_name: str) -> tuple[str, ...]:
    items = _require_list(value, field_name)
    if any(not isinstance(item, str) for item in items):
        raise SnapshotFormatError(f"{field_name} は文字列配列である必要があります。")
    return tuple(str(item) for item in items)
