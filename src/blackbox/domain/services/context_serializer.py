"""インタラクション履歴と VFS から生成プロンプトを組み立てる。"""

from __future__ import annotations

import json
from collections.abc import Sequence

from blackbox.domain.entities.interaction import AppDefinition, InteractionRecord
from blackbox.domain.services.app_catalog import (
    DEFAULT_APP_CATALOG,
    FILE_SYSTEM_AWARE_APP_IDS,
    TERMINAL_APP_ID,
    find_app,
)
from blackbox.domain.services.system_prompt import get_system_prompt

VALUE_PREVIEW_MAX_CHARS = 100


class EmptyInteractionHistoryError(ValueError):
    """シリアライズ対象の履歴が空の場合の例外。"""


def build_context_prompt(
    interaction_history: Sequence[InteractionRecord],
    *,
    max_history_length: int,
    quiet_mode: bool,
    catalog: Sequence[AppDefinition] = DEFAULT_APP_CATALOG,
) -> str:
    """先頭を現在の操作として、固定構造のプロンプト文字列を返す。

    履歴の切り詰めは呼び出し側の責務で、ここでは受け取った全件を描画する。
    """
    if not interaction_history:
        raise EmptyInteractionHistoryError("interaction_history が空です。")

    current = interaction_history[0]
    past = interaction_history[1:]

    sections = [
        "--- START CONTEXT ---\n" + _current_interaction_block(current, catalog),
    ]
    if current.app_context in FILE_SYSTEM_AWARE_APP_IDS:
        sections.append(_app_state_block(current))
    if past:
        sections.append(_recent_history_block(past, catalog))
    sections.append(
        "## Raw Interaction Data (for reference)\n"
        f"{json.dumps(current.to_payload(include_vfs=False), indent=2, ensure_ascii=False)}\n"
        "--- END CONTEXT ---"
    )
    context_block = "\n\n".join(sections)

    return (
        f"{get_system_prompt(max_history_length, quiet_mode)}\n\n"
        f"{context_block}\n\n"
        "Based on the context provided above, generate the HTML content for the window's content area."
    )


def _current_interaction_block(
    current: InteractionRecord,
    catalog: Sequence[AppDefinition],
) -> str:
    app = find_app(current.app_context, catalog)
    app_name = app.name if app is not None else (current.app_context or "Desktop")
    element_text = current.element_label or current.id or "Unknown Element"
    value = f"'{current.value[:VALUE_PREVIEW_MAX_CHARS]}'" if current.value else "N/A"
    return (
        "## Current Interaction\n"
        f"- App: {app_name}\n"
        f"- Interaction ID: {current.id}\n"
        f"- Interaction Type: {current.kind}\n"
        f"- Element Text: {element_text}\n"
        f"- Value: {value}"
    )


def _app_state_block(current: InteractionRecord) -> str:
    path = current.path or ()
    lines = [
        "## App State",
        f"- Current Path: /{'/'.join(path)}",
        f"- Virtual File System (VFS): {json.dumps(current.vfs, indent=2, ensure_ascii=False)}",
    ]
    if current.app_context == TERMINAL_APP_ID:
        history = list(current.terminal_history or ())
        lines.append(
            f"- Terminal Command History (this session): {json.dumps(history, ensure_ascii=False)}"
        )
    return "\n".join(lines)


def _recent_history_block(
    past: Sequence[InteractionRecord],
    catalog: Sequence[AppDefinition],
) -> str:
    lines = [f"## Recent History ({len(past)} previous interactions)"]
    for index, record in enumerate(past, start=1):
        if record.app_context is None:
            app_name = "N/A"
        else:
            app = find_app(record.app_context, catalog)
            app_name = app.name if app is not None else record.app_context
        lines.append(f"{index}. (App: {app_name}) {record.element_label or record.id}")
    return "\n".join(lines)
