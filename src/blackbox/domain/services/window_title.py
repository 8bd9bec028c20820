"""ウィンドウのタイトル文字列。"""

from __future__ import annotations

from blackbox.domain.services.app_catalog import FILE_EXPLORER_APP_ID, TERMINAL_APP_ID
from blackbox.domain.value_objects.session_state import SessionState

DESKTOP_TITLE = "Blackbox OS"
QUIET_MODE_SUFFIX = " 🤫 (Quiet Mode)"

_PATH_TITLE_NAMES = {
    TERMINAL_APP_ID: "Terminal",
    FILE_EXPLORER_APP_ID: "File System",
}


def window_title(state: SessionState) -> str:
    """起動中アプリとパスからタイトルを返す。"""
    if state.is_parameters_open or state.active_app is None:
        title = DESKTOP_TITLE
    elif state.active_app.id in _PATH_TITLE_NAMES:
        title = f"{_PATH_TITLE_NAMES[state.active_app.id]}: /{'/'.join(state.current_path)}"
    else:
        title = state.active_app.name
    if state.quiet_mode_enabled:
        title += QUIET_MODE_SUFFIX
    return title
