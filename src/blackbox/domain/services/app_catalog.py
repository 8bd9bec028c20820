"""デスクトップに表示する模擬アプリのカタログ。"""

from __future__ import annotations

from collections.abc import Sequence

from blackbox.domain.entities.interaction import AppDefinition

TERMINAL_APP_ID = "terminal_app"
FILE_EXPLORER_APP_ID = "file_explorer_app"
NOTES_APP_ID = "notes_app"

FILE_SYSTEM_AWARE_APP_IDS: frozenset[str] = frozenset({TERMINAL_APP_ID, FILE_EXPLORER_APP_ID})

DEFAULT_APP_CATALOG: tuple[AppDefinition, ...] = (
    AppDefinition(id=TERMINAL_APP_ID, name="Terminal", icon="💻", color="#1f2937"),
    AppDefinition(id=FILE_EXPLORER_APP_ID, name="File System", icon="📁", color="#b45309"),
    AppDefinition(id=NOTES_APP_ID, name="Notepad", icon="📝", color="#fef08a"),
    AppDefinition(id="web_browser_app", name="Web Browser", icon="🌐", color="#1d4ed8"),
    AppDefinition(id="network_scanner_app", name="Network Scanner", icon="📡", color="#065f46"),
    AppDefinition(id="mail_app", name="Mail", icon="✉️", color="#7c3aed"),
)


class UnknownAppError(KeyError):
    """カタログに無いアプリ ID が指定された場合の例外。"""


def find_app(app_id: str | None, catalog: Sequence[AppDefinition] = DEFAULT_APP_CATALOG) -> AppDefinition | None:
    """ID に一致するアプリ定義を返す。無ければ None。"""
    if app_id is None:
        return None
    return next((app for app in catalog if app.id == app_id), None)


def require_app(app_id: str, catalog: Sequence[AppDefinition] = DEFAULT_APP_CATALOG) -> AppDefinition:
    """ID に一致するアプリ定義を返す。無ければ例外。"""
    app = find_app(app_id, catalog)
    if app is None:
        raise UnknownAppError(f"app_id が存在しません: {app_id}")
    return app


def initial_path_for(app: AppDefinition) -> tuple[str, ...]:
    """アプリ起動時のカレントパスを返す。"""
    if app.id == TERMINAL_APP_ID:
        return ("home", "user")
    if app.id == FILE_EXPLORER_APP_ID:
        return ("home",)
    return (app.id,)
