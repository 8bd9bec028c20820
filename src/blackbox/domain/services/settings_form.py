"""パラメータパネルの下書き検証。

下書きはすべての項目を検証してから一括で確定する。1 項目でも不正なら
何も適用しない。
"""

from __future__ import annotations

from dataclasses import dataclass

from blackbox.domain.value_objects.session_state import MAX_HISTORY_LENGTH_LIMIT, SessionState

TERMINAL_COLOR_SCHEMES: tuple[str, ...] = ("default", "amber", "white", "scanlines")
MIN_TERMINAL_FONT_SIZE = 8
MAX_TERMINAL_FONT_SIZE = 24


class SettingsValidationError(ValueError):
    """設定下書きが範囲外の場合の例外。メッセージはそのまま利用者に表示する。"""


@dataclass(frozen=True, slots=True)
class SettingsDraft:
    """編集中の設定。数値はフォーム入力のまま文字列でも受け付ける。"""

    max_history_length: int | str
    statefulness_enabled: bool
    quiet_mode_enabled: bool
    terminal_color_scheme: str
    terminal_font_size: int | str

    @classmethod
    def from_state(cls, state: SessionState) -> SettingsDraft:
        """現在の確定値から下書きを作る。"""
        return cls(
            max_history_length=state.max_history_length,
            statefulness_enabled=state.statefulness_enabled,
            quiet_mode_enabled=state.quiet_mode_enabled,
            terminal_color_scheme=state.terminal_color_scheme,
            terminal_font_size=state.terminal_font_size,
        )


@dataclass(frozen=True, slots=True)
class ValidatedSettings:
    """検証済みで適用可能な設定。"""

    max_history_length: int
    statefulness_enabled: bool
    quiet_mode_enabled: bool
    terminal_color_scheme: str
    terminal_font_size: int


def validate_settings_draft(draft: SettingsDraft) -> ValidatedSettings:
    """下書き全体を検証し、確定用の値を返す。"""
    max_history_length = _parse_int(draft.max_history_length)
    if max_history_length is None or not 0 <= max_history_length <= MAX_HISTORY_LENGTH_LIMIT:
        raise SettingsValidationError(
            f"履歴の長さには 0 から {MAX_HISTORY_LENGTH_LIMIT} までの数値を入力してください。"
        )

    font_size = _parse_int(draft.terminal_font_size)
    if font_size is None or not MIN_TERMINAL_FONT_SIZE <= font_size <= MAX_TERMINAL_FONT_SIZE:
        raise SettingsValidationError(
            f"フォントサイズには {MIN_TERMINAL_FONT_SIZE} から {MAX_TERMINAL_FONT_SIZE} までの数値を入力してください。"
        )

    if draft.terminal_color_scheme not in TERMINAL_COLOR_SCHEMES:
        raise SettingsValidationError(
            f"配色は次から選んでください: {', '.join(TERMINAL_COLOR_SCHEMES)}"
        )

    return ValidatedSettings(
        max_history_length=max_history_length,
        statefulness_enabled=bool(draft.statefulness_enabled),
        quiet_mode_enabled=bool(draft.quiet_mode_enabled),
        terminal_color_scheme=draft.terminal_color_scheme,
        terminal_font_size=font_size,
    )


def _parse_int(value: int | str) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip(), 10)
    except ValueError:
        return None
