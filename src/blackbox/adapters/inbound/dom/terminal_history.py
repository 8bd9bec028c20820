"""端末入力欄の上下キーによるコマンド履歴の巡回。"""

from __future__ import annotations

from collections.abc import Sequence

PREVIOUS_KEY = "ArrowUp"
NEXT_KEY = "ArrowDown"


class TerminalHistoryNavigator:
    """履歴インデックスを [0, len] に収めて巡回する。

    履歴シーケンスの同一性が変わったらインデックスを末尾 (len) へ戻す。
    """

    def __init__(self, history: Sequence[str] = ()) -> None:
        """初期履歴を受け取り、インデックスを末尾に置く。"""
        self._history: Sequence[str] = history
        self._index = len(history)

    @property
    def index(self) -> int:
        return self._index

    def sync(self, history: Sequence[str]) -> None:
        """別の履歴オブジェクトが渡された場合だけリセットする。"""
        if history is not self._history:
            self._history = history
            self._index = len(history)

    def previous(self) -> str:
        self._index = max(0, self._index - 1)
        return self._current()

    def next(self) -> str:
        self._index = min(len(self._history), self._index + 1)
        return self._current()

    def handle_key(self, key: str) -> str | None:
        """対応するキーなら表示すべき値を返す。それ以外は None。"""
        if key == PREVIOUS_KEY:
            return self.previous()
        if key == NEXT_KEY:
            return self.next()
        return None

    def _current(self) -> str:
        if self._index < len(self._history):
            return self._history[self._index]
        return ""
