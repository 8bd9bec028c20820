"""セッションスナップショット保存先の契約。"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol


class SnapshotStorePort(Protocol):
    """単一キーで 1 件のスナップショットを保持する抽象ポート。"""

    def load(self) -> Mapping[str, object] | None:
        """保存済み payload を返す。未保存なら None。"""

    def save(self, payload: Mapping[str, object]) -> None:
        """payload を上書き保存する。"""

    def clear(self) -> None:
        """保存済み payload を削除する。"""
