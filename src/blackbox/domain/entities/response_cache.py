"""ナビゲーションパス単位で生成結果を保持するキャッシュ。"""

from __future__ import annotations

from collections.abc import Sequence


def cache_key_for(path: Sequence[str]) -> str:
    """パスをスラッシュを含まないキャッシュキーへ変換する。"""
    return "__".join(path)


class ResponseCache:
    """statefulness 有効時にだけ使うプロセス内キャッシュ。"""

    def __init__(self) -> None:
        """空のキャッシュで初期化する。"""
        self._entries: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def lookup(self, path: Sequence[str]) -> str | None:
        """パスに対応する内容を返す。空文字は未登録と同じ扱い。"""
        return self._entries.get(cache_key_for(path)) or None

    def store(self, path: Sequence[str], content: str) -> bool:
        """内容が異なる場合のみ保存し、保存したかを返す。"""
        key = cache_key_for(path)
        if self._entries.get(key) == content:
            return False
        self._entries[key] = content
        return True

    def clear(self) -> None:
        """全エントリを破棄する。"""
        self._entries.clear()
