"""ローカル実行とテスト向けの in-memory アダプタ群。"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable, Mapping, Sequence

from blackbox.ports.outbound.content_model_port import ContentModelPort, ContentTransportError
from blackbox.ports.outbound.snapshot_store_port import SnapshotStorePort


class InMemorySnapshotStore(SnapshotStorePort):
    """プロセス内 dict に 1 件だけ保持するスナップショットストア。"""

    def __init__(self, key: str = "blackbox_os_state") -> None:
        """保存キー名を受け取って初期化する。"""
        self._key = key
        self._entries: dict[str, str] = {}

    def load(self) -> Mapping[str, object] | None:
        raw = self._entries.get(self._key)
        if raw is None:
            return None
        return json.loads(raw)

    def save(self, payload: Mapping[str, object]) -> None:
        # JSON 文字列で保持して呼び出し側との共有を断つ。
        self._entries[self._key] = json.dumps(payload, ensure_ascii=False)

    def clear(self) -> None:
        self._entries.pop(self._key, None)


class ScriptedContentModelAdapter(ContentModelPort):
    """あらかじめ与えたチャンク列を返すモデルアダプタ。

    ``responder`` を渡すとプロンプトごとにチャンク列を組み立てる。
    """

    def __init__(
        self,
        chunks: Sequence[str] = ("<div>", "generated", "</div>"),
        *,
        responder: Callable[[str], Sequence[str]] | None = None,
        configured: bool = True,
        fail_after: int | None = None,
    ) -> None:
        """返却チャンク、設定状態、途中失敗位置を受け取る。"""
        self._chunks = tuple(chunks)
        self._responder = responder
        self._configured = configured
        self._fail_after = fail_after
        self.prompts: list[str] = []
        self.pulled_chunks = 0
        self.closed_streams = 0

    def is_configured(self) -> bool:
        return self._configured

    async def stream_text(self, prompt: str) -> AsyncIterator[str]:
        """チャンクを 1 つずつ返す。fail_after 件目で転送エラーを送出する。"""
        self.prompts.append(prompt)
        chunks = tuple(self._responder(prompt)) if self._responder else self._chunks
        try:
            for index, chunk in enumerate(chunks):
                if self._fail_after is not None and index >= self._fail_after:
                    raise ContentTransportError("scripted stream broke")
                await asyncio.sleep(0)
                self.pulled_chunks += 1
                yield chunk
            if self._fail_after is not None and self._fail_after >= len(chunks):
                raise ContentTransportError("scripted stream broke")
        finally:
            self.closed_streams += 1
