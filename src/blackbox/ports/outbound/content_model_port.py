"""HTML を生成する LLM 呼び出しの契約。"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol


class ContentConfigurationError(RuntimeError):
    """API キー未設定など、再試行しても解消しない設定不備を表す例外。"""


class ContentTransportError(RuntimeError):
    """モデル呼び出し、またはストリーム途中の失敗を表す例外。"""


class ContentModelPort(Protocol):
    """プロンプトから HTML テキストをチャンク単位で生成する抽象ポート。"""

    def is_configured(self) -> bool:
        """資格情報が揃っているかを返す。"""

    def stream_text(self, prompt: str) -> AsyncIterator[str]:
        """到着順にテキストチャンクを返す。aclose で上流も閉じる。"""
