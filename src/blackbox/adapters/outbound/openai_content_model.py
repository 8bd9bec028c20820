"""OpenAI Responses API のストリーミングで画面 HTML を生成するアダプタ。"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator

from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    OpenAIError,
)

from blackbox.ports.outbound.content_model_port import (
    ContentConfigurationError,
    ContentModelPort,
    ContentTransportError,
)

_DEFAULT_MODEL = "gpt-4.1-mini"
_TEXT_DELTA_EVENT = "response.output_text.delta"
_FAILURE_EVENTS: frozenset[str] = frozenset({"error", "response.failed", "response.incomplete"})


class OpenAIContentModelAdapter(ContentModelPort):
    """Responses API の text delta をそのままチャンクとして返す。"""

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        temperature: float = 0.7,
        max_output_tokens: int = 8000,
    ) -> None:
        """モデル設定と呼び出しパラメータを初期化する。"""
        self._model: str = model if model is not None else os.getenv("OPENAI_MODEL", _DEFAULT_MODEL)
        self._api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._client: AsyncOpenAI | None = None

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise ContentConfigurationError("OPENAI_API_KEY が設定されていません。")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def stream_text(self, prompt: str) -> AsyncIterator[str]:
        """プロンプトを送り、到着した text delta を順に返す。"""
        try:
            stream = await self._get_client().responses.create(
                model=self._model,
                input=prompt,
                temperature=self._temperature,
                max_output_tokens=self._max_output_tokens,
                stream=True,
            )
        except AuthenticationError as exc:
            raise ContentConfigurationError(
                "OpenAI 認証に失敗しました。OPENAI_API_KEY を確認してください。"
            ) from exc
        except (APITimeoutError, APIConnectionError, APIError, OpenAIError) as exc:
            raise ContentTransportError(
                f"OpenAI API 呼び出しに失敗しました: {exc.__class__.__name__}: {exc}"
            ) from exc

        try:
            async with stream:
                async for event in stream:
                    if event.type == _TEXT_DELTA_EVENT:
                        if event.delta:
                            yield event.delta
                    elif event.type in _FAILURE_EVENTS:
                        raise ContentTransportError(
                            f"OpenAI ストリームが失敗しました: {event.type}"
                        )
        except (APITimeoutError, APIConnectionError, APIError, OpenAIError) as exc:
            raise ContentTransportError(
                f"OpenAI ストリームが中断しました: {exc.__class__.__name__}: {exc}"
            ) from exc
