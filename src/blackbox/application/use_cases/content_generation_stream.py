"""インタラクション履歴から画面 HTML をストリーム生成するユースケース。

この境界より外へ例外は出さない。失敗はすべて 1 つの HTML 断片として
返し、``failure`` に種別を残す。
"""

from __future__ import annotations

import html
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass

from blackbox.domain.entities.interaction import AppDefinition, InteractionRecord
from blackbox.domain.services.app_catalog import DEFAULT_APP_CATALOG
from blackbox.domain.services.context_serializer import build_context_prompt
from blackbox.ports.outbound.content_model_port import (
    ContentConfigurationError,
    ContentModelPort,
)

_LOG = logging.getLogger(__name__)

CONFIGURATION_ERROR_FRAGMENT = """<div class="p-4 text-red-400 bg-red-900/50 rounded-md">
      <p class="font-bold text-lg">Configuration Error</p>
      <p class="mt-2">The API key is not configured. Please set the OPENAI_API_KEY environment variable.</p>
    </div>"""

EMPTY_HISTORY_MARKER = "No interaction data provided."
EMPTY_HISTORY_FRAGMENT = f"""<div class="p-4 text-orange-400 bg-orange-900/50 rounded-md">
      <p class="font-bold text-lg">{EMPTY_HISTORY_MARKER}</p>
    </div>"""

GENERIC_STREAM_ERROR_MESSAGE = "Failed to stream content from the API."


@dataclass(frozen=True, slots=True)
class GenerationFailure:
    """1 回の生成で起きた失敗の要約。"""

    kind: str
    message: str
    fragment: str


def transport_error_fragment(detail: str) -> str:
    """転送エラー時に表示する HTML 断片を返す。"""
    message = "An error occurred while generating content."
    if detail:
        message += f" Details: {html.escape(detail)}"
    return f"""<div class="p-4 text-red-400 bg-red-900/50 rounded-md">
      <p class="font-bold text-lg">Error Generating Content</p>
      <p class="mt-2">{message}</p>
      <p class="mt-1">This may be due to an API key issue, network problem, or misconfiguration. Please check the server log for more details.</p>
    </div>"""


class ContentGenerationStream:
    """1 回分の生成ストリーム。反復は 1 度きりで再開できない。"""

    def __init__(
        self,
        model: ContentModelPort,
        interaction_history: Sequence[InteractionRecord],
        *,
        max_history_length: int,
        quiet_mode: bool,
        catalog: Sequence[AppDefinition] = DEFAULT_APP_CATALOG,
    ) -> None:
        """モデルポートと生成入力を受け取る。"""
        self._model = model
        self._interaction_history = tuple(interaction_history)
        self._max_history_length = max_history_length
        self._quiet_mode = quiet_mode
        self._catalog = tuple(catalog)
        self._started = False
        self.failure: GenerationFailure | None = None

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("ContentGenerationStream は 1 度しか反復できません。")
        self._started = True
        return self._generate()

    async def _generate(self) -> AsyncIterator[str]:
        if not self._model.is_configured():
            yield self._fail("configuration", "API key is not configured.", CONFIGURATION_ERROR_FRAGMENT)
            return

        if not self._interaction_history:
            yield self._fail("empty_input", EMPTY_HISTORY_MARKER, EMPTY_HISTORY_FRAGMENT)
            return

        prompt = build_context_prompt(
            self._interaction_history,
            max_history_length=self._max_history_length,
            quiet_mode=self._quiet_mode,
            catalog=self._catalog,
        )

        fragment: str | None = None
        try:
            async with aclosing(self._model.stream_text(prompt)) as chunks:
                async for chunk in chunks:
                    if chunk:
                        yield chunk
        except ContentConfigurationError as exc:
            _LOG.warning("content model is misconfigured: %s", exc)
            fragment = self._fail("configuration", str(exc), CONFIGURATION_ERROR_FRAGMENT)
        except Exception as exc:
            _LOG.warning("content stream failed: %s", exc, exc_info=True)
            fragment = self._fail(
                "transport",
                GENERIC_STREAM_ERROR_MESSAGE,
                transport_error_fragment(str(exc)),
            )
        if fragment is not None:
            yield fragment

    def _fail(self, kind: str, message: str, fragment: str) -> str:
        self.failure = GenerationFailure(kind=kind, message=message, fragment=fragment)
        return fragment
