from collections.abc import AsyncIterator

import pytest

from blackbox.adapters.outbound.in_memory_components import ScriptedContentModelAdapter
from blackbox.application.use_cases.content_generation_stream import (
    CONFIGURATION_ERROR_FRAGMENT,
    EMPTY_HISTORY_MARKER,
    GENERIC_STREAM_ERROR_MESSAGE,
    ContentGenerationStream,
)
from blackbox.domain.entities.interaction import InteractionRecord
from blackbox.domain.services.app_catalog import NOTES_APP_ID
from blackbox.ports.outbound.content_model_port import ContentConfigurationError


class RejectingContentModelAdapter:
    """呼び出し時に設定エラーを送出するテスト用モデル。"""

    def is_configured(self) -> bool:
        return True

    async def stream_text(self, prompt: str) -> AsyncIterator[str]:
        del prompt
        raise ContentConfigurationError("invalid api key")
        yield ""  # pragma: no cover


def _history() -> tuple[InteractionRecord, ...]:
    return (
        InteractionRecord(
            id=NOTES_APP_ID,
            kind="app_open",
            element_kind="icon",
            element_label="Notepad",
            app_context=NOTES_APP_ID,
        ),
    )


async def _collect(stream: ContentGenerationStream) -> list[str]:
    return [chunk async for chunk in stream]


@pytest.mark.asyncio
async def test_chunks_are_passed_through_in_order() -> None:
    model = ScriptedContentModelAdapter(("<div>", "hello", "</div>"))
    stream = ContentGenerationStream(model, _history(), max_history_length=3, quiet_mode=False)

    assert await _collect(stream) == ["<div>", "hello", "</div>"]
    assert stream.failure is None
    assert "## Current Interaction" in model.prompts[0]


@pytest.mark.asyncio
async def test_unconfigured_model_yields_single_configuration_fragment() -> None:
    model = ScriptedContentModelAdapter(configured=False)
    stream = ContentGenerationStream(model, _history(), max_history_length=3, quiet_mode=False)

    assert await _collect(stream) == [CONFIGURATION_ERROR_FRAGMENT]
    assert stream.failure is not None
    assert stream.failure.kind == "configuration"
    assert model.prompts == []


@pytest.mark.asyncio
async def test_empty_history_yields_single_warning_fragment() -> None:
    model = ScriptedContentModelAdapter()
    stream = ContentGenerationStream(model, (), max_history_length=3, quiet_mode=False)

    chunks = await _collect(stream)

    assert len(chunks) == 1
    assert EMPTY_HISTORY_MARKER in chunks[0]
    assert stream.failure is not None
    assert stream.failure.kind == "empty_input"
    assert model.prompts == []


@pytest.mark.asyncio
async def test_mid_stream_failure_ends_with_one_error_fragment() -> None:
    model = ScriptedContentModelAdapter(("<div>", "partial", "never"), fail_after=2)
    stream = ContentGenerationStream(model, _history(), max_history_length=3, quiet_mode=False)

    chunks = await _collect(stream)

    assert chunks[:2] == ["<div>", "partial"]
    assert len(chunks) == 3
    assert "Error Generating Content" in chunks[2]
    assert "scripted stream broke" in chunks[2]
    assert stream.failure is not None
    assert stream.failure.kind == "transport"
    assert stream.failure.message == GENERIC_STREAM_ERROR_MESSAGE
    assert model.closed_streams == 1


@pytest.mark.asyncio
async def test_configuration_error_from_model_becomes_configuration_fragment() -> None:
    stream = ContentGenerationStream(
        RejectingContentModelAdapter(), _history(), max_history_length=3, quiet_mode=False
    )

    assert await _collect(stream) == [CONFIGURATION_ERROR_FRAGMENT]
    assert stream.failure is not None
    assert stream.failure.message == "invalid api key"


@pytest.mark.asyncio
async def test_closing_consumer_closes_upstream() -> None:
    model = ScriptedContentModelAdapter(("a", "b", "c", "d"))
    stream = ContentGenerationStream(model, _history(), max_history_length=3, quiet_mode=False)

    chunks = aiter(stream)
    assert await anext(chunks) == "a"
    await chunks.aclose()

    assert model.pulled_chunks == 1
    assert model.closed_streams == 1


@pytest.mark.asyncio
async def test_stream_can_only_be_iterated_once() -> None:
    stream = ContentGenerationStream(
        ScriptedContentModelAdapter(), _history(), max_history_length=3, quiet_mode=False
    )
    await _collect(stream)

    with pytest.raises(RuntimeError):
        aiter(stream)
