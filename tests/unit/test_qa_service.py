"""Unit tests for QuestionAnsweringService and its prompt helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from ragkb.config.rag_config import RagConfig
from ragkb.models.answers import StreamEvent, StreamEventType, TokenUsage
from ragkb.services.qa_service import (
    NO_CONTEXT_ANSWER,
    QuestionAnsweringService,
    build_context,
    build_prompt,
    confidence_of,
)
from ragkb.services.retrieval_engine import RetrievalEngine
from ragkb.utils.errors import InvalidInputError
from tests.conftest import make_config, make_scored


def _retrieval(results: list) -> MagicMock:
    mock = MagicMock(spec=RetrievalEngine)
    mock.search = AsyncMock(return_value=results)
    return mock


def _service(retrieval, answerer, store, config: RagConfig | None = None) -> QuestionAnsweringService:
    return QuestionAnsweringService(retrieval, answerer, store, config or RagConfig())


class _TrackedStream:
    """Provider stream that records whether it was closed."""

    def __init__(self, events: list[StreamEvent]) -> None:
        self.events = events
        self.closed = False

    async def run(self):
        try:
            for event in self.events:
                yield event
        finally:
            self.closed = True


# ======================================================================
# Prompt helpers
# ======================================================================


class TestPromptHelpers:
    def test_context_blocks_in_rank_order(self) -> None:
        chunks = [
            make_scored(1, 0.9, title="Guide", content="Alpha."),
            make_scored(2, 0.8, title="FAQ", content="Beta."),
        ]
        assert build_context(chunks) == "Source: Guide\nAlpha.\n\nSource: FAQ\nBeta."

    def test_prompt_wraps_context_and_question(self) -> None:
        prompt = build_prompt("What is X?", "Source: A\nX is a letter.")
        assert prompt.startswith("Based on the following context, please answer the question.")
        assert "Context:\nSource: A\nX is a letter.\n\n" in prompt
        assert prompt.endswith("Question: What is X?\n\nAnswer:")

    def test_confidence_is_mean_similarity(self) -> None:
        chunks = [make_scored(1, 0.9), make_scored(2, 0.7), make_scored(3, 0.8)]
        assert confidence_of(chunks) == pytest.approx(0.8)
        assert confidence_of([]) == 0.0


# ======================================================================
# ask
# ======================================================================


class TestAsk:
    @pytest.mark.asyncio
    async def test_no_context_skips_model(self, mock_answerer, mock_store) -> None:
        result = await _service(_retrieval([]), mock_answerer, mock_store).ask("Anything?")

        assert result.answer == NO_CONTEXT_ANSWER
        assert result.sources == []
        assert result.confidence == 0.0
        mock_answerer.generate.assert_not_awaited()
        mock_store.record_api_usage.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_answer_with_sources(self, mock_answerer, mock_store) -> None:
        chunks = [
            make_scored(1, 0.9, document_id=10, title="Guide", content="Paris is the capital."),
            make_scored(2, 0.7, document_id=11, title="Atlas", content="France is in Europe."),
        ]
        retrieval = _retrieval(chunks)

        result = await _service(retrieval, mock_answerer, mock_store).ask("  Capital of France?  ")

        retrieval.search.assert_awaited_once_with("Capital of France?", 3)
        prompt = mock_answerer.generate.await_args.args[0]
        assert "Source: Guide\nParis is the capital.\n\nSource: Atlas\nFrance is in Europe." in prompt
        assert "Question: Capital of France?" in prompt

        assert result.answer == "Generated answer"
        assert result.confidence == pytest.approx(0.8)
        assert [(s.document_id, s.chunk_id) for s in result.sources] == [(10, 1), (11, 2)]
        assert result.usage.total_tokens == 120

    @pytest.mark.asyncio
    async def test_usage_recorded(self, mock_answerer, mock_store) -> None:
        await _service(_retrieval([make_scored(1, 0.9)]), mock_answerer, mock_store).ask("Q?")

        record = mock_store.record_api_usage.await_args.args[0]
        assert record.api_provider == "mock_llm"
        assert record.operation_type == "chat_completion"
        assert record.tokens_used == 120
        assert record.cost_usd == 0.001

    @pytest.mark.asyncio
    async def test_usage_tracking_disabled(self, mock_answerer, mock_store) -> None:
        config = make_config(analytics={"track_usage": False})
        await _service(_retrieval([make_scored(1, 0.9)]), mock_answerer, mock_store, config).ask("Q?")
        mock_store.record_api_usage.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_usage_failure_does_not_fail_answer(self, mock_answerer, mock_store) -> None:
        mock_store.record_api_usage = AsyncMock(side_effect=RuntimeError("db locked"))
        result = await _service(_retrieval([make_scored(1, 0.9)]), mock_answerer, mock_store).ask(
            "Q?"
        )
        assert result.answer == "Generated answer"

    @pytest.mark.asyncio
    async def test_empty_question_rejected(self, mock_answerer, mock_store) -> None:
        with pytest.raises(InvalidInputError):
            await _service(_retrieval([]), mock_answerer, mock_store).ask("   ")


# ======================================================================
# ask_stream
# ======================================================================


class TestAskStream:
    @pytest.mark.asyncio
    async def test_event_order(self, mock_answerer, mock_store) -> None:
        usage = TokenUsage(input_tokens=10, output_tokens=2, total_tokens=12)
        stream = _TrackedStream(
            [
                StreamEvent(type=StreamEventType.CONTENT, content="Par"),
                StreamEvent(type=StreamEventType.CONTENT, content="is"),
                StreamEvent(type=StreamEventType.COMPLETE, is_complete=True, usage=usage),
            ]
        )
        mock_answerer.stream = MagicMock(return_value=stream.run())
        service = _service(_retrieval([make_scored(1, 0.9, title="Guide")]), mock_answerer, mock_store)

        events = [event async for event in service.ask_stream("Capital?")]

        assert [e.type for e in events] == [
            StreamEventType.SOURCES,
            StreamEventType.CONTENT,
            StreamEventType.CONTENT,
            StreamEventType.COMPLETE,
        ]
        assert events[0].sources[0].document_title == "Guide"
        assert "".join(e.content for e in events) == "Paris"
        assert mock_store.record_api_usage.await_args.args[0].tokens_used == 12
        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_no_context_stream(self, mock_answerer, mock_store) -> None:
        mock_answerer.stream = MagicMock()
        events = [e async for e in _service(_retrieval([]), mock_answerer, mock_store).ask_stream("Q?")]

        assert [e.type for e in events] == [
            StreamEventType.SOURCES,
            StreamEventType.CONTENT,
            StreamEventType.COMPLETE,
        ]
        assert events[0].sources == []
        assert events[1].content == NO_CONTEXT_ANSWER
        assert events[2].usage == TokenUsage()
        mock_answerer.stream.assert_not_called()

    @pytest.mark.asyncio
    async def test_early_close_closes_provider_stream(self, mock_answerer, mock_store) -> None:
        stream = _TrackedStream(
            [StreamEvent(type=StreamEventType.CONTENT, content=str(i)) for i in range(5)]
        )
        mock_answerer.stream = MagicMock(return_value=stream.run())
        service = _service(_retrieval([make_scored(1, 0.9)]), mock_answerer, mock_store)

        events = service.ask_stream("Q?")
        assert (await events.__anext__()).type == StreamEventType.SOURCES
        assert (await events.__anext__()).content == "0"
        await events.aclose()

        assert stream.closed is True
        mock_store.record_api_usage.assert_not_awaited()
