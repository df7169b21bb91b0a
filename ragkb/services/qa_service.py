"""Question answering over the knowledge base.

Retrieves the top chunks for a question, packs them into a fixed prompt
and hands it to the configured :class:`IAiAnswerer`.  When nothing
relevant is retrieved no model call is made.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import structlog

from ragkb.config.rag_config import RagConfig
from ragkb.interfaces.ai_answerer import IAiAnswerer
from ragkb.interfaces.document_store import IDocumentStore
from ragkb.models.answers import (
    AnswerResult,
    AnswerSource,
    ApiUsageRecord,
    StreamEvent,
    StreamEventType,
    TokenUsage,
)
from ragkb.models.retrieval import ScoredChunk
from ragkb.services.retrieval_engine import RetrievalEngine
from ragkb.utils.errors import InvalidInputError

logger = structlog.get_logger(logger_name=__name__)

NO_CONTEXT_ANSWER = "I don't have relevant information to answer your question."

_PROMPT_TEMPLATE = (
    "Based on the following context, please answer the question. "
    "If the context doesn't contain relevant information, say so.\n\n"
    "Context:\n{context}\n\n"
    "Question: {question}\n\n"
    "Answer:"
)


def build_context(chunks: list[ScoredChunk]) -> str:
    """Concatenate chunks in rank order, each under a ``Source:`` header."""
    blocks = [f"Source: {chunk.document_title}\n{chunk.content}" for chunk in chunks]
    return "\n\n".join(blocks).strip()


def build_prompt(question: str, context: str) -> str:
    return _PROMPT_TEMPLATE.format(context=context, question=question)


def confidence_of(chunks: list[ScoredChunk]) -> float:
    """Mean similarity of *chunks*, 0.0 when empty, clamped to [0, 1]."""
    if not chunks:
        return 0.0
    mean = sum(chunk.similarity_score for chunk in chunks) / len(chunks)
    return max(0.0, min(1.0, mean))


def sources_of(chunks: list[ScoredChunk]) -> list[AnswerSource]:
    return [
        AnswerSource(
            document_id=chunk.document_id,
            document_title=chunk.document_title,
            chunk_id=chunk.chunk_id,
            similarity_score=chunk.similarity_score,
        )
        for chunk in chunks
    ]


class QuestionAnsweringService:
    """Answers questions with retrieved context.

    Parameters
    ----------
    retrieval:
        Engine used to find context chunks.
    answerer:
        LLM provider that writes the answer.
    store:
        Receives API usage rows when usage tracking is on.
    config:
        Resolved pipeline configuration.
    """

    def __init__(
        self,
        retrieval: RetrievalEngine,
        answerer: IAiAnswerer,
        store: IDocumentStore,
        config: RagConfig,
    ) -> None:
        self._retrieval = retrieval
        self._answerer = answerer
        self._store = store
        self._limit = config.search.default_limit
        self._track_usage = config.analytics.track_usage

    async def ask(self, question: str) -> AnswerResult:
        """Answer *question* from the knowledge base.

        Raises
        ------
        InvalidInputError
            The question is empty.
        SearchFailedError
            Retrieval failed with no fallback.
        ProviderRequestFailedError
            The answer provider call failed.
        """
        question = self._validate(question)
        chunks = await self._retrieval.search(question, self._limit)
        if not chunks:
            logger.info("ask_no_context", question_length=len(question))
            return AnswerResult(answer=NO_CONTEXT_ANSWER, sources=[], confidence=0.0)

        prompt = build_prompt(question, build_context(chunks))
        result = await self._answerer.generate(prompt)
        await self._record_usage(result.usage)

        confidence = confidence_of(chunks)
        logger.info(
            "question_answered",
            sources=len(chunks),
            confidence=round(confidence, 3),
            model=result.model,
            tokens=result.usage.total_tokens,
        )
        return AnswerResult(
            answer=result.content,
            sources=sources_of(chunks),
            confidence=confidence,
            usage=result.usage,
        )

    async def ask_stream(self, question: str) -> AsyncIterator[StreamEvent]:
        """Stream an answer: one ``sources`` event, content events, one ``complete`` event.

        Closing the returned iterator closes the provider stream.
        """
        question = self._validate(question)
        chunks = await self._retrieval.search(question, self._limit)
        yield StreamEvent(type=StreamEventType.SOURCES, sources=sources_of(chunks))

        if not chunks:
            yield StreamEvent(type=StreamEventType.CONTENT, content=NO_CONTEXT_ANSWER)
            yield StreamEvent(type=StreamEventType.COMPLETE, is_complete=True, usage=TokenUsage())
            return

        upstream = self._answerer.stream(build_prompt(question, build_context(chunks)))
        try:
            async for event in upstream:
                if event.type == StreamEventType.COMPLETE:
                    await self._record_usage(event.usage)
                yield event
        finally:
            await upstream.aclose()

    @staticmethod
    def _validate(question: str) -> str:
        question = (question or "").strip()
        if not question:
            raise InvalidInputError(message="Question must not be empty")
        return question

    async def _record_usage(self, usage: TokenUsage | None) -> None:
        if not self._track_usage or usage is None:
            return
        try:
            await self._store.record_api_usage(
                ApiUsageRecord(
                    api_provider=self._answerer.get_provider_name(),
                    operation_type="chat_completion",
                    tokens_used=usage.total_tokens,
                    cost_usd=usage.cost,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("usage_record_failed", operation="chat_completion", error=str(exc))
