"""Local sentence-boundary chunker used when no extraction API is configured."""

from __future__ import annotations

import re

from ragkb.models.extraction import ExtractedChunk

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


class SentenceChunker:
    """Greedy sentence packer with tail overlap.

    Sentences are appended to the current chunk until the next one would
    push it past ``chunk_size`` characters.  The finished chunk is emitted
    trimmed, and the next chunk starts with the last ``chunk_overlap``
    characters of the previous one, separated from the new sentence by a
    space.  A single sentence longer than ``chunk_size`` becomes its own
    oversized chunk rather than being cut.
    """

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

    def split(self, text: str) -> list[ExtractedChunk]:
        sentences = _SENTENCE_BOUNDARY.split(text)
        pieces: list[str] = []
        current = ""

        for sentence in sentences:
            if not sentence:
                continue
            if current and len(current + sentence) > self._chunk_size:
                pieces.append(current.strip())
                tail = current[-self._chunk_overlap :].strip() if self._chunk_overlap else ""
                current = f"{tail} {sentence}" if tail else sentence
            else:
                current += (" " if current else "") + sentence

        if current.strip():
            pieces.append(current.strip())

        return [
            ExtractedChunk(content=piece, metadata={"chunking": "sentence"})
            for piece in pieces
            if piece
        ]
