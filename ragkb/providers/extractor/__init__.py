"""Remote chunk extraction over HTTP."""

from ragkb.providers.extractor.http_chunk_extractor import HttpChunkExtractor

__all__ = ["HttpChunkExtractor"]
