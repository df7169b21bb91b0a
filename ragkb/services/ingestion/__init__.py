"""Document ingestion pipeline for the ragkb knowledge base.

Stages: **store -> extract -> chunk -> embed -> vector sync**.

1. **Store** -- raw bytes go to blob storage under a content-addressed path.
2. **Extract** -- the remote extraction API (process_document task plus
   status polls or webhook callbacks), or locally with text_extractor.py.
3. **Chunk** -- remote chunks are used as returned; local text goes through
   SentenceChunker.
4. **Embed** -- one generate_embeddings task per chunk.
5. **Vector sync** -- one sync_vector_database task per embedding.

IngestionPipeline owns the steps; tasks.py adapts them to the task queue.
"""

from ragkb.services.ingestion.chunker import SentenceChunker
from ragkb.services.ingestion.pipeline import IngestionPipeline
from ragkb.services.ingestion.tasks import register_pipeline_tasks
from ragkb.services.ingestion.webhook import WebhookReceiver

__all__ = [
    "IngestionPipeline",
    "SentenceChunker",
    "WebhookReceiver",
    "register_pipeline_tasks",
]
