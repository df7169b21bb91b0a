"""Vector index implementations.

ChromaDB (persistent, on disk) is the default; Pinecone is the hosted
alternative.  Select with ``VECTOR_PROVIDER``.
"""

from ragkb.providers.vector_store.chromadb_index import ChromaDBIndex
from ragkb.providers.vector_store.pinecone_index import PineconeIndex

__all__ = ["ChromaDBIndex", "PineconeIndex"]
