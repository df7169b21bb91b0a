"""ragkb: a retrieval-augmented knowledge base.

Documents are ingested, chunked, embedded and synced to a vector index;
questions are answered from the best-matching chunks.  Start from
:func:`ragkb.main.build_services`.
"""

__version__ = "0.1.0"
