"""Relational document store.

SQLiteDocumentStore keeps documents, chunks, processing jobs and the
analytics rows in one aiosqlite database file.
"""

from ragkb.providers.store.sqlite_document_store import SQLiteDocumentStore

__all__ = ["SQLiteDocumentStore"]
