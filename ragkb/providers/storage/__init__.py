"""Blob storage for raw document bytes."""

from ragkb.providers.storage.local_blob_storage import LocalBlobStorage, content_addressed_path

__all__ = ["LocalBlobStorage", "content_addressed_path"]
