"""Business logic: ingestion, retrieval, question answering and job tracking."""
