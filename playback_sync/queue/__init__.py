"""Remote task queue and the ingestion pipeline built on it."""
