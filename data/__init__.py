"""CSV ingestion and column mapping."""
