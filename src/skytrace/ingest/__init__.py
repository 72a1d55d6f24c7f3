"""Feed ingest clients."""
