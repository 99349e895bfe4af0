"""Core infrastructure: configuration, HTTP client, query cache, storage."""
