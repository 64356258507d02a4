"""Core sync components shared by every source: storage, credentials,
pagination, normalization helpers, media rehosting, upsert, dedup and
diagnostics."""
