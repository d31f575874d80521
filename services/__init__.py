"""Pipeline commands: reader (chunking), compute (transform) and results (aggregation)."""
