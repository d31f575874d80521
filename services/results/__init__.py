"""Results command: aggregates result records and serves them over HTTP."""
