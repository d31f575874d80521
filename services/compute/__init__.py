"""Compute command: turns batches from the compute topic into result records."""
