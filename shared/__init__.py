"""Shared framework, schemas and utilities for the census pipeline."""
