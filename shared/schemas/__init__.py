"""
Record layouts and wire formats for the census pipeline.

Provides:
- Fixed-width source schema (field name, offset, length)
- Batch and ResultRecord wire encodings
- The static housing code catalog
"""

from .models import (
    MAX_BATCH_RECORDS,
    FixedWidthField,
    FixedWidthSchema,
    CPS_BASIC_SCHEMA,
    HOUSING_TYPE_FIELD,
    Batch,
    ResultRecord,
    CodeCatalog,
    HOUSING_CODES,
    extract_codes,
)

__all__ = [
    "MAX_BATCH_RECORDS",
    "FixedWidthField",
    "FixedWidthSchema",
    "CPS_BASIC_SCHEMA",
    "HOUSING_TYPE_FIELD",
    "Batch",
    "ResultRecord",
    "CodeCatalog",
    "HOUSING_CODES",
    "extract_codes",
]
