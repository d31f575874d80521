"""
Per-year frequency table of classification codes.

The table is shared between the consume loop that feeds it and the
HTTP handlers that read it. One lock guards it and is held for the
span of one operation on the table.
"""

import asyncio
import json
import threading
from typing import Dict, List, Optional

import structlog

from shared.framework.consumer import LogMessage
from shared.framework.metrics import MetricsCollector
from shared.schemas.models import HOUSING_CODES, CodeCatalog, ResultRecord
from shared.utils.errors import ParseError


logger = structlog.get_logger(__name__)


class AggregateTable:
    """year -> code -> count. Counts only grow and years are never evicted."""

    def __init__(self, catalog: CodeCatalog = HOUSING_CODES):
        self.catalog = catalog
        self._counts: Dict[int, Dict[int, int]] = {}
        self._lock = threading.Lock()

    def ensure_year(self, year: int) -> bool:
        """Seed ``year`` with every catalog code at zero. Returns True if it was new."""
        with self._lock:
            if year in self._counts:
                return False
            self._counts[year] = {code: 0 for code in self.catalog}
            return True

    def increment(self, year: int, code: int, amount: int = 1) -> None:
        if amount < 0:
            raise ValueError("counts never decrease")
        if code not in self.catalog:
            raise KeyError(code)
        with self._lock:
            year_counts = self._counts.setdefault(year, {c: 0 for c in self.catalog})
            year_counts[code] += amount

    def count(self, year: int, code: int) -> int:
        with self._lock:
            return self._counts.get(year, {}).get(code, 0)

    def years(self) -> List[int]:
        with self._lock:
            return sorted(self._counts)

    def total(self, year: Optional[int] = None) -> int:
        """Sum of all counts, or of one year's counts."""
        with self._lock:
            if year is not None:
                return sum(self._counts.get(year, {}).values())
            return sum(sum(codes.values()) for codes in self._counts.values())

    def snapshot(self) -> Dict[int, Dict[int, int]]:
        """Consistent copy of the whole table."""
        with self._lock:
            return {year: dict(codes) for year, codes in self._counts.items()}

    def to_json(self) -> str:
        """Serialise the table as ``{"<year>": {"<code>": {"Description", "Count"}}}``."""
        with self._lock:
            document = {
                str(year): {
                    str(code): {"Description": self.catalog.describe(code), "Count": count}
                    for code, count in sorted(codes.items())
                }
                for year, codes in sorted(self._counts.items())
            }
            return json.dumps(document)


class Aggregator:
    """Applies result records from the results topic to an AggregateTable."""

    def __init__(
        self,
        table: AggregateTable,
        metrics: Optional[MetricsCollector] = None,
        delay_ms: int = 0,
    ):
        self.table = table
        self.metrics = metrics
        self.delay_ms = delay_ms
        self.dropped_messages = 0
        self.dropped_codes = 0
        if metrics is not None:
            metrics.create_counter("result_messages_read", "Result records read by the results command")

    def apply(self, record: ResultRecord) -> int:
        """Count every in-catalog code of ``record``. Returns how many were counted."""
        self.table.ensure_year(record.year)
        counted = 0
        for token in record.codes:
            try:
                code = self.table.catalog.parse_code(token)
            except ParseError:
                self.dropped_codes += 1
                continue
            self.table.increment(record.year, code)
            counted += 1
        return counted

    def apply_wire(self, text: str) -> int:
        """Parse and apply one wire-form record. Raises ParseError on malformed input."""
        return self.apply(ResultRecord.from_wire(text))

    async def handle(self, message: LogMessage) -> None:
        if self.metrics is not None:
            self.metrics.counter("result_messages_read").inc()

        try:
            counted = self.apply_wire(message.text())
        except ParseError as e:
            self.dropped_messages += 1
            logger.debug("Dropping malformed result record", error=e.message, offset=message.offset)
            if self.metrics is not None:
                self.metrics.record_message_processed(message.topic, "dropped")
            return

        logger.debug("Applied result record", codes=counted, offset=message.offset)
        if self.metrics is not None:
            self.metrics.record_message_processed(message.topic, "success")
        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000)
