#!/usr/bin/env python3
"""
Generate synthetic census archives for exercising the pipeline.

Records follow the CPS basic monthly fixed-width layout closely
enough for the housing unit type field to land at its real offset:
- Weighted housing codes resembling a real month
- Optional malformed (short) records
- gzip output readable by ``kafka-scale --from-file``
"""

import argparse
import gzip
import random
from collections import Counter
from typing import Dict, List, Optional

from shared.schemas.models import HOUSING_CODES, HOUSING_TYPE_FIELD


# Rough shape of a real month: mostly houses and apartments
CODE_WEIGHTS = {0: 1, 1: 880, 2: 3, 3: 1, 4: 2, 5: 60, 6: 40, 7: 5, 8: 2, 9: 1, 10: 1, 11: 2, 12: 2}

RECORD_WIDTH = 1000


class SampleDataGenerator:
    """Generator for synthetic CPS basic monthly records."""

    def __init__(self, seed: Optional[int] = None, record_width: int = RECORD_WIDTH):
        self.random = random.Random(seed)
        self.record_width = record_width
        self.serial = 0

    def generate_record(self, code: Optional[int] = None) -> str:
        """One fixed-width record carrying ``code`` (weighted random when omitted)."""
        if code is None:
            code = self.random.choices(list(CODE_WEIGHTS), weights=list(CODE_WEIGHTS.values()))[0]
        self.serial += 1

        prefix = f"{self.serial:015d}{self.random.randrange(10 ** 15):015d}"
        field = f"{code:>{HOUSING_TYPE_FIELD.length}}"
        filler = "".join(self.random.choice("0123456789 -") for _ in range(self.record_width - HOUSING_TYPE_FIELD.offset - len(field)))
        return prefix[:HOUSING_TYPE_FIELD.offset] + field + filler

    def generate_records(self, count: int, malformed: int = 0) -> List[str]:
        """``count`` records with ``malformed`` short lines scattered among them."""
        records = [self.generate_record() for _ in range(count)]
        for _ in range(malformed):
            short = "9" * self.random.randrange(HOUSING_TYPE_FIELD.offset)
            records.insert(self.random.randrange(len(records) + 1), short)
        return records

    @staticmethod
    def expected_counts(records: List[str]) -> Dict[int, int]:
        """Per-code counts the aggregator should report for ``records``."""
        counts: Counter = Counter()
        for record in records:
            token = HOUSING_TYPE_FIELD.extract(record)
            if token.isdigit() and int(token) in HOUSING_CODES:
                counts[int(token)] += 1
        return dict(counts)

    def write_archive(self, path: str, count: int, malformed: int = 0) -> List[str]:
        """Write a gzip archive and return the records written."""
        records = self.generate_records(count, malformed)
        with gzip.open(path, "wt", encoding="latin-1") as handle:
            for record in records:
                handle.write(record + "\n")
        return records


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Generate a synthetic census archive")
    parser.add_argument("--output", default="sample20pub.dat.gz", help="Archive to write")
    parser.add_argument("--count", type=int, default=1000, help="Number of records to generate")
    parser.add_argument("--malformed", type=int, default=0, help="Number of short records to mix in")
    parser.add_argument("--seed", type=int, help="Random seed for repeatable output")

    args = parser.parse_args()

    generator = SampleDataGenerator(seed=args.seed)
    records = generator.write_archive(args.output, args.count, args.malformed)

    print(f"Wrote {len(records)} records to {args.output}")
    for code, count in sorted(generator.expected_counts(records).items()):
        print(f"{code:>3} {HOUSING_CODES.describe(code)}: {count}")


if __name__ == "__main__":
    main()
