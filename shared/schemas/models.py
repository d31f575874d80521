"""
Data models for the census pipeline.

Defines the record layouts moved through the log and the static
code catalog used by aggregation, with wire-format encoding and
decoding.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Sequence, Tuple

from shared.utils.errors import ParseError


MAX_BATCH_RECORDS = 10


@dataclass(frozen=True)
class FixedWidthField:
    """A named fixed-width field within a source record."""
    name: str
    offset: int
    length: int

    def extract(self, line: str) -> str:
        """Slice the field out of ``line`` and trim surrounding whitespace.

        Lines shorter than the field yield whatever characters exist,
        possibly the empty string.
        """
        return line[self.offset:self.offset + self.length].strip()


@dataclass(frozen=True)
class FixedWidthSchema:
    """Ordered set of fixed-width fields decoded by one shared decoder."""
    name: str
    fields: Tuple[FixedWidthField, ...]

    def field(self, name: str) -> FixedWidthField:
        """Look up a field by name."""
        for candidate in self.fields:
            if candidate.name == name:
                return candidate
        raise KeyError(f"{self.name} has no field {name!r}")

    def decode(self, line: str) -> Dict[str, str]:
        """Decode every declared field of ``line``."""
        return {f.name: f.extract(line) for f in self.fields}


# CPS basic monthly public use layout. HEHOUSUT is the housing unit type.
CPS_BASIC_SCHEMA = FixedWidthSchema(
    name="cps-basic",
    fields=(
        FixedWidthField(name="HEHOUSUT", offset=30, length=2),
    ),
)

HOUSING_TYPE_FIELD = CPS_BASIC_SCHEMA.field("HEHOUSUT")


def _parse_year(value: str, field_name: str = "year") -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ParseError(f"Invalid year: {value!r}", field=field_name, value=value) from None


@dataclass(frozen=True)
class Batch:
    """Bounded group of raw records tagged with the year they belong to."""
    year: int
    records: Tuple[str, ...] = field(default_factory=tuple)

    def to_wire(self) -> str:
        """Year line followed by one line per record, newline terminated."""
        lines = [str(self.year)]
        lines.extend(self.records)
        return "\n".join(lines) + "\n"

    @classmethod
    def from_wire(cls, text: str) -> "Batch":
        """Decode a compute-log message.

        Records may carry any latin-1 character, so only ``\\n`` delimits them.
        """
        lines = [line.rstrip("\r") for line in text.split("\n")]
        if lines and lines[-1] == "":
            lines.pop()
        if not lines:
            raise ParseError("Empty batch")
        return cls(year=_parse_year(lines[0]), records=tuple(lines[1:]))


@dataclass(frozen=True)
class ResultRecord:
    """Compact classification record: a year and the code of each record."""
    year: int
    codes: Tuple[str, ...] = field(default_factory=tuple)

    def to_wire(self) -> str:
        return f"{self.year}:{','.join(self.codes)}"

    @classmethod
    def from_wire(cls, text: str) -> "ResultRecord":
        """Decode a results-log message of the form ``<year>:<code>,...``."""
        year_part, sep, codes_part = text.strip().partition(":")
        if not sep:
            raise ParseError("Missing year separator", value=text[:64])
        codes = tuple(codes_part.split(",")) if codes_part else ()
        return cls(year=_parse_year(year_part), codes=codes)


class CodeCatalog(Mapping[int, str]):
    """Immutable mapping from classification code to its description."""

    def __init__(self, name: str, entries: Mapping[int, str]):
        self.name = name
        self._entries = MappingProxyType(dict(entries))

    def __getitem__(self, code: int) -> str:
        return self._entries[code]

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def parse_code(self, token: str) -> int:
        """Parse a raw code token, raising ParseError when it is not in the catalog."""
        try:
            code = int(token.strip())
        except ValueError:
            raise ParseError("Unparseable code", field="code", value=token) from None
        if code not in self._entries:
            raise ParseError("Code outside catalog", field="code", value=code)
        return code

    def describe(self, code: int) -> str:
        return self._entries[code]

    def codes(self) -> List[int]:
        return list(self)


# Descriptions exactly as defined by the CPS data dictionary
HOUSING_CODES = CodeCatalog(
    name="HEHOUSUT",
    entries={
        0: "OTHER UNIT",
        1: "HOUSE, APARTMENT, FLAT",
        2: "HU IN NONTRANSIENT HOTEL, MOTEL, ETC.",
        3: "HU PERMANENT IN TRANSIENT HOTEL, MOTEL",
        4: "HU IN ROOMING HOUSE",
        5: "MOBILE HOME OR TRAILER W/NO PERM. ROOM ADDED",
        6: "MOBILE HOME OR TRAILER W/1 OR MORE PERM. ROOMS ADDED",
        7: "HU NOT SPECIFIED ABOVE",
        8: "QUARTERS NOT HU IN ROOMING OR BRDING HS",
        9: "UNIT NOT PERM. IN TRANSIENT HOTL, MOTL",
        10: "UNOCCUPIED TENT SITE OR TRLR SITE",
        11: "STUDENT QUARTERS IN COLLEGE DORM",
        12: "OTHER UNIT NOT SPECIFIED ABOVE",
    },
)


def extract_codes(records: Sequence[str], code_field: FixedWidthField = HOUSING_TYPE_FIELD) -> Tuple[str, ...]:
    """Extract the classification code of every record, in order."""
    return tuple(code_field.extract(line) for line in records)
