"""Configuration for the reader command."""

import datetime
import os
from typing import List, Optional

from shared.framework.config import ServiceConfig
from shared.schemas.models import MAX_BATCH_RECORDS
from shared.utils.errors import ConfigurationError

from .sources import CENSUS_URL_TEMPLATE


MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
FIRST_YEAR = 1970


def parse_years(value: str) -> List[int]:
    """Parse ``2015,2016`` into a list of years."""
    years = []
    last_year = datetime.date.today().year
    for part in value.split(","):
        try:
            year = int(part.strip())
        except ValueError:
            raise ConfigurationError(f"Can't parse years: {value}", config_key="years", config_value=value) from None
        if not FIRST_YEAR <= year <= last_year:
            raise ConfigurationError(
                f"Each year must be between {FIRST_YEAR} and {last_year} inclusive",
                config_key="years",
                config_value=year,
            )
        years.append(year)
    return years


def parse_months(value: str) -> List[str]:
    """Parse ``jan,feb`` (or ``*`` for every month) into month abbreviations."""
    if value.strip() == "*":
        return list(MONTHS)
    months = []
    for part in value.split(","):
        month = part.strip().lower()
        if month not in MONTHS:
            raise ConfigurationError(
                f"Can't parse months: {value}. Must be comma-separated abbreviations like jan,feb,mar",
                config_key="months",
                config_value=value,
            )
        months.append(month)
    return months


def parse_batch_ceiling(value: int) -> Optional[int]:
    """Negative values mean no ceiling."""
    return None if value < 0 else value


class ReaderConfig(ServiceConfig):
    """Configuration for the reader command."""

    def __init__(self) -> None:
        super().__init__(service_name="reader")

        years = os.getenv("KAFKA_SCALE_YEARS", "")
        months = os.getenv("KAFKA_SCALE_MONTHS", "")
        self.years: List[int] = parse_years(years) if years else []
        self.months: List[str] = parse_months(months) if months else []
        self.from_file: Optional[str] = os.getenv("KAFKA_SCALE_FROM_FILE") or None

        self.max_batches = parse_batch_ceiling(int(os.getenv("KAFKA_SCALE_CHUNKS", "-1")))
        self.batch_size = int(os.getenv("KAFKA_SCALE_BATCH_SIZE", str(MAX_BATCH_RECORDS)))
        self.source_url_template = os.getenv("KAFKA_SCALE_SOURCE_URL_TEMPLATE", CENSUS_URL_TEMPLATE)
        self.fetch_timeout = float(os.getenv("KAFKA_SCALE_FETCH_TIMEOUT", "300"))

    def validate(self) -> None:
        """Check the source selection before any work starts."""
        if self.from_file:
            if len(self.years) != 1:
                raise ConfigurationError(
                    "When reading from a file exactly one year is required - the year of the file",
                    config_key="years",
                )
        elif not self.years or not self.months:
            raise ConfigurationError("Both years and months are required", config_key="years")

        if not 0 < self.batch_size <= MAX_BATCH_RECORDS:
            raise ConfigurationError(
                f"Batch size must be between 1 and {MAX_BATCH_RECORDS}",
                config_key="batch_size",
                config_value=self.batch_size,
            )
