"""CSV format detection, parsing, and dataset splitting."""

from housing_pulse.parsing.csv_parser import (
    DATE_COLUMN,
    MarketCsvParser,
    detect_format,
    parse_date,
    parse_number,
)
from housing_pulse.parsing.splitter import (
    MarketIndexEntry,
    SplitStats,
    load_market_index,
    split_wide_csv,
    write_market_index,
)

__all__ = [
    "DATE_COLUMN",
    "MarketCsvParser",
    "detect_format",
    "parse_date",
    "parse_number",
    "MarketIndexEntry",
    "SplitStats",
    "split_wide_csv",
    "write_market_index",
    "load_market_index",
]
