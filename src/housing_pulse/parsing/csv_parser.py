"""CSV format detection and parsing for market datasets.

Two schemas are understood:

- **wide**: one row per market, leading descriptor columns (RegionID,
  RegionName, State, ...) followed by one ``YYYY-MM-DD`` column per sample.
- **simple**: one row per market with named columns (city, state, zipCode,
  medianPrice, ...).

Malformed rows never abort a parse; they are skipped and reported as
``RowError`` diagnostics.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import math
import re
from collections.abc import Iterator
from datetime import date
from typing import ClassVar

from pydantic import ValidationError

from housing_pulse.core.exceptions import FormatUnrecognizedError
from housing_pulse.core.models import (
    CsvFormat,
    MarketRecord,
    ParseResult,
    RecordId,
    RowError,
    SimpleMetrics,
    TimeSeries,
    TimeSeriesPoint,
    market_key,
)

logger = logging.getLogger(__name__)

DATE_COLUMN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_ID_ALIASES = ("regionid", "region_id", "id")
_LABEL_ALIASES = ("regionname", "region_name", "name")
_IDENTIFIER_ALIASES = frozenset(_ID_ALIASES + _LABEL_ALIASES)


def _tokens(header: list[str]) -> list[str]:
    return [h.strip().lstrip("\ufeff").lower() for h in header]


def detect_format(header: list[str]) -> CsvFormat:
    """Classify a header row.

    Raises
    ------
    FormatUnrecognizedError
        If the header matches neither schema.
    """
    tokens = _tokens(header)
    date_columns = sum(1 for t in tokens if DATE_COLUMN.match(t))
    if date_columns >= 2 and _IDENTIFIER_ALIASES.intersection(tokens):
        return CsvFormat.WIDE
    if "city" in tokens and "state" in tokens:
        return CsvFormat.SIMPLE
    raise FormatUnrecognizedError(
        "CSV header matches neither the wide time-series nor the simple format",
        context={"header": list(header)[:20], "date_columns": date_columns},
    )


def parse_number(cell: str | None) -> float | None:
    """Coerce a numeric cell; ``None`` for empty, non-numeric or non-finite."""
    if cell is None:
        return None
    cleaned = cell.strip().replace(",", "").replace("$", "").rstrip("%")
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_date(cell: str | None) -> date | None:
    """Parse an ISO date, tolerating a trailing time component."""
    if not cell or not cell.strip():
        return None
    try:
        return date.fromisoformat(cell.strip()[:10])
    except ValueError:
        return None


class _Accumulator:
    """Collects records, series and diagnostics for one parse."""

    def __init__(self, fmt: CsvFormat, max_records: int) -> None:
        self.format = fmt
        self.max_records = max_records
        self.records: list[MarketRecord] = []
        self.series: dict[RecordId, TimeSeries] = {}
        self.metrics: dict[RecordId, SimpleMetrics] = {}
        self.diagnostics: list[RowError] = []
        self.truncated = False

    @property
    def full(self) -> bool:
        return len(self.records) >= self.max_records

    def add(
        self,
        line: int,
        record: MarketRecord,
        series: TimeSeries,
        metrics: SimpleMetrics | None = None,
    ) -> None:
        if record.id in self.series:
            self.diagnostics.append(
                RowError(line=line, reason=f"duplicate identifier {record.id!r}")
            )
            return
        self.records.append(record)
        self.series[record.id] = sorted(series, key=lambda p: p.date)
        if metrics is not None:
            self.metrics[record.id] = metrics

    def result(self) -> ParseResult:
        return ParseResult(
            format=self.format,
            records=self.records,
            series_by_record=self.series,
            metrics_by_record=self.metrics,
            diagnostics=self.diagnostics,
            truncated=self.truncated,
        )


class MarketCsvParser:
    """Detects the schema of a CSV document and parses it into market records.

    Parameters
    ----------
    max_records : int
        Maximum records kept per parse (first-N by input order).
    chunk_size : int
        Rows processed between event-loop yields in :meth:`aparse`.
    """

    SIMPLE_COLUMNS: ClassVar[dict[str, tuple[str, ...]]] = {
        "city": ("city",),
        "state": ("state",),
        "zip_code": ("zipcode", "zip_code", "zip"),
        "median_price": ("medianprice", "median_price"),
        "average_price": ("averageprice", "average_price"),
        "percent_change": ("percentchange", "percent_change"),
        "last_updated": ("lastupdateddate", "last_updated_date", "lastupdated"),
    }

    def __init__(self, max_records: int = 5000, chunk_size: int = 500) -> None:
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self._max_records = max_records
        self._chunk_size = max(1, chunk_size)

    # --- Public API ---

    def parse(self, raw_text: str) -> ParseResult:
        """Parse CSV text.

        Raises
        ------
        FormatUnrecognizedError
            If the content is empty or the header matches neither schema.
        """
        header, rows = self._open(raw_text)
        handler = self._row_handler(header)
        for line, row in rows:
            if not handler.feed(line, row):
                break
        return self._finish(handler)

    async def aparse(self, raw_text: str) -> ParseResult:
        """Like :meth:`parse`, yielding to the event loop every chunk of rows."""
        header, rows = self._open(raw_text)
        handler = self._row_handler(header)
        for count, (line, row) in enumerate(rows, start=1):
            if not handler.feed(line, row):
                break
            if count % self._chunk_size == 0:
                await asyncio.sleep(0)
        return self._finish(handler)

    # --- Internals ---

    def _open(self, raw_text: str) -> tuple[list[str], Iterator[tuple[int, list[str]]]]:
        reader = csv.reader(io.StringIO(raw_text.lstrip("\ufeff")))
        header: list[str] | None = None
        for row in reader:
            if any(cell.strip() for cell in row):
                header = [cell.strip() for cell in row]
                break
        if header is None:
            raise FormatUnrecognizedError(
                "CSV content is empty", context={"reason": "no header row"}
            )

        def rows() -> Iterator[tuple[int, list[str]]]:
            for row in reader:
                if not any(cell.strip() for cell in row):
                    continue
                yield reader.line_num, row

        return header, rows()

    def _row_handler(self, header: list[str]) -> _WideRows | _SimpleRows:
        fmt = detect_format(header)
        acc = _Accumulator(fmt, self._max_records)
        if fmt is CsvFormat.WIDE:
            return _WideRows(header, acc)
        return _SimpleRows(header, self.SIMPLE_COLUMNS, acc)

    def _finish(self, rows: _WideRows | _SimpleRows) -> ParseResult:
        result = rows.acc.result()
        if result.truncated:
            logger.warning(
                "Record cap reached: kept first %d records, remaining rows ignored",
                self._max_records,
            )
        if result.diagnostics:
            logger.info(
                "Parsed %d %s records, skipped %d rows",
                len(result.records), result.format.value, len(result.diagnostics),
            )
        if not result.records:
            logger.warning("CSV parsed without any valid records")
        return result


class _WideRows:
    """Row handler for the wide time-series schema."""

    def __init__(self, header: list[str], acc: _Accumulator) -> None:
        self.acc = acc
        self.width = len(header)
        tokens = _tokens(header)

        def find(*aliases: str) -> int | None:
            for alias in aliases:
                if alias in tokens:
                    return tokens.index(alias)
            return None

        self.id_idx = find(*_ID_ALIASES)
        self.label_idx = find(*_LABEL_ALIASES)
        self.state_idx = find("state")
        self.state_name_idx = find("statename", "state_name")
        self.city_idx = find("city")
        self.region_type_idx = find("regiontype", "region_type")

        self.date_columns: list[tuple[int, date]] = []
        for idx, token in enumerate(tokens):
            if DATE_COLUMN.match(token):
                parsed = parse_date(token)
                if parsed is not None:
                    self.date_columns.append((idx, parsed))

    def _cell(self, row: list[str], idx: int | None) -> str:
        return row[idx].strip() if idx is not None else ""

    def feed(self, line: int, row: list[str]) -> bool:
        if self.acc.full:
            self.acc.truncated = True
            return False
        if len(row) != self.width:
            self.acc.diagnostics.append(
                RowError(line=line, reason=f"expected {self.width} columns, got {len(row)}")
            )
            return True

        label = self._cell(row, self.label_idx)
        record_id = self._cell(row, self.id_idx) or label
        if not record_id:
            self.acc.diagnostics.append(RowError(line=line, reason="missing identifier"))
            return True

        head, _, tail = label.partition(",")
        city = self._cell(row, self.city_idx) or head.strip()
        state = (
            self._cell(row, self.state_idx)
            or self._cell(row, self.state_name_idx)
            or tail.strip()
        )
        zip_code = label if self._cell(row, self.region_type_idx).lower() == "zip" else None

        points: TimeSeries = []
        for idx, sample_date in self.date_columns:
            value = parse_number(row[idx])
            if value is not None:
                points.append(TimeSeriesPoint(date=sample_date, value=value))
        if not points:
            self.acc.diagnostics.append(
                RowError(line=line, reason=f"no numeric samples for {record_id!r}")
            )
            return True

        try:
            record = MarketRecord(
                id=record_id,
                label=label or record_id,
                city=city or record_id,
                state=state,
                zip_code=zip_code,
            )
        except ValidationError as e:
            self.acc.diagnostics.append(
                RowError(line=line, reason=f"invalid record {record_id!r}: {e.errors()[0]['msg']}")
            )
            return True

        self.acc.add(line, record, points)
        return True


class _SimpleRows:
    """Row handler for the simple named-column schema."""

    def __init__(
        self,
        header: list[str],
        columns: dict[str, tuple[str, ...]],
        acc: _Accumulator,
    ) -> None:
        self.acc = acc
        self.width = len(header)
        tokens = _tokens(header)
        self.index: dict[str, int] = {}
        for field_name, aliases in columns.items():
            for alias in aliases:
                if alias in tokens:
                    self.index[field_name] = tokens.index(alias)
                    break

    def _cell(self, row: list[str], field_name: str) -> str | None:
        idx = self.index.get(field_name)
        if idx is None:
            return None
        value = row[idx].strip()
        return value or None

    def feed(self, line: int, row: list[str]) -> bool:
        if self.acc.full:
            self.acc.truncated = True
            return False
        if len(row) != self.width:
            self.acc.diagnostics.append(
                RowError(line=line, reason=f"expected {self.width} columns, got {len(row)}")
            )
            return True

        city = self._cell(row, "city")
        state = self._cell(row, "state")
        if not city or not state:
            self.acc.diagnostics.append(RowError(line=line, reason="missing city or state"))
            return True

        zip_code = self._cell(row, "zip_code")
        metrics = SimpleMetrics(
            median_price=parse_number(self._cell(row, "median_price")),
            average_price=parse_number(self._cell(row, "average_price")),
            percent_change=parse_number(self._cell(row, "percent_change")),
            last_updated=parse_date(self._cell(row, "last_updated")),
        )
        try:
            record = MarketRecord(
                id=zip_code or market_key(city, state),
                label=f"{city}, {state}",
                city=city,
                state=state,
                zip_code=zip_code,
            )
        except ValidationError as e:
            self.acc.diagnostics.append(
                RowError(line=line, reason=f"invalid record: {e.errors()[0]['msg']}")
            )
            return True

        series: TimeSeries = []
        headline = metrics.headline_value
        if metrics.last_updated is not None and headline is not None:
            series.append(TimeSeriesPoint(date=metrics.last_updated, value=headline))

        self.acc.add(line, record, series, metrics)
        return True
