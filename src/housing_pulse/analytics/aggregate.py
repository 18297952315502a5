"""Stat aggregation: headline value, change, and direction for a market.

``aggregate`` works on a bare series. ``build_market_stats`` turns a whole
``ParseResult`` into ``MarketStats`` and is shared by every provider so the
output shape never depends on where the data came from.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from housing_pulse.analytics.time_range import compute_cutoff
from housing_pulse.core.models import (
    CsvFormat,
    Direction,
    MarketStats,
    ParseResult,
    RecordId,
    StatSummary,
    TimeSeries,
    TimeSeriesPoint,
    TimeWindow,
)

logger = logging.getLogger(__name__)


def direction_of(percent_change: float) -> Direction:
    if percent_change > 0:
        return Direction.UP
    if percent_change < 0:
        return Direction.DOWN
    return Direction.NEUTRAL


def percent_change(current: float, reference: float | None) -> float:
    """Relative change in percent; 0 when the reference is missing or zero."""
    if reference is None or reference == 0:
        return 0.0
    return (current - reference) / reference * 100


def _reference_point(series: TimeSeries, lookback: TimeWindow) -> TimeSeriesPoint | None:
    """The earlier point closest to ``lookback`` before the latest sample."""
    candidates = series[:-1]
    if not candidates:
        return None
    target = compute_cutoff(series[-1].date, lookback)
    if target is None:
        return candidates[0]
    # min() keeps the first of equal distances, i.e. the earlier point
    return min(candidates, key=lambda p: abs((p.date - target).days))


def _implied_reference(
    current: float | None, change: float | None
) -> tuple[float | None, float]:
    """Back out the reference value a simple row's ``percentChange`` implies.

    Without a usable reference the change is zero.
    """
    if current is None or change is None or change == -100.0:
        return None, 0.0
    return current / (1 + change / 100), change


def aggregate(series: TimeSeries, lookback: TimeWindow = TimeWindow.ONE_YEAR) -> StatSummary:
    """Summarize a date-sorted series."""
    if not series:
        return StatSummary()

    current = series[-1]
    reference = _reference_point(series, lookback)
    reference_value = reference.value if reference is not None else None
    change = percent_change(current.value, reference_value)
    return StatSummary(
        current_value=current.value,
        reference_value=reference_value,
        percent_change=change,
        direction=direction_of(change),
    )


def build_market_stats(
    result: ParseResult,
    lookback: TimeWindow,
    provider: str,
    now: datetime | None = None,
) -> list[MarketStats]:
    """Build ``MarketStats`` for every record of a parse result.

    Records without a usable headline value are dropped with a debug log.
    """
    resolved_at = now or datetime.now(timezone.utc)
    markets: list[MarketStats] = []

    for record in result.records:
        series = result.series_by_record.get(record.id, [])
        summary = aggregate(series, lookback)
        current = summary.current_value
        reference = summary.reference_value
        change = summary.percent_change

        if result.format is CsvFormat.SIMPLE:
            metrics = result.metrics_by_record.get(record.id)
            if metrics is not None:
                current = metrics.headline_value
                reference, change = _implied_reference(current, metrics.percent_change)

        if current is None:
            logger.debug("No headline value for %s, skipping", record.id)
            continue

        values = [p.value for p in series]
        markets.append(
            MarketStats(
                record=record,
                current_value=current,
                reference_value=reference,
                percent_change=change,
                direction=direction_of(change),
                series=series,
                min_value=min(values) if values else None,
                max_value=max(values) if values else None,
                provider=provider,
                resolved_at=resolved_at,
            )
        )

    return markets


def merge_rentals(
    markets: list[MarketStats],
    rentals: dict[RecordId, TimeSeries],
    lookback: TimeWindow,
) -> list[MarketStats]:
    """Attach rental series to markets with the same record id."""
    merged: list[MarketStats] = []
    matched = 0
    for market in markets:
        rent_series = rentals.get(market.record.id)
        if not rent_series:
            merged.append(market)
            continue
        summary = aggregate(rent_series, lookback)
        merged.append(
            market.model_copy(
                update={
                    "rental_series": rent_series,
                    "current_rent": summary.current_value,
                    "rent_change": summary.percent_change,
                }
            )
        )
        matched += 1

    logger.info("Merged rental data into %d of %d markets", matched, len(markets))
    return merged
