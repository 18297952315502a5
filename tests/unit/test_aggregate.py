"""Tests for stat aggregation."""

import math
from datetime import date, datetime, timezone

import pytest

from housing_pulse.analytics.aggregate import (
    aggregate,
    build_market_stats,
    direction_of,
    merge_rentals,
    percent_change,
)
from housing_pulse.core.models import Direction, TimeSeriesPoint, TimeWindow
from housing_pulse.parsing.csv_parser import MarketCsvParser

NOW = datetime(2024, 7, 1, tzinfo=timezone.utc)


def _point(y: int, m: int, d: int, value: float) -> TimeSeriesPoint:
    return TimeSeriesPoint(date=date(y, m, d), value=value)


class TestPercentChange:
    def test_basic(self):
        assert percent_change(110.0, 100.0) == pytest.approx(10.0)

    def test_zero_reference(self):
        assert percent_change(110.0, 0.0) == 0.0

    def test_missing_reference(self):
        assert percent_change(110.0, None) == 0.0

    def test_direction(self):
        assert direction_of(0.1) is Direction.UP
        assert direction_of(-0.1) is Direction.DOWN
        assert direction_of(0.0) is Direction.NEUTRAL


class TestAggregate:
    def test_empty_series(self):
        summary = aggregate([])
        assert summary.current_value is None
        assert summary.percent_change == 0.0
        assert summary.direction is Direction.NEUTRAL

    def test_single_point(self):
        summary = aggregate([_point(2024, 1, 31, 100.0)])
        assert summary.current_value == 100.0
        assert summary.reference_value is None
        assert summary.direction is Direction.NEUTRAL

    def test_one_year_lookback_picks_nearest(self):
        series = [
            _point(2023, 5, 31, 90.0),
            _point(2023, 6, 30, 100.0),
            _point(2024, 1, 31, 105.0),
            _point(2024, 6, 30, 120.0),
        ]
        summary = aggregate(series, TimeWindow.ONE_YEAR)
        assert summary.reference_value == 100.0
        assert summary.percent_change == pytest.approx(20.0)
        assert summary.direction is Direction.UP

    def test_tie_prefers_earlier_point(self):
        series = [
            _point(2024, 1, 1, 100.0),
            _point(2024, 1, 3, 200.0),
            _point(2024, 2, 2, 150.0),
        ]
        assert aggregate(series, TimeWindow.ONE_MONTH).reference_value == 100.0

    def test_max_uses_first_point(self):
        series = [_point(2000, 1, 31, 50.0), _point(2020, 1, 31, 80.0), _point(2024, 1, 31, 100.0)]
        summary = aggregate(series, TimeWindow.MAX)
        assert summary.reference_value == 50.0
        assert summary.percent_change == pytest.approx(100.0)

    def test_zero_reference_is_neutral(self):
        series = [_point(2023, 1, 31, 0.0), _point(2024, 1, 31, 10.0)]
        summary = aggregate(series)
        assert summary.percent_change == 0.0
        assert summary.direction is Direction.NEUTRAL
        assert not math.isnan(summary.percent_change)


class TestBuildMarketStats:
    def test_scenario_a(self):
        result = MarketCsvParser().parse(
            "RegionID,RegionName,State,2020-01-31,2021-01-31\n"
            '999,"Springfield, IL",IL,100000,110000\n'
        )
        [stats] = build_market_stats(result, TimeWindow.ONE_YEAR, "csv", now=NOW)
        assert stats.current_value == 110000.0
        assert stats.percent_change == pytest.approx(10.0)
        assert stats.direction is Direction.UP
        assert (stats.min_value, stats.max_value) == (100000.0, 110000.0)
        assert stats.provider == "csv"
        assert stats.resolved_at == NOW

    def test_scenario_b(self):
        result = MarketCsvParser().parse("city,state,medianPrice\nAustin,TX,550000\n")
        [stats] = build_market_stats(result, TimeWindow.ONE_YEAR, "csv")
        assert stats.current_value == 550000.0
        assert stats.percent_change == 0.0
        assert stats.direction is Direction.NEUTRAL
        assert len(stats.series) <= 1

    def test_simple_percent_change_column(self, simple_csv):
        result = MarketCsvParser().parse(simple_csv)
        stats = {s.record.id: s for s in build_market_stats(result, TimeWindow.ONE_YEAR, "csv")}
        assert stats["78701"].percent_change == -2.5
        assert stats["78701"].reference_value == pytest.approx(550000.0 / 0.975)
        assert stats["78701"].direction is Direction.DOWN
        assert stats["83702"].current_value == 420000.0
        assert stats["83702"].reference_value is None
        assert stats["83702"].percent_change == 0.0
        assert stats["83702"].direction is Direction.NEUTRAL

    def test_simple_change_always_has_reference(self):
        result = MarketCsvParser().parse(
            "city,state,medianPrice,percentChange\nAustin,TX,550000,-2.5\n"
        )
        [stats] = build_market_stats(result, TimeWindow.ONE_YEAR, "csv")
        assert stats.reference_value is not None
        assert percent_change(stats.current_value, stats.reference_value) == pytest.approx(-2.5)

    def test_simple_total_loss_is_neutral(self):
        result = MarketCsvParser().parse(
            "city,state,medianPrice,percentChange\nAustin,TX,550000,-100\n"
        )
        [stats] = build_market_stats(result, TimeWindow.ONE_YEAR, "csv")
        assert stats.reference_value is None
        assert stats.percent_change == 0.0
        assert stats.direction is Direction.NEUTRAL

    def test_records_without_values_skipped(self):
        result = MarketCsvParser().parse("city,state,medianPrice\nAustin,TX,\nReno,NV,1\n")
        markets = build_market_stats(result, TimeWindow.ONE_YEAR, "csv")
        assert [m.record.city for m in markets] == ["Reno"]


class TestMergeRentals:
    def test_merges_by_record_id(self, wide_csv):
        parser = MarketCsvParser()
        markets = build_market_stats(parser.parse(wide_csv), TimeWindow.ONE_YEAR, "csv")
        rents = parser.parse(
            "RegionID,RegionName,StateName,2023-06-30,2024-06-30\n"
            '394913,"New York, NY",NY,3000,3300\n'
        )
        merged = {m.record.id: m for m in merge_rentals(markets, rents.series_by_record, TimeWindow.ONE_YEAR)}

        assert merged["394913"].current_rent == 3300.0
        assert merged["394913"].rent_change == pytest.approx(10.0)
        assert len(merged["394913"].rental_series) == 2
        assert merged["394355"].current_rent is None
        assert merged["394355"].rental_series == []
