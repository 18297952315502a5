"""Tests for time-range filtering."""

from datetime import date

import pytest

from housing_pulse.analytics.time_range import compute_cutoff, filter_series, subtract_months
from housing_pulse.core.models import TimeSeriesPoint, TimeWindow


def _series(*dates: date) -> list[TimeSeriesPoint]:
    return [TimeSeriesPoint(date=d, value=float(i)) for i, d in enumerate(dates)]


class TestSubtractMonths:
    @pytest.mark.parametrize(
        "start,months,expected",
        [
            (date(2024, 5, 15), 1, date(2024, 4, 15)),
            (date(2024, 1, 31), 1, date(2023, 12, 31)),
            (date(2024, 3, 31), 1, date(2024, 2, 29)),
            (date(2023, 3, 31), 1, date(2023, 2, 28)),
            (date(2024, 2, 29), 12, date(2023, 2, 28)),
            (date(2024, 8, 31), 6, date(2024, 2, 29)),
            (date(2023, 6, 30), 60, date(2018, 6, 30)),
        ],
    )
    def test_calendar_arithmetic(self, start, months, expected):
        assert subtract_months(start, months) == expected


class TestComputeCutoff:
    def test_max_has_no_cutoff(self):
        assert compute_cutoff(date(2024, 1, 31), TimeWindow.MAX) is None

    def test_one_year(self):
        assert compute_cutoff(date(2023, 6, 30), TimeWindow.ONE_YEAR) == date(2022, 6, 30)


class TestFilterSeries:
    def test_scenario_c_relative_to_latest_sample(self):
        series = _series(
            date(2021, 6, 30),
            date(2022, 5, 31),
            date(2022, 6, 30),
            date(2022, 12, 31),
            date(2023, 6, 30),
        )
        result = filter_series(series, TimeWindow.ONE_YEAR)
        assert [p.date for p in result] == [
            date(2022, 6, 30),
            date(2022, 12, 31),
            date(2023, 6, 30),
        ]

    def test_max_returns_everything(self):
        series = _series(date(2000, 1, 31), date(2024, 1, 31))
        assert filter_series(series, TimeWindow.MAX) == series

    def test_empty(self):
        assert filter_series([], TimeWindow.ONE_MONTH) == []

    def test_order_preserved(self):
        series = _series(date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31))
        result = filter_series(series, TimeWindow.ONE_MONTH)
        assert [p.date for p in result] == [date(2024, 2, 29), date(2024, 3, 31)]

    @pytest.mark.parametrize("window", list(TimeWindow))
    def test_result_is_subset_within_bounds(self, window):
        series = _series(*(date(2019 + i // 12, i % 12 + 1, 1) for i in range(72)))
        result = filter_series(series, window)
        assert all(p in series for p in result)
        cutoff = compute_cutoff(series[-1].date, window)
        if cutoff is not None:
            assert all(p.date >= cutoff for p in result)
