"""Time-range filtering relative to a series' own latest sample.

Many datasets are historical snapshots whose newest sample is weeks or
months old. The cutoff is therefore computed from ``max(date)`` of the
series, never from the wall clock.

Month arithmetic is calendar-aware. When the target month is shorter than
the source day, the day is clamped to the last day of the target month::

    2024-03-31 - 1M  ->  2024-02-29
    2024-02-29 - 1Y  ->  2023-02-28
"""

from __future__ import annotations

import calendar
from datetime import date

from housing_pulse.core.models import TimeSeries, TimeWindow


def subtract_months(d: date, months: int) -> date:
    """Shift ``d`` back by whole calendar months, clamping the day."""
    total = d.year * 12 + (d.month - 1) - months
    year, month_index = divmod(total, 12)
    month = month_index + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def compute_cutoff(reference: date, window: TimeWindow) -> date | None:
    """Earliest date included by ``window`` ending at ``reference``.

    Returns None for ``MAX`` (no cutoff).
    """
    months = window.months
    if months is None:
        return None
    return subtract_months(reference, months)


def filter_series(series: TimeSeries, window: TimeWindow) -> TimeSeries:
    """Return the points of ``series`` inside ``window``, order preserved."""
    if window is TimeWindow.MAX or not series:
        return list(series)

    reference = max(p.date for p in series)
    cutoff = compute_cutoff(reference, window)
    return [p for p in series if p.date >= cutoff]
