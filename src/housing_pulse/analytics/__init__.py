"""Series analytics: time-range filtering and stat aggregation."""

from housing_pulse.analytics.aggregate import (
    aggregate,
    build_market_stats,
    direction_of,
    merge_rentals,
    percent_change,
)
from housing_pulse.analytics.time_range import compute_cutoff, filter_series, subtract_months

__all__ = [
    "aggregate",
    "build_market_stats",
    "direction_of",
    "merge_rentals",
    "percent_change",
    "compute_cutoff",
    "filter_series",
    "subtract_months",
]
