"""Bundled fixture markets for the mock provider.

Fixtures are rendered to wide-format CSV text and go through the regular
parser, so mock stats have exactly the shape real datasets produce.
"""

from __future__ import annotations

import calendar
import csv
import io
from dataclasses import dataclass
from datetime import date

from housing_pulse.analytics.time_range import subtract_months

FIXTURE_END = date(2024, 12, 31)
FIXTURE_MONTHS = 60


@dataclass(frozen=True)
class FixtureMarket:
    region_id: str
    name: str
    region_type: str
    state: str
    city: str
    base_value: float
    annual_growth: float
    base_rent: float | None = None


MOCK_MARKETS: tuple[FixtureMarket, ...] = (
    FixtureMarket("394913", "New York, NY", "msa", "NY", "", 620_000, 0.045, 3_150),
    FixtureMarket("753899", "Los Angeles, CA", "msa", "CA", "", 910_000, 0.05, 2_900),
    FixtureMarket("394463", "Chicago, IL", "msa", "IL", "", 310_000, 0.06, 1_900),
    FixtureMarket("394514", "Dallas, TX", "msa", "TX", "", 370_000, 0.01, 1_750),
    FixtureMarket("394355", "Austin, TX", "msa", "TX", "", 450_000, -0.03, 1_700),
    FixtureMarket("395209", "Seattle, WA", "msa", "WA", "", 760_000, 0.035, 2_300),
    FixtureMarket("394902", "Miami, FL", "msa", "FL", "", 470_000, 0.07, 2_800),
    FixtureMarket("394347", "Denver, CO", "msa", "CO", "", 590_000, 0.0),
    FixtureMarket("61639", "10001", "zip", "NY", "New York", 1_250_000, 0.02),
    FixtureMarket("84654", "60657", "zip", "IL", "Chicago", 560_000, 0.04),
)


def month_ends(end: date = FIXTURE_END, months: int = FIXTURE_MONTHS) -> list[date]:
    """``months`` consecutive month-end dates ending at ``end``, ascending."""
    dates = []
    for offset in range(months - 1, -1, -1):
        d = subtract_months(end, offset)
        dates.append(d.replace(day=calendar.monthrange(d.year, d.month)[1]))
    return dates


def _grow(base: float, annual_growth: float, month_index: int) -> int:
    return round(base * (1 + annual_growth) ** (month_index / 12))


def render_wide_csv(
    markets: tuple[FixtureMarket, ...] = MOCK_MARKETS,
    rentals: bool = False,
) -> str:
    """Render fixtures as a wide-format CSV document.

    With ``rentals=True`` only markets that have a ``base_rent`` are
    rendered, with rent values instead of home values.
    """
    dates = month_ends()
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(
        ["RegionID", "RegionName", "RegionType", "StateName", "City"]
        + [d.isoformat() for d in dates]
    )
    for m in markets:
        base = m.base_rent if rentals else m.base_value
        if base is None:
            continue
        writer.writerow(
            [m.region_id, m.name, m.region_type, m.state, m.city]
            + [_grow(base, m.annual_growth, i) for i in range(len(dates))]
        )
    return buf.getvalue()
