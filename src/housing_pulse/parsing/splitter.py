"""Split a bulk wide-format dataset into one CSV file per market.

The output layout is what the CSV provider reads in split mode::

    <output_dir>/<kind>/<market-key>.csv   (header + one row)
    <output_dir>/markets-index.json        (written by write_market_index)
"""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from housing_pulse.core.exceptions import FormatUnrecognizedError
from housing_pulse.core.models import CsvFormat, market_key
from housing_pulse.parsing.csv_parser import detect_format

logger = logging.getLogger(__name__)

INDEX_FILENAME = "markets-index.json"
_PROGRESS_EVERY = 100


class MarketIndexEntry(BaseModel):
    """One market in ``markets-index.json``."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    city: str
    state: str
    market_key: str


@dataclass
class SplitStats:
    markets_processed: int = 0
    files_created: int = 0
    errors: list[str] = field(default_factory=list)


def split_wide_csv(
    input_path: str | Path,
    output_dir: str | Path,
    kind: str,
) -> tuple[SplitStats, list[MarketIndexEntry]]:
    """Write one file per market row of a wide-format CSV.

    Rows that cannot be written are recorded in ``SplitStats.errors``
    instead of aborting the split.

    Raises
    ------
    FileNotFoundError
        If ``input_path`` does not exist.
    FormatUnrecognizedError
        If the input is not a wide time-series file.
    """
    path = Path(input_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {input_path}")

    stats = SplitStats()
    entries: list[MarketIndexEntry] = []
    target_dir = Path(output_dir) / kind
    target_dir.mkdir(parents=True, exist_ok=True)

    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        header = reader.fieldnames or []
        if detect_format(header) is not CsvFormat.WIDE:
            raise FormatUnrecognizedError(
                f"Only wide time-series files can be split: {input_path}",
                context={"header": header[:20]},
            )
        columns = {h.strip().lower(): h for h in header}
        id_col = columns.get("regionid") or columns.get("region_id") or columns.get("id")
        name_col = columns.get("regionname") or columns.get("region_name") or columns.get("name")
        state_col = columns.get("state") or columns.get("statename")

        logger.info("Splitting %s file %s", kind, path)
        for i, row in enumerate(reader):
            if i and i % _PROGRESS_EVERY == 0:
                logger.info("Progress: %d markets", i)

            region_id = (row.get(id_col) or "").strip() if id_col else ""
            name = (row.get(name_col) or "").strip() if name_col else ""
            state = (row.get(state_col) or "").strip() if state_col else ""
            try:
                if None in row:
                    raise ValueError("row has more cells than the header")
                key = market_key(name, state)
                if not key:
                    raise ValueError("empty market key")
                (target_dir / f"{key}.csv").write_text(
                    _single_row_csv(header, row), encoding="utf-8"
                )
            except (OSError, ValueError) as e:
                stats.errors.append(f"Market {region_id} ({name}): {e}")
                continue

            entries.append(
                MarketIndexEntry(
                    id=region_id or key,
                    name=f"{name}, {state}" if state else name,
                    city=name.split(",")[0].strip(),
                    state=state,
                    market_key=key,
                )
            )
            stats.markets_processed += 1
            stats.files_created += 1

    logger.info(
        "Split complete: %d files, %d errors", stats.files_created, len(stats.errors)
    )
    return stats, entries


def write_market_index(entries: list[MarketIndexEntry], output_dir: str | Path) -> Path:
    """Write ``markets-index.json`` and return its path."""
    path = Path(output_dir) / INDEX_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps([e.model_dump() for e in entries], indent=2), encoding="utf-8"
    )
    return path


def load_market_index(raw: str) -> list[MarketIndexEntry]:
    """Parse the JSON text of a market index."""
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("market index must be a JSON list")
    return [MarketIndexEntry.model_validate(item) for item in data]


def _single_row_csv(header: list[str], row: dict[str, str | None]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    writer.writerow([row.get(h) or "" for h in header])
    return buf.getvalue()
