"""Tests for splitting wide datasets into per-market files."""

import json

import pytest

from housing_pulse.core.exceptions import FormatUnrecognizedError
from housing_pulse.parsing.csv_parser import MarketCsvParser
from housing_pulse.parsing.splitter import (
    INDEX_FILENAME,
    load_market_index,
    split_wide_csv,
    write_market_index,
)

ZILLOW_CSV = (
    "RegionID,SizeRank,RegionName,RegionType,StateName,2024-01-31,2024-02-29\n"
    '394913,1,"New York, NY",msa,NY,600000,605000\n'
    '394355,35,"Austin, TX",msa,TX,450000,449000\n'
)


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "zhvi.csv"
    path.write_text(ZILLOW_CSV, encoding="utf-8")
    return path


class TestSplitWideCsv:
    def test_writes_one_file_per_market(self, source, tmp_path):
        out = tmp_path / "markets"
        stats, entries = split_wide_csv(source, out, "zhvi")

        assert stats.markets_processed == 2
        assert stats.files_created == 2
        assert stats.errors == []
        assert sorted(p.name for p in (out / "zhvi").iterdir()) == [
            "austin-tx-tx.csv",
            "new-york-ny-ny.csv",
        ]
        assert entries[1].city == "Austin"
        assert entries[1].state == "TX"

    def test_split_file_parses_back(self, source, tmp_path):
        out = tmp_path / "markets"
        split_wide_csv(source, out, "zhvi")
        text = (out / "zhvi" / "austin-tx-tx.csv").read_text(encoding="utf-8")
        result = MarketCsvParser().parse(text)
        assert [r.id for r in result.records] == ["394355"]
        assert [p.value for p in result.series_by_record["394355"]] == [450000.0, 449000.0]

    def test_bad_rows_recorded(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text(
            ZILLOW_CSV + '1,2,"Reno, NV",msa,NV,1,2,3\n', encoding="utf-8"
        )
        stats, entries = split_wide_csv(path, tmp_path / "out", "zori")
        assert stats.files_created == 2
        assert len(stats.errors) == 1
        assert "Reno" in stats.errors[0]

    def test_rejects_simple_format(self, tmp_path):
        path = tmp_path / "simple.csv"
        path.write_text("city,state,medianPrice\nAustin,TX,1\n", encoding="utf-8")
        with pytest.raises(FormatUnrecognizedError):
            split_wide_csv(path, tmp_path / "out", "zhvi")

    def test_missing_input(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            split_wide_csv(tmp_path / "nope.csv", tmp_path / "out", "zhvi")


class TestMarketIndex:
    def test_write_and_load(self, source, tmp_path):
        out = tmp_path / "markets"
        _, entries = split_wide_csv(source, out, "zhvi")
        path = write_market_index(entries, out)

        assert path.name == INDEX_FILENAME
        assert load_market_index(path.read_text(encoding="utf-8")) == entries

    def test_load_rejects_non_list(self):
        with pytest.raises(ValueError):
            load_market_index(json.dumps({"id": "1"}))
