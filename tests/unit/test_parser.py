"""Tests for CSV format detection and parsing."""

from datetime import date

import pytest

from housing_pulse.core.exceptions import FormatUnrecognizedError
from housing_pulse.core.models import CsvFormat
from housing_pulse.parsing.csv_parser import (
    MarketCsvParser,
    detect_format,
    parse_date,
    parse_number,
)


@pytest.fixture
def parser():
    return MarketCsvParser()


class TestDetectFormat:
    def test_wide(self):
        header = ["RegionID", "RegionName", "State", "2020-01-31", "2021-01-31"]
        assert detect_format(header) is CsvFormat.WIDE

    def test_simple(self):
        assert detect_format(["city", "state", "medianPrice"]) is CsvFormat.SIMPLE

    def test_case_and_whitespace_insensitive(self):
        assert detect_format([" City ", "STATE"]) is CsvFormat.SIMPLE

    def test_single_date_column_is_not_wide(self):
        with pytest.raises(FormatUnrecognizedError):
            detect_format(["RegionID", "RegionName", "2020-01-31"])

    def test_unrecognized(self):
        with pytest.raises(FormatUnrecognizedError) as exc_info:
            detect_format(["foo", "bar"])
        assert exc_info.value.context["header"] == ["foo", "bar"]


class TestCellCoercion:
    @pytest.mark.parametrize(
        "cell,expected",
        [
            ("110000", 110000.0),
            ("$1,250,000", 1250000.0),
            ("-2.5%", -2.5),
            ("", None),
            (None, None),
            ("n/a", None),
            ("nan", None),
            ("inf", None),
        ],
    )
    def test_parse_number(self, cell, expected):
        assert parse_number(cell) == expected

    def test_parse_date(self):
        assert parse_date("2024-05-01") == date(2024, 5, 1)
        assert parse_date("2024-05-01T12:00:00Z") == date(2024, 5, 1)
        assert parse_date("05/01/2024") is None
        assert parse_date("") is None


class TestWideFormat:
    def test_scenario_a(self, parser):
        text = (
            "RegionID,RegionName,State,2020-01-31,2021-01-31\n"
            '999,"Springfield, IL",IL,100000,110000\n'
        )
        result = parser.parse(text)
        assert result.format is CsvFormat.WIDE
        record = result.records[0]
        assert record.id == "999"
        assert record.city == "Springfield"
        assert record.state == "IL"
        assert [p.value for p in result.series_by_record["999"]] == [100000.0, 110000.0]

    def test_zip_rows(self, parser, wide_csv):
        result = parser.parse(wide_csv)
        zip_record = next(r for r in result.records if r.id == "61639")
        assert zip_record.zip_code == "10001"
        assert zip_record.state == "NY"

    def test_state_from_label_when_no_state_column(self, parser):
        text = (
            "RegionID,RegionName,2020-01-31,2021-01-31\n"
            '1,"Reno, NV",300000,320000\n'
        )
        record = parser.parse(text).records[0]
        assert (record.city, record.state) == ("Reno", "NV")

    def test_series_sorted_even_if_columns_are_not(self, parser):
        text = (
            "RegionID,RegionName,State,2021-01-31,2020-01-31,2020-07-31\n"
            '1,"Reno, NV",NV,3,1,2\n'
        )
        series = parser.parse(text).series_by_record["1"]
        assert [p.date for p in series] == sorted(p.date for p in series)
        assert [p.value for p in series] == [1.0, 2.0, 3.0]

    def test_blank_cells_skipped(self, parser):
        text = (
            "RegionID,RegionName,State,2020-01-31,2020-02-29,2020-03-31\n"
            '1,"Reno, NV",NV,100,,120\n'
        )
        assert len(parser.parse(text).series_by_record["1"]) == 2

    def test_malformed_rows_become_diagnostics(self, parser):
        text = (
            "RegionID,RegionName,State,2020-01-31,2021-01-31\n"
            '1,"Reno, NV",NV,100,110\n'
            '2,"Boise, ID",ID,100\n'
            '3,"Nowhere, XX",XX,,\n'
            ',,,5,6\n'
            '1,"Reno, NV",NV,100,110\n'
            '5,"Tulsa, OK",OK,90,95\n'
        )
        result = parser.parse(text)
        assert [r.id for r in result.records] == ["1", "5"]
        assert [d.line for d in result.diagnostics] == [3, 4, 5, 6]
        reasons = " ".join(d.reason for d in result.diagnostics)
        assert "columns" in reasons
        assert "no numeric samples" in reasons
        assert "missing identifier" in reasons
        assert "duplicate" in reasons

    def test_bom_and_blank_lines(self, parser):
        text = (
            "\ufeffRegionID,RegionName,State,2020-01-31,2021-01-31\n"
            "\n"
            '1,"Reno, NV",NV,100,110\n'
            "\n"
        )
        result = parser.parse(text)
        assert len(result.records) == 1
        assert result.diagnostics == []


class TestSimpleFormat:
    def test_scenario_b(self, parser):
        result = parser.parse("city,state,medianPrice\nAustin,TX,550000\n")
        assert result.format is CsvFormat.SIMPLE
        record = result.records[0]
        assert record.id == "austin-tx"
        assert result.metrics_by_record[record.id].headline_value == 550000.0
        assert len(result.series_by_record[record.id]) <= 1

    def test_all_columns(self, parser, simple_csv):
        result = parser.parse(simple_csv)
        assert [r.id for r in result.records] == ["78701", "denver-co", "83702"]
        austin = result.metrics_by_record["78701"]
        assert austin.median_price == 550000.0
        assert austin.percent_change == -2.5
        assert austin.last_updated == date(2024, 5, 1)
        assert result.series_by_record["78701"][0].value == 550000.0
        assert result.series_by_record["83702"] == []

    def test_missing_state_is_diagnostic(self, parser):
        result = parser.parse("city,state,medianPrice\nAustin,,1\nReno,NV,2\n")
        assert len(result.records) == 1
        assert result.diagnostics[0].line == 2


class TestParserBehavior:
    def test_empty_input(self, parser):
        with pytest.raises(FormatUnrecognizedError, match="empty"):
            parser.parse("")

    def test_idempotent(self, parser, wide_csv):
        assert parser.parse(wide_csv) == parser.parse(wide_csv)

    def test_record_cap(self, wide_csv):
        result = MarketCsvParser(max_records=2).parse(wide_csv)
        assert len(result.records) == 2
        assert result.truncated is True

    def test_cap_not_reached(self, parser, wide_csv):
        assert parser.parse(wide_csv).truncated is False

    def test_invalid_max_records(self):
        with pytest.raises(ValueError):
            MarketCsvParser(max_records=0)

    async def test_aparse_matches_parse(self, wide_csv):
        p = MarketCsvParser(chunk_size=1)
        assert await p.aparse(wide_csv) == p.parse(wide_csv)
