"""
Unit tests for CapcodeLookup.

Tests cover:
- Loading a semicolon-delimited file with and without a header row
- Quoted and stray-quoted fields
- Rows with too few fields are skipped, extra fields ignored
- Leading-zero normalization on lookup
- get_multiple() order and unknown-capcode handling
- Header detection on the first non-empty line
- Key collisions: the later row wins, including over an earlier literal capcode
- Missing file raises CapcodeFileError
"""

from pathlib import Path

import pytest

from p2000_forwarder.framework.capcode_lookup import (
    CapcodeFileError,
    CapcodeLookup,
    CapcodeLookupError,
    CapcodeRecord,
    SkippedRow,
    ValidRow,
    normalize_capcode,
    parse_row,
)

CSV_WITH_HEADER = """capcode;agency;region;station;function
0101001;Brandweer;Utrecht;Centrum;Kazernealarm
0101002;Ambulance;Utrecht;Oost;A1 Dienst
1420999;Politie;Amsterdam;Noord;Algemeen
"""


def _write(tmp_path: Path, content: str, name: str = "capcodes.csv") -> str:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return str(path)


class TestNormalizeCapcode:
    @pytest.mark.parametrize(
        "capcode,expected",
        [
            ("0101001", "101001"),
            ("101001", "101001"),
            ("000123", "123"),
            ("0000", "0"),
            ("", "0"),
        ],
    )
    def test_normalize(self, capcode: str, expected: str) -> None:
        assert normalize_capcode(capcode) == expected


class TestParseRow:
    def test_valid_row(self) -> None:
        result = parse_row(["0101001", "Brandweer", "Utrecht", "Centrum", "Kazernealarm"], 2)
        assert result == ValidRow(
            CapcodeRecord("0101001", "Brandweer", "Utrecht", "Centrum", "Kazernealarm")
        )

    def test_short_row_skipped(self) -> None:
        result = parse_row(["0101001", "Brandweer"], 7)
        assert isinstance(result, SkippedRow)
        assert result.line == 7
        assert "got 2" in result.reason

    def test_extra_fields_ignored(self) -> None:
        result = parse_row(["0101001", "Brandweer", "Utrecht", "Centrum", "Kazernealarm", "x"], 2)
        assert isinstance(result, ValidRow)
        assert result.record.function == "Kazernealarm"

    def test_quotes_stripped(self) -> None:
        result = parse_row(['"0101001"', '"Brandweer', 'Utrecht"', "Centrum", "Kazernealarm"], 2)
        assert isinstance(result, ValidRow)
        assert result.record.capcode == "0101001"
        assert result.record.agency == "Brandweer"
        assert result.record.region == "Utrecht"


class TestLoad:
    """Test loading the reference file from disk."""

    def test_load_with_header(self, tmp_path: Path) -> None:
        lookup = CapcodeLookup.load(_write(tmp_path, CSV_WITH_HEADER))
        assert len(lookup) == 3
        record = lookup.get("0101002")
        assert record == CapcodeRecord("0101002", "Ambulance", "Utrecht", "Oost", "A1 Dienst")

    def test_load_without_header(self, tmp_path: Path) -> None:
        content = "0101001;Brandweer;Utrecht;Centrum;Kazernealarm\n"
        lookup = CapcodeLookup.load(_write(tmp_path, content))
        assert len(lookup) == 1
        assert lookup.get("0101001") is not None

    def test_quoted_fields(self, tmp_path: Path) -> None:
        content = '"capcode";"agency";"region";"station";"function"\n' \
                  '"0101001";"Brandweer";"Utrecht";"Centrum";"Kazernealarm"\n'
        lookup = CapcodeLookup.load(_write(tmp_path, content))
        record = lookup.get("0101001")
        assert record is not None
        assert record.agency == "Brandweer"
        assert record.function == "Kazernealarm"

    def test_stray_quote_inside_field(self, tmp_path: Path) -> None:
        content = '0101001";Brandweer;Utrecht;Centrum;Kazernealarm"\n'
        lookup = CapcodeLookup.load(_write(tmp_path, content))
        record = lookup.get("0101001")
        assert record is not None
        assert record.function == "Kazernealarm"

    def test_short_rows_skipped(self, tmp_path: Path) -> None:
        content = CSV_WITH_HEADER + "0202002;Brandweer\n\n0303003;Politie;Zwolle;Zuid;Algemeen\n"
        lookup = CapcodeLookup.load(_write(tmp_path, content))
        assert len(lookup) == 4
        assert lookup.get("0202002") is None
        assert lookup.get("0303003") is not None

    def test_utf8_bom_and_non_ascii(self, tmp_path: Path) -> None:
        path = tmp_path / "bom.csv"
        path.write_bytes(
            "﻿capcode;agency;region;station;function\n"
            "0101001;Brandweer;Súdwest-Fryslân;Centrum;Kazernealarm\n".encode("utf-8")
        )
        lookup = CapcodeLookup.load(str(path))
        assert len(lookup) == 1
        assert lookup.get("0101001").region == "Súdwest-Fryslân"

    def test_header_after_leading_blank_lines(self, tmp_path: Path) -> None:
        lookup = CapcodeLookup.load(_write(tmp_path, "\n\n" + CSV_WITH_HEADER))
        assert len(lookup) == 3
        assert lookup.get("capcode") is None

    def test_header_only_checked_on_first_non_empty_line(self, tmp_path: Path) -> None:
        content = "0101001;Brandweer;Utrecht;Centrum;Kazernealarm\n\ncapcode;x;y;z;w\n"
        lookup = CapcodeLookup.load(_write(tmp_path, content))
        assert len(lookup) == 2
        assert lookup.get("capcode") is not None

    def test_empty_file(self, tmp_path: Path) -> None:
        lookup = CapcodeLookup.load(_write(tmp_path, ""))
        assert len(lookup) == 0

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(CapcodeFileError):
            CapcodeLookup.load(str(tmp_path / "does-not-exist.csv"))

    def test_errors_share_base_class(self) -> None:
        assert issubclass(CapcodeFileError, CapcodeLookupError)


class TestGet:
    """Test exact and normalized lookup."""

    def setup_method(self) -> None:
        self.lookup = CapcodeLookup(
            [
                CapcodeRecord("0101001", "Brandweer", "Utrecht", "Centrum", "Kazernealarm"),
                CapcodeRecord("0101002", "Ambulance", "Utrecht", "Oost", "A1 Dienst"),
            ]
        )

    def test_exact_match(self) -> None:
        assert self.lookup.get("0101001").agency == "Brandweer"

    def test_without_leading_zero(self) -> None:
        assert self.lookup.get("101001").agency == "Brandweer"

    def test_extra_leading_zeros(self) -> None:
        assert self.lookup.get("000101002").agency == "Ambulance"

    def test_unknown(self) -> None:
        assert self.lookup.get("9999999") is None

    def test_contains(self) -> None:
        assert "101001" in self.lookup
        assert "9999999" not in self.lookup
        assert 101001 not in self.lookup

    def test_get_multiple_preserves_order_and_drops_unknown(self) -> None:
        records = self.lookup.get_multiple(["0101002", "9999999", "101001"])
        assert [r.capcode for r in records] == ["0101002", "0101001"]

    def test_get_multiple_empty(self) -> None:
        assert self.lookup.get_multiple([]) == []


class TestCollisions:
    def test_later_row_wins_normalized_key(self) -> None:
        first = CapcodeRecord("0101001", "Brandweer", "Utrecht", "Centrum", "Kazernealarm")
        second = CapcodeRecord("101001", "Ambulance", "Utrecht", "Oost", "A1 Dienst")
        lookup = CapcodeLookup([first, second])

        assert lookup.get("0101001") == first
        assert lookup.get("101001") == second
        assert lookup.get("00101001") == second
        assert len(lookup) == 2

    def test_later_normalized_key_replaces_earlier_literal_key(self) -> None:
        first = CapcodeRecord("101001", "Brandweer", "Utrecht", "Centrum", "Kazernealarm")
        second = CapcodeRecord("0101001", "Ambulance", "Utrecht", "Oost", "A1 Dienst")
        lookup = CapcodeLookup([first, second])

        assert lookup.get("101001") == second
        assert lookup.get("0101001") == second
        assert len(lookup) == 2

    def test_duplicate_literal_capcode_overwritten(self, tmp_path: Path) -> None:
        content = (
            "0101001;Brandweer;Utrecht;Centrum;Kazernealarm\n"
            "0101001;Ambulance;Utrecht;Oost;A1 Dienst\n"
        )
        lookup = CapcodeLookup.load(_write(tmp_path, content))
        assert len(lookup) == 1
        assert lookup.get("0101001").agency == "Ambulance"
