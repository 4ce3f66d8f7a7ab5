"""
Capcode reference data: maps pager capcodes to agency / region / station / function.

The reference file is the semicolon-separated capcode list published for the
Dutch P2000 network:

    capcode;agency;region;station;function
    0101001;Brandweer;Utrecht;Centrum;Kazernealarm
    0101002;Ambulance;Utrecht;Oost;A1 Dienst

Parsing is lenient: quotes may be stray or unbalanced and rows may carry any
number of fields. Empty lines are ignored, and the first non-empty line is
treated as a header when its first field mentions "cap". Rows with fewer than
five fields are skipped rather than failing the load.

Every record is indexed twice: under the literal capcode and under the capcode
with leading zeros stripped, so "101001" and "0101001" resolve to the same
record. Keys are written in load order, so when capcodes collide the later row
wins, even over an earlier row's literal capcode: loading "101001" and then
"0101001" makes get("101001") return the "0101001" record.
"""

import csv
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

_DELIMITER = ";"
_MIN_FIELDS = 5


class CapcodeLookupError(Exception):
    """Base exception for reference data load failures."""


class CapcodeFileError(CapcodeLookupError):
    """The reference file is missing or unreadable."""


class CapcodeParseError(CapcodeLookupError):
    """The reference file content could not be parsed."""


@dataclass(frozen=True)
class CapcodeRecord:
    capcode: str
    agency: str
    region: str
    station: str
    function: str


@dataclass(frozen=True)
class ValidRow:
    record: CapcodeRecord


@dataclass(frozen=True)
class SkippedRow:
    line: int
    reason: str


RowResult = Union[ValidRow, SkippedRow]


def normalize_capcode(capcode: str) -> str:
    """
    Strip leading zeros; an all-zero (or empty) capcode normalizes to "0".

    Examples:
        0101001 → 101001
        0000    → 0
    """
    return capcode.lstrip("0") or "0"


def parse_row(fields: list[str], line: int) -> RowResult:
    """Turn one delimited row into a ValidRow, or a SkippedRow with the reason."""
    if len(fields) < _MIN_FIELDS:
        return SkippedRow(line=line, reason=f"expected {_MIN_FIELDS} fields, got {len(fields)}")
    capcode, agency, region, station, function = (f.strip('"') for f in fields[:_MIN_FIELDS])
    return ValidRow(
        CapcodeRecord(
            capcode=capcode,
            agency=agency,
            region=region,
            station=station,
            function=function,
        )
    )


def _is_header(fields: list[str]) -> bool:
    return bool(fields) and "cap" in fields[0].lower()


class CapcodeLookup:
    """
    Immutable capcode → CapcodeRecord index.

    Usage:
        lookup = CapcodeLookup.load("capcodelijst.csv")
        record = lookup.get("0101001")
    """

    def __init__(self, records: Iterable[CapcodeRecord] = ()) -> None:
        self._index: dict[str, CapcodeRecord] = {}
        self._literal_keys: set[str] = set()
        for record in records:
            self._add(record)

    @classmethod
    def load(cls, path: str) -> "CapcodeLookup":
        """
        Load the reference table from a semicolon-delimited file.

        Raises:
            CapcodeFileError: If the file cannot be opened or read
            CapcodeParseError: If the CSV reader rejects the content
        """
        lookup = cls()
        valid = 0
        skipped = 0
        try:
            with open(path, encoding="utf-8-sig", errors="replace", newline="") as f:
                reader = csv.reader(f, delimiter=_DELIMITER, strict=False)
                header_checked = False
                for fields in reader:
                    if not fields:
                        continue
                    if not header_checked:
                        header_checked = True
                        if _is_header(fields):
                            continue
                    result = parse_row(fields, reader.line_num)
                    if isinstance(result, SkippedRow):
                        skipped += 1
                        logger.debug(
                            "Skipping capcode row | path=%s | line=%d | reason=%s",
                            path,
                            result.line,
                            result.reason,
                        )
                        continue
                    lookup._add(result.record)
                    valid += 1
        except csv.Error as exc:
            raise CapcodeParseError(f"failed to read capcode CSV {path}: {exc}") from exc
        except OSError as exc:
            raise CapcodeFileError(f"failed to open capcode CSV {path}: {exc}") from exc

        logger.info(
            "Capcode lookup loaded | path=%s | records=%d | skipped=%d",
            path,
            valid,
            skipped,
        )
        return lookup

    def get(self, capcode: str) -> Optional[CapcodeRecord]:
        """Exact match first, then the leading-zero-stripped form."""
        record = self._index.get(capcode)
        if record is not None:
            return record
        return self._index.get(normalize_capcode(capcode))

    def get_multiple(self, capcodes: Iterable[str]) -> list[CapcodeRecord]:
        """Records for the given capcodes, in input order; unknown capcodes are dropped."""
        records = []
        for capcode in capcodes:
            record = self.get(capcode)
            if record is not None:
                records.append(record)
        return records

    def __len__(self) -> int:
        return len(self._literal_keys)

    def __contains__(self, capcode: object) -> bool:
        return isinstance(capcode, str) and self.get(capcode) is not None

    def _add(self, record: CapcodeRecord) -> None:
        # Last write wins per key: a later row's normalized key can replace an
        # earlier row's literal key ("101001" then "0101001").
        self._index[normalize_capcode(record.capcode)] = record
        self._index[record.capcode] = record
        self._literal_keys.add(record.capcode)
