"""
TLE Parser Module

Turns raw multi-line catalog text into structured element records.

Catalog text is a sequence of (name, line 1, line 2) triplets. Parsing is
tolerant: a triplet whose lines do not carry the "1 " / "2 " prefixes is
skipped with a diagnostic and the scan resumes one line later, so a single
malformed entry never desynchronizes the entries that follow it.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

LINE1_PREFIX = "1 "
LINE2_PREFIX = "2 "

# NORAD catalog number, columns 3-7 of line 1 (digits or Alpha-5)
_CATALOG_ID_PATTERN = re.compile(r"^(?:\d{1,5}|[A-Z]\d{4})$")

_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass(frozen=True)
class TleRecord:
    """One named two-line element set."""

    name: str
    line1: str
    line2: str

    @property
    def catalog_id(self) -> str:
        return extract_catalog_id(self.line1, self.name)


@dataclass(frozen=True)
class Accepted:
    record: TleRecord


@dataclass(frozen=True)
class Skipped:
    line_index: int
    reason: str
    lines: Tuple[str, ...] = ()


ParsedEntry = Union[Accepted, Skipped]


@dataclass
class ParseResult:
    """Outcome of a full scan: every accepted record and every skipped candidate."""

    entries: List[ParsedEntry] = field(default_factory=list)

    @property
    def records(self) -> List[TleRecord]:
        return [e.record for e in self.entries if isinstance(e, Accepted)]

    @property
    def skipped(self) -> List[Skipped]:
        return [e for e in self.entries if isinstance(e, Skipped)]


def extract_catalog_id(line1: str, fallback: str) -> str:
    """
    Extract the NORAD catalog number from TLE line 1.

    Args:
        line1: First line of TLE
        fallback: Value returned when the catalog field is unparsable

    Returns:
        Catalog number as written in the TLE (e.g. "25544"), or ``fallback``
    """
    candidate = line1[2:7].strip()
    if _CATALOG_ID_PATTERN.match(candidate):
        return candidate
    return fallback


def _split_lines(raw_text: str) -> List[str]:
    return [line.strip() for line in _LINE_SPLIT.split(raw_text) if line.strip()]


def _skip_reason(line1: Optional[str], line2: Optional[str]) -> str:
    if line1 is None or line2 is None:
        return "incomplete entry at end of text"
    if not line1.startswith(LINE1_PREFIX):
        return f"line 1 does not start with {LINE1_PREFIX!r}"
    return f"line 2 does not start with {LINE2_PREFIX!r}"


def parse_tle_entries(raw_text: str) -> ParseResult:
    """
    Parse catalog text into tagged per-entry results.

    Args:
        raw_text: Raw newline-delimited catalog text

    Returns:
        ParseResult listing accepted records and skipped candidates in scan order
    """
    lines = _split_lines(raw_text)
    result = ParseResult()

    i = 0
    while i < len(lines):
        name = lines[i]
        line1 = lines[i + 1] if i + 1 < len(lines) else None
        line2 = lines[i + 2] if i + 2 < len(lines) else None

        if (
            line1 is not None
            and line2 is not None
            and line1.startswith(LINE1_PREFIX)
            and line2.startswith(LINE2_PREFIX)
        ):
            result.entries.append(Accepted(TleRecord(name, line1, line2)))
            i += 3
            continue

        reason = _skip_reason(line1, line2)
        window = tuple(line for line in (name, line1, line2) if line is not None)
        logger.warning(f"Skipping malformed TLE at line {i}: {reason}: {window}")
        result.entries.append(Skipped(i, reason, window))
        i += 1

    return result


def parse_tle_text(raw_text: str) -> List[TleRecord]:
    """Parse catalog text, returning only the well-formed records."""
    return parse_tle_entries(raw_text).records


def parse_single_tle(raw_text: str, default_name: str) -> Optional[TleRecord]:
    """
    Parse the response of a single-object TLE lookup.

    Lookups return either a named three-line entry or a bare two-line set.

    Args:
        raw_text: Response text
        default_name: Name used when the response carries no name line

    Returns:
        TleRecord, or None when the text holds no usable element set
    """
    lines = _split_lines(raw_text)

    if len(lines) >= 3:
        name, line1, line2 = lines[0], lines[1], lines[2]
    elif len(lines) == 2:
        name, line1, line2 = default_name, lines[0], lines[1]
    else:
        return None

    if not (line1.startswith(LINE1_PREFIX) and line2.startswith(LINE2_PREFIX)):
        logger.warning(f"Lookup response for {default_name} is not a TLE: {lines[:3]}")
        return None

    return TleRecord(name, line1, line2)
