"""Result parser for the SAPS firearm status enquiry page.

``parse(html)`` turns the raw HTML returned by the gateway into one of three
outcomes:

  Records(records)  — the results table was found and held ≥1 usable row
  NoRecords(...)    — the page explicitly says nothing matched the query
  Empty()           — neither a "no records" message nor usable table rows

Decision order (first match wins):
  1. empty / non-text input                     → Empty
  2. "no records ... Reference Number (X) and Serial Number (Y)"
                                                → NoRecords(REF_AND_SERIAL)
  3. "no records ... Reference Number (X)"      → NoRecords(REF_ONLY)
  4. no table with the results class tokens     → Empty
  5. header row dropped, rows with ≥9 cells kept → Records, or Empty if none

The explicit message is checked before the table because the upstream page
may render an empty or malformed table alongside it.

The upstream is scraped HTML with no contract, so matching is regex based and
tolerant of attribute order, quote style and letter case. The function is
pure: same input, same output, no state.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional, Union

# ─── Outcome types ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class FirearmRecord:
    """One row of the status results table, cell text verbatim."""

    application_type: str = ""
    application_number: str = ""
    calibre: str = ""
    make: str = ""
    serial_number: str = ""
    status_date: str = ""
    status: str = ""
    status_description: str = ""
    next_step: str = ""

    def to_dict(self) -> dict[str, str]:
        """Return the record keyed by the camelCase names used on the wire."""
        return {_CAMEL_CASE[name]: value for name, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "FirearmRecord":
        """Inverse of to_dict(); unknown keys are ignored, missing ones default to ""."""
        return cls(**{name: str(data.get(camel, "")) for name, camel in _CAMEL_CASE.items()})


# Table column order on the upstream page.
RECORD_FIELDS: tuple[str, ...] = (
    "application_type",
    "application_number",
    "calibre",
    "make",
    "serial_number",
    "status_date",
    "status",
    "status_description",
    "next_step",
)

_CAMEL_CASE: dict[str, str] = {
    "application_type": "applicationType",
    "application_number": "applicationNumber",
    "calibre": "calibre",
    "make": "make",
    "serial_number": "serialNumber",
    "status_date": "statusDate",
    "status": "status",
    "status_description": "statusDescription",
    "next_step": "nextStep",
}


class NoRecordsScope(str, Enum):
    """Which inputs the upstream says produced no match."""

    REF_ONLY = "REF_ONLY"
    REF_AND_SERIAL = "REF_AND_SERIAL"


@dataclass(frozen=True)
class Records:
    records: tuple[FirearmRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NoRecords:
    scope: NoRecordsScope
    reference: str
    serial: Optional[str] = None


@dataclass(frozen=True)
class Empty:
    pass


ParseOutcome = Union[Records, NoRecords, Empty]

# ─── Patterns ─────────────────────────────────────────────────────────────────

_NO_RECORDS_PREFIX = r"No\s+records\s+to\s+retrieve\s+for\s+your\s+selected\s+Reference\s+Number\s*\(([^)]*)\)"

_NO_RECORDS_REF_AND_SERIAL_RE = re.compile(
    _NO_RECORDS_PREFIX + r"\s*and\s+Serial\s+Number\s*\(([^)]*)\)",
    re.IGNORECASE,
)
_NO_RECORDS_REF_ONLY_RE = re.compile(_NO_RECORDS_PREFIX, re.IGNORECASE)

# Opening <table ...> tag; the class attribute is inspected separately.
_TABLE_OPEN_RE = re.compile(r"<table\b([^>]*)>", re.IGNORECASE)
_TABLE_CLOSE_RE = re.compile(r"</table\s*>", re.IGNORECASE)
_CLASS_ATTR_RE = re.compile(
    r"""(?:^|\s)class\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""",
    re.IGNORECASE,
)

_ROW_RE = re.compile(r"<tr\b[^>]*>(.*?)</tr\s*>", re.IGNORECASE | re.DOTALL)
_CELL_RE = re.compile(r"<t[dh]\b[^>]*>(.*?)</t[dh]\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")

# Only these four entities are decoded. &amp; goes last so "&amp;lt;"
# decodes to the literal text "&lt;" rather than "<".
_ENTITIES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"&nbsp;", re.IGNORECASE), " "),
    (re.compile(r"&lt;", re.IGNORECASE), "<"),
    (re.compile(r"&gt;", re.IGNORECASE), ">"),
    (re.compile(r"&amp;", re.IGNORECASE), "&"),
)

RESULTS_TABLE_CLASSES: frozenset[str] = frozenset(
    {"table", "table-bordered", "table-hover", "table-striped"}
)

MIN_RECORD_CELLS = len(RECORD_FIELDS)


# ─── Public API ───────────────────────────────────────────────────────────────


def parse(html: object) -> ParseOutcome:
    """Classify and extract the enquiry result held in ``html``."""
    if not isinstance(html, str) or not html:
        return Empty()

    no_records = find_no_records_message(html)
    if no_records is not None:
        return no_records

    table = find_results_table(html)
    if table is None:
        return Empty()

    records = tuple(
        _build_record(cells)
        for cells in extract_rows(table)[1:]
        if len(cells) >= MIN_RECORD_CELLS
    )
    if not records:
        return Empty()
    return Records(records=records)


def find_no_records_message(html: str) -> Optional[NoRecords]:
    """Return the NoRecords outcome if the page carries the upstream's message."""
    match = _NO_RECORDS_REF_AND_SERIAL_RE.search(html)
    if match:
        return NoRecords(
            scope=NoRecordsScope.REF_AND_SERIAL,
            reference=match.group(1).strip(),
            serial=match.group(2).strip(),
        )

    match = _NO_RECORDS_REF_ONLY_RE.search(html)
    if match:
        return NoRecords(scope=NoRecordsScope.REF_ONLY, reference=match.group(1).strip())

    return None


def find_results_table(html: str) -> Optional[str]:
    """Return the inner HTML of the first results table, or None.

    A table qualifies when its class attribute contains every token in
    RESULTS_TABLE_CLASSES; extra classes and token order do not matter.
    """
    for open_match in _TABLE_OPEN_RE.finditer(html):
        if not RESULTS_TABLE_CLASSES.issubset(_class_tokens(open_match.group(1))):
            continue
        close_match = _TABLE_CLOSE_RE.search(html, open_match.end())
        end = close_match.start() if close_match else len(html)
        return html[open_match.end():end]
    return None


def extract_rows(table_html: str) -> list[list[str]]:
    """Return every row of ``table_html`` as a list of cleaned cell strings."""
    return [
        [clean_cell(cell) for cell in _CELL_RE.findall(row)]
        for row in _ROW_RE.findall(table_html)
    ]


def clean_cell(raw: str) -> str:
    """Strip markup, decode the four supported entities, trim whitespace."""
    text = _TAG_RE.sub("", raw)
    for pattern, replacement in _ENTITIES:
        text = pattern.sub(replacement, text)
    return text.strip()


# ─── Internals ────────────────────────────────────────────────────────────────


def _class_tokens(attrs: str) -> set[str]:
    match = _CLASS_ATTR_RE.search(attrs)
    if not match:
        return set()
    value = next(group for group in match.groups() if group is not None)
    return set(value.lower().split())


def _build_record(cells: list[str]) -> FirearmRecord:
    return FirearmRecord(**{
        name: cells[index] if index < len(cells) else ""
        for index, name in enumerate(RECORD_FIELDS)
    })
