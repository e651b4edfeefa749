"""HTML result parser package.

Public API:
  - parse()          — raw enquiry HTML → Records | NoRecords | Empty
  - FirearmRecord    — one results-table row
  - NoRecordsScope   — REF_ONLY / REF_AND_SERIAL
"""

from __future__ import annotations

from fsenquiry.parser.results import (
    RECORD_FIELDS,
    Empty,
    FirearmRecord,
    NoRecords,
    NoRecordsScope,
    ParseOutcome,
    Records,
    parse,
)

__all__ = [
    "RECORD_FIELDS",
    "Empty",
    "FirearmRecord",
    "NoRecords",
    "NoRecordsScope",
    "ParseOutcome",
    "Records",
    "parse",
]
