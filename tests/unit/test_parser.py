"""Unit tests for fsenquiry/parser/results.py — HTML result parser.

Covers:
  - Decision order: empty input → no-records messages → table → rows
  - "No records" message wins over a table rendered on the same page
  - Results table detection by class-token containment (order, quoting, case)
  - Header row dropped; rows with fewer than 9 cells dropped (8-cell boundary)
  - Cell cleaning: markup stripped, only &nbsp; &lt; &gt; &amp; decoded, trimmed
  - Purity: same input, same output
"""

from __future__ import annotations

import pytest

from fsenquiry.parser import (
    RECORD_FIELDS,
    Empty,
    FirearmRecord,
    NoRecords,
    NoRecordsScope,
    Records,
    parse,
)
from fsenquiry.parser.results import clean_cell, extract_rows, find_results_table

# ─── Fixtures ─────────────────────────────────────────────────────────────────

_TABLE_CLASS = "table table-bordered table-hover table-striped"

_HEADER_ROW = (
    "<tr><th>Application Type</th><th>Application Number</th><th>Calibre</th>"
    "<th>Make</th><th>Serial Number</th><th>Status Date</th><th>Status</th>"
    "<th>Description</th><th>Next Step</th></tr>"
)

_ROW_VALUES = [
    "Competency",
    "0001/2024",
    "9mm",
    "Glock",
    "ABC123",
    "2024-03-01",
    "Approved",
    "Application finalised",
    "Collect at station",
]


def _row(values: list[str], tag: str = "td") -> str:
    return "<tr>" + "".join(f"<{tag}>{v}</{tag}>" for v in values) + "</tr>"


def _page(*rows: str, table_class: str = _TABLE_CLASS, extra: str = "") -> str:
    return (
        "<html><body><div class='container'>"
        f"{extra}"
        f'<table class="{table_class}">{_HEADER_ROW}{"".join(rows)}</table>'
        "</div></body></html>"
    )


# ─── Empty input ──────────────────────────────────────────────────────────────


class TestEmptyInput:
    """Non-text or empty input is Empty, never an exception."""

    @pytest.mark.parametrize("value", ["", None, 42, b"<table></table>", ["<html>"]])
    def test_empty_or_non_text_returns_empty(self, value: object) -> None:
        assert parse(value) == Empty()

    def test_page_without_table_or_message_is_empty(self) -> None:
        assert parse("<html><body><p>Service temporarily unavailable</p></body></html>") == Empty()


# ─── No-records messages ──────────────────────────────────────────────────────


class TestNoRecordsMessages:
    """Explicit upstream messages are a negative result, not a parse failure."""

    def test_reference_and_serial_message(self) -> None:
        html = (
            "<div class='alert'>No records to retrieve for your selected Reference Number "
            "(ABC123) and Serial Number (XYZ789)</div>"
        )
        assert parse(html) == NoRecords(
            scope=NoRecordsScope.REF_AND_SERIAL, reference="ABC123", serial="XYZ789"
        )

    def test_reference_only_message(self) -> None:
        html = "<p>No records to retrieve for your selected Reference Number (ABC123)</p>"
        assert parse(html) == NoRecords(scope=NoRecordsScope.REF_ONLY, reference="ABC123")

    def test_message_match_is_case_insensitive(self) -> None:
        html = "NO RECORDS TO RETRIEVE FOR YOUR SELECTED REFERENCE NUMBER (abc123)"
        outcome = parse(html)
        assert isinstance(outcome, NoRecords)
        assert outcome.reference == "abc123"

    def test_message_tolerates_extra_whitespace(self) -> None:
        html = (
            "No  records\nto retrieve for your selected Reference Number  ( R1 ) "
            "and  Serial Number (S1)"
        )
        assert parse(html) == NoRecords(
            scope=NoRecordsScope.REF_AND_SERIAL, reference="R1", serial="S1"
        )

    def test_message_takes_precedence_over_table(self) -> None:
        """A table on the same page as the message must not produce records."""
        html = _page(
            _row(_ROW_VALUES),
            extra=(
                "No records to retrieve for your selected Reference Number (ABC123) "
                "and Serial Number (XYZ789)"
            ),
        )
        assert parse(html) == NoRecords(
            scope=NoRecordsScope.REF_AND_SERIAL, reference="ABC123", serial="XYZ789"
        )

    def test_reference_only_message_with_empty_table(self) -> None:
        html = _page(extra="No records to retrieve for your selected Reference Number (Q9)")
        assert parse(html) == NoRecords(scope=NoRecordsScope.REF_ONLY, reference="Q9")


# ─── Table detection ──────────────────────────────────────────────────────────


class TestResultsTableDetection:
    """Class tokens are matched by containment, not exact string equality."""

    def test_token_order_does_not_matter(self) -> None:
        html = _page(_row(_ROW_VALUES), table_class="table-striped table-hover table table-bordered")
        assert isinstance(parse(html), Records)

    def test_extra_class_tokens_are_allowed(self) -> None:
        html = _page(_row(_ROW_VALUES), table_class=f"results {_TABLE_CLASS} mt-3")
        assert isinstance(parse(html), Records)

    def test_missing_token_means_no_table(self) -> None:
        html = _page(_row(_ROW_VALUES), table_class="table table-bordered table-hover")
        assert parse(html) == Empty()

    def test_single_quoted_class_attribute(self) -> None:
        html = f"<table id='r' class='{_TABLE_CLASS}'>{_HEADER_ROW}{_row(_ROW_VALUES)}</table>"
        assert isinstance(parse(html), Records)

    def test_uppercase_tags_and_attribute(self) -> None:
        html = f'<TABLE CLASS="{_TABLE_CLASS}">{_HEADER_ROW}{_row(_ROW_VALUES)}</TABLE>'
        assert isinstance(parse(html), Records)

    def test_data_class_attribute_is_not_the_class(self) -> None:
        html = f'<table data-class="{_TABLE_CLASS}">{_HEADER_ROW}{_row(_ROW_VALUES)}</table>'
        assert find_results_table(html) is None

    def test_first_qualifying_table_is_used(self) -> None:
        layout = "<table class='layout'><tr><td>nav</td></tr></table>"
        html = layout + _page(_row(_ROW_VALUES))
        outcome = parse(html)
        assert isinstance(outcome, Records)
        assert outcome.records[0].application_type == "Competency"


# ─── Row extraction ───────────────────────────────────────────────────────────


class TestRowExtraction:
    """Header dropped, rows mapped positionally, short rows dropped."""

    def test_single_row_maps_all_nine_fields(self) -> None:
        outcome = parse(_page(_row(_ROW_VALUES)))
        assert outcome == Records(records=(FirearmRecord(*_ROW_VALUES),))
        record = outcome.records[0]
        assert record.application_number == "0001/2024"
        assert record.next_step == "Collect at station"

    def test_n_rows_yield_n_records_in_order(self) -> None:
        rows = [_row([f"{value}-{i}" for value in _ROW_VALUES]) for i in range(3)]
        outcome = parse(_page(*rows))
        assert isinstance(outcome, Records)
        assert [r.application_type for r in outcome.records] == [
            "Competency-0",
            "Competency-1",
            "Competency-2",
        ]

    def test_row_with_eight_cells_is_dropped(self) -> None:
        outcome = parse(_page(_row(_ROW_VALUES[:8]), _row(_ROW_VALUES)))
        assert isinstance(outcome, Records)
        assert len(outcome.records) == 1

    def test_only_short_rows_is_empty(self) -> None:
        assert parse(_page(_row(_ROW_VALUES[:8]))) == Empty()

    def test_header_only_table_is_empty(self) -> None:
        assert parse(_page()) == Empty()

    def test_extra_cells_beyond_nine_are_ignored(self) -> None:
        outcome = parse(_page(_row(_ROW_VALUES + ["surplus", "more"])))
        assert isinstance(outcome, Records)
        assert outcome.records[0] == FirearmRecord(*_ROW_VALUES)

    def test_th_cells_in_data_rows_are_counted(self) -> None:
        outcome = parse(_page(_row(_ROW_VALUES, tag="th")))
        assert isinstance(outcome, Records)
        assert outcome.records[0].calibre == "9mm"

    def test_multiline_rows_and_cells(self) -> None:
        row = "<tr>\n" + "".join(f"  <td>\n    {v}\n  </td>\n" for v in _ROW_VALUES) + "</tr>"
        outcome = parse(_page(row))
        assert isinstance(outcome, Records)
        assert outcome.records[0].status == "Approved"

    def test_rows_after_table_close_are_ignored(self) -> None:
        html = _page(_row(_ROW_VALUES)) + "<table>" + _row(_ROW_VALUES) + "</table>"
        outcome = parse(html)
        assert isinstance(outcome, Records)
        assert len(outcome.records) == 1

    def test_extract_rows_returns_all_rows_including_header(self) -> None:
        rows = extract_rows(_HEADER_ROW + _row(_ROW_VALUES))
        assert len(rows) == 2
        assert rows[0][0] == "Application Type"


# ─── Cell cleaning ────────────────────────────────────────────────────────────


class TestCellCleaning:
    """Markup stripped, exactly four entities decoded, whitespace trimmed."""

    def test_nested_markup_is_stripped(self) -> None:
        assert clean_cell('<span class="badge"><b>Approved</b></span>') == "Approved"

    def test_supported_entities_are_decoded(self) -> None:
        assert clean_cell("A&nbsp;&lt;B&gt;&amp;C") == "A <B>&C"

    def test_entities_decoded_case_insensitively(self) -> None:
        assert clean_cell("&NBSP;x&AMP;y") == "x&y"

    def test_other_entities_are_left_alone(self) -> None:
        assert clean_cell("&quot;R&eacute;f&#39;") == "&quot;R&eacute;f&#39;"

    def test_amp_is_decoded_last(self) -> None:
        assert clean_cell("&amp;lt;") == "&lt;"

    def test_whitespace_is_trimmed(self) -> None:
        assert clean_cell("  \n\t Glock&nbsp; ") == "Glock"

    def test_entities_flow_through_to_records(self) -> None:
        values = list(_ROW_VALUES)
        values[3] = "Smith &amp; Wesson"
        values[7] = "<em>Awaiting&nbsp;DFO</em>"
        outcome = parse(_page(_row(values)))
        assert isinstance(outcome, Records)
        assert outcome.records[0].make == "Smith & Wesson"
        assert outcome.records[0].status_description == "Awaiting DFO"


# ─── Purity & record helpers ──────────────────────────────────────────────────


class TestPurity:
    def test_parse_is_idempotent(self) -> None:
        html = _page(_row(_ROW_VALUES), _row(_ROW_VALUES[::-1]))
        assert parse(html) == parse(html)


class TestFirearmRecord:
    def test_to_dict_uses_camel_case_keys(self) -> None:
        data = FirearmRecord(*_ROW_VALUES).to_dict()
        assert list(data) == [
            "applicationType",
            "applicationNumber",
            "calibre",
            "make",
            "serialNumber",
            "statusDate",
            "status",
            "statusDescription",
            "nextStep",
        ]
        assert data["serialNumber"] == "ABC123"

    def test_from_dict_restores_record_and_defaults_missing(self) -> None:
        record = FirearmRecord.from_dict({"applicationType": "Licence", "extra": "x"})
        assert record.application_type == "Licence"
        assert record.next_step == ""

    def test_record_fields_order(self) -> None:
        assert RECORD_FIELDS[0] == "application_type"
        assert RECORD_FIELDS[-1] == "next_step"
        assert len(RECORD_FIELDS) == 9
