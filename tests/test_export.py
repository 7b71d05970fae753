"""Tests for CSV / XLSX export and filename construction."""

import csv
import io
from datetime import datetime

import pytest
from openpyxl import load_workbook

from market_core.errors import DatasetNotFoundError, ExportSerializationError
from market_core.export import (
    COMPANY_COLUMNS,
    CSV_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    ColumnDef,
    build_filename,
    build_filter_suffix,
    export_rows,
    format_timestamp,
    sanitize_filename,
    select_rows,
    to_csv,
    to_xlsx,
)
from market_core.datasets import export_dataset, unique_row_ids
from market_core.filters import FilterState
from market_core.metrics_market import load_equipment


NOW = datetime(2025, 3, 4, 5, 6, 7)

COLUMNS = (
    ColumnDef("id", "ID"),
    ColumnDef("name", "Name"),
    ColumnDef("note", "Note"),
    ColumnDef("tags", "Tags"),
    ColumnDef("score", "Score x2", map=lambda r: (r.get("score") or 0) * 2),
)

ROWS = [
    {"id": "1", "name": 'Acme, "The" Printers', "note": "line one\nline two", "tags": ["metal", "polymer"], "score": 3},
    {"id": "2", "name": "Plain", "note": None, "tags": [], "score": None},
    {"id": "3", "name": "Third", "note": "ok", "tags": ("x",), "score": 1.5},
]


class TestCsv:
    def test_round_trip(self) -> None:
        parsed = list(csv.reader(io.StringIO(to_csv(ROWS, COLUMNS))))
        assert parsed[0] == ["ID", "Name", "Note", "Tags", "Score x2"]
        assert parsed[1] == ["1", 'Acme, "The" Printers', "line one\nline two", "metal; polymer", "6"]
        assert parsed[2] == ["2", "Plain", "", "", "0"]
        assert parsed[3][4] == "3.0"
        assert len(parsed) == len(ROWS) + 1

    def test_quotes_are_doubled(self) -> None:
        text = to_csv(ROWS[:1], COLUMNS)
        assert '"Acme, ""The"" Printers"' in text

    def test_zero_rows_is_header_only(self) -> None:
        assert to_csv([], COLUMNS).strip() == "ID,Name,Note,Tags,Score x2"


class TestXlsx:
    def test_single_sheet_with_header(self) -> None:
        content = to_xlsx(ROWS, COLUMNS, sheet_name="Companies")
        wb = load_workbook(io.BytesIO(content))
        assert wb.sheetnames == ["Companies"]
        values = list(wb.active.iter_rows(values_only=True))
        assert values[0] == ("ID", "Name", "Note", "Tags", "Score x2")
        assert values[1][1] == 'Acme, "The" Printers'
        assert values[1][4] == 6
        assert values[2][2] is None
        assert len(values) == 4

    def test_zero_rows(self) -> None:
        wb = load_workbook(io.BytesIO(to_xlsx([], COLUMNS)))
        assert list(wb.active.iter_rows(values_only=True)) == [("ID", "Name", "Note", "Tags", "Score x2")]

    def test_invalid_sheet_name(self) -> None:
        with pytest.raises(ExportSerializationError):
            to_xlsx(ROWS, COLUMNS, sheet_name="bad/name")


class TestFilenames:
    def test_timestamp(self) -> None:
        assert format_timestamp(NOW) == "2025-03-04_050607"

    @pytest.mark.parametrize(
        "raw, expected",
        [("AM companies!", "AM-companies"), ("--a//b--", "a-b"), ("ok_name-1", "ok_name-1"), ("???", "export"), ("", "export")],
    )
    def test_sanitize(self, raw, expected) -> None:
        assert sanitize_filename(raw) == expected

    def test_no_suffix_without_filters(self) -> None:
        assert build_filter_suffix(FilterState(), {}) == ""
        assert build_filename("companies", "csv", FilterState(), now=NOW) == "companies_2025-03-04_050607.csv"

    def test_suffix_counts(self) -> None:
        filters = FilterState(countries=("Germany", "Japan"), process_categories=("Cold Spray",), vendor_printer_models=("X2",))
        suffix = build_filter_suffix(filters, {"view": "map", "skip": None, "blank": ""})
        assert suffix == "_filters_proc-1_ctry-2_vmodel-1_view-map"

    def test_deterministic(self) -> None:
        filters = FilterState(technology_ids=("t1",), material_ids=("m1", "m2"))
        a = build_filename("equipment", "xlsx", filters, {"rows": 3}, now=NOW)
        b = build_filename("equipment", "xlsx", filters, {"rows": 3}, now=NOW)
        assert a == b == "equipment_2025-03-04_050607_filters_tech-1_mat-2_rows-3.xlsx"


class TestSelection:
    def test_select_rows(self) -> None:
        assert [r["id"] for r in select_rows(ROWS, ["3", "1"])] == ["1", "3"]
        assert select_rows(ROWS, []) == ROWS
        assert select_rows(ROWS, None) == ROWS

    def test_export_selected(self) -> None:
        out = export_rows(ROWS, COLUMNS, "companies", "csv", selected_ids=["2", "3"], now=NOW)
        parsed = list(csv.reader(io.StringIO(out.content.decode("utf-8"))))
        assert len(parsed) == 3
        assert out.filename == "companies_2025-03-04_050607_filters_selected-2_rows-2.csv"
        assert out.media_type == CSV_MEDIA_TYPE

    def test_export_all_when_nothing_selected(self) -> None:
        out = export_rows(ROWS, COLUMNS, "companies", "xlsx", now=NOW)
        assert out.filename == "companies_2025-03-04_050607_filters_rows-3.xlsx"
        assert out.media_type == XLSX_MEDIA_TYPE

    def test_unsupported_format(self) -> None:
        with pytest.raises(ExportSerializationError):
            export_rows(ROWS, COLUMNS, "companies", "pdf", now=NOW)


class TestExportDataset:
    def test_companies_filtered_by_country(self, frame_source) -> None:
        out = export_dataset(frame_source, "companies", "csv", filters=FilterState(countries=("usa",)), now=NOW)
        parsed = list(csv.reader(io.StringIO(out.content.decode("utf-8"))))
        assert parsed[0] == [c.header for c in COMPANY_COLUMNS]
        assert {row[0] for row in parsed[1:]} == {"Apex Additive", "Beacon Printworks"}
        assert out.filename == "am-companies_2025-03-04_050607_filters_ctry-1_rows-2.csv"

    def test_equipment_by_segment(self, frame_source) -> None:
        out = export_dataset(frame_source, "equipment", "xlsx", segment="System manufacturer", now=NOW)
        rows = list(load_workbook(io.BytesIO(out.content)).active.iter_rows(values_only=True))
        assert [r[0] for r in rows[1:]] == ["Cobalt Systems", "Ember Forge"]
        assert rows[1][3] == "PBF-LB (Metal)"
        assert rows[2][1] == "Netherlands"

    def test_market_selection_of_k_ids_gives_k_rows(self, frame_source) -> None:
        selected = ["2024|Printing services|United States|", "2023|Printing services|United States|"]
        out = export_dataset(frame_source, "market", "csv", selected_ids=selected, now=NOW)
        parsed = list(csv.reader(io.StringIO(out.content.decode("utf-8"))))
        assert [(r[0], r[2]) for r in parsed[1:]] == [("2024", "United States"), ("2023", "United States")]
        assert out.filename.endswith("_filters_selected-2_rows-2.csv")

    def test_market_country_name_is_not_a_row_id(self, frame_source) -> None:
        out = export_dataset(frame_source, "market", "csv", selected_ids=["United States"], now=NOW)
        assert out.filename.endswith("_filters_selected-1_rows-0.csv")

    def test_equipment_selection_of_k_ids_gives_k_rows(self, frame_source) -> None:
        rows = load_equipment(frame_source, segment="Printing services")
        selected = [rows[0].row_id]
        out = export_dataset(frame_source, "equipment", "csv", segment="Printing services", selected_ids=selected, now=NOW)
        parsed = list(csv.reader(io.StringIO(out.content.decode("utf-8"))))
        assert [r[0] for r in parsed[1:]] == [rows[0].company_name]

    def test_repeated_ids_get_suffixes(self) -> None:
        rows = unique_row_ids([{"id": "a"}, {"id": "b"}, {"id": "a"}, {"id": "a"}])
        assert [r["id"] for r in rows] == ["a", "b", "a#2", "a#3"]

    def test_unknown_dataset(self, frame_source) -> None:
        with pytest.raises(DatasetNotFoundError):
            export_dataset(frame_source, "invoices")
