"""
Excel export of rollup snapshots and delta reports.
"""

from datetime import timedelta
from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import load_workbook

from progress_kernel.domain.dimensions import DimensionType
from progress_services.export import (
    _sanitize_sheet_name,
    delta_row_to_dict,
    export_delta_to_excel,
    export_rollup_to_excel,
)


@pytest.fixture
def populated(make_dimension, make_item, record_at, clock):
    area = make_dimension(DimensionType.AREA, "A100", "Area 100")
    item = make_item("spool", "10", area=area.dimension_value_id)
    record_at(item.item_id, "Receive", True, clock.now())
    record_at(item.item_id, "Erect", True, clock.now() + timedelta(hours=1))
    loose = make_item("valve", "3")
    record_at(loose.item_id, "Install", True, clock.now() + timedelta(hours=2))
    return area


def _rows(sheet):
    return [list(row) for row in sheet.iter_rows(values_only=True)]


class TestDeltaWorkbook:
    def test_sheets_and_rows(self, reporting, populated, project_id, clock):
        report = reporting.get_dimension_delta(
            project_id, "area", clock.now(), clock.now() + timedelta(days=1)
        )
        content = export_delta_to_excel(report, generated_at=clock.now())

        wb = load_workbook(BytesIO(content))
        assert wb.sheetnames == ["Report Info", "Delta", "Discrepancies", "Untracked"]

        rows = _rows(wb["Delta"])
        header = rows[0]
        assert header[:6] == [
            "Code",
            "Name",
            "Items With Activity",
            "Budgeted Hours",
            "Delta Earned Hours",
            "Delta %",
        ]
        assert [r[1] for r in rows[1:]] == ["Area 100", "Not Assigned", "Total"]
        earned = header.index("Delta Earned Hours")
        assert rows[1][earned] == pytest.approx(4.5)
        # valve Install 60% of 3h
        assert rows[2][earned] == pytest.approx(1.8)
        assert rows[3][earned] == pytest.approx(6.3)
        assert "Receive Delta" in header

    def test_empty_sections_say_so(self, reporting, populated, project_id, clock):
        report = reporting.get_dimension_delta(
            project_id, "area", clock.now(), clock.now() + timedelta(days=1)
        )
        wb = load_workbook(BytesIO(export_delta_to_excel(report, generated_at=clock.now())))
        assert wb["Discrepancies"]["A1"].value == "No data available"
        assert wb["Untracked"]["A1"].value == "No data available"

    def test_info_sheet_has_window(self, reporting, populated, project_id, clock):
        start, end = clock.now(), clock.now() + timedelta(days=1)
        report = reporting.get_dimension_delta(project_id, "area", start, end)
        info = load_workbook(BytesIO(export_delta_to_excel(report, generated_at=clock.now())))[
            "Report Info"
        ]
        values = {row[0]: row[1] for row in info.iter_rows(min_row=3, values_only=True)}
        assert values["Project:"] == str(project_id)
        assert values["Window start:"] == start.isoformat()

    def test_row_dict_rounds_at_the_edge(self, reporting, populated, project_id, clock):
        report = reporting.get_dimension_delta(
            project_id, "area", clock.now(), clock.now() + timedelta(days=1)
        )
        record = delta_row_to_dict(report.totals, hours_places=1)
        assert record["Delta Earned Hours"] == Decimal("6.3")
        assert record["Name"] == "Total"


class TestRollupWorkbook:
    def test_rollup_sheet(self, reporting, populated, project_id, clock):
        snapshot = reporting.get_rollup_snapshot(project_id, "area")
        wb = load_workbook(BytesIO(export_rollup_to_excel(snapshot, generated_at=clock.now())))

        assert wb.sheetnames == ["Report Info", "Rollup"]
        rows = _rows(wb["Rollup"])
        assert rows[1][0] == "A100"
        assert rows[-1][1] == "Total"
        assert rows[-1][rows[0].index("Budgeted Hours")] == pytest.approx(13)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Delta", "Delta"),
        ("Area [North]/East", "Area -North--East"),
        ("x" * 40, "x" * 31),
        ("  ", "Sheet"),
    ],
)
def test_sheet_names_sanitized(name, expected):
    assert _sanitize_sheet_name(name) == expected
