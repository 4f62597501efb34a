"""
Export of rollup snapshots and delta reports to Excel workbooks.

Figures are rounded here, at the edge, with ``round_hours`` and
``round_percent``; everything upstream carries full precision.
"""

from __future__ import annotations

import io
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from progress_kernel.domain.dtos import DeltaReport, DeltaRow, RollupRow, RollupSnapshot
from progress_kernel.domain.quantities import HOURS_DECIMAL_PLACES, round_hours, round_percent
from progress_kernel.domain.schedule import CATEGORIES
from progress_kernel.logging_config import get_logger

logger = get_logger("services.export")


def _sanitize_sheet_name(name: str) -> str:
    """Excel sheet names: no []:*?/\\ and at most 31 characters."""
    safe = "".join("-" if ch in "[]:*?/\\" else ch for ch in name).strip()
    return (safe or "Sheet")[:31]


def _category_title(category) -> str:
    return category.value.capitalize()


def rollup_row_to_dict(row: RollupRow, hours_places: int = HOURS_DECIMAL_PLACES) -> dict[str, Any]:
    record: dict[str, Any] = {
        "Code": row.code or "",
        "Name": row.label,
        "Items": row.item_count,
        "Budgeted Hours": round_hours(row.budgeted_hours, hours_places),
        "Earned Hours": round_hours(row.earned_hours, hours_places),
        "% Complete": round_percent(row.percent_complete),
    }
    for category in CATEGORIES:
        record[f"{_category_title(category)} Earned"] = round_hours(
            row.category_earned_hours[category], hours_places
        )
    return record


def delta_row_to_dict(row: DeltaRow, hours_places: int = HOURS_DECIMAL_PLACES) -> dict[str, Any]:
    record: dict[str, Any] = {
        "Code": row.code or "",
        "Name": row.label,
        "Items With Activity": row.items_with_activity,
        "Budgeted Hours": round_hours(row.budgeted_hours, hours_places),
        "Delta Earned Hours": round_hours(row.delta_earned_hours, hours_places),
        "Delta %": round_percent(row.delta_percent),
    }
    for category in CATEGORIES:
        title = _category_title(category)
        record[f"{title} Budget"] = round_hours(row.category_budgeted_hours[category], hours_places)
        record[f"{title} Delta"] = round_hours(row.category_delta_hours[category], hours_places)
        record[f"{title} Delta %"] = round_percent(row.category_delta_percent[category])
    return record


class ProgressWorkbook:
    """Excel workbook with an info sheet and styled tabular sheets."""

    def __init__(self, title: str, project_id: str, generated_at: datetime):
        self.wb = Workbook()
        self.title = title
        self.project_id = project_id
        self.generated_at = generated_at

        if "Sheet" in self.wb.sheetnames:
            self.wb.remove(self.wb["Sheet"])

        self.header_fill = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")
        self.header_font = Font(bold=True, color="FFFFFF")
        self.total_font = Font(bold=True)
        self.border = Border(
            left=Side(style="thin"),
            right=Side(style="thin"),
            top=Side(style="thin"),
            bottom=Side(style="thin"),
        )

    def add_info_sheet(self, details: Sequence[tuple[str, str]] = ()) -> None:
        ws = self.wb.create_sheet(_sanitize_sheet_name("Report Info"), 0)
        ws["A1"] = self.title
        ws["A1"].font = Font(bold=True, size=14)

        lines = [("Project:", self.project_id), ("Generated:", self.generated_at.isoformat())]
        lines.extend(details)
        for offset, (label, value) in enumerate(lines, start=3):
            ws.cell(row=offset, column=1, value=label).font = Font(bold=True)
            ws.cell(row=offset, column=2, value=value)

        ws.column_dimensions["A"].width = 20
        ws.column_dimensions["B"].width = 40

    def add_table_sheet(
        self,
        name: str,
        records: Sequence[dict[str, Any]],
        totals: dict[str, Any] | None = None,
    ) -> None:
        """One header row, one row per record, and an optional bold totals row."""
        ws = self.wb.create_sheet(_sanitize_sheet_name(name))
        if not records and totals is None:
            ws["A1"] = "No data available"
            return

        headers = list((records[0] if records else totals).keys())
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.fill = self.header_fill
            cell.font = self.header_font
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = self.border

        rows = list(records) + ([totals] if totals is not None else [])
        for row_idx, record in enumerate(rows, start=2):
            for col_idx, header in enumerate(headers, start=1):
                cell = ws.cell(row=row_idx, column=col_idx, value=record.get(header, ""))
                cell.border = self.border
                if isinstance(record.get(header), (Decimal, int)):
                    cell.alignment = Alignment(horizontal="right")
            if totals is not None and record is totals:
                for col_idx in range(1, len(headers) + 1):
                    ws.cell(row=row_idx, column=col_idx).font = self.total_font

        for col_idx, header in enumerate(headers, start=1):
            ws.column_dimensions[get_column_letter(col_idx)].width = max(14, len(header) + 2)
        ws.freeze_panes = "A2"

    def save(self) -> bytes:
        buffer = io.BytesIO()
        self.wb.save(buffer)
        buffer.seek(0)
        return buffer.getvalue()


def export_rollup_to_excel(
    snapshot: RollupSnapshot,
    generated_at: datetime,
    hours_places: int = HOURS_DECIMAL_PLACES,
) -> bytes:
    """Workbook bytes for one rollup snapshot."""
    workbook = ProgressWorkbook(
        f"Progress by {snapshot.dimension.value}", str(snapshot.project_id), generated_at
    )
    workbook.add_info_sheet(
        [("As of:", snapshot.as_of.isoformat() if snapshot.as_of else "")]
    )
    workbook.add_table_sheet(
        "Rollup",
        [rollup_row_to_dict(row, hours_places) for row in snapshot.rows],
        totals=rollup_row_to_dict(snapshot.totals, hours_places),
    )
    logger.info(
        "rollup_exported",
        extra={"project_id": str(snapshot.project_id), "rows": len(snapshot.rows)},
    )
    return workbook.save()


def export_delta_to_excel(
    report: DeltaReport,
    generated_at: datetime,
    hours_places: int = HOURS_DECIMAL_PLACES,
) -> bytes:
    """
    Workbook bytes for one delta report: the delta table, the
    cross-check discrepancies and the untracked-progress items.
    """
    workbook = ProgressWorkbook(
        f"Earned hours delta by {report.dimension.value}", str(report.project_id), generated_at
    )
    workbook.add_info_sheet(
        [
            ("Window start:", report.window_start.isoformat()),
            ("Window end:", report.window_end.isoformat()),
            ("Unknown milestones:", ", ".join(report.unknown_milestones)),
        ]
    )
    workbook.add_table_sheet(
        "Delta",
        [delta_row_to_dict(row, hours_places) for row in report.rows],
        totals=delta_row_to_dict(report.totals, hours_places),
    )
    workbook.add_table_sheet(
        "Discrepancies",
        [
            {
                "Item": str(check.item_id),
                "Delta Earned Hours": round_hours(check.delta_earned_hours, hours_places),
                "% At Window End": round_percent(check.percent_at_window_end),
                "Replayed %": round_percent(check.replayed_percent),
                "Cached %": round_percent(check.cached_percent),
            }
            for check in report.discrepancies
        ],
    )
    workbook.add_table_sheet(
        "Untracked",
        [
            {
                "Item": str(item.item_id),
                "Item Type": item.item_type,
                "Cached %": round_percent(item.cached_percent),
                "Cached Earned Hours": round_hours(item.cached_earned_hours, hours_places),
            }
            for item in report.untracked
        ],
    )
    logger.info(
        "delta_exported",
        extra={
            "project_id": str(report.project_id),
            "rows": len(report.rows),
            "untracked": len(report.untracked),
        },
    )
    return workbook.save()
