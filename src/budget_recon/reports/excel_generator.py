"""
Excel export of import batches for audit.
Creates one workbook per batch with formatted sheets.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig
from ..models.reconciliation import ImportBatch, MatchType
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
MATCH_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
PROBABLE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
DUPLICATE_FILL = PatternFill(start_color="D9D9D9", end_color="D9D9D9", fill_type="solid")
ERROR_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

MATCH_TYPE_FILLS = {
    MatchType.EXACT: MATCH_FILL,
    MatchType.PROBABLE: PROBABLE_FILL,
    MatchType.DUPLICATE: DUPLICATE_FILL,
}


class ExcelReportGenerator:
    """Writes an import batch (rows, verdicts, candidates, errors) to a workbook."""

    def __init__(self, config: ReconConfig):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.output_config = config.output.excel
        self.sheet_config = config.output.sheets

    def default_filename(self, batch: ImportBatch) -> str:
        return self.output_config.filename_template.format(
            batch=batch.id[:8], date=datetime.now().strftime("%Y%m%d_%H%M%S")
        )

    def generate_report(self, batch: ImportBatch, output_path: Path) -> Path:
        """
        Generate the batch report.

        Args:
            batch: Import batch to export
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        if self.sheet_config.summary.enabled:
            self._create_summary_sheet(wb, batch)
        if self.sheet_config.rows.enabled:
            self._create_rows_sheet(wb, batch)
        if self.sheet_config.candidates.enabled:
            self._create_candidates_sheet(wb, batch)
        if self.sheet_config.errors.enabled:
            self._create_errors_sheet(wb, batch)

        # An empty workbook cannot be saved
        if not wb.sheetnames:
            wb.create_sheet(self.sheet_config.summary.name)

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Cannot write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_summary_sheet(self, wb: Workbook, batch: ImportBatch) -> None:
        ws = wb.create_sheet(self.sheet_config.summary.name)

        ws["A1"] = "Statement Import Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "Batch Information"
        ws["A3"].font = Font(bold=True)

        batch_info = [
            ("Batch ID:", batch.id),
            ("Account:", batch.account_id),
            ("File:", batch.filename or ""),
            ("Status:", batch.status.value),
            ("Created:", _format_timestamp(batch.created_at)),
            ("Confirmed:", _format_timestamp(batch.confirmed_at)),
        ]
        row = 4
        for label, value in batch_info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        row += 1
        ws[f"A{row}"] = "Row Counts"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1

        summary = batch.summary
        count_data = [
            ("Total Rows:", summary["total"]),
            ("New:", summary["new"]),
            ("Matches:", summary["matches"]),
            ("Duplicates:", summary["duplicates"]),
            ("Parse Errors:", summary["parse_errors"]),
            ("Matched Count:", batch.matched_count),
        ]
        for label, value in count_data:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        if batch.cards_detected:
            row += 1
            ws[f"A{row}"] = "Cards Detected"
            ws[f"A{row}"].font = Font(bold=True)
            row += 1
            for suffix, count in sorted(batch.cards_detected.items()):
                ws[f"A{row}"] = f"CB*{suffix}"
                ws[f"B{row}"] = count
                row += 1

        if batch.error_message:
            row += 1
            ws[f"A{row}"] = "Failure:"
            ws[f"B{row}"] = batch.error_message
            ws[f"B{row}"].fill = ERROR_FILL

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 45

    def _create_rows_sheet(self, wb: Workbook, batch: ImportBatch) -> None:
        ws = wb.create_sheet(self.sheet_config.rows.name)
        headers = [
            "Row",
            "Line",
            "Date",
            "Amount",
            "Description",
            "Card",
            "Check Number",
            "Match Type",
            "Action",
            "Score",
            "Matched Transaction",
            "Suggested Payee",
        ]
        self._write_header(ws, headers)

        for row_num, item in enumerate(batch.effective_rows(), start=2):
            result = batch.results[item.row_index]
            row_data = [
                item.row_index,
                item.row.line or "",
                item.row.date,
                float(item.row.amount),
                item.description,
                item.row.card_suffix or "",
                item.row.check_number or "",
                result.match_type.value,
                item.action.value,
                result.score if result.score is not None else "",
                item.matched_transaction_id or result.duplicate_of or "",
                result.suggested_payee_name or result.suggested_payee_id or "",
            ]
            fill = MATCH_TYPE_FILLS.get(result.match_type)
            self._write_row(ws, row_num, row_data, fill)

        self._auto_fit_columns(ws)

    def _create_candidates_sheet(self, wb: Workbook, batch: ImportBatch) -> None:
        ws = wb.create_sheet(self.sheet_config.candidates.name)
        headers = [
            "Row",
            "Row Date",
            "Row Amount",
            "Candidate ID",
            "Candidate Date",
            "Candidate Amount",
            "Candidate Description",
            "Payee",
            "Days Apart",
            "Score",
            "Selected",
        ]
        self._write_header(ws, headers)

        row_num = 2
        for row, result in zip(batch.rows, batch.results):
            for candidate in result.candidates:
                selected = candidate.id == result.matched_transaction_id
                row_data = [
                    result.row_index,
                    row.date,
                    float(row.amount),
                    candidate.id,
                    candidate.date,
                    float(candidate.amount),
                    candidate.description,
                    candidate.payee_name or "",
                    candidate.date_distance(row.date),
                    candidate.score if candidate.score is not None else "",
                    "yes" if selected else "",
                ]
                self._write_row(ws, row_num, row_data, MATCH_FILL if selected else None)
                row_num += 1

        self._auto_fit_columns(ws)

    def _create_errors_sheet(self, wb: Workbook, batch: ImportBatch) -> None:
        ws = wb.create_sheet(self.sheet_config.errors.name)
        self._write_header(ws, ["Stage", "Row / Line", "Error"])

        entries = [("parse", issue) for issue in batch.parse_errors]
        entries += [("confirm", issue) for issue in batch.error_details]
        for row_num, (stage, issue) in enumerate(entries, start=2):
            self._write_row(ws, row_num, [stage, issue.row_index, issue.message], ERROR_FILL)

        self._auto_fit_columns(ws)

    @staticmethod
    def _write_header(ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    @staticmethod
    def _write_row(
        ws: Worksheet, row_num: int, values: list[Any], fill: Optional[PatternFill] = None
    ) -> None:
        for col, value in enumerate(values, start=1):
            cell = ws.cell(row=row_num, column=col, value=value)
            cell.border = THIN_BORDER
            if fill is not None:
                cell.fill = fill

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            column = column_cells[0].column_letter
            max_length = max((len(str(c.value)) for c in column_cells if c.value is not None), default=0)
            ws.column_dimensions[column].width = min(max_length + 2, 50)


def _format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else ""
