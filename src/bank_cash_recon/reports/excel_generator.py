"""
Excel report generator for reconciliation and conference results.
Creates multi-sheet workbooks with formatted output.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig
from ..models.record import ConferenceEvent, ConferenceOutcome, ConferredItem, Record
from ..models.reconciliation import MatchType, ReconciliationReport, Severity
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
MATCH_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
VARIANCE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
MONEY_FORMAT = "#,##0.00"

RECORD_HEADERS = ["Source", "Record ID", "Date", "Payment Type", "Identifier", "Amount", "Text"]


class ExcelReportGenerator:
    """Generates Excel workbooks for reconciliation reports and conference sessions."""

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config or ReconConfig()
        self.sheet_names = self.config.output.sheets

    def generate_report(self, report: ReconciliationReport, output_path: Path) -> Path:
        """
        Generate the complete reconciliation workbook.

        Args:
            report: Result of a reconciliation run
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = self._new_workbook()
        self._create_summary_sheet(wb, report)
        self._create_matches_sheet(wb, report)
        self._create_discrepancies_sheet(wb, report)
        self._create_unmatched_sheet(wb, report.unmatched)

        return self._save(wb, output_path)

    def generate_conference_report(
        self,
        items: Iterable[ConferredItem],
        events: Iterable[ConferenceEvent],
        output_path: Path,
    ) -> Path:
        """
        Export a conference session: confirmed items and the audit trail.

        Args:
            items: Live conferred items
            events: Conference events in emission order
            output_path: Path for output file

        Returns:
            Path to generated report
        """
        logger.info(f"Generating conference report: {output_path}")

        wb = self._new_workbook()
        self._create_conferred_sheet(wb, list(items))
        self._create_events_sheet(wb, list(events))

        return self._save(wb, output_path)

    @staticmethod
    def _new_workbook() -> Workbook:
        wb = Workbook()
        # Remove default sheet
        if wb.active:
            wb.remove(wb.active)
        return wb

    def _save(self, wb: Workbook, output_path: Path) -> Path:
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            logger.error(f"Failed to save report: {e}")
            raise ReportGenerationError(f"Failed to save report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_summary_sheet(self, wb: Workbook, report: ReconciliationReport) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(self.sheet_names.summary)
        summary = report.summary

        ws["A1"] = "Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        period = (
            f"{report.period_start} to {report.period_end}"
            if report.period_start
            else "No records"
        )
        info = [
            ("Report ID:", report.id),
            ("Generated At:", report.generated_at.strftime("%Y-%m-%d %H:%M:%S")),
            ("Statement Period:", period),
            ("Processing Time:", f"{report.processing_time_seconds:.2f} seconds"),
        ]
        row = self._write_section(ws, 3, "Run Information", info)

        sources = [(f"{source_id}:", count) for source_id, count in report.source_record_counts.items()]
        row = self._write_section(ws, row + 1, "Records per Source", sources)

        counts = [
            ("Total Records:", summary.total_records),
            ("Matched Records:", summary.matched_records),
            ("Unmatched Records:", summary.unmatched_records),
            ("Conflicting Records:", summary.conflicting_records),
            ("Match Rate:", f"{summary.match_rate:.1f}%"),
        ]
        row = self._write_section(ws, row + 1, "Record Counts", counts)

        values = [
            ("Total Value:", summary.total_value),
            ("Matched Value:", summary.matched_value),
            ("Unmatched Value:", summary.unmatched_value),
        ]
        row = self._write_section(ws, row + 1, "Values", values)

        by_type = [(f"{name}:", count) for name, count in summary.matches_by_type.items()]
        row = self._write_section(ws, row + 1, "Matches by Type", by_type)

        bands = [(f"{band}:", count) for band, count in summary.confidence_distribution.items()]
        self._write_section(ws, row + 1, "Confidence Distribution", bands)

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_matches_sheet(self, wb: Workbook, report: ReconciliationReport) -> None:
        """One row per participant, grouped by match."""
        ws = wb.create_sheet(self.sheet_names.matches)
        headers = ["Match ID", "Type", "Confidence", "Resolution"] + RECORD_HEADERS + [
            "Matching Fields"
        ]
        self._write_headers(ws, headers)

        row = 2
        for match in report.matches:
            if match.has_discrepancies:
                fill = VARIANCE_FILL
            elif match.match_type in (MatchType.EXACT, MatchType.MANUAL):
                fill = MATCH_FILL
            else:
                fill = None

            for participant in match.participants:
                values = [
                    match.id,
                    match.match_type.value,
                    float(match.confidence),
                    match.resolution.action.value if match.resolution else "",
                    *self._record_values(participant.record),
                    ", ".join(participant.matching_fields),
                ]
                self._write_row(ws, row, values, fill)
                row += 1

        self._auto_fit_columns(ws)

    def _create_discrepancies_sheet(self, wb: Workbook, report: ReconciliationReport) -> None:
        ws = wb.create_sheet(self.sheet_names.discrepancies)
        self._write_headers(ws, ["Match ID", "Field", "Severity", "Values", "Reason"])

        row = 2
        for match in report.matches:
            for discrepancy in match.discrepancies:
                values_text = "; ".join(
                    f"{source}={value}" for source, value in discrepancy.values_by_source.items()
                )
                fill = UNMATCHED_FILL if discrepancy.severity == Severity.HIGH else VARIANCE_FILL
                self._write_row(
                    ws,
                    row,
                    [
                        match.id,
                        discrepancy.field,
                        discrepancy.severity.value,
                        values_text,
                        discrepancy.reason,
                    ],
                    fill,
                )
                row += 1

        self._auto_fit_columns(ws)

    def _create_unmatched_sheet(self, wb: Workbook, records: Iterable[Record]) -> None:
        ws = wb.create_sheet(self.sheet_names.unmatched)
        self._write_headers(ws, RECORD_HEADERS)

        for row, record in enumerate(records, start=2):
            self._write_row(ws, row, self._record_values(record), UNMATCHED_FILL)

        self._auto_fit_columns(ws)

    def _create_conferred_sheet(self, wb: Workbook, items: list[ConferredItem]) -> None:
        ws = wb.create_sheet(self.sheet_names.conferred)
        self._write_headers(ws, ["Conferred ID", "Conferred At"] + RECORD_HEADERS)

        for row, item in enumerate(items, start=2):
            values = [
                item.conferred_id,
                item.conferred_at.strftime("%Y-%m-%d %H:%M:%S"),
                *self._record_values(item.record),
            ]
            self._write_row(ws, row, values, MATCH_FILL)

        total_row = len(items) + 2
        ws.cell(row=total_row, column=1, value="Total").font = Font(bold=True)
        total = ws.cell(
            row=total_row,
            column=2 + RECORD_HEADERS.index("Amount") + 1,
            value=sum((item.record.amount for item in items), Decimal("0.00")),
        )
        total.font = Font(bold=True)
        total.number_format = MONEY_FORMAT

        self._auto_fit_columns(ws)

    def _create_events_sheet(self, wb: Workbook, events: list[ConferenceEvent]) -> None:
        """Create the audit trail sheet."""
        ws = wb.create_sheet(self.sheet_names.events)

        ws["A1"] = "Conference Audit Trail"
        ws["A1"].font = Font(size=14, bold=True)
        ws["A2"] = f"Generated At: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"

        headers = ["Timestamp", "Outcome", "Record", "Typed Value", "Amount", "Conferred ID"]
        self._write_headers(ws, headers, row=4)

        fills = {
            ConferenceOutcome.MATCHED: MATCH_FILL,
            ConferenceOutcome.NOT_FOUND: UNMATCHED_FILL,
            ConferenceOutcome.ALREADY_CONFERRED: VARIANCE_FILL,
        }
        for row, event in enumerate(events, start=5):
            values = [
                event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                event.outcome.value,
                event.record_ref or "",
                event.query_value or "",
                event.amount if event.amount is not None else "",
                event.conferred_id or "",
            ]
            self._write_row(ws, row, values, fills[event.outcome])

        self._auto_fit_columns(ws)

    @staticmethod
    def _record_values(record: Record) -> list[Any]:
        return [
            record.source_id,
            record.record_id,
            record.date,
            record.payment_type,
            record.identifier or "",
            record.amount,
            record.original_text,
        ]

    @staticmethod
    def _write_section(
        ws: Worksheet, start_row: int, title: str, rows: list[tuple[str, Any]]
    ) -> int:
        """Write a bold title followed by label/value rows; returns the next free row."""
        ws[f"A{start_row}"] = title
        ws[f"A{start_row}"].font = Font(bold=True)

        row = start_row + 1
        for label, value in rows:
            ws[f"A{row}"] = label
            cell = ws[f"B{row}"]
            cell.value = value
            if isinstance(value, Decimal):
                cell.number_format = MONEY_FORMAT
            row += 1
        return row

    @staticmethod
    def _write_headers(ws: Worksheet, headers: list[str], row: int = 1) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    @staticmethod
    def _write_row(
        ws: Worksheet, row: int, values: list[Any], fill: Optional[PatternFill] = None
    ) -> None:
        for col, value in enumerate(values, start=1):
            cell = ws.cell(row=row, column=col, value=value)
            cell.border = THIN_BORDER
            if isinstance(value, Decimal):
                cell.number_format = MONEY_FORMAT
            if fill is not None:
                cell.fill = fill

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            lengths = [len(str(cell.value)) for cell in column_cells if cell.value is not None]
            column = column_cells[0].column_letter
            ws.column_dimensions[column].width = min(max(lengths, default=0) + 2, 50)
