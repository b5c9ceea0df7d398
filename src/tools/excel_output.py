"""
P&L Workbook Export

Writes assembled reports to a styled Excel workbook, one block per report
node on a single sheet, using the same rows as the HTML renderer.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Union

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from config.report_styles import ReportStyle, get_report_style
from src.reports.models import AssemblyResult, ReportHeader
from src.tools.formatter import DASH, PercentageCalculator
from src.tools.report_renderer import COLUMN_HEADERS, RenderedReport, RenderedRow, ReportRenderer

logger = logging.getLogger(__name__)

# Sheet columns holding amounts vs percentages (1-based, label is column 1)
AMOUNT_COLUMNS = [2, 4, 6, 8, 10, 12]
PERCENT_COLUMNS = [3, 5, 9, 11]


@dataclass
class ExcelOutput:
    """Container for Excel output."""
    file_path: str
    report_count: int
    row_count: int


class ExcelGenerator:
    """
    Generate P&L workbooks with report styling.
    """

    def __init__(self, renderer: ReportRenderer, output_dir: str = ".outputs", style: Optional[ReportStyle] = None):
        self.renderer = renderer
        self.output_dir = Path(output_dir)
        self.style = style or get_report_style()
        self._setup_styles()

    def _setup_styles(self):
        """Create reusable fonts, fills and borders."""
        colors = self.style.colors
        typo = self.style.typography

        self.header_fill = PatternFill(
            start_color=ReportStyle.hex(colors.header_bg),
            end_color=ReportStyle.hex(colors.header_bg),
            fill_type="solid",
        )
        self.section_fill = PatternFill(
            start_color=ReportStyle.hex(colors.section_bg),
            end_color=ReportStyle.hex(colors.section_bg),
            fill_type="solid",
        )
        self.title_font = Font(name=typo.family, size=typo.title_size, bold=True, color=ReportStyle.hex(colors.text_light))
        self.meta_font = Font(name=typo.family, size=typo.small_size, color=ReportStyle.hex(colors.text_light))
        self.column_font = Font(name=typo.family, size=typo.body_size, bold=True, color=ReportStyle.hex(colors.text_dark))
        self.data_font = Font(name=typo.family, size=typo.body_size)
        self.data_font_bold = Font(name=typo.family, size=typo.body_size, bold=True)

        thin = Side(style="thin", color="000000")
        self.double_line_border = Border(top=thin, bottom=thin)
        self.column_border = Border(bottom=Side(style="thin", color=ReportStyle.hex(colors.text_muted)))

    def _header_lines(self, header: ReportHeader) -> List[str]:
        lines = []
        if header.subtitle:
            lines.append(header.subtitle)
        lines.append(header.month_label)
        if header.parent_district:
            lines.append(f"Type: Facility | {header.parent_district}")
        if header.region_count is not None:
            lines.append(f"Regions: {header.region_count}")
        if header.district_count is not None:
            lines.append(f"Districts: {header.district_count}")
        if header.facility_count is not None:
            lines.append(f"Facilities: {header.facility_count}")
        if header.actual_census is not None:
            lines.append(f"Census Actual: {round(header.actual_census)}")
        if header.budget_census is not None:
            lines.append(f"Census Budget: {round(header.budget_census)}")
        if header.start_date:
            lines.append(f"Start Date: {header.start_date}")
        return lines

    def _write_header(self, ws, row: int, header: ReportHeader) -> int:
        width = len(COLUMN_HEADERS)
        ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=width)
        cell = ws.cell(row=row, column=1, value=f"{header.entity_name} ({header.type_label})")
        cell.font = self.title_font
        cell.fill = self.header_fill
        cell.alignment = Alignment(horizontal="left", vertical="center")
        ws.row_dimensions[row].height = 24
        row += 1

        for line in self._header_lines(header):
            ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=width)
            cell = ws.cell(row=row, column=1, value=line)
            cell.font = self.meta_font
            cell.fill = self.header_fill
            row += 1

        for col_idx, name in enumerate(COLUMN_HEADERS, 1):
            cell = ws.cell(row=row, column=col_idx, value=name)
            cell.font = self.column_font
            cell.border = self.column_border
            cell.alignment = Alignment(horizontal="right" if col_idx > 1 else "left")
        return row + 1

    def _write_row(self, ws, row: int, rendered: RenderedRow, calculator: PercentageCalculator):
        label = ws.cell(row=row, column=1, value=rendered.label)
        if rendered.is_section:
            label.font = Font(name=self.style.typography.family, size=self.style.typography.body_size,
                              bold=True, underline="single")
            for col_idx in range(1, len(COLUMN_HEADERS) + 1):
                ws.cell(row=row, column=col_idx).fill = self.section_fill
            return

        font = self.data_font_bold if rendered.bold else self.data_font
        label.font = font
        label.alignment = Alignment(indent=self.style.indent_per_level * max(rendered.level - 1, 0))

        values = rendered.values
        pct = calculator.percents(values)
        amounts = [
            values.month_actual, pct["month_actual_pct"], values.month_budget, pct["month_budget_pct"],
            values.month_variance, None,
            values.ytd_actual, pct["ytd_actual_pct"], values.ytd_budget, pct["ytd_budget_pct"],
            values.ytd_variance,
        ]
        for col_idx, value in enumerate(amounts, 2):
            if col_idx == 7:
                continue
            cell = ws.cell(row=row, column=col_idx)
            cell.font = font
            cell.alignment = Alignment(horizontal="right")
            if rendered.double_lines:
                cell.border = self.double_line_border

            if col_idx in PERCENT_COLUMNS:
                if value is None:
                    cell.value = DASH
                else:
                    cell.value = float(value / Decimal(100))
                    cell.number_format = self.style.percent_format
            else:
                cell.value = float(value)
                cell.number_format = self.style.number_format

    def write_report(self, ws, row: int, report: RenderedReport) -> int:
        """Write one report block starting at `row`; returns the next free row."""
        row = self._write_header(ws, row, report.header)
        calculator = PercentageCalculator(report.node.values.income(self.renderer.income_account))
        for rendered in report.rows:
            self._write_row(ws, row, rendered, calculator)
            row += 1
        return row + 2

    def create_workbook(self, result: AssemblyResult, title: Optional[str] = None,
                        file_path: Optional[Union[str, Path]] = None) -> ExcelOutput:
        """
        Export every report of an assembly result.

        Args:
            result: Output of ReportAssembler.assemble_report
            title: Sheet title and filename stem (default: root entity name)
            file_path: Explicit destination; otherwise a timestamped file in output_dir

        Returns:
            ExcelOutput with file path and counts
        """
        reports = self.renderer.render_all(result)
        title = title or (result.node.entity_name if result.node else "P&L")

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "".join(c for c in title if c not in '[]:*?/\\')[:31] or "P&L"

        row = 1
        row_count = 0
        for report in reports:
            row = self.write_report(ws, row, report)
            row_count += len(report.rows)

        ws.column_dimensions["A"].width = self.style.label_column_width
        for col_idx in range(2, len(COLUMN_HEADERS) + 1):
            ws.column_dimensions[get_column_letter(col_idx)].width = self.style.value_column_width
        ws.column_dimensions["G"].width = 3
        ws.freeze_panes = "B1"

        if file_path is None:
            safe_title = "".join(c if c.isalnum() else "_" for c in title)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            file_path = self.output_dir / f"{safe_title}_{timestamp}.xlsx"
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(file_path)

        logger.info(f"Workbook written to {file_path}: {len(reports)} reports, {row_count} rows")
        return ExcelOutput(file_path=str(file_path), report_count=len(reports), row_count=row_count)
