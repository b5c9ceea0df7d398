"""
P&L Report Rendering

Turns assembled ReportNodes into rows and HTML.

Rendering happens in two stages that stay separate until the very end:
1. `build_rows` / `compose_header` produce structured values per node
   (header data from the final child counts, one RenderedRow per account)
2. `render_document` formats every node and joins the HTML once

The Excel exporter consumes the same RenderedRows.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from html import escape
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

from src.core.fiscal_calendar import format_month_label
from src.data.account_hierarchy import AccountHierarchy, RollupMode
from src.reports.models import AssemblyResult, ReportHeader, ReportLevel, ReportNode
from src.tools.formatter import PercentageCalculator, RowValues

logger = logging.getLogger(__name__)

INDENT_PX = 8
COLUMN_HEADERS = ["", "Actual", "%", "Budget", "%", "Act v Bud", "", "Actual", "%", "Budget", "%", "Act v Bud"]
DEFAULT_COMPANY_NAME = "Yona Solutions"
UNKNOWN_SECTION = "Unknown Accounts"


@dataclass
class RenderedRow:
    """One output row: a section title or an account line."""
    label: str
    level: int = 0
    is_section: bool = False
    bold: bool = False
    double_lines: bool = False
    values: Optional[RowValues] = None
    cells: List[str] = field(default_factory=list)


@dataclass
class RenderedReport:
    header: ReportHeader
    rows: List[RenderedRow]
    node: ReportNode


def compose_header(node: ReportNode, report_date: Optional[str], company_name: str = DEFAULT_COMPANY_NAME) -> ReportHeader:
    """
    Header content for one node, built once from its final (post-pruning)
    child counts.
    """
    counts = node.child_counts
    header = ReportHeader(
        type_label=node.type_label,
        entity_name=node.entity_name,
        month_label=format_month_label(report_date),
    )

    if node.level == ReportLevel.FACILITY:
        header.parent_district = node.parent_district
        header.actual_census = node.actual_census
        header.budget_census = node.budget_census
        header.start_date = node.start_date
    elif node.level == ReportLevel.SUBSIDIARY:
        header.subtitle = "Actual vs Budget"
        header.region_count = counts.regions
        header.district_count = counts.districts
        header.facility_count = counts.facilities
    elif node.level == ReportLevel.REGION:
        header.subtitle = company_name
        header.district_count = counts.districts
        header.facility_count = counts.facilities
    else:
        header.subtitle = company_name
        header.facility_count = counts.facilities
        header.actual_census = node.actual_census
        header.budget_census = node.budget_census

    return header


class ReportRenderer:
    """
    Renders report nodes against one account hierarchy and section layout.
    """

    def __init__(
        self,
        hierarchy: AccountHierarchy,
        section_config: Dict[str, List[str]],
        mode: RollupMode = RollupMode.DISPLAY,
        income_account: str = "Income",
        company_name: str = DEFAULT_COMPANY_NAME,
    ):
        self.hierarchy = hierarchy
        self.section_config = section_config
        self.mode = mode
        self.income_account = income_account
        self.company_name = company_name
        self.section_accounts: Set[str] = {a for accounts in section_config.values() for a in accounts}

    # ---- rows ---------------------------------------------------------

    def build_rows(self, node: ReportNode) -> List[RenderedRow]:
        """Section title rows followed by their account rows."""
        calculator = PercentageCalculator(node.values.income(self.income_account))
        rows: List[RenderedRow] = []
        for section, accounts in self.section_config.items():
            rows.append(RenderedRow(label=section, is_section=True, bold=True))
            for account in accounts:
                self._account_rows(account, 1, node, calculator, rows)

        # Facts booked to account ids with no configured account
        unknown_rows = []
        for label in sorted(node.values.labels()):
            if self.hierarchy.get_account(label) is not None:
                continue
            values = node.values.row(label)
            if not values.is_empty:
                unknown_rows.append(RenderedRow(label=label, level=1, values=values,
                                                cells=calculator.format_row(values)))
        if unknown_rows:
            rows.append(RenderedRow(label=UNKNOWN_SECTION, is_section=True, bold=True))
            rows.extend(unknown_rows)
        return rows

    def _account_rows(self, label: str, level: int, node: ReportNode,
                      calculator: PercentageCalculator, rows: List[RenderedRow]):
        account = self.hierarchy.get_account(label)
        children = self.hierarchy.get_children(label)

        # Excluded accounts are not shown, their children move up a level
        if account is not None and account.is_excluded(self.mode):
            for child in children:
                self._account_rows(child, level, node, calculator, rows)
            return

        # Children are listed above their parent total
        for child in children:
            self._account_rows(child, level + 1, node, calculator, rows)

        values = node.values.row(label)
        if values.is_empty:
            return

        rows.append(RenderedRow(
            label=label,
            level=level,
            bold=bool(children) or label in self.section_accounts,
            double_lines=bool(account and account.double_lines),
            values=values,
            cells=calculator.format_row(values),
        ))

    def render(self, node: ReportNode, report_date: Optional[str]) -> RenderedReport:
        return RenderedReport(
            header=compose_header(node, report_date, self.company_name),
            rows=self.build_rows(node),
            node=node,
        )

    def render_all(self, result: AssemblyResult) -> List[RenderedReport]:
        """Every report in the tree, parents before their children."""
        return [self.render(node, result.report_date) for node in result.reports()]

    # ---- HTML ---------------------------------------------------------

    @staticmethod
    def header_html(header: ReportHeader) -> str:
        lines = [f'<div class="pnl-title">{escape(header.entity_name)}</div>']
        if header.subtitle:
            lines.append(f'<div class="pnl-subtitle">{escape(header.subtitle)}</div>')
        lines.append(f'<div class="pnl-meta">{escape(header.month_label)}</div>')

        if header.type_label == ReportLevel.FACILITY.value:
            lines.append('<div class="pnl-meta">Type: Facility</div>')
            lines.append(f'<div class="pnl-meta">{escape(header.parent_district or "")}</div>')
        if header.region_count is not None:
            lines.append(f'<div class="pnl-meta">Regions: {header.region_count}</div>')
        if header.district_count is not None:
            lines.append(f'<div class="pnl-meta">Districts: {header.district_count}</div>')
        if header.facility_count is not None:
            lines.append(f'<div class="pnl-meta">Facilities: {header.facility_count}</div>')
        if header.type_label in (ReportLevel.DISTRICT.value, "District Tag"):
            lines.append(f'<div class="pnl-meta">Type: {escape(header.type_label)}</div>')

        if header.actual_census is not None:
            lines.append(f'<div class="pnl-meta">Census Actual: {round(header.actual_census)}</div>')
        if header.budget_census is not None:
            lines.append(f'<div class="pnl-meta">Census Budget: {round(header.budget_census)}</div>')
        if header.start_date:
            lines.append(f'<div class="pnl-meta">Start Date: {escape(header.start_date)}</div>')

        return '<div class="pnl-report-header">' + "".join(lines) + "</div>"

    @staticmethod
    def row_html(row: RenderedRow) -> str:
        if row.is_section:
            return (
                '<tr><td colspan="12" style="font-weight:700; text-decoration:underline; '
                f'text-transform:uppercase; padding-top: 12px;">{escape(row.label)}</td></tr>'
            )

        border = "border-top: 1px solid black; border-bottom: 1px solid black;" if row.double_lines else ""
        cells = []
        for cell in row.cells:
            if cell == "":
                cells.append("<td></td>")
            else:
                cells.append(f'<td style="text-align:right; {border}">{escape(cell)}</td>')
        return (
            f'<tr style="font-weight:{600 if row.bold else 400}">'
            f'<td style="padding-left:{INDENT_PX * row.level}px">{escape(row.label)}</td>'
            + "".join(cells)
            + "</tr>"
        )

    def report_html(self, report: RenderedReport) -> str:
        head = "".join(f"<th>{h}</th>" for h in COLUMN_HEADERS)
        body = "".join(self.row_html(r) for r in report.rows)
        return (
            '<div class="pnl-report-container page-break">'
            f"{self.header_html(report.header)}"
            '<hr class="pnl-divider">'
            '<table class="pnl-report-table">'
            f"<thead><tr>{head}</tr></thead>"
            f"<tbody>{body}</tbody>"
            "</table></div>"
        )

    def render_document(self, result: AssemblyResult, title: Optional[str] = None) -> str:
        """The full HTML document for an assembly result."""
        reports = self.render_all(result)
        title = title or (f"{result.node.entity_name} P&L" if result.node else "P&L")
        sections = "\n".join(self.report_html(r) for r in reports)
        logger.info(f"Rendered {len(reports)} reports for {title!r}")
        return f"""<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{escape(title)}</title>
<style>
  body {{ font-family: "Arial Narrow", Arial, sans-serif; font-size: 11px; color: #132E57; }}
  .pnl-report-container {{ margin-bottom: 32px; }}
  .page-break {{ page-break-after: always; }}
  .pnl-title {{ font-size: 16px; font-weight: 700; }}
  .pnl-subtitle {{ font-size: 13px; }}
  .pnl-report-table {{ border-collapse: collapse; width: 100%; }}
  .pnl-report-table th {{ text-align: right; border-bottom: 1px solid #132E57; }}
</style>
</head>
<body>
{sections}
<div class="meta">Generated {datetime.now().strftime('%Y-%m-%d %H:%M')}</div>
</body>
</html>
"""


def write_html_report(path: Union[str, Path], html_text: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html_text, encoding="utf-8")
    logger.info(f"HTML report written to {path}")
    return path
