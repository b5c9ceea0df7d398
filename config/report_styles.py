"""
P&L Workbook Styling

Centralized colors and typography for exported P&L workbooks.
"""
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ColorPalette:
    """Workbook color configuration."""
    header_bg: str = "#132E57"         # Navy report header
    section_bg: str = "#D9E1F2"        # Section title rows
    alt_row_bg: str = "#F2F2F2"        # Alternating rows

    negative: str = "#C00000"          # Parenthesized values
    text_light: str = "#FFFFFF"
    text_dark: str = "#132E57"
    text_muted: str = "#808080"


@dataclass
class Typography:
    """Font configuration."""
    family: str = "Arial Narrow"
    title_size: int = 14
    header_size: int = 12
    body_size: int = 11
    small_size: int = 10


@dataclass
class ReportStyle:
    """Complete workbook style."""
    colors: ColorPalette = field(default_factory=ColorPalette)
    typography: Typography = field(default_factory=Typography)

    label_column_width: int = 44
    value_column_width: int = 12
    indent_per_level: int = 2          # Excel indent units per account level

    # Matches the dash/parentheses display rules of the HTML report
    number_format: str = '#,##0_);(#,##0);"-"_)'
    percent_format: str = '0.0%;-0.0%;"-"'

    @staticmethod
    def hex(color: str) -> str:
        """openpyxl wants colors without the leading '#'."""
        return color.lstrip('#')


# Global instance
_report_style: Optional[ReportStyle] = None

def get_report_style() -> ReportStyle:
    """Get the global workbook style."""
    global _report_style
    if _report_style is None:
        _report_style = ReportStyle()
    return _report_style

def set_report_style(style: ReportStyle):
    """Set custom workbook style."""
    global _report_style
    _report_style = style
