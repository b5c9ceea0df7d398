"""
Fiscal Calendar Module

Fiscal year-aware date utilities for P&L report periods.
Supports custom fiscal year start months.

Key Concepts:
- Fiscal Year (FY): A 12-month period named by its ENDING calendar year
- FY2026 with Feb start = Feb 1, 2025 - Jan 31, 2026
- Report month: the first day of the reported month ("YYYY-MM-01")
- YTD window: fiscal year start through the report month, inclusive
"""
import calendar
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]


@dataclass
class FiscalPeriod:
    """Represents a fiscal period with start and end dates."""
    start_date: date
    end_date: date
    period_name: str
    fiscal_year: int

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date


@dataclass
class ReportingPeriod:
    """The two independently fetched periods of one report."""
    month_date: date  # first of the report month
    ytd_start: date

    @property
    def month_label(self) -> str:
        return format_month_label(self.month_date.isoformat())

    def to_dict(self) -> dict:
        return {
            "month_date": self.month_date.isoformat(),
            "ytd_start": self.ytd_start.isoformat(),
            "month_label": self.month_label,
        }


def parse_report_date(value) -> date:
    """
    Parse a report date ("YYYY-MM-DD", a date or datetime) to the first of its month.

    Raises:
        ValueError: unparseable date
    """
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        value = datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    return value.replace(day=1)


def format_month_label(iso_date: Optional[str]) -> str:
    """Format "2025-03-01" as "Mar - 2025". Unparseable input is returned unchanged."""
    if not iso_date:
        return ""
    text = str(iso_date)[:10]
    try:
        year, month = text.split("-")[:2]
        return f"{MONTH_ABBREVIATIONS[int(month) - 1]} - {year}"
    except (ValueError, IndexError):
        return str(iso_date)


class FiscalCalendar:
    """
    Fiscal calendar with configurable fiscal year start.

    Usage:
        cal = FiscalCalendar(fiscal_year_start_month=2)  # Feb start
        period = cal.reporting_period("2025-06-01")
        period.ytd_start  # 2025-02-01
    """

    def __init__(self, fiscal_year_start_month: int = None):
        """
        Args:
            fiscal_year_start_month: Month number (1-12) when the fiscal year starts.
                Defaults to FISCAL_YEAR_START_MONTH env var or 1 (calendar year).
        """
        if fiscal_year_start_month is None:
            fiscal_year_start_month = int(os.getenv("FISCAL_YEAR_START_MONTH", "1"))

        if not 1 <= fiscal_year_start_month <= 12:
            raise ValueError(f"Fiscal year start month must be 1-12, got {fiscal_year_start_month}")

        self.fy_start_month = fiscal_year_start_month

    def get_fiscal_year_for_date(self, d: date) -> int:
        """
        Fiscal year a date belongs to, named after the ENDING calendar year.

        For a Feb start:
        - Jan 15, 2025 -> FY2025
        - Feb 15, 2025 -> FY2026
        """
        if self.fy_start_month == 1:
            return d.year
        if d.month >= self.fy_start_month:
            return d.year + 1
        return d.year

    def get_fiscal_year_range(self, fiscal_year: int) -> FiscalPeriod:
        if self.fy_start_month == 1:
            start = date(fiscal_year, 1, 1)
            end = date(fiscal_year, 12, 31)
        else:
            start = date(fiscal_year - 1, self.fy_start_month, 1)
            end_month = self.fy_start_month - 1
            end = date(fiscal_year, end_month, calendar.monthrange(fiscal_year, end_month)[1])

        return FiscalPeriod(
            start_date=start,
            end_date=end,
            period_name=f"FY{fiscal_year}",
            fiscal_year=fiscal_year,
        )

    def ytd_start(self, report_date) -> date:
        """First day of the fiscal year containing the report month."""
        month = parse_report_date(report_date)
        return self.get_fiscal_year_range(self.get_fiscal_year_for_date(month)).start_date

    def reporting_period(self, report_date) -> ReportingPeriod:
        month = parse_report_date(report_date)
        return ReportingPeriod(month_date=month, ytd_start=self.ytd_start(month))

    @staticmethod
    def last_completed_month(as_of: date = None) -> date:
        """First day of the most recently completed month."""
        as_of = as_of or date.today()
        last_day_prior = date(as_of.year, as_of.month, 1) - timedelta(days=1)
        return last_day_prior.replace(day=1)


# Singleton instance
_fiscal_calendar: Optional[FiscalCalendar] = None


def get_fiscal_calendar() -> FiscalCalendar:
    """Get the configured fiscal calendar instance."""
    global _fiscal_calendar
    if _fiscal_calendar is None:
        from config.settings import get_config
        _fiscal_calendar = FiscalCalendar(get_config().fiscal.fiscal_year_start_month)
    return _fiscal_calendar
