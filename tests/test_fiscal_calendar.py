"""
Unit tests for report months and fiscal-year-to-date ranges.
"""
from datetime import date, datetime

import pytest

from src.core.fiscal_calendar import FiscalCalendar, format_month_label, parse_report_date


class TestParseReportDate:

    @pytest.mark.parametrize("value", ["2025-06-01", "2025-06-30", "2025-06-15T10:00:00", date(2025, 6, 9),
                                       datetime(2025, 6, 20, 8, 30)])
    def test_first_of_month(self, value):
        assert parse_report_date(value) == date(2025, 6, 1)

    def test_unparseable(self):
        with pytest.raises(ValueError):
            parse_report_date("June 2025")


class TestFormatMonthLabel:

    def test_label(self):
        assert format_month_label("2025-03-01") == "Mar - 2025"
        assert format_month_label("2024-12-01") == "Dec - 2024"

    def test_empty_and_bad_input(self):
        assert format_month_label(None) == ""
        assert format_month_label("garbage") == "garbage"


class TestFiscalCalendar:

    def test_calendar_year(self):
        cal = FiscalCalendar(1)
        assert cal.ytd_start("2025-06-01") == date(2025, 1, 1)
        assert cal.ytd_start("2025-01-01") == date(2025, 1, 1)

    def test_february_start(self):
        cal = FiscalCalendar(2)
        assert cal.get_fiscal_year_for_date(date(2025, 1, 15)) == 2025
        assert cal.get_fiscal_year_for_date(date(2025, 2, 15)) == 2026
        assert cal.ytd_start("2025-01-01") == date(2024, 2, 1)
        assert cal.ytd_start("2025-02-01") == date(2025, 2, 1)

    def test_fiscal_year_range(self):
        period = FiscalCalendar(7).get_fiscal_year_range(2025)
        assert period.start_date == date(2024, 7, 1)
        assert period.end_date == date(2025, 6, 30)
        assert period.period_name == "FY2025"
        assert period.contains(date(2025, 1, 1))

    def test_reporting_period(self):
        period = FiscalCalendar(1).reporting_period("2025-06-17")
        assert period.to_dict() == {
            "month_date": "2025-06-01",
            "ytd_start": "2025-01-01",
            "month_label": "Jun - 2025",
        }

    def test_invalid_start_month(self):
        with pytest.raises(ValueError):
            FiscalCalendar(13)

    def test_last_completed_month(self):
        assert FiscalCalendar.last_completed_month(date(2025, 1, 10)) == date(2024, 12, 1)
        assert FiscalCalendar.last_completed_month(date(2025, 7, 31)) == date(2025, 6, 1)
