"""
P&L Percentage Calculation and Number Formatting

All display math is deterministic and done on Decimal:
- percent of income = value / income for the same scenario and period * 100
- a zero income total yields no percentage (rendered as a dash)
- numbers round half-up to whole units, negatives in parentheses,
  near-zero values as a dash
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DASH = "-"
NEAR_ZERO = Decimal("0.0001")

# Column order of a rendered P&L row (after the account label)
VALUE_COLUMNS = [
    "month_actual", "month_actual_pct", "month_budget", "month_budget_pct", "month_variance",
    "spacer",
    "ytd_actual", "ytd_actual_pct", "ytd_budget", "ytd_budget_pct", "ytd_variance",
]


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _is_blank(value: Optional[Decimal]) -> bool:
    return value is None or value.is_nan() or abs(value) < NEAR_ZERO


def format_number(value: Any) -> str:
    """
    Format a value for a P&L cell.

    Examples:
        1234.5  -> "1,235"
        -1234.4 -> "(1,234)"
        0.00001 -> "-"
    """
    amount = _to_decimal(value)
    if _is_blank(amount):
        return DASH
    rounded = abs(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    text = f"{int(rounded):,}"
    return f"({text})" if amount < 0 else text


def format_percent(value: Any) -> str:
    """One decimal place with a percent sign; dash when absent or near zero."""
    pct = _to_decimal(value)
    if _is_blank(pct):
        return DASH
    return f"{pct.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)}%"


def percent_of_income(value: Any, income: Any) -> Optional[Decimal]:
    """value / income * 100, or None when income is zero."""
    amount = _to_decimal(value) or Decimal("0")
    base = _to_decimal(income)
    if base is None or base == 0:
        return None
    return amount / base * 100


@dataclass
class IncomeTotals:
    """Rolled-up Income per scenario and period; the percentage bases."""
    month_actual: Decimal = Decimal("0")
    month_budget: Decimal = Decimal("0")
    ytd_actual: Decimal = Decimal("0")
    ytd_budget: Decimal = Decimal("0")


@dataclass
class RowValues:
    """One account's rolled-up values in the four report columns."""
    month_actual: Decimal = Decimal("0")
    month_budget: Decimal = Decimal("0")
    ytd_actual: Decimal = Decimal("0")
    ytd_budget: Decimal = Decimal("0")

    @property
    def month_variance(self) -> Decimal:
        return self.month_actual - self.month_budget

    @property
    def ytd_variance(self) -> Decimal:
        return self.ytd_actual - self.ytd_budget

    @property
    def is_empty(self) -> bool:
        """Rows with no month or YTD actual activity are not rendered."""
        return abs(self.month_actual + self.ytd_actual) < NEAR_ZERO


class PercentageCalculator:
    """
    Derives display percentages against the Income totals of one report node.
    """

    def __init__(self, income: IncomeTotals):
        self.income = income

    def percents(self, row: RowValues) -> Dict[str, Optional[Decimal]]:
        return {
            "month_actual_pct": percent_of_income(row.month_actual, self.income.month_actual),
            "month_budget_pct": percent_of_income(row.month_budget, self.income.month_budget),
            "ytd_actual_pct": percent_of_income(row.ytd_actual, self.income.ytd_actual),
            "ytd_budget_pct": percent_of_income(row.ytd_budget, self.income.ytd_budget),
        }

    def format_row(self, row: RowValues) -> List[str]:
        """The eleven formatted value cells of a row, in VALUE_COLUMNS order."""
        pct = self.percents(row)
        return [
            format_number(row.month_actual),
            format_percent(pct["month_actual_pct"]),
            format_number(row.month_budget),
            format_percent(pct["month_budget_pct"]),
            format_number(row.month_variance),
            "",
            format_number(row.ytd_actual),
            format_percent(pct["ytd_actual_pct"]),
            format_number(row.ytd_budget),
            format_percent(pct["ytd_budget_pct"]),
            format_number(row.ytd_variance),
        ]
