"""
Census Side Data

Per-facility census figures (Actuals and Budget) shown in facility and
district report headers. Display metadata only; census never enters the
P&L aggregation.

Records are joined to facilities by customer code: the leading
alphanumeric token of the facility label, e.g. "AB12 - Sunny Acres" -> "AB12".
"""
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

logger = logging.getLogger(__name__)

CUSTOMER_CODE_PATTERN = re.compile(r"^([A-Z0-9]+)\s*[-–]")

ACTUALS = "Actuals"
BUDGET = "Budget"


def customer_code_from_label(label: Optional[str]) -> Optional[str]:
    """Extract the customer code from a facility label, or None."""
    if not label:
        return None
    match = CUSTOMER_CODE_PATTERN.match(label.strip())
    return match.group(1) if match else None


def normalize_month(value) -> Optional[str]:
    """Normalize "1/1/2025", "2025-01-15" etc. to "YYYY-MM-01"."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    parsed = pd.to_datetime(str(value).strip(), errors="coerce")
    if pd.isna(parsed):
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}-01"


@dataclass
class CensusRecord:
    """One row of census side data."""
    type: str  # Actuals or Budget
    customer_code: str
    month: str  # YYYY-MM-01
    value: float

    @classmethod
    def from_dict(cls, row: Dict) -> Optional["CensusRecord"]:
        code = str(row.get("customer_code") or "").strip()
        month = normalize_month(row.get("month"))
        if not code or not month:
            return None
        try:
            value = float(row.get("value") or 0)
        except (TypeError, ValueError):
            value = 0.0
        return cls(
            type=str(row.get("type") or "").strip(),
            customer_code=code,
            month=month,
            value=value,
        )


@dataclass
class FacilityCensus:
    """Census figures for one facility (or the sum over a district)."""
    actual: Optional[float] = None
    budget: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.actual is None and self.budget is None


class CensusProvider:
    """
    Census lookup for a single report month.

    Records for other months are dropped at construction. Zero values are
    treated as missing.
    """

    def __init__(self, records: Iterable[Union[CensusRecord, Dict]], month: str):
        self.month = normalize_month(month)
        self._values: Dict[Tuple[str, str], float] = {}

        kept = 0
        for record in records:
            if isinstance(record, dict):
                record = CensusRecord.from_dict(record)
            if record is None or record.month != self.month:
                continue
            key = (record.customer_code, record.type)
            # First record wins
            if key not in self._values:
                self._values[key] = record.value
                kept += 1

        logger.info(f"Census loaded for {self.month}: {kept} records")

    @classmethod
    def from_csv(cls, path: Union[str, Path], month: str) -> "CensusProvider":
        """Load a flattened census export (columns: type, customer_code, month, value)."""
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
        return cls(frame.to_dict(orient="records"), month)

    def _value(self, code: str, census_type: str) -> Optional[float]:
        value = self._values.get((code, census_type))
        return value if value else None

    def for_code(self, customer_code: Optional[str]) -> FacilityCensus:
        if not customer_code:
            return FacilityCensus()
        return FacilityCensus(
            actual=self._value(customer_code, ACTUALS),
            budget=self._value(customer_code, BUDGET),
        )

    def for_label(self, label: Optional[str]) -> FacilityCensus:
        return self.for_code(customer_code_from_label(label))

    def for_codes(self, customer_codes: Iterable[Optional[str]]) -> FacilityCensus:
        """Summed census over several facilities; a side stays None if no facility has it."""
        actuals: List[float] = []
        budgets: List[float] = []
        for code in customer_codes:
            single = self.for_code(code)
            if single.actual is not None:
                actuals.append(single.actual)
            if single.budget is not None:
                budgets.append(single.budget)
        return FacilityCensus(
            actual=sum(actuals) if actuals else None,
            budget=sum(budgets) if budgets else None,
        )
