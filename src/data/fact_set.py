"""
In-memory transaction fact sets.

A FactSet holds the facts of one period (month or YTD) fetched once from
the warehouse. Every district/region/facility aggregate is derived by
filtering it by customer id; filtering never goes back to the warehouse.
"""
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Dict, Any, Iterable, Optional

import pandas as pd

logger = logging.getLogger(__name__)

FACT_COLUMNS = ["account_label", "customer_id", "region_id", "subsidiary_id", "scenario", "value"]


class Scenario(Enum):
    ACTUALS = "Actuals"
    BUDGET = "Budget"


class Period(Enum):
    MONTH = "month"
    YTD = "ytd"


def to_decimal(value: Any) -> Decimal:
    """Warehouse values arrive as strings or numbers; bad values count as zero."""
    if value is None:
        return Decimal("0")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(f"Unparseable fact value {value!r}, treating as 0")
        return Decimal("0")
    if not result.is_finite():
        logger.warning(f"Non-finite fact value {value!r}, treating as 0")
        return Decimal("0")
    return result


@dataclass
class TransactionFact:
    account_label: str
    customer_id: Optional[str]
    region_id: Optional[str]
    subsidiary_id: Optional[str]
    scenario: str  # Scenario value
    value: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class FactSet:
    """
    Facts for a single period, backed by a pandas DataFrame.

    Values are kept as Decimal (object column) and summed in Python so
    totals are exact and independent of row order.
    """

    def __init__(self, facts: Iterable[TransactionFact] = (), period: Period = Period.MONTH):
        self.period = period
        rows = [f.to_dict() for f in facts]
        self._frame = pd.DataFrame(rows, columns=FACT_COLUMNS)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, period: Period) -> "FactSet":
        fact_set = cls(period=period)
        fact_set._frame = frame.reset_index(drop=True)
        return fact_set

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame

    def __len__(self) -> int:
        return len(self._frame)

    @property
    def customer_ids(self) -> List[str]:
        return self._frame["customer_id"].dropna().unique().tolist()

    def filter_customers(self, customer_ids: Iterable[str]) -> "FactSet":
        """Facts whose customer id is in `customer_ids` (in-memory)."""
        wanted = {str(c) for c in customer_ids}
        mask = self._frame["customer_id"].isin(wanted)
        return FactSet.from_frame(self._frame[mask], self.period)

    def account_totals(self, scenario: Scenario) -> Dict[str, Decimal]:
        """Raw per-account totals for one scenario (no rollup)."""
        totals: Dict[str, Decimal] = {}
        subset = self._frame[self._frame["scenario"] == scenario.value]
        for label, value in zip(subset["account_label"], subset["value"]):
            totals[label] = totals.get(label, Decimal("0")) + to_decimal(value)
        return totals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period.value,
            "rows": len(self),
            "customers": len(self.customer_ids),
        }
