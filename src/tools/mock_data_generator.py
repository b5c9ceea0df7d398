"""
Mock P&L Data Generator

Generates fake configuration documents and warehouse facts that mirror the
structure of the real account/customer/region/department documents and
the `fct_transactions_summary` table. This allows running and testing
reports without warehouse credentials or real financial data.

Usage:
    python main.py demo
"""
import random
import logging
from datetime import date
from typing import List, Dict, Any, Optional, Callable

from src.core.fiscal_calendar import FiscalCalendar, parse_report_date
from src.data.fact_set import TransactionFact, to_decimal
from src.tools.warehouse_client import FactFilter

logger = logging.getLogger(__name__)

# Account document: node id -> entry. Leaf accounts carry warehouse ids.
MOCK_ACCOUNT_CONFIG: Dict[str, Dict[str, Any]] = {
    "10": {"label": "Income", "parent": None, "doubleLines": True},
    "11": {"label": "Service Revenue", "parent": "10", "account_internal_id": "4000"},
    "12": {"label": "Ancillary Revenue", "parent": "10", "account_internal_id": "4100"},
    "20": {"label": "Cost of Sales", "parent": None},
    "21": {"label": "Direct Labor", "parent": "20", "account_internal_id": "5000"},
    "22": {"label": "Food & Supplies", "parent": "20", "account_internal_id": "5100"},
    "30": {"label": "Expense", "parent": None},
    "31": {"label": "Salaries & Wages", "parent": "30", "account_internal_id": "6000"},
    "32": {"label": "Rent", "parent": "30", "account_internal_id": "6100"},
    "33": {"label": "Management Fees", "parent": "30", "account_internal_id": "6200",
           "operationalExcluded": True},
    "34": {"label": "Depreciation", "parent": "30", "account_internal_id": "6300",
           "displayExcluded": True},
}

# (config node id, label, tags, reporting excluded)
MOCK_DISTRICTS = [
    ("d1", "Pacific North", ["Pacific"], False),
    ("d2", "Pacific South", ["Pacific"], False),
    ("d3", "Mountain", [], False),
    ("d4", "Atlantic", ["Atlantic", "Coastal"], False),
    ("d5", "Atlantic Legacy", ["Atlantic", "Coastal"], True),
]

# (customer id, label, district node id, region id, start date)
MOCK_FACILITIES = [
    ("1001", "PN01 - Seaside Manor", "d1", "101", "2019-03-01"),
    ("1002", "PN02 - Harbor View", "d1", "101", "2021-07-15"),
    ("1003", "PS01 - Sunset Gardens", "d2", "101", None),
    ("1004", "MT01 - Alpine Care", "d3", "101", "2020-01-01"),
    ("1005", "MT02 - Ridge Point", "d3", "101", None),
    ("1006", "AT01 - Bayfront", "d4", "102", "2018-11-01"),
    ("1007", "AT02 - Lighthouse", "d4", "102", None),
    ("1008", "AL01 - Old Mill", "d5", "102", "2015-05-01"),
]

# Facilities with no revenue activity (pruned from reports)
MOCK_IDLE_FACILITIES = {"1005"}

MOCK_REGION_CONFIG: Dict[str, Dict[str, Any]] = {
    "2": {"label": "All Regions", "parent": None},
    "r1": {"label": "West", "parent": "2", "region_internal_id": "101", "tags": ["Core"]},
    "r2": {"label": "East", "parent": "2", "region_internal_id": "102", "tags": ["Core"]},
}

MOCK_DEPARTMENT_CONFIG: Dict[str, Dict[str, Any]] = {
    "2": {"label": "All Subsidiaries", "parent": None},
    "s1": {"label": "Yona Senior Living", "parent": "2", "subsidiary_internal_id": "1"},
}

MOCK_SUBSIDIARY_ID = "1"

# Monthly base amounts per account id (Actuals)
MOCK_ACCOUNT_BASE = {
    "4000": 180000,
    "4100": 22000,
    "5000": -61000,
    "5100": -18000,
    "6000": -42000,
    "6100": -15000,
    "6200": -9000,
    "6300": -6000,
}


def generate_customer_config() -> Dict[str, Dict[str, Any]]:
    """Customer document: district nodes plus their customers."""
    doc: Dict[str, Dict[str, Any]] = {}
    for node_id, label, tags, excluded in MOCK_DISTRICTS:
        doc[node_id] = {
            "label": label,
            "parent": None,
            "isDistrict": True,
            "tags": list(tags),
            "districtReportingExcluded": excluded,
        }
    for customer_id, label, district_id, _, start_date in MOCK_FACILITIES:
        doc[f"c{customer_id}"] = {
            "label": label,
            "parent": district_id,
            "customer_internal_id": customer_id,
            "start_date_est": start_date,
        }
    return doc


def generate_config_documents() -> Dict[str, Any]:
    """All four configuration documents, keyed by document name."""
    return {
        "account_config.json": {k: dict(v) for k, v in MOCK_ACCOUNT_CONFIG.items()},
        "customer_config.json": generate_customer_config(),
        "region_config.json": {k: dict(v) for k, v in MOCK_REGION_CONFIG.items()},
        "department_config.json": {k: dict(v) for k, v in MOCK_DEPARTMENT_CONFIG.items()},
    }


def generate_mock_fact_rows(
    report_date,
    months: int = 12,
    seed: int = 42,
) -> List[Dict[str, Any]]:
    """
    Generate warehouse fact rows for the `months` months ending at `report_date`.

    Returns:
        Rows shaped like `fct_transactions_summary`
    """
    rng = random.Random(seed)
    end = parse_report_date(report_date)
    periods = []
    year, month = end.year, end.month
    for _ in range(months):
        periods.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12

    rows = []
    for customer_id, _, _, region_id, _ in MOCK_FACILITIES:
        scale = rng.uniform(0.6, 1.4)
        for period in periods:
            for account_id, base in MOCK_ACCOUNT_BASE.items():
                if customer_id in MOCK_IDLE_FACILITIES and account_id.startswith("4"):
                    continue
                budget = round(base * scale, 2)
                actual = round(budget * rng.uniform(0.85, 1.15), 2)
                for scenario, value in (("Actuals", actual), ("Budget", budget)):
                    rows.append({
                        "account_internal_id": account_id,
                        "customer_internal_id": customer_id,
                        "region_internal_id": region_id,
                        "subsidiary_internal_id": MOCK_SUBSIDIARY_ID,
                        "scenario": scenario,
                        "time_date": period,
                        "value": value,
                    })

    logger.info(f"Generated {len(rows)} mock fact rows for {len(periods)} months")
    return rows


def generate_census_records(report_date) -> List[Dict[str, Any]]:
    """Census side data for the report month."""
    month = parse_report_date(report_date).isoformat()
    rng = random.Random(7)
    records = []
    for _, label, _, _, _ in MOCK_FACILITIES:
        code = label.split(" - ", 1)[0]
        budget = rng.randint(60, 120)
        records.append({"type": "Budget", "customer_code": code, "month": month, "value": budget})
        records.append({"type": "Actuals", "customer_code": code, "month": month,
                        "value": budget + rng.randint(-10, 10)})
    return records


class MockWarehouse:
    """
    In-memory stand-in for WarehouseClient with the same fetch interface.
    """

    def __init__(self, fact_rows: List[Dict[str, Any]], fiscal_calendar: Optional[FiscalCalendar] = None):
        self.fact_rows = fact_rows
        self.fiscal_calendar = fiscal_calendar or FiscalCalendar(1)
        self.customer_rows = [
            {
                "customer_id": customer_id,
                "label": label,
                "region_id": region_id,
                "subsidiary_id": MOCK_SUBSIDIARY_ID,
            }
            for customer_id, label, _, region_id, _ in MOCK_FACILITIES
        ]
        self._fetch_count = 0

    @property
    def fetch_count(self) -> int:
        return self._fetch_count

    @staticmethod
    def _matches(row: Dict[str, Any], fact_filter: FactFilter, customer_key: str,
                 region_key: str, subsidiary_key: str) -> bool:
        if fact_filter.customer_ids is not None and str(row[customer_key]) not in fact_filter.customer_ids:
            return False
        if fact_filter.region_id and str(row[region_key]) != str(fact_filter.region_id):
            return False
        if fact_filter.subsidiary_id and str(row[subsidiary_key]) != str(fact_filter.subsidiary_id):
            return False
        return True

    def fetch_facts(
        self,
        fact_filter: FactFilter,
        period_date,
        ytd: bool = False,
        label_for: Optional[Callable[[Any], str]] = None,
    ) -> List[TransactionFact]:
        self._fetch_count += 1
        period = self.fiscal_calendar.reporting_period(period_date)
        month = period.month_date
        start = period.ytd_start if ytd else month

        sums: Dict[tuple, float] = {}
        for row in self.fact_rows:
            if not (start <= row["time_date"] <= month):
                continue
            if not self._matches(row, fact_filter, "customer_internal_id",
                                 "region_internal_id", "subsidiary_internal_id"):
                continue
            key = (row["account_internal_id"], row["customer_internal_id"], row["region_internal_id"],
                   row["subsidiary_internal_id"], row["scenario"])
            sums[key] = sums.get(key, 0.0) + row["value"]

        return [
            TransactionFact(
                account_label=label_for(account) if label_for else account,
                customer_id=customer,
                region_id=region,
                subsidiary_id=subsidiary,
                scenario=scenario,
                value=to_decimal(round(value, 2)),
            )
            for (account, customer, region, subsidiary, scenario), value in sums.items()
        ]

    def _customers(self, fact_filter: FactFilter) -> List[Dict[str, Any]]:
        return [
            dict(row) for row in self.customer_rows
            if self._matches(row, fact_filter, "customer_id", "region_id", "subsidiary_id")
        ]

    def fetch_entities_in_region(self, region_id: str, subsidiary_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._customers(FactFilter(region_id=region_id, subsidiary_id=subsidiary_id))

    def fetch_entities_in_subsidiary(self, subsidiary_id: str, region_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._customers(FactFilter(region_id=region_id, subsidiary_id=subsidiary_id))

    def available_dates(self) -> List[date]:
        return sorted({row["time_date"] for row in self.fact_rows}, reverse=True)
