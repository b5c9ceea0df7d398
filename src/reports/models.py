"""
Report data model.

ReportNodes are produced by the assembler, consumed by the renderers and
discarded. Headers are not stored on nodes: they are composed once, from
the final child counts, at render time.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, List, Optional

from src.tools.formatter import IncomeTotals, RowValues

ZERO = Decimal("0")


class ReportLevel(Enum):
    SUBSIDIARY = "Subsidiary"
    REGION = "Region"
    DISTRICT = "District"
    FACILITY = "Facility"

    @classmethod
    def from_hierarchy(cls, name: str) -> "ReportLevel":
        """'district' / 'region' / 'subsidiary' (any case) to a level."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Invalid hierarchy: {name}. Expected district, region or subsidiary")


@dataclass
class AccountValues:
    """Rolled-up values per account label for the four report columns."""
    month_actual: Dict[str, Decimal] = field(default_factory=dict)
    month_budget: Dict[str, Decimal] = field(default_factory=dict)
    ytd_actual: Dict[str, Decimal] = field(default_factory=dict)
    ytd_budget: Dict[str, Decimal] = field(default_factory=dict)

    def row(self, label: str) -> RowValues:
        return RowValues(
            month_actual=self.month_actual.get(label, ZERO),
            month_budget=self.month_budget.get(label, ZERO),
            ytd_actual=self.ytd_actual.get(label, ZERO),
            ytd_budget=self.ytd_budget.get(label, ZERO),
        )

    def labels(self) -> List[str]:
        """Every label with a value in any column, first-seen order."""
        seen: Dict[str, None] = {}
        for column in (self.month_actual, self.month_budget, self.ytd_actual, self.ytd_budget):
            seen.update(dict.fromkeys(column))
        return list(seen)

    def income(self, income_account: str = "Income") -> IncomeTotals:
        row = self.row(income_account)
        return IncomeTotals(
            month_actual=row.month_actual,
            month_budget=row.month_budget,
            ytd_actual=row.ytd_actual,
            ytd_budget=row.ytd_budget,
        )


@dataclass
class ChildCounts:
    regions: int = 0
    districts: int = 0
    facilities: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"regions": self.regions, "districts": self.districts, "facilities": self.facilities}


@dataclass
class ReportNode:
    """One report in the multi-level output, with its kept children."""
    level: ReportLevel
    entity_name: str
    values: AccountValues
    children: List["ReportNode"] = field(default_factory=list)

    # District selected by tag
    is_tag: bool = False
    source_districts: List[str] = field(default_factory=list)

    # Facility / district metadata (display only)
    parent_district: Optional[str] = None
    start_date: Optional[str] = None
    actual_census: Optional[float] = None
    budget_census: Optional[float] = None

    @property
    def type_label(self) -> str:
        if self.level == ReportLevel.DISTRICT and self.is_tag:
            return "District Tag"
        return self.level.value

    @property
    def child_counts(self) -> ChildCounts:
        """Counts of kept descendants, by level."""
        counts = ChildCounts()
        for node in self.walk():
            if node is self:
                continue
            if node.level == ReportLevel.REGION:
                counts.regions += 1
            elif node.level == ReportLevel.DISTRICT:
                counts.districts += 1
            elif node.level == ReportLevel.FACILITY:
                counts.facilities += 1
        return counts

    def walk(self):
        """Pre-order traversal: this node, then each child subtree."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type_label": self.type_label,
            "entity_name": self.entity_name,
            "counts": self.child_counts.to_dict(),
            "parent_district": self.parent_district,
            "source_districts": self.source_districts,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class ReportHeader:
    """Header content of one rendered report, built from final counts."""
    type_label: str
    entity_name: str
    month_label: str
    subtitle: Optional[str] = None
    region_count: Optional[int] = None
    district_count: Optional[int] = None
    facility_count: Optional[int] = None
    parent_district: Optional[str] = None
    actual_census: Optional[float] = None
    budget_census: Optional[float] = None
    start_date: Optional[str] = None


@dataclass
class AssemblyResult:
    """Output of ReportAssembler.assemble_report."""
    kept: bool
    node: Optional[ReportNode]
    report_date: Optional[str] = None
    fetch_count: int = 0

    def reports(self) -> List[ReportNode]:
        """All nodes in render order (pre-order)."""
        return list(self.node.walk()) if self.node else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kept": self.kept,
            "report_date": self.report_date,
            "fetch_count": self.fetch_count,
            "node": self.node.to_dict() if self.node else None,
        }
