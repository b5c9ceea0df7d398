"""
Multi-Level Report Assembly

Builds the Subsidiary -> Region -> District -> Facility report tree for a
selection.

Fetch strategy: exactly four warehouse fact queries per report, whatever
the size of the tree:
  1-2. month and YTD facts for the selected level itself (summary row)
  3-4. month and YTD facts for all member customers in one batch
Every region, district and facility aggregate below the root is produced
by filtering the member fact sets in memory by customer id.

Pruning is leaf-only: a facility whose month Income actual is effectively
zero is dropped; districts, regions and subsidiaries are always kept.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from config.settings import ReportConfig, get_config
from src.core.error_taxonomy import NoDataError
from src.core.fiscal_calendar import parse_report_date
from src.core.observability import SpanKind, Tracer
from src.data.account_hierarchy import RollupMode
from src.data.census import CensusProvider
from src.data.config_store import ConfigBundle
from src.data.entity_hierarchy import DistrictSelection, Entity, OrgUnit, TagGroup
from src.data.fact_set import FactSet, Period, Scenario
from src.reports.models import AccountValues, AssemblyResult, ReportLevel, ReportNode
from src.tools.warehouse_client import FactFilter

logger = logging.getLogger(__name__)

FILTER_ALL = "all"


@dataclass
class PeriodFacts:
    """The month and YTD fact sets of one fetch."""
    month: FactSet
    ytd: FactSet

    def filter_customers(self, customer_ids) -> "PeriodFacts":
        ids = list(customer_ids)
        return PeriodFacts(self.month.filter_customers(ids), self.ytd.filter_customers(ids))


class ReportAssembler:
    """
    Orchestrates one report request.

    The warehouse is injected; anything with `fetch_facts`,
    `fetch_entities_in_region` and `fetch_entities_in_subsidiary` works.
    """

    def __init__(
        self,
        warehouse,
        bundle: ConfigBundle,
        census: Optional[CensusProvider] = None,
        report_config: Optional[ReportConfig] = None,
        tracer: Optional[Tracer] = None,
    ):
        self.warehouse = warehouse
        self.bundle = bundle
        self.census = census
        self.report_config = report_config or get_config().report
        self.tracer = tracer or Tracer()
        self._fetch_count = 0
        self._mode = RollupMode.DISPLAY

    @property
    def fetch_count(self) -> int:
        """Fact fetches issued by this assembler."""
        return self._fetch_count

    @property
    def accounts(self):
        return self.bundle.accounts

    @property
    def organization(self):
        return self.bundle.organization

    # ---- entry point --------------------------------------------------

    def assemble_report(
        self,
        selector: str,
        level,
        report_date,
        pl_type: Optional[str] = None,
        region_filter: Optional[str] = None,
        subsidiary_filter: Optional[str] = None,
    ) -> AssemblyResult:
        """
        Assemble the full report tree for a selection.

        Args:
            selector: district id, "tag_<Tag>", region id or subsidiary id
                (optionally "<id> - <label>")
            level: ReportLevel or "district" / "region" / "subsidiary"
            report_date: the report month
            pl_type: "Standard" (Display rollup) or "Operational"
            region_filter: narrows a subsidiary report to one region
            subsidiary_filter: narrows a region report to one subsidiary

        Raises:
            SelectorNotFoundError: unknown selector or filter
            NoDataError: the selection has no customers
            WarehouseError / AuthenticationError: fetch failures
        """
        if not isinstance(level, ReportLevel):
            level = ReportLevel.from_hierarchy(str(level))
        month = parse_report_date(report_date).isoformat()
        self._mode = RollupMode.from_pl_type(pl_type or self.report_config.default_pl_type)
        self._fetch_count = 0

        with self.tracer.start_trace(level.value, selector):
            if level == ReportLevel.DISTRICT:
                node = self._assemble_district_selection(selector, month)
            elif level == ReportLevel.REGION:
                node = self._assemble_region_selection(selector, month, subsidiary_filter)
            elif level == ReportLevel.SUBSIDIARY:
                node = self._assemble_subsidiary_selection(selector, month, region_filter)
            else:
                raise ValueError(f"Reports cannot be selected at the {level.value} level")

        counts = node.child_counts
        logger.info(
            f"Assembled {node.type_label} {node.entity_name!r}: {counts.regions} regions, "
            f"{counts.districts} districts, {counts.facilities} facilities"
        )
        logger.info(
            f"Used {self._fetch_count} warehouse queries instead of "
            f"{2 + 2 * (counts.regions + counts.districts + counts.facilities)}"
        )
        return AssemblyResult(kept=True, node=node, report_date=month, fetch_count=self._fetch_count)

    # ---- fetching -----------------------------------------------------

    def _fetch(self, fact_filter: FactFilter, month: str, name: str) -> PeriodFacts:
        """Month + YTD fetch for one filter (two warehouse queries)."""
        fact_sets = []
        for period in (Period.MONTH, Period.YTD):
            with self.tracer.start_span(
                f"{name}_{period.value}", SpanKind.DATA_RETRIEVAL, {"filter": fact_filter.describe()}
            ) as span:
                self._fetch_count += 1
                facts = self.warehouse.fetch_facts(
                    fact_filter,
                    month,
                    ytd=(period == Period.YTD),
                    label_for=self.accounts.label_for_account_id,
                )
                if span is not None:
                    span.attributes["rows"] = len(facts)
            fact_sets.append(FactSet(facts, period))
        return PeriodFacts(*fact_sets)

    def _fetch_members(self, entities: List[Entity], month: str) -> PeriodFacts:
        return self._fetch(FactFilter(customer_ids=[e.id for e in entities]), month, "members")

    # ---- rollup -------------------------------------------------------

    def compute_values(self, facts: PeriodFacts) -> AccountValues:
        """Four independent rollups: Actuals/Budget x month/YTD."""
        rollup = self.accounts.rollup
        return AccountValues(
            month_actual=rollup(facts.month.account_totals(Scenario.ACTUALS), self._mode),
            month_budget=rollup(facts.month.account_totals(Scenario.BUDGET), self._mode),
            ytd_actual=rollup(facts.ytd.account_totals(Scenario.ACTUALS), self._mode),
            ytd_budget=rollup(facts.ytd.account_totals(Scenario.BUDGET), self._mode),
        )

    def has_revenue(self, values: AccountValues) -> bool:
        income = values.income(self.report_config.income_account).month_actual
        return abs(income) >= Decimal(str(self.report_config.revenue_threshold))

    # ---- node builders ------------------------------------------------

    def assemble_facility(self, entity: Entity, member_facts: PeriodFacts, parent_district: str) -> Tuple[bool, Optional[ReportNode]]:
        """
        Returns:
            (kept, node); (False, None) when the facility has no revenue
        """
        values = self.compute_values(member_facts.filter_customers([entity.id]))
        if not self.has_revenue(values):
            logger.debug(f"Pruned facility {entity.label!r}: no month revenue")
            return False, None

        census = self.census.for_code(entity.census_code) if self.census else None
        return True, ReportNode(
            level=ReportLevel.FACILITY,
            entity_name=entity.label,
            values=values,
            parent_district=parent_district,
            start_date=entity.start_date,
            actual_census=census.actual if census else None,
            budget_census=census.budget if census else None,
        )

    def _facility_children(self, members: List[Entity], member_facts: PeriodFacts, district_name: str) -> List[ReportNode]:
        children = []
        for entity in members:
            kept, node = self.assemble_facility(entity, member_facts, district_name)
            if kept:
                children.append(node)
        return children

    def _apply_district_census(self, node: ReportNode, members: List[Entity]):
        if not self.census:
            return
        kept = {c.entity_name for c in node.children}
        census = self.census.for_codes(m.census_code for m in members if m.label in kept)
        node.actual_census = census.actual
        node.budget_census = census.budget

    def assemble_district(self, group: TagGroup, member_facts: PeriodFacts) -> ReportNode:
        """A tag group inside a region: values filtered from the member facts."""
        node = ReportNode(
            level=ReportLevel.DISTRICT,
            entity_name=group.label,
            values=self.compute_values(member_facts.filter_customers(group.customer_ids)),
            source_districts=list(group.source_districts),
        )
        node.children = self._facility_children(group.members, member_facts, group.label)
        self._apply_district_census(node, group.members)
        logger.info(
            f"District {group.label!r}: {len(node.children)} of {len(group.members)} facilities kept"
        )
        return node

    def _assemble_district_selection(self, selector: str, month: str) -> ReportNode:
        selection: DistrictSelection = self.organization.resolve_district(selector)
        ids = [m.id for m in selection.members]

        summary = self._fetch(FactFilter(customer_ids=ids), month, "district_summary")
        member_facts = self._fetch_members(selection.members, month)

        node = ReportNode(
            level=ReportLevel.DISTRICT,
            entity_name=selection.name,
            values=self.compute_values(summary),
            is_tag=selection.is_tag,
            source_districts=selection.source_districts,
        )
        with self.tracer.start_span("assemble_facilities", SpanKind.ASSEMBLY, {"members": len(ids)}):
            node.children = self._facility_children(selection.members, member_facts, selection.name)
            self._apply_district_census(node, selection.members)
        return node

    def _district_nodes(self, entities: List[Entity], member_facts: PeriodFacts) -> List[ReportNode]:
        return [self.assemble_district(g, member_facts) for g in self.organization.group_by_tags(entities)]

    def _resolve_filter(self, value: Optional[str], resolve) -> Optional[OrgUnit]:
        if not value or value == FILTER_ALL:
            return None
        return resolve(value)

    def _assemble_region_selection(self, selector: str, month: str, subsidiary_filter: Optional[str]) -> ReportNode:
        region = self.organization.resolve_region(selector)
        subsidiary = self._resolve_filter(subsidiary_filter, self.organization.resolve_subsidiary)
        subsidiary_id = subsidiary.internal_id if subsidiary else None

        rows = self.warehouse.fetch_entities_in_region(region.internal_id, subsidiary_id)
        entities = self.organization.entities_from_rows(rows)
        if not entities:
            raise NoDataError("region", selector, "No customers found for selected region/subsidiary combination")

        summary = self._fetch(
            FactFilter(region_id=region.internal_id, subsidiary_id=subsidiary_id), month, "region_summary"
        )
        member_facts = self._fetch_members(entities, month)

        node = ReportNode(
            level=ReportLevel.REGION,
            entity_name=region.label,
            values=self.compute_values(summary),
        )
        with self.tracer.start_span("assemble_districts", SpanKind.ASSEMBLY, {"members": len(entities)}):
            node.children = self._district_nodes(entities, member_facts)
        return node

    def _assemble_subsidiary_selection(self, selector: str, month: str, region_filter: Optional[str]) -> ReportNode:
        subsidiary = self.organization.resolve_subsidiary(selector)
        region_unit = self._resolve_filter(region_filter, self.organization.resolve_region)
        region_id = region_unit.internal_id if region_unit else None

        rows = self.warehouse.fetch_entities_in_subsidiary(subsidiary.internal_id, region_id)
        entities = self.organization.entities_from_rows(rows)
        region_groups = self.organization.group_by_region(entities)
        if not region_groups:
            raise NoDataError("subsidiary", selector)

        summary = self._fetch(
            FactFilter(subsidiary_id=subsidiary.internal_id, region_id=region_id), month, "subsidiary_summary"
        )
        member_facts = self._fetch_members([e for _, members in region_groups for e in members], month)

        node = ReportNode(
            level=ReportLevel.SUBSIDIARY,
            entity_name=subsidiary.label,
            values=self.compute_values(summary),
        )
        with self.tracer.start_span("assemble_regions", SpanKind.ASSEMBLY, {"regions": len(region_groups)}):
            for region, members in region_groups:
                region_node = ReportNode(
                    level=ReportLevel.REGION,
                    entity_name=region.label,
                    values=self.compute_values(member_facts.filter_customers(e.id for e in members)),
                )
                region_node.children = self._district_nodes(members, member_facts)
                node.children.append(region_node)
        return node
