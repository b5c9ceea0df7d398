"""
Unit tests for multi-level report assembly.

Tests cover:
- District, district-tag, region and subsidiary trees
- Leaf-only pruning of facilities without revenue
- Fixed warehouse fetch count regardless of tree size
- Child counts after pruning
- Census and Operational mode
- Caller-visible no-data conditions
"""
import logging
from decimal import Decimal

import pytest

from src.core.error_taxonomy import NoDataError, SelectorNotFoundError
from src.core.observability import Tracer
from src.data.census import CensusProvider
from src.data.config_store import ConfigBundle
from src.data.entity_hierarchy import OrganizationHierarchy
from src.reports.assembler import ReportAssembler
from src.reports.models import ReportLevel
from tests.fake_warehouse import CUSTOMER_DOC, DEPARTMENT_DOC, REGION_DOC, FakeWarehouse

REPORT_DATE = "2025-06-01"


@pytest.fixture
def assembler(warehouse, bundle, report_config):
    return ReportAssembler(warehouse, bundle, report_config=report_config)


def names(nodes):
    return [n.entity_name for n in nodes]


class TestDistrictReports:

    def test_single_district(self, assembler):
        result = assembler.assemble_report("d3", "district", REPORT_DATE)
        node = result.node

        assert result.kept
        assert node.level == ReportLevel.DISTRICT
        assert node.type_label == "District"
        assert node.entity_name == "D3"
        # 104 has no revenue and is pruned
        assert names(node.children) == ["EF03 - Pine Ridge"]
        assert node.children[0].parent_district == "D3"
        assert node.child_counts.facilities == 1

    def test_district_values_include_pruned_facility(self, assembler):
        """Pruning removes the facility row, not its facts from the district."""
        node = assembler.assemble_report("d3", "district", REPORT_DATE).node
        assert node.values.month_actual["Labor"] == Decimal("-50")
        assert node.values.month_actual["Cost of Sales"] == Decimal("-50")

    def test_district_tag(self, assembler):
        node = assembler.assemble_report("tag_T1", "district", REPORT_DATE).node

        assert node.type_label == "District Tag"
        assert node.entity_name == "T1"
        assert node.source_districts == ["D1", "D2"]
        assert node.values.month_actual["Income"] == Decimal("300")
        assert node.values.ytd_actual["Income"] == Decimal("900")
        assert names(node.children) == ["AB01 - Maple House", "CD02 - Oak Court"]

    def test_district_uses_four_fetches(self, assembler, warehouse):
        result = assembler.assemble_report("tag_T1", "district", REPORT_DATE)
        assert result.fetch_count == 4
        assert warehouse.fetch_count == 4
        assert [ytd for _, _, ytd in warehouse.fact_calls] == [False, True, False, True]

    def test_unknown_district(self, assembler, warehouse):
        with pytest.raises(SelectorNotFoundError):
            assembler.assemble_report("missing", "district", REPORT_DATE)
        assert warehouse.fetch_count == 0


class TestRegionReports:

    def test_region_groups_districts_by_tag(self, assembler):
        node = assembler.assemble_report("r1", "region", REPORT_DATE).node

        assert node.level == ReportLevel.REGION
        assert node.entity_name == "West"
        assert names(node.children) == ["T1"]
        district = node.children[0]
        assert district.level == ReportLevel.DISTRICT
        assert district.source_districts == ["D1", "D2"]
        assert names(district.children) == ["AB01 - Maple House", "CD02 - Oak Court"]

    def test_region_summary_from_region_query(self, assembler, warehouse):
        assembler.assemble_report("r1", "region", REPORT_DATE)
        summary_filter = warehouse.fact_calls[0][0]
        member_filter = warehouse.fact_calls[2][0]

        assert summary_filter.region_id == "11"
        assert summary_filter.customer_ids is None
        assert member_filter.customer_ids == ["101", "102"]

    def test_district_kept_when_all_facilities_pruned(self, bundle, report_config):
        warehouse = FakeWarehouse(month_facts=[("5000", "103", "-40", "-40"), ("5000", "104", "-1", "-1")])
        node = ReportAssembler(warehouse, bundle, report_config=report_config).assemble_report(
            "r2", "region", REPORT_DATE
        ).node

        assert names(node.children) == ["D3"]
        assert node.children[0].children == []
        assert node.child_counts.districts == 1
        assert node.child_counts.facilities == 0

    def test_subsidiary_filter(self, assembler, warehouse):
        assembler.assemble_report("r1", "region", REPORT_DATE, subsidiary_filter="s1")
        assert warehouse.entity_calls == [("region", "11", "1")]
        assert warehouse.fact_calls[0][0].subsidiary_id == "1"

    def test_filter_all_means_no_filter(self, assembler, warehouse):
        assembler.assemble_report("r1", "region", REPORT_DATE, subsidiary_filter="all")
        assert warehouse.entity_calls == [("region", "11", None)]

    def test_region_without_customers(self, bundle, report_config):
        warehouse = FakeWarehouse(customer_rows=[])
        with pytest.raises(NoDataError):
            ReportAssembler(warehouse, bundle, report_config=report_config).assemble_report(
                "r1", "region", REPORT_DATE
            )
        assert warehouse.fetch_count == 0


class TestSubsidiaryReports:

    def test_tree_shape_and_counts(self, assembler):
        result = assembler.assemble_report("s1", "subsidiary", REPORT_DATE)
        node = result.node

        assert node.type_label == "Subsidiary"
        assert names(node.children) == ["West", "East"]
        assert names(node.children[0].children) == ["T1"]
        assert names(node.children[1].children) == ["D3"]

        counts = node.child_counts
        assert (counts.regions, counts.districts, counts.facilities) == (2, 2, 3)
        assert node.children[1].child_counts.facilities == 1

    def test_region_values_filtered_in_memory(self, assembler):
        node = assembler.assemble_report("s1", "subsidiary", REPORT_DATE).node
        west, east = node.children
        assert west.values.month_actual["Income"] == Decimal("300")
        assert east.values.month_actual["Income"] == Decimal("50")
        assert node.values.month_actual["Income"] == Decimal("350")

    def test_reports_in_pre_order(self, assembler):
        result = assembler.assemble_report("s1", "subsidiary", REPORT_DATE)
        assert [n.level for n in result.reports()][:4] == [
            ReportLevel.SUBSIDIARY, ReportLevel.REGION, ReportLevel.DISTRICT, ReportLevel.FACILITY,
        ]

    def test_fetch_count_is_constant(self, bundle, report_config):
        """Four fact fetches however many facilities the subsidiary has."""
        customer_doc = dict(CUSTOMER_DOC)
        rows, facts = [], []
        for i in range(60):
            cid = str(1000 + i)
            district = ["d1", "d2", "d3"][i % 3]
            customer_doc[f"n{cid}"] = {"label": f"ZZ{i:02d} - Facility {i}", "parent": district,
                                       "customer_internal_id": cid}
            rows.append({"customer_id": cid, "label": cid, "region_id": ["11", "12"][i % 2], "subsidiary_id": "1"})
            facts.append(("4000", cid, "10", "10"))

        big_bundle = ConfigBundle(
            accounts=bundle.accounts,
            organization=OrganizationHierarchy.from_documents(customer_doc, REGION_DOC, DEPARTMENT_DOC),
            section_config=bundle.section_config,
        )
        warehouse = FakeWarehouse(month_facts=facts, customer_rows=rows)
        result = ReportAssembler(warehouse, big_bundle, report_config=report_config).assemble_report(
            "s1", "subsidiary", REPORT_DATE
        )

        assert result.node.child_counts.facilities == 60
        assert result.fetch_count == 4
        assert warehouse.fetch_count == 4

    def test_region_filter(self, assembler, warehouse):
        node = assembler.assemble_report("s1", "subsidiary", REPORT_DATE, region_filter="r2").node
        assert names(node.children) == ["East"]
        assert warehouse.entity_calls == [("subsidiary", "1", "12")]

    def test_unknown_region_filter(self, assembler):
        with pytest.raises(SelectorNotFoundError):
            assembler.assemble_report("s1", "subsidiary", REPORT_DATE, region_filter="r9")


class TestPruning:

    @pytest.mark.parametrize("income,kept", [
        ("0.00009", False),
        ("-0.00009", False),
        ("0.0001", True),
        ("-0.0001", True),
        ("0", False),
    ])
    def test_revenue_threshold(self, bundle, report_config, income, kept):
        warehouse = FakeWarehouse(month_facts=[("4000", "103", income, "0"), ("4000", "104", "5", "0")])
        node = ReportAssembler(warehouse, bundle, report_config=report_config).assemble_report(
            "d3", "district", REPORT_DATE
        ).node
        assert ("EF03 - Pine Ridge" in names(node.children)) is kept

    def test_pruning_logged_at_debug(self, assembler, caplog):
        caplog.set_level(logging.DEBUG, logger="src.reports.assembler")
        assembler.assemble_report("d3", "district", REPORT_DATE)
        pruned = [r for r in caplog.records if "Pruned facility" in r.getMessage()]
        assert len(pruned) == 1
        assert pruned[0].levelno == logging.DEBUG

    def test_assemble_facility_signals_no_revenue(self, assembler, organization, warehouse):
        from src.reports.assembler import PeriodFacts
        from src.data.fact_set import FactSet, Period

        label_for = assembler.accounts.label_for_account_id
        facts = PeriodFacts(
            FactSet(warehouse.fetch_facts(_all_customers(), REPORT_DATE, label_for=label_for), Period.MONTH),
            FactSet(warehouse.fetch_facts(_all_customers(), REPORT_DATE, ytd=True, label_for=label_for), Period.YTD),
        )
        kept, node = assembler.assemble_facility(organization.customers["104"], facts, "D3")
        assert (kept, node) == (False, None)

        kept, node = assembler.assemble_facility(organization.customers["103"], facts, "D3")
        assert kept
        assert node.values.month_actual["Income"] == Decimal("50")


def _all_customers():
    from src.tools.warehouse_client import FactFilter
    return FactFilter(customer_ids=["101", "102", "103", "104"])


class TestModesAndMetadata:

    def test_operational_mode_excludes_flagged_accounts(self, assembler):
        standard = assembler.assemble_report("d1", "district", REPORT_DATE, pl_type="Standard").node
        operational = assembler.assemble_report("d1", "district", REPORT_DATE, pl_type="Operational").node

        assert standard.values.month_actual["Expense"] == Decimal("-15")
        assert operational.values.month_actual["Expense"] == Decimal("-10")
        assert operational.values.month_actual["Management Fee"] == Decimal("-5")

    def test_census_on_facilities_and_districts(self, warehouse, bundle, report_config):
        census = CensusProvider([
            {"type": "Actuals", "customer_code": "EF03", "month": REPORT_DATE, "value": 80},
            {"type": "Budget", "customer_code": "EF03", "month": REPORT_DATE, "value": 90},
            {"type": "Actuals", "customer_code": "GH04", "month": REPORT_DATE, "value": 20},
        ], REPORT_DATE)
        node = ReportAssembler(warehouse, bundle, census=census, report_config=report_config).assemble_report(
            "d3", "district", REPORT_DATE
        ).node

        facility = node.children[0]
        assert (facility.actual_census, facility.budget_census) == (80, 90)
        # GH04 was pruned, so only EF03 counts toward the district
        assert (node.actual_census, node.budget_census) == (80, 90)

    def test_start_date_carried(self, assembler):
        node = assembler.assemble_report("d1", "district", REPORT_DATE).node
        assert node.children[0].start_date == "2020-01-01"

    def test_unknown_account_is_not_fatal(self, bundle, report_config, caplog):
        warehouse = FakeWarehouse(month_facts=[("4000", "103", "10", "0"), ("7777", "103", "3", "0")])
        node = ReportAssembler(warehouse, bundle, report_config=report_config).assemble_report(
            "d3", "district", REPORT_DATE
        ).node
        assert node.values.month_actual["Income"] == Decimal("10")
        assert node.values.month_actual["Unknown Account 7777"] == Decimal("3")
        assert node.children[0].values.month_actual["Unknown Account 7777"] == Decimal("3")
        assert "7777" in caplog.text

    def test_non_finite_fact_counts_as_zero(self, bundle, report_config):
        warehouse = FakeWarehouse(month_facts=[("4000", "103", "NaN", "0"), ("4000", "104", "5", "0")])
        node = ReportAssembler(warehouse, bundle, report_config=report_config).assemble_report(
            "d3", "district", REPORT_DATE
        ).node
        # 103 has only the NaN revenue and is pruned
        assert names(node.children) == ["GH04 - Elm Lodge"]
        assert node.values.month_actual["Income"] == Decimal("5")

    def test_fetch_summary_logged(self, assembler, caplog):
        caplog.set_level(logging.INFO)
        assembler.assemble_report("s1", "subsidiary", REPORT_DATE)
        assert "Used 4 warehouse queries instead of 16" in caplog.text

    def test_trace_counts_fetches(self, warehouse, bundle, report_config, tmp_path):
        tracer = Tracer(export_dir=tmp_path)
        ReportAssembler(warehouse, bundle, report_config=report_config, tracer=tracer).assemble_report(
            "r1", "region", REPORT_DATE
        )
        exported = list(tmp_path.glob("*.json"))
        assert len(exported) == 1
        assert '"fetch_count": 4' in exported[0].read_text()

    def test_facility_level_not_selectable(self, assembler):
        with pytest.raises(ValueError):
            assembler.assemble_report("103", ReportLevel.FACILITY, REPORT_DATE)

    def test_invalid_hierarchy(self, assembler):
        with pytest.raises(ValueError):
            assembler.assemble_report("d1", "county", REPORT_DATE)
