"""
Unit tests for report headers, account rows and HTML rendering.
"""
from decimal import Decimal

import pytest

from src.data.account_hierarchy import RollupMode
from src.reports.assembler import ReportAssembler
from src.reports.models import AccountValues, ReportLevel, ReportNode
from src.tools.report_renderer import ReportRenderer, compose_header, write_html_report
from tests.fake_warehouse import SECTION_CONFIG, FakeWarehouse

REPORT_DATE = "2025-06-01"


@pytest.fixture
def renderer(account_hierarchy):
    return ReportRenderer(account_hierarchy, SECTION_CONFIG, company_name="Yona Solutions")


@pytest.fixture
def subsidiary_result(warehouse, bundle, report_config):
    return ReportAssembler(warehouse, bundle, report_config=report_config).assemble_report(
        "s1", "subsidiary", REPORT_DATE
    )


def values(**month_actual):
    actual = {k: Decimal(str(v)) for k, v in month_actual.items()}
    return AccountValues(month_actual=actual, month_budget={}, ytd_actual=dict(actual), ytd_budget={})


class TestComposeHeader:

    def test_subsidiary_header_uses_final_counts(self, subsidiary_result):
        header = compose_header(subsidiary_result.node, REPORT_DATE)
        assert header.subtitle == "Actual vs Budget"
        assert header.month_label == "Jun - 2025"
        assert (header.region_count, header.district_count, header.facility_count) == (2, 2, 3)
        html = ReportRenderer.header_html(header)
        assert html.index("Regions: 2") < html.index("Districts: 2") < html.index("Facilities: 3")

    def test_region_header(self, subsidiary_result):
        east = subsidiary_result.node.children[1]
        header = compose_header(east, REPORT_DATE, "Yona Solutions")
        assert header.subtitle == "Yona Solutions"
        assert header.district_count == 1
        assert header.facility_count == 1

    def test_district_tag_header(self):
        node = ReportNode(level=ReportLevel.DISTRICT, entity_name="T1", values=AccountValues(), is_tag=True)
        header = compose_header(node, REPORT_DATE)
        assert header.type_label == "District Tag"
        assert header.facility_count == 0

    def test_facility_header(self):
        node = ReportNode(
            level=ReportLevel.FACILITY, entity_name="AB01 - Maple House", values=AccountValues(),
            parent_district="D1", start_date="2020-01-01", actual_census=81.6,
        )
        header = compose_header(node, REPORT_DATE)
        assert header.parent_district == "D1"
        assert header.start_date == "2020-01-01"
        assert header.actual_census == 81.6
        assert header.facility_count is None


class TestBuildRows:

    def test_sections_and_child_first_order(self, renderer):
        node = ReportNode(
            level=ReportLevel.FACILITY, entity_name="X",
            values=values(**{"Income": 100, "Resident Revenue": 100, "Expense": -15, "Rent": -10,
                             "Management Fee": -5}),
        )
        rows = renderer.build_rows(node)
        labels = [r.label for r in rows]

        assert labels == [
            "REVENUE", "Resident Revenue", "Income",
            "COST OF GOODS SOLD",
            "EXPENSES", "Rent", "Management Fee", "Expense",
        ]

    def test_levels_bold_and_double_lines(self, renderer):
        node = ReportNode(
            level=ReportLevel.FACILITY, entity_name="X",
            values=values(**{"Income": 100, "Resident Revenue": 100}),
        )
        rows = {r.label: r for r in renderer.build_rows(node)}

        assert rows["Income"].level == 1 and rows["Income"].bold and rows["Income"].double_lines
        assert rows["Resident Revenue"].level == 2 and not rows["Resident Revenue"].bold
        assert rows["REVENUE"].is_section

    def test_empty_rows_skipped(self, renderer):
        node = ReportNode(level=ReportLevel.FACILITY, entity_name="X", values=values(Income=100))
        labels = [r.label for r in renderer.build_rows(node)]
        assert "Resident Revenue" not in labels
        assert "Rent" not in labels

    def test_excluded_account_children_keep_level(self):
        from src.data.account_hierarchy import AccountHierarchyBuilder
        hierarchy = AccountHierarchyBuilder().from_document({
            "1": {"label": "Expense"},
            "2": {"label": "Overhead", "parent": "1", "operationalExcluded": True},
            "3": {"label": "Rent", "parent": "2", "account_internal_id": "6000"},
        })
        node = ReportNode(level=ReportLevel.FACILITY, entity_name="X",
                          values=values(Expense=-10, Overhead=-10, Rent=-10))

        operational = ReportRenderer(hierarchy, {"EXPENSES": ["Expense"]}, mode=RollupMode.OPERATIONAL)
        rows = {r.label: r for r in operational.build_rows(node)}
        assert "Overhead" not in rows
        assert rows["Rent"].level == 2

        display = ReportRenderer(hierarchy, {"EXPENSES": ["Expense"]}, mode=RollupMode.DISPLAY)
        rows = {r.label: r for r in display.build_rows(node)}
        assert rows["Overhead"].level == 2
        assert rows["Rent"].level == 3

    def test_unknown_accounts_listed_last(self, renderer):
        node = ReportNode(level=ReportLevel.FACILITY, entity_name="X",
                          values=values(**{"Income": 100, "Resident Revenue": 100,
                                           "Unknown Account 7777": 3, "Unknown Account 8888": 0}))
        rows = renderer.build_rows(node)

        assert [r.label for r in rows[-2:]] == ["Unknown Accounts", "Unknown Account 7777"]
        assert rows[-2].is_section
        assert rows[-1].level == 1
        assert rows[-1].cells[:2] == ["3", "3.0%"]

    def test_no_unknown_section_when_all_accounts_known(self, renderer):
        node = ReportNode(level=ReportLevel.FACILITY, entity_name="X", values=values(Income=100))
        assert "Unknown Accounts" not in [r.label for r in renderer.build_rows(node)]

    def test_cells_use_node_income(self, renderer):
        node = ReportNode(level=ReportLevel.FACILITY, entity_name="X",
                          values=values(**{"Income": 200, "Expense": -50, "Rent": -50}))
        rows = {r.label: r for r in renderer.build_rows(node)}
        assert rows["Expense"].cells[:2] == ["(50)", "-25.0%"]
        # No budget income: budget percent is a dash
        assert rows["Expense"].cells[3] == "-"


class TestRenderDocument:

    def test_document_contains_every_report(self, renderer, subsidiary_result):
        html = renderer.render_document(subsidiary_result)

        assert html.count('class="pnl-report-container') == len(subsidiary_result.reports())
        assert "Regions: 2" in html
        assert "Districts: 2" in html
        assert "Facilities: 3" in html
        assert "Jun - 2025" in html
        assert "GH04 - Elm Lodge" not in html

    def test_unknown_account_amount_is_rendered(self, renderer, bundle, report_config):
        warehouse = FakeWarehouse(month_facts=[("4000", "103", "10", "0"), ("7777", "103", "3", "0")])
        result = ReportAssembler(warehouse, bundle, report_config=report_config).assemble_report(
            "d3", "district", REPORT_DATE
        )
        html = renderer.render_document(result)
        assert "Unknown Accounts" in html
        assert html.count("Unknown Account 7777") == 2

    def test_html_is_escaped(self, renderer):
        from src.reports.models import AssemblyResult
        node = ReportNode(level=ReportLevel.DISTRICT, entity_name="A & B <East>", values=values(Income=1))
        html = renderer.render_document(AssemblyResult(kept=True, node=node, report_date=REPORT_DATE))
        assert "A &amp; B &lt;East&gt;" in html

    def test_padding_per_level(self, renderer):
        node = ReportNode(level=ReportLevel.FACILITY, entity_name="X",
                          values=values(**{"Income": 100, "Resident Revenue": 100}))
        report = renderer.render(node, REPORT_DATE)
        html = renderer.report_html(report)
        assert "padding-left:8px" in html
        assert "padding-left:16px" in html
        assert "border-top: 1px solid black" in html

    def test_write_html_report(self, tmp_path, renderer, subsidiary_result):
        path = write_html_report(tmp_path / "out" / "report.html", renderer.render_document(subsidiary_result))
        assert path.exists()
        assert path.read_text(encoding="utf-8").startswith("<!doctype html>")
