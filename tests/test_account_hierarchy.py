"""
Unit tests for account hierarchy rollups.

Tests cover:
- Children map construction
- Display vs Operational rollups
- Order independence and idempotence
- Load-time cycle detection
- Unknown account id mapping
"""
import random
from decimal import Decimal

import pytest

from src.core.error_taxonomy import AccountCycleError, ErrorCategory
from src.data.account_hierarchy import (
    AccountHierarchyBuilder,
    AccountNode,
    RollupMode,
    build_children_map,
    compute_rollups,
    find_cycle,
)


def D(value):
    return Decimal(str(value))


@pytest.fixture
def abc_accounts():
    """A has children B and C; C is operationally excluded."""
    nodes = [
        AccountNode(label="A"),
        AccountNode(label="B", parent_label="A"),
        AccountNode(label="C", parent_label="A", operational_excluded=True),
    ]
    return {n.label: n for n in nodes}


class TestBuildChildrenMap:

    def test_children_in_encounter_order(self, abc_accounts):
        assert build_children_map(abc_accounts) == {"A": ["B", "C"]}

    def test_roots_have_no_entry(self):
        children = build_children_map([AccountNode(label="X"), AccountNode(label="Y")])
        assert children == {}

    def test_missing_label_is_skipped(self):
        nodes = [AccountNode(label="A"), AccountNode(label="", parent_label="A"), None]
        assert build_children_map(nodes) == {}


class TestComputeRollups:

    def test_display_mode_scenario(self, abc_accounts):
        children = build_children_map(abc_accounts)
        result = compute_rollups({"A": D(0), "B": D(10), "C": D(5)}, abc_accounts, children, RollupMode.DISPLAY)
        assert result == {"A": D(15), "B": D(10), "C": D(5)}

    def test_operational_mode_scenario(self, abc_accounts):
        """C is computed but not added to A."""
        children = build_children_map(abc_accounts)
        result = compute_rollups({"A": D(0), "B": D(10), "C": D(5)}, abc_accounts, children, RollupMode.OPERATIONAL)
        assert result == {"A": D(10), "B": D(10), "C": D(5)}

    def test_display_excluded_applies_in_both_modes(self):
        accounts = {
            "A": AccountNode(label="A"),
            "B": AccountNode(label="B", parent_label="A", display_excluded=True),
        }
        children = build_children_map(accounts)
        for mode in RollupMode:
            assert compute_rollups({"B": D(7)}, accounts, children, mode)["A"] == D(0)

    def test_excluded_subtree_still_rolls_up(self):
        accounts = {
            "Root": AccountNode(label="Root"),
            "Mid": AccountNode(label="Mid", parent_label="Root", display_excluded=True),
            "Leaf": AccountNode(label="Leaf", parent_label="Mid"),
        }
        children = build_children_map(accounts)
        result = compute_rollups({"Leaf": D(4)}, accounts, children)
        assert result["Mid"] == D(4)
        assert result["Root"] == D(0)

    def test_child_missing_from_accounts_contributes_zero(self):
        accounts = {"A": AccountNode(label="A")}
        result = compute_rollups({"A": D(1), "Ghost": D(100)}, accounts, {"A": ["Ghost"]})
        assert result["A"] == D(1)

    def test_unconfigured_labels_pass_through(self, abc_accounts):
        raw = {"B": D(10), "Unknown Account 7777": D(3)}
        result = compute_rollups(raw, abc_accounts, build_children_map(abc_accounts))
        assert result["Unknown Account 7777"] == D(3)
        assert result["A"] == D(10)

    def test_missing_raw_totals_are_zero(self, abc_accounts):
        result = compute_rollups({}, abc_accounts, build_children_map(abc_accounts))
        assert all(v == 0 for v in result.values())

    def test_parent_equals_own_plus_included_children(self):
        rng = random.Random(3)
        nodes = [AccountNode(label="n0")]
        for i in range(1, 40):
            nodes.append(AccountNode(
                label=f"n{i}",
                parent_label=f"n{rng.randrange(i)}",
                display_excluded=rng.random() < 0.2,
                operational_excluded=rng.random() < 0.2,
            ))
        accounts = {n.label: n for n in nodes}
        children = build_children_map(nodes)
        raw = {n.label: D(rng.randint(-50, 50)) for n in nodes}

        for mode in RollupMode:
            result = compute_rollups(raw, accounts, children, mode)
            for label in accounts:
                expected = raw[label] + sum(
                    (result[c] for c in children.get(label, []) if not accounts[c].is_excluded(mode)),
                    D(0),
                )
                assert result[label] == expected

    def test_visit_order_does_not_matter(self, abc_accounts):
        children = build_children_map(abc_accounts)
        raw = {"A": D(1), "B": D(10), "C": D(5)}
        reversed_accounts = dict(reversed(list(abc_accounts.items())))

        forward = compute_rollups(raw, abc_accounts, children, RollupMode.OPERATIONAL)
        backward = compute_rollups(raw, reversed_accounts, children, RollupMode.OPERATIONAL)
        assert forward == backward

    def test_idempotent(self, abc_accounts):
        children = build_children_map(abc_accounts)
        raw = {"B": D("10.25"), "C": D("5.5")}
        assert compute_rollups(raw, abc_accounts, children) == compute_rollups(raw, abc_accounts, children)


class TestRollupMode:

    def test_from_pl_type(self):
        assert RollupMode.from_pl_type("Operational") is RollupMode.OPERATIONAL
        assert RollupMode.from_pl_type("operational") is RollupMode.OPERATIONAL
        assert RollupMode.from_pl_type("Standard") is RollupMode.DISPLAY
        assert RollupMode.from_pl_type(None) is RollupMode.DISPLAY


class TestFindCycle:

    def test_forest_has_no_cycle(self):
        assert find_cycle({"A": None, "B": "A", "C": "B"}) is None

    def test_cycle_is_closed_path(self):
        cycle = find_cycle({"A": "C", "B": "A", "C": "B"})
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"A", "B", "C"}

    def test_self_parent(self):
        assert find_cycle({"A": "A"}) == ["A", "A"]


class TestAccountHierarchyBuilder:

    def test_from_document_translates_parent_ids(self, account_hierarchy):
        assert account_hierarchy.get_account("Resident Revenue").parent_label == "Income"
        assert account_hierarchy.get_children("Expense") == ["Rent", "Management Fee"]
        assert account_hierarchy.roots == ["Income", "Cost of Sales", "Expense"]

    def test_double_lines_flag(self, account_hierarchy):
        assert account_hierarchy.get_account("Income").double_lines is True

    def test_entries_without_label_skipped(self):
        hierarchy = AccountHierarchyBuilder().from_document({
            "1": {"label": "Income"},
            "2": {"parent": "1"},
        })
        assert hierarchy.total_accounts == 1

    def test_cycle_raises_at_load_time(self):
        doc = {
            "1": {"label": "A", "parent": "3"},
            "2": {"label": "B", "parent": "1"},
            "3": {"label": "C", "parent": "2"},
        }
        with pytest.raises(AccountCycleError) as exc_info:
            AccountHierarchyBuilder().from_document(doc)

        assert exc_info.value.category == ErrorCategory.ACCOUNT_HIERARCHY_CYCLE
        assert set(exc_info.value.cycle) == {"A", "B", "C"}

    def test_unknown_parent_becomes_root(self, caplog):
        hierarchy = AccountHierarchyBuilder().from_nodes([AccountNode(label="Orphan", parent_label="Nowhere")])
        assert hierarchy.roots == ["Orphan"]
        assert "unknown parent" in caplog.text

    def test_duplicate_labels_keep_first(self):
        hierarchy = AccountHierarchyBuilder().from_nodes([
            AccountNode(label="A", account_internal_id="1"),
            AccountNode(label="A", account_internal_id="2"),
        ])
        assert hierarchy.get_account("A").account_internal_id == "1"


class TestAccountIdMapping:

    def test_known_id(self, account_hierarchy):
        assert account_hierarchy.label_for_account_id("4000") == "Resident Revenue"
        assert account_hierarchy.label_for_account_id(4000) == "Resident Revenue"

    def test_unknown_id_gets_synthetic_label(self, account_hierarchy, caplog):
        assert account_hierarchy.label_for_account_id("9999") == "Unknown Account 9999"
        assert "9999" in caplog.text

    def test_unknown_id_warns_once(self, account_hierarchy, caplog):
        for _ in range(5):
            account_hierarchy.label_for_account_id("7777")
        account_hierarchy.label_for_account_id("8888")
        warnings = [r.getMessage() for r in caplog.records if "No configured account" in r.getMessage()]
        assert len(warnings) == 2
        assert sum("7777" in m for m in warnings) == 1

    def test_rollup_through_hierarchy(self, account_hierarchy):
        raw = {"Rent": D(-10), "Management Fee": D(-5), "Resident Revenue": D(100)}
        display = account_hierarchy.rollup(raw, RollupMode.DISPLAY)
        operational = account_hierarchy.rollup(raw, RollupMode.OPERATIONAL)
        assert display["Expense"] == D(-15)
        assert operational["Expense"] == D(-10)
        assert display["Income"] == D(100)
