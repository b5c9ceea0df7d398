"""
Unit tests for in-memory fact sets.
"""
from decimal import Decimal

import pytest

from src.data.fact_set import FactSet, Period, Scenario, TransactionFact, to_decimal


@pytest.fixture
def facts():
    return [
        TransactionFact("Revenue", "1", "11", "1", "Actuals", Decimal("100.10")),
        TransactionFact("Revenue", "1", "11", "1", "Actuals", Decimal("0.20")),
        TransactionFact("Revenue", "2", "11", "1", "Actuals", Decimal("50")),
        TransactionFact("Revenue", "2", "11", "1", "Budget", Decimal("60")),
        TransactionFact("Rent", "3", "12", "1", "Actuals", Decimal("-10")),
    ]


class TestFactSet:

    def test_account_totals_per_scenario(self, facts):
        fact_set = FactSet(facts)
        assert fact_set.account_totals(Scenario.ACTUALS) == {
            "Revenue": Decimal("150.30"),
            "Rent": Decimal("-10"),
        }
        assert fact_set.account_totals(Scenario.BUDGET) == {"Revenue": Decimal("60")}

    def test_filter_customers_is_in_memory(self, facts):
        fact_set = FactSet(facts, Period.YTD)
        filtered = fact_set.filter_customers(["1", "3"])

        assert len(filtered) == 3
        assert filtered.period == Period.YTD
        assert sorted(filtered.customer_ids) == ["1", "3"]
        assert len(fact_set) == 5

    def test_filter_accepts_non_string_ids(self, facts):
        assert len(FactSet(facts).filter_customers([2])) == 2

    def test_filter_to_nothing(self, facts):
        empty = FactSet(facts).filter_customers(["nope"])
        assert len(empty) == 0
        assert empty.account_totals(Scenario.ACTUALS) == {}

    def test_empty_fact_set(self):
        fact_set = FactSet()
        assert len(fact_set) == 0
        assert fact_set.customer_ids == []
        assert fact_set.to_dict() == {"period": "month", "rows": 0, "customers": 0}

    def test_totals_independent_of_row_order(self, facts):
        forward = FactSet(facts).account_totals(Scenario.ACTUALS)
        backward = FactSet(list(reversed(facts))).account_totals(Scenario.ACTUALS)
        assert forward == backward


class TestToDecimal:

    def test_values(self):
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(3) == Decimal("3")
        assert to_decimal(None) == Decimal("0")

    def test_bad_value_is_zero(self, caplog):
        assert to_decimal("n/a") == Decimal("0")
        assert "Unparseable" in caplog.text

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", float("nan"), Decimal("sNaN")])
    def test_non_finite_value_is_zero(self, value, caplog):
        result = to_decimal(value)
        assert result.is_finite()
        assert result == Decimal("0")
        assert "Non-finite" in caplog.text

    def test_nan_does_not_poison_totals(self):
        facts = [
            TransactionFact("Revenue", "1", "11", "1", "Actuals", to_decimal("NaN")),
            TransactionFact("Revenue", "2", "11", "1", "Actuals", to_decimal("5")),
        ]
        assert FactSet(facts).account_totals(Scenario.ACTUALS) == {"Revenue": Decimal("5")}
