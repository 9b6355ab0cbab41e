"""Unit tests for TaxCalculator and the bracket table."""

import json
from decimal import Decimal

import pytest

from payslip_engine.calculators.tax_calculator import TaxCalculator, round2
from payslip_engine.config import DEFAULT_BRACKETS, InvalidTaxTableError, TaxBracket, TaxTable


@pytest.fixture
def calc() -> TaxCalculator:
    return TaxCalculator(TaxTable())


class TestAnnualTax:
    """Progressive bracket walk with rebate."""

    def test_below_threshold_is_zero(self, calc):
        assert calc.annual_tax(Decimal("0")) == 0
        assert calc.annual_tax(Decimal("95749.99")) == 0

    def test_threshold_equals_rebate_point(self, calc):
        # 95750 * 0.18 = 17235, exactly the primary rebate
        assert calc.annual_tax(Decimal("95750")) == 0

    def test_first_bracket(self, calc):
        # 120000 * 0.18 - 17235
        assert calc.annual_tax(Decimal("120000")) == Decimal("4365")

    def test_spans_two_brackets(self, calc):
        # 237100 * 0.18 = 42678, 2900 * 0.26 = 754, less rebate
        assert calc.annual_tax(Decimal("240000")) == Decimal("26197")

    def test_top_bracket_is_unbounded(self, calc):
        # 644489 on the first 1817000, 45% above it
        assert calc.annual_tax(Decimal("2000000")) == Decimal("709604")

    def test_bracket_boundary_is_inclusive(self, calc):
        assert calc.annual_tax(Decimal("237100")) == Decimal("42678") - Decimal("17235")

    def test_rebate_never_makes_tax_negative(self):
        table = TaxTable(tax_threshold=Decimal("0"))
        calc = TaxCalculator(table)
        assert calc.annual_tax(Decimal("1000")) == 0

    def test_monotonic_in_income(self, calc):
        previous = Decimal("0")
        for income in range(0, 2_500_000, 12_345):
            tax = calc.annual_tax(Decimal(income))
            assert tax >= previous
            previous = tax

    def test_bases_match_cumulative_slices(self):
        """Each bracket's base equals the tax on income below it."""
        raw = TaxCalculator(TaxTable(primary_rebate=Decimal("0"), tax_threshold=Decimal("0")))
        for lower, bracket in zip(DEFAULT_BRACKETS, DEFAULT_BRACKETS[1:]):
            assert raw.annual_tax(lower.up_to) == bracket.base


class TestUif:
    """UIF is capped at the earnings ceiling."""

    def test_below_ceiling(self, calc):
        assert round2(calc.uif(Decimal("10000"))) == Decimal("100.00")

    def test_at_and_above_ceiling(self, calc):
        assert round2(calc.uif(Decimal("17712"))) == Decimal("177.12")
        assert round2(calc.uif(Decimal("20000"))) == Decimal("177.12")

    def test_zero_earnings(self, calc):
        assert calc.uif(Decimal("0")) == 0


class TestRound2:
    def test_half_up(self):
        assert round2(Decimal("2183.085")) == Decimal("2183.09")
        assert round2(Decimal("2183.0833333")) == Decimal("2183.08")


class TestTaxTableValidation:
    """Bracket tables are checked before use."""

    def test_default_table_is_valid(self):
        assert TaxTable().validate().brackets == DEFAULT_BRACKETS

    def test_empty_table_rejected(self):
        with pytest.raises(InvalidTaxTableError):
            TaxTable(brackets=()).validate()

    def test_bounded_final_bracket_rejected(self):
        table = TaxTable(brackets=(TaxBracket(Decimal("1000"), Decimal("0.1")),))
        with pytest.raises(InvalidTaxTableError, match="final bracket"):
            table.validate()

    def test_unbounded_middle_bracket_rejected(self):
        table = TaxTable(
            brackets=(
                TaxBracket(None, Decimal("0.1")),
                TaxBracket(None, Decimal("0.2")),
            )
        )
        with pytest.raises(InvalidTaxTableError, match="only the final"):
            table.validate()

    def test_descending_boundaries_rejected(self):
        table = TaxTable(
            brackets=(
                TaxBracket(Decimal("5000"), Decimal("0.1")),
                TaxBracket(Decimal("4000"), Decimal("0.2")),
                TaxBracket(None, Decimal("0.3")),
            )
        )
        with pytest.raises(InvalidTaxTableError, match="ascend"):
            table.validate()

    def test_from_payload(self):
        payload = json.loads(
            '{"brackets": [{"max": 10000, "rate": 0.1}, {"rate": 0.2, "base": 1000}]}'
        )
        table = TaxTable.from_payload(payload, primary_rebate=Decimal("0"), tax_threshold=Decimal("0"))

        assert table.brackets[0] == TaxBracket(Decimal("10000"), Decimal("0.1"), Decimal("0"))
        assert table.brackets[1].up_to is None
        assert TaxCalculator(table).annual_tax(Decimal("15000")) == Decimal("2000.0")
