"""PAYE and UIF calculation against a static bracket table."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from payslip_engine.config import TaxTable

CENT = Decimal("0.01")


def round2(amount: Decimal) -> Decimal:
    """Quantize a currency amount to cents."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class TaxCalculator:
    """Pure bracket arithmetic. No I/O.

    Walks the bracket table from the bottom, taxing only the slice of
    income inside each bracket, then subtracts the primary rebate.
    """

    def __init__(self, table: TaxTable):
        self.table = table

    def annual_tax(self, estimated_annual_income: Decimal) -> Decimal:
        """Annual PAYE payable on an estimated annual income (unrounded)."""
        income = Decimal(estimated_annual_income)
        if income < self.table.tax_threshold:
            return Decimal("0")

        total_tax = Decimal("0")
        previous_limit = Decimal("0")

        for bracket in self.table.brackets:
            if income > previous_limit:
                upper = income if bracket.up_to is None else min(income, bracket.up_to)
                total_tax += (upper - previous_limit) * bracket.rate
            if bracket.up_to is None or income <= bracket.up_to:
                break
            previous_limit = bracket.up_to

        total_tax -= self.table.primary_rebate
        return max(Decimal("0"), total_tax)

    def uif(self, period_gross: Decimal) -> Decimal:
        """UIF contribution for one period, capped at the earnings ceiling."""
        insurable = min(Decimal(period_gross), self.table.uif_ceiling)
        if insurable <= 0:
            return Decimal("0")
        return insurable * self.table.uif_rate
