"""Cumulative PAYE withholding across a tax year."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from payslip_engine.calculators.periods import months_into_tax_year, tax_year_start
from payslip_engine.calculators.tax_calculator import TaxCalculator, round2

if TYPE_CHECKING:
    from payslip_engine.repository import PayslipRepository


@dataclass(frozen=True)
class WithholdingResult:
    """PAYE and UIF for one period, rounded to cents."""

    paye: Decimal
    uif: Decimal
    estimated_annual_income: Decimal
    year_to_date_earnings: Decimal
    previous_tax_withheld: Decimal
    months_so_far: int


class WithholdingReconciler:
    """Computes period PAYE from year-to-date figures.

    Per-period tax cannot be computed in isolation because brackets apply
    to annual income. Instead:
    1) Sum gross (earnings + bonuses + misc) and PAYE of the user's locked
       and paid payslips earlier in the same tax year
    2) Annualize year-to-date earnings including the current period
    3) Take the share of annual tax due so far
    4) Withhold the difference from what was already withheld, never below 0

    UIF depends on the current period alone.
    """

    def __init__(self, repository: PayslipRepository, calculator: TaxCalculator):
        self.repository = repository
        self.calculator = calculator

    async def reconcile(
        self,
        user_id: UUID,
        pay_period: str,
        current_gross: Decimal,
    ) -> WithholdingResult:
        uif = self.calculator.uif(current_gross)

        previous = await self.repository.find_finalized(
            user_id, tax_year_start(pay_period), pay_period
        )
        previous_earnings = sum((p.taxable_gross for p in previous), Decimal("0"))
        previous_tax_paid = sum((p.paye for p in previous), Decimal("0"))

        year_to_date = previous_earnings + current_gross
        months_so_far = months_into_tax_year(pay_period)
        if months_so_far > 0:
            estimated_annual = year_to_date / months_so_far * 12
        else:
            estimated_annual = current_gross * 12

        annual_tax = self.calculator.annual_tax(estimated_annual)
        tax_due_to_date = annual_tax / 12 * months_so_far
        paye = max(Decimal("0"), tax_due_to_date - previous_tax_paid)

        return WithholdingResult(
            paye=round2(paye),
            uif=round2(uif),
            estimated_annual_income=estimated_annual,
            year_to_date_earnings=year_to_date,
            previous_tax_withheld=previous_tax_paid,
            months_so_far=months_so_far,
        )
