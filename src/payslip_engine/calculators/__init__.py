"""PAYE/UIF calculation."""

from payslip_engine.calculators.periods import (
    InvalidPayPeriodError,
    months_into_tax_year,
    parse_pay_period,
    pay_period_for,
    tax_year_for,
    tax_year_start,
)
from payslip_engine.calculators.rate_resolver import (
    RateAdjustment,
    UserRateLookup,
    UserRateProfile,
    resolve_lesson_rate,
)
from payslip_engine.calculators.tax_calculator import TaxCalculator, round2
from payslip_engine.calculators.withholding import WithholdingReconciler, WithholdingResult

__all__ = [
    "InvalidPayPeriodError",
    "months_into_tax_year",
    "parse_pay_period",
    "pay_period_for",
    "tax_year_for",
    "tax_year_start",
    "RateAdjustment",
    "UserRateLookup",
    "UserRateProfile",
    "resolve_lesson_rate",
    "TaxCalculator",
    "round2",
    "WithholdingReconciler",
    "WithholdingResult",
]
