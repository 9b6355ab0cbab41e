"""Pay period and tax year arithmetic.

A pay period is a calendar month written as ``YYYY-MM``. The tax year
starts in March, so ``2025-03`` through ``2026-02`` form tax year 2025.
"""

from __future__ import annotations

import re
from datetime import date

TAX_YEAR_START_MONTH = 3

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


class InvalidPayPeriodError(ValueError):
    """Raised when a pay period token is not a valid ``YYYY-MM`` month."""

    def __init__(self, pay_period: object):
        self.pay_period = pay_period
        super().__init__(f"Invalid pay period {pay_period!r}, expected 'YYYY-MM'")


def parse_pay_period(pay_period: str) -> tuple[int, int]:
    """Split a pay period into (year, month)."""
    match = _PERIOD_RE.match(pay_period) if isinstance(pay_period, str) else None
    if match is None:
        raise InvalidPayPeriodError(pay_period)
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise InvalidPayPeriodError(pay_period)
    return year, month


def pay_period_for(day: date) -> str:
    """Return the pay period containing a date."""
    return f"{day.year:04d}-{day.month:02d}"


def tax_year_for(pay_period: str) -> int:
    """Return the calendar year in which the period's tax year began."""
    year, month = parse_pay_period(pay_period)
    return year if month >= TAX_YEAR_START_MONTH else year - 1


def tax_year_start(pay_period: str) -> str:
    """First pay period of the tax year containing ``pay_period``."""
    return f"{tax_year_for(pay_period):04d}-{TAX_YEAR_START_MONTH:02d}"


def months_into_tax_year(pay_period: str) -> int:
    """Months elapsed in the tax year, counting the period itself.

    March is 1 and the following February is 12.
    """
    year, month = parse_pay_period(pay_period)
    tax_year = tax_year_for(pay_period)
    return (year - tax_year) * 12 + (month - (TAX_YEAR_START_MONTH - 1))
