"""Domain records for payslips.

These are storage-agnostic dataclasses; repositories translate them to
and from their persisted form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4


class PayslipStatus(str, Enum):
    """Payslip status values."""

    DRAFT = "draft"
    QUERY = "query"
    QUERY_HANDLED = "query_handled"
    LOCKED = "locked"
    PAID = "paid"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EarningLine:
    """One unit of billable work folded into a payslip.

    ``description`` embeds the work date and is the duplicate-suppression key.
    """

    description: str
    hours: Decimal
    rate: Decimal
    total: Decimal
    work_date: date
    base_rate: Decimal = Decimal("0")

    @classmethod
    def build(
        cls,
        description: str,
        hours: Decimal,
        rate: Decimal,
        work_date: date,
        base_rate: Decimal = Decimal("0"),
    ) -> EarningLine:
        return cls(
            description=description,
            hours=hours,
            rate=rate,
            total=hours * rate + base_rate,
            work_date=work_date,
            base_rate=base_rate,
        )


@dataclass
class AmountLine:
    """Bonus, misc earning or deduction."""

    description: str
    amount: Decimal


@dataclass
class QueryNote:
    """A dispute or clarification raised against a payslip item."""

    item_id: str
    note: str
    resolved: bool = False
    resolution_note: str | None = None
    note_id: UUID = field(default_factory=uuid4)


@dataclass
class StatusHistoryEntry:
    status: PayslipStatus
    timestamp: datetime
    updated_by: UUID


@dataclass
class Payslip:
    """Monthly payslip for one user.

    ``bonuses`` and ``misc_earnings`` may be None on documents written
    before those lists existed; they count as empty.
    """

    user_id: UUID
    pay_period: str
    status: PayslipStatus = PayslipStatus.DRAFT
    payslip_id: UUID = field(default_factory=uuid4)
    earnings: list[EarningLine] = field(default_factory=list)
    bonuses: list[AmountLine] | None = field(default_factory=list)
    misc_earnings: list[AmountLine] | None = field(default_factory=list)
    deductions: list[AmountLine] = field(default_factory=list)
    gross_earnings: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    uif: Decimal = Decimal("0")
    paye: Decimal = Decimal("0")
    net_pay: Decimal = Decimal("0")
    notes: list[QueryNote] = field(default_factory=list)
    history: list[StatusHistoryEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def total_bonuses(self) -> Decimal:
        return sum((b.amount for b in self.bonuses or []), Decimal("0"))

    @property
    def total_misc_earnings(self) -> Decimal:
        return sum((m.amount for m in self.misc_earnings or []), Decimal("0"))

    @property
    def taxable_gross(self) -> Decimal:
        """Stored gross earnings plus bonuses and misc earnings."""
        return self.gross_earnings + self.total_bonuses + self.total_misc_earnings

    def has_earning(self, description: str) -> bool:
        return any(e.description == description for e in self.earnings)

    def find_note(self, note_id: UUID) -> QueryNote | None:
        return next((n for n in self.notes if n.note_id == note_id), None)
