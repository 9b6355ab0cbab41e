"""Pydantic schemas for ingestion and payslip serialization."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payslip_engine.domain import Payslip, PayslipStatus


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value.strip()


# ============================================================================
# Input schemas
# ============================================================================


class CompletedEventPayload(BaseModel):
    """A completed unit of work reported by the lesson workflow."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    event_date: date
    description: str
    quantity: Decimal = Field(ge=0)
    rate: Decimal = Field(ge=0)
    base_rate: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("event_date", mode="before")
    @classmethod
    def truncate_datetime(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        return value

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        return _not_blank(value)

    @property
    def event_key(self) -> str:
        """Earning description used for duplicate suppression."""
        return f"{self.description} on {self.event_date.isoformat()}"


class AmountLineInput(BaseModel):
    """Bonus, deduction or misc earning as supplied by a caller."""

    description: str
    amount: Decimal

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class EarningUpdate(BaseModel):
    """Correction to an existing earning line."""

    description: str
    base_rate: Decimal = Field(default=Decimal("0"), ge=0)
    hours: Decimal = Field(ge=0)
    rate: Decimal = Field(ge=0)
    work_date: date

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        return _not_blank(value)


# ============================================================================
# Output schemas
# ============================================================================


class EarningLineView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    description: str
    base_rate: Decimal
    hours: Decimal
    rate: Decimal
    total: Decimal
    work_date: date


class AmountLineView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    description: str
    amount: Decimal


class QueryNoteView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    note_id: UUID
    item_id: str
    note: str
    resolved: bool
    resolution_note: str | None = None


class StatusHistoryView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: PayslipStatus
    timestamp: datetime
    updated_by: UUID


class PayslipView(BaseModel):
    """Serializable payslip with computed totals."""

    model_config = ConfigDict(from_attributes=True)

    payslip_id: UUID
    user_id: UUID
    pay_period: str
    status: PayslipStatus
    earnings: list[EarningLineView]
    bonuses: list[AmountLineView] | None = None
    misc_earnings: list[AmountLineView] | None = None
    deductions: list[AmountLineView]
    gross_earnings: Decimal
    total_deductions: Decimal
    uif: Decimal
    paye: Decimal
    net_pay: Decimal
    notes: list[QueryNoteView]
    history: list[StatusHistoryView]

    @classmethod
    def from_payslip(cls, payslip: Payslip) -> PayslipView:
        return cls.model_validate(payslip)
