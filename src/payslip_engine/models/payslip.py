"""Payslip table.

Line items, notes and history are stored as JSON arrays on the payslip
row; currency values inside them are decimal strings.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payslip_engine.models.base import Base, TimestampMixin


class PayslipRecord(Base, TimestampMixin):
    """One payslip per (user, pay period) document."""

    __tablename__ = "payslip"
    __table_args__ = (
        Index("ix_payslip_user_period_status", "user_id", "pay_period", "status"),
    )

    payslip_id: Mapped[UUID] = mapped_column(primary_key=True)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    pay_period: Mapped[str] = mapped_column(String(7), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    earnings: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    bonuses: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    misc_earnings: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    deductions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    notes: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)

    gross_earnings: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    uif: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    paye: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
