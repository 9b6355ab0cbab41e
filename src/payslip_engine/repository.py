"""Payslip persistence gateways.

The engine only talks to a ``PayslipRepository``. Two implementations are
provided: ``SqlPayslipRepository`` over SQLAlchemy's async ORM, and
``InMemoryPayslipRepository`` for embedding and tests.
"""

from __future__ import annotations

import copy
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payslip_engine.domain import (
    AmountLine,
    EarningLine,
    Payslip,
    PayslipStatus,
    QueryNote,
    StatusHistoryEntry,
)
from payslip_engine.models import PayslipRecord
from payslip_engine.services.state_machine import PayslipStateMachine


class PayslipRepository(Protocol):
    """Storage contract consumed by the payslip service."""

    async def load(self, payslip_id: UUID) -> Payslip | None:
        """Return the payslip with this id, or None."""
        ...

    async def save(self, payslip: Payslip) -> Payslip:
        """Insert or replace a payslip and return it."""
        ...

    async def find_draft(self, user_id: UUID, pay_period: str) -> Payslip | None:
        """Return the user's draft payslip for a period, or None."""
        ...

    async def find_finalized(
        self, user_id: UUID, from_period: str, before_period: str
    ) -> list[Payslip]:
        """Locked or paid payslips with ``from_period <= period < before_period``."""
        ...

    async def list_for_user(self, user_id: UUID) -> list[Payslip]:
        """All of a user's payslips, newest period first."""
        ...

    async def search(
        self,
        status: PayslipStatus | None = None,
        user_id: UUID | None = None,
        pay_period: str | None = None,
    ) -> list[Payslip]:
        """Payslips matching every given filter, newest period first."""
        ...


# ============================================================================
# Serialization of line items to JSON-safe dicts
# ============================================================================


def _earning_to_dict(line: EarningLine) -> dict[str, Any]:
    return {
        "description": line.description,
        "base_rate": str(line.base_rate),
        "hours": str(line.hours),
        "rate": str(line.rate),
        "total": str(line.total),
        "date": line.work_date.isoformat(),
    }


def _earning_from_dict(data: dict[str, Any]) -> EarningLine:
    return EarningLine(
        description=data["description"],
        base_rate=Decimal(data.get("base_rate") or "0"),
        hours=Decimal(data["hours"]),
        rate=Decimal(data["rate"]),
        total=Decimal(data["total"]),
        work_date=date.fromisoformat(data["date"]),
    )


def _amount_to_dict(line: AmountLine) -> dict[str, Any]:
    return {"description": line.description, "amount": str(line.amount)}


def _amount_from_dict(data: dict[str, Any]) -> AmountLine:
    return AmountLine(description=data["description"], amount=Decimal(data["amount"]))


def _amounts_to_json(lines: list[AmountLine] | None) -> list[dict[str, Any]] | None:
    if lines is None:
        return None
    return [_amount_to_dict(line) for line in lines]


def _amounts_from_json(data: list[dict[str, Any]] | None) -> list[AmountLine] | None:
    if data is None:
        return None
    return [_amount_from_dict(item) for item in data]


def _note_to_dict(note: QueryNote) -> dict[str, Any]:
    return {
        "note_id": str(note.note_id),
        "item_id": note.item_id,
        "note": note.note,
        "resolved": note.resolved,
        "resolution_note": note.resolution_note,
    }


def _note_from_dict(data: dict[str, Any]) -> QueryNote:
    return QueryNote(
        note_id=UUID(data["note_id"]),
        item_id=data["item_id"],
        note=data["note"],
        resolved=bool(data.get("resolved", False)),
        resolution_note=data.get("resolution_note"),
    )


def _history_to_dict(entry: StatusHistoryEntry) -> dict[str, Any]:
    return {
        "status": entry.status.value,
        "timestamp": entry.timestamp.isoformat(),
        "updated_by": str(entry.updated_by),
    }


def _history_from_dict(data: dict[str, Any]) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        status=PayslipStatus(data["status"]),
        timestamp=datetime.fromisoformat(data["timestamp"]),
        updated_by=UUID(data["updated_by"]),
    )


def _apply_to_record(record: PayslipRecord, payslip: Payslip) -> None:
    """Copy every domain field onto an ORM record."""
    record.user_id = payslip.user_id
    record.pay_period = payslip.pay_period
    record.status = payslip.status.value
    record.earnings = [_earning_to_dict(e) for e in payslip.earnings]
    record.bonuses = _amounts_to_json(payslip.bonuses)
    record.misc_earnings = _amounts_to_json(payslip.misc_earnings)
    record.deductions = [_amount_to_dict(d) for d in payslip.deductions]
    record.notes = [_note_to_dict(n) for n in payslip.notes]
    record.history = [_history_to_dict(h) for h in payslip.history]
    record.gross_earnings = payslip.gross_earnings
    record.total_deductions = payslip.total_deductions
    record.uif = payslip.uif
    record.paye = payslip.paye
    record.net_pay = payslip.net_pay


def _to_domain(record: PayslipRecord) -> Payslip:
    return Payslip(
        payslip_id=record.payslip_id,
        user_id=record.user_id,
        pay_period=record.pay_period,
        status=PayslipStatus(record.status),
        earnings=[_earning_from_dict(e) for e in record.earnings or []],
        bonuses=_amounts_from_json(record.bonuses),
        misc_earnings=_amounts_from_json(record.misc_earnings),
        deductions=[_amount_from_dict(d) for d in record.deductions or []],
        notes=[_note_from_dict(n) for n in record.notes or []],
        history=[_history_from_dict(h) for h in record.history or []],
        gross_earnings=Decimal(record.gross_earnings),
        total_deductions=Decimal(record.total_deductions),
        uif=Decimal(record.uif),
        paye=Decimal(record.paye),
        net_pay=Decimal(record.net_pay),
        created_at=record.created_at,
    )


class SqlPayslipRepository:
    """SQLAlchemy-backed repository.

    Every call runs in its own session and transaction; returned payslips
    are detached domain objects.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load(self, payslip_id: UUID) -> Payslip | None:
        async with self.session_factory() as session:
            record = await session.get(PayslipRecord, payslip_id)
            return _to_domain(record) if record is not None else None

    async def save(self, payslip: Payslip) -> Payslip:
        async with self.session_factory() as session, session.begin():
            record = await session.get(PayslipRecord, payslip.payslip_id)
            if record is None:
                record = PayslipRecord(
                    payslip_id=payslip.payslip_id,
                    created_at=payslip.created_at,
                )
                session.add(record)
            _apply_to_record(record, payslip)
        return payslip

    async def find_draft(self, user_id: UUID, pay_period: str) -> Payslip | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PayslipRecord)
                .where(
                    PayslipRecord.user_id == user_id,
                    PayslipRecord.pay_period == pay_period,
                    PayslipRecord.status == PayslipStatus.DRAFT.value,
                )
                .order_by(PayslipRecord.created_at)
                .limit(1)
            )
            record = result.scalar_one_or_none()
            return _to_domain(record) if record is not None else None

    async def find_finalized(
        self, user_id: UUID, from_period: str, before_period: str
    ) -> list[Payslip]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PayslipRecord)
                .where(
                    PayslipRecord.user_id == user_id,
                    PayslipRecord.pay_period >= from_period,
                    PayslipRecord.pay_period < before_period,
                    PayslipRecord.status.in_(
                        [s.value for s in PayslipStateMachine.FINALIZED]
                    ),
                )
                .order_by(PayslipRecord.pay_period)
            )
            return [_to_domain(r) for r in result.scalars().all()]

    async def list_for_user(self, user_id: UUID) -> list[Payslip]:
        return await self.search(user_id=user_id)

    async def search(
        self,
        status: PayslipStatus | None = None,
        user_id: UUID | None = None,
        pay_period: str | None = None,
    ) -> list[Payslip]:
        query = select(PayslipRecord)
        if status is not None:
            query = query.where(PayslipRecord.status == PayslipStatus(status).value)
        if user_id is not None:
            query = query.where(PayslipRecord.user_id == user_id)
        if pay_period is not None:
            query = query.where(PayslipRecord.pay_period == pay_period)
        query = query.order_by(PayslipRecord.pay_period.desc(), PayslipRecord.created_at)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [_to_domain(r) for r in result.scalars().all()]


class InMemoryPayslipRepository:
    """Dict-backed repository. Stores and returns copies."""

    def __init__(self) -> None:
        self._payslips: dict[UUID, Payslip] = {}
        self.save_count = 0

    async def load(self, payslip_id: UUID) -> Payslip | None:
        payslip = self._payslips.get(payslip_id)
        return copy.deepcopy(payslip) if payslip is not None else None

    async def save(self, payslip: Payslip) -> Payslip:
        self._payslips[payslip.payslip_id] = copy.deepcopy(payslip)
        self.save_count += 1
        return payslip

    async def find_draft(self, user_id: UUID, pay_period: str) -> Payslip | None:
        for payslip in sorted(self._payslips.values(), key=lambda p: p.created_at):
            if (
                payslip.user_id == user_id
                and payslip.pay_period == pay_period
                and payslip.status == PayslipStatus.DRAFT
            ):
                return copy.deepcopy(payslip)
        return None

    async def find_finalized(
        self, user_id: UUID, from_period: str, before_period: str
    ) -> list[Payslip]:
        matches = [
            p
            for p in self._payslips.values()
            if p.user_id == user_id
            and from_period <= p.pay_period < before_period
            and PayslipStateMachine.is_finalized(p.status)
        ]
        return [copy.deepcopy(p) for p in sorted(matches, key=lambda p: p.pay_period)]

    async def list_for_user(self, user_id: UUID) -> list[Payslip]:
        return await self.search(user_id=user_id)

    async def search(
        self,
        status: PayslipStatus | None = None,
        user_id: UUID | None = None,
        pay_period: str | None = None,
    ) -> list[Payslip]:
        matches = [
            p
            for p in self._payslips.values()
            if (status is None or p.status == PayslipStatus(status))
            and (user_id is None or p.user_id == user_id)
            and (pay_period is None or p.pay_period == pay_period)
        ]
        # Stable sort: creation order within a period, newest period first
        matches.sort(key=lambda p: p.created_at)
        matches.sort(key=lambda p: p.pay_period, reverse=True)
        return [copy.deepcopy(p) for p in matches]
