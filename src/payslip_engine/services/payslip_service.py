"""Payslip service - lifecycle orchestrator for monthly payslips."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, AsyncIterator
from uuid import UUID

from payslip_engine.calculators.periods import parse_pay_period, pay_period_for
from payslip_engine.calculators.rate_resolver import UserRateLookup, resolve_lesson_rate
from payslip_engine.calculators.tax_calculator import TaxCalculator, round2
from payslip_engine.calculators.withholding import WithholdingReconciler
from payslip_engine.config import Settings, TaxTable, get_settings
from payslip_engine.domain import AmountLine, EarningLine, Payslip, PayslipStatus, QueryNote
from payslip_engine.events import (
    EarningRecorded,
    EventEmitter,
    EventMetadata,
    PayslipCreated,
    PayslipEvent,
    PayslipRecalculated,
    PayslipStatusChanged,
)
from payslip_engine.schemas import AmountLineInput, CompletedEventPayload, EarningUpdate
from payslip_engine.services.state_machine import (
    NoteAction,
    PayslipError,
    PayslipStateMachine,
)

if TYPE_CHECKING:
    from payslip_engine.repository import PayslipRepository

logger = logging.getLogger(__name__)


class PayslipNotFoundError(PayslipError):
    """Raised when a payslip id does not exist."""

    def __init__(self, payslip_id: UUID):
        self.payslip_id = payslip_id
        super().__init__(f"Payslip {payslip_id} not found")


class InvalidLineIndexError(PayslipError):
    """Raised when a positional line operation is out of range."""

    def __init__(self, line_kind: str, index: int, length: int):
        self.line_kind = line_kind
        self.index = index
        self.length = length
        super().__init__(f"Invalid {line_kind} index {index} (payslip has {length})")


class QueryNoteNotFoundError(PayslipError):
    """Raised when a query note id does not exist on the payslip."""

    def __init__(self, payslip_id: UUID, note_id: UUID):
        self.payslip_id = payslip_id
        self.note_id = note_id
        super().__init__(f"Query note {note_id} not found on payslip {payslip_id}")


# Amount line lists and how they are named in errors
_AMOUNT_LINES = {
    "bonuses": "bonus",
    "deductions": "deduction",
    "misc_earnings": "misc earning",
}


class PayslipService:
    """Service for managing the payslip lifecycle.

    Operations:
    - get_or_create_draft: open the draft for a (user, period)
    - add_completed_event: fold a completed lesson into the draft, idempotently
    - recalculate: re-derive gross, PAYE, UIF and net pay from line items
    - bonus/deduction/misc earning/earning mutators, gated by status
    - query notes, which force status changes as a side effect
    - update_status: unrestricted administrative status change

    Writes are read-modify-write against one payslip with no concurrency
    token. With ``serialize_user_writes`` a per-user asyncio lock orders a
    user's writes within this process.
    """

    def __init__(
        self,
        repository: PayslipRepository,
        tax_table: TaxTable | None = None,
        rate_lookup: UserRateLookup | None = None,
        emitter: EventEmitter | None = None,
        lesson_base_rate: Decimal = Decimal("50"),
        serialize_user_writes: bool = False,
    ):
        self.repository = repository
        self.calculator = TaxCalculator((tax_table or TaxTable()).validate())
        self.reconciler = WithholdingReconciler(repository, self.calculator)
        self.rate_lookup = rate_lookup
        self.emitter = emitter
        self.lesson_base_rate = lesson_base_rate
        self.serialize_user_writes = serialize_user_writes
        self._user_locks: dict[UUID, asyncio.Lock] = {}
        self._lock_users: dict[UUID, int] = {}

    @classmethod
    def from_settings(
        cls,
        repository: PayslipRepository,
        settings: Settings | None = None,
        rate_lookup: UserRateLookup | None = None,
        emitter: EventEmitter | None = None,
    ) -> PayslipService:
        settings = settings or get_settings()
        return cls(
            repository,
            tax_table=settings.tax,
            rate_lookup=rate_lookup,
            emitter=emitter,
            lesson_base_rate=settings.lesson_base_rate,
            serialize_user_writes=settings.serialize_user_writes,
        )

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_payslip(self, payslip_id: UUID) -> Payslip:
        payslip = await self.repository.load(payslip_id)
        if payslip is None:
            raise PayslipNotFoundError(payslip_id)
        return payslip

    async def get_draft(self, user_id: UUID, pay_period: str) -> Payslip | None:
        """Find the draft for a period without creating one."""
        parse_pay_period(pay_period)
        return await self.repository.find_draft(user_id, pay_period)

    async def get_payslip_history(self, user_id: UUID) -> list[Payslip]:
        return await self.repository.list_for_user(user_id)

    async def list_payslips(
        self,
        status: PayslipStatus | str | None = None,
        user_id: UUID | None = None,
        pay_period: str | None = None,
    ) -> list[Payslip]:
        if status is not None:
            status = PayslipStateMachine.coerce(status)
        return await self.repository.search(status=status, user_id=user_id, pay_period=pay_period)

    # ========================================================================
    # Drafts and completed events
    # ========================================================================

    async def get_or_create_draft(self, user_id: UUID, pay_period: str) -> Payslip:
        parse_pay_period(pay_period)
        async with self._user_lock(user_id):
            payslip, created = await self._get_or_create_draft(user_id, pay_period)

        if created:
            await self._emit_created(payslip)
        return payslip

    async def add_completed_event(
        self, payload: CompletedEventPayload | dict[str, Any]
    ) -> Payslip:
        """Fold a completed unit of work into the user's draft payslip.

        Re-delivery of an event already on the payslip (same description and
        date) is a successful no-op: nothing is appended or saved.
        """
        event = CompletedEventPayload.model_validate(payload)
        pay_period = pay_period_for(event.event_date)
        key = event.event_key

        async with self._user_lock(event.user_id):
            payslip, created = await self._get_or_create_draft(event.user_id, pay_period)
            if payslip.has_earning(key):
                # A freshly created draft has no earnings
                logger.debug("Duplicate event %r ignored for payslip %s", key, payslip.payslip_id)
                return payslip

            line = EarningLine.build(
                description=key,
                hours=event.quantity,
                rate=event.rate,
                work_date=event.event_date,
                base_rate=event.base_rate,
            )
            payslip.earnings.append(line)
            payslip = await self._recalculate(payslip)

        if created:
            await self._emit_created(payslip)
        await self._emit_recalculated(payslip)
        await self._emit(
            EarningRecorded(
                metadata=EventMetadata.create(),
                payslip_id=payslip.payslip_id,
                user_id=payslip.user_id,
                pay_period=payslip.pay_period,
                description=line.description,
                total=line.total,
            )
        )
        return payslip

    async def record_lesson_completion(
        self,
        user_id: UUID,
        subject: str,
        student_name: str,
        start_time: datetime,
        duration_minutes: int | Decimal,
    ) -> Payslip | None:
        """Pay a tutor for a remarked lesson.

        The hourly rate comes from the user directory. Lessons for tutors
        without a rate on record are skipped and None is returned.
        """
        if self.rate_lookup is None:
            raise PayslipError("No user rate lookup configured")

        profile = await self.rate_lookup.get_rate_profile(user_id)
        rate = resolve_lesson_rate(profile)
        if rate is None:
            logger.warning("No rate on record for user %s, lesson not paid", user_id)
            return None

        return await self.add_completed_event(
            CompletedEventPayload(
                user_id=user_id,
                event_date=start_time,
                description=f"{subject} lesson for {student_name}",
                quantity=Decimal(duration_minutes) / 60,
                rate=rate,
                base_rate=self.lesson_base_rate,
            )
        )

    # ========================================================================
    # Recalculation
    # ========================================================================

    async def recalculate(self, payslip_id: UUID) -> Payslip:
        async with self._locked_payslip(payslip_id) as payslip:
            payslip = await self._recalculate(payslip)

        await self._emit_recalculated(payslip)
        return payslip

    async def _recalculate(self, payslip: Payslip) -> Payslip:
        """Re-derive totals from line items and persist.

        Every total is rounded to cents before net pay is derived from it:
        net = gross + bonuses + misc - deductions - PAYE - UIF
        """
        payslip.gross_earnings = round2(sum((e.total for e in payslip.earnings), Decimal("0")))
        payslip.total_deductions = round2(
            sum((d.amount for d in payslip.deductions), Decimal("0"))
        )
        taxable = round2(payslip.taxable_gross)

        taxes = await self.reconciler.reconcile(payslip.user_id, payslip.pay_period, taxable)
        payslip.paye = taxes.paye
        payslip.uif = taxes.uif
        payslip.net_pay = round2(
            taxable - payslip.total_deductions - payslip.paye - payslip.uif
        )

        await self.repository.save(payslip)
        return payslip

    # ========================================================================
    # Status
    # ========================================================================

    async def update_status(
        self,
        payslip_id: UUID,
        new_status: PayslipStatus | str,
        actor_id: UUID,
    ) -> Payslip:
        """Set any status. No transition graph is enforced."""
        to_status = PayslipStateMachine.coerce(new_status)
        async with self._locked_payslip(payslip_id) as payslip:
            from_status = payslip.status
            PayslipStateMachine.transition(payslip, to_status, actor_id)
            await self.repository.save(payslip)

        logger.info(
            "Payslip %s status %s -> %s by %s",
            payslip_id,
            from_status.value,
            to_status.value,
            actor_id,
        )
        await self._emit_status_change(payslip, from_status, actor_id)
        return payslip

    # ========================================================================
    # Line items
    # ========================================================================

    async def add_bonus(self, payslip_id: UUID, description: str, amount: Decimal) -> Payslip:
        return await self._add_amount_line(payslip_id, "bonuses", description, amount)

    async def update_bonus(
        self, payslip_id: UUID, index: int, description: str, amount: Decimal
    ) -> Payslip:
        return await self._update_amount_line(payslip_id, "bonuses", index, description, amount)

    async def remove_bonus(self, payslip_id: UUID, index: int) -> Payslip:
        return await self._remove_amount_line(payslip_id, "bonuses", index)

    async def add_deduction(
        self, payslip_id: UUID, description: str, amount: Decimal
    ) -> Payslip:
        return await self._add_amount_line(payslip_id, "deductions", description, amount)

    async def update_deduction(
        self, payslip_id: UUID, index: int, description: str, amount: Decimal
    ) -> Payslip:
        return await self._update_amount_line(
            payslip_id, "deductions", index, description, amount
        )

    async def remove_deduction(self, payslip_id: UUID, index: int) -> Payslip:
        return await self._remove_amount_line(payslip_id, "deductions", index)

    async def add_misc_earning(
        self, payslip_id: UUID, description: str, amount: Decimal
    ) -> Payslip:
        return await self._add_amount_line(payslip_id, "misc_earnings", description, amount)

    async def update_misc_earning(
        self, payslip_id: UUID, index: int, description: str, amount: Decimal
    ) -> Payslip:
        return await self._update_amount_line(
            payslip_id, "misc_earnings", index, description, amount
        )

    async def remove_misc_earning(self, payslip_id: UUID, index: int) -> Payslip:
        return await self._remove_amount_line(payslip_id, "misc_earnings", index)

    async def update_earning(
        self,
        payslip_id: UUID,
        index: int,
        description: str,
        base_rate: Decimal,
        hours: Decimal,
        rate: Decimal,
        work_date: date,
    ) -> Payslip:
        """Correct an earning line. Also allowed while a payslip is queried.

        The total is re-derived as hours * rate + base_rate.
        """
        update = EarningUpdate(
            description=description,
            base_rate=base_rate,
            hours=hours,
            rate=rate,
            work_date=work_date,
        )
        async with self._locked_payslip(payslip_id) as payslip:
            PayslipStateMachine.require_status(
                payslip, PayslipStateMachine.EARNINGS_MUTABLE, "update earning"
            )
            self._check_index("earning", index, payslip.earnings)
            payslip.earnings[index] = EarningLine.build(
                description=update.description,
                hours=update.hours,
                rate=update.rate,
                work_date=update.work_date,
                base_rate=update.base_rate,
            )
            payslip = await self._recalculate(payslip)

        await self._emit_recalculated(payslip)
        return payslip

    async def _add_amount_line(
        self, payslip_id: UUID, field_name: str, description: str, amount: Decimal
    ) -> Payslip:
        item = AmountLineInput(description=description, amount=amount)
        async with self._locked_payslip(payslip_id) as payslip:
            PayslipStateMachine.require_status(
                payslip, PayslipStateMachine.LINES_MUTABLE, f"add {_AMOUNT_LINES[field_name]}"
            )
            lines = getattr(payslip, field_name)
            if lines is None:
                lines = []
                setattr(payslip, field_name, lines)
            lines.append(AmountLine(description=item.description, amount=item.amount))
            payslip = await self._recalculate(payslip)

        await self._emit_recalculated(payslip)
        return payslip

    async def _update_amount_line(
        self,
        payslip_id: UUID,
        field_name: str,
        index: int,
        description: str,
        amount: Decimal,
    ) -> Payslip:
        item = AmountLineInput(description=description, amount=amount)
        label = _AMOUNT_LINES[field_name]
        async with self._locked_payslip(payslip_id) as payslip:
            PayslipStateMachine.require_status(
                payslip, PayslipStateMachine.LINES_MUTABLE, f"update {label}"
            )
            lines = getattr(payslip, field_name) or []
            self._check_index(label, index, lines)
            lines[index] = AmountLine(description=item.description, amount=item.amount)
            payslip = await self._recalculate(payslip)

        await self._emit_recalculated(payslip)
        return payslip

    async def _remove_amount_line(self, payslip_id: UUID, field_name: str, index: int) -> Payslip:
        label = _AMOUNT_LINES[field_name]
        async with self._locked_payslip(payslip_id) as payslip:
            PayslipStateMachine.require_status(
                payslip, PayslipStateMachine.LINES_MUTABLE, f"remove {label}"
            )
            lines = getattr(payslip, field_name) or []
            self._check_index(label, index, lines)
            del lines[index]
            payslip = await self._recalculate(payslip)

        await self._emit_recalculated(payslip)
        return payslip

    @staticmethod
    def _check_index(line_kind: str, index: int, lines: list[Any]) -> None:
        if not 0 <= index < len(lines):
            raise InvalidLineIndexError(line_kind, index, len(lines))

    # ========================================================================
    # Query notes
    # ========================================================================

    async def add_query_note(
        self, payslip_id: UUID, item_id: str, note: str, actor_id: UUID
    ) -> Payslip:
        """Raise a query against a payslip item. Reopens the payslip as draft."""
        async with self._locked_payslip(payslip_id) as payslip:
            from_status = payslip.status
            payslip.notes.append(QueryNote(item_id=item_id, note=note))
            moved = PayslipStateMachine.apply_note_action(payslip, NoteAction.RAISED, actor_id)
            await self.repository.save(payslip)

        if moved:
            await self._emit_status_change(payslip, from_status, actor_id)
        return payslip

    async def update_query_note(
        self, payslip_id: UUID, note_id: UUID, note: str, actor_id: UUID
    ) -> Payslip:
        """Edit a query. An edited query is open again, so the payslip returns to draft."""
        async with self._locked_payslip(payslip_id) as payslip:
            from_status = payslip.status
            query = self._find_note(payslip, note_id)
            query.note = note
            query.resolved = False
            query.resolution_note = None
            moved = PayslipStateMachine.apply_note_action(payslip, NoteAction.EDITED, actor_id)
            await self.repository.save(payslip)

        if moved:
            await self._emit_status_change(payslip, from_status, actor_id)
        return payslip

    async def delete_query_note(self, payslip_id: UUID, note_id: UUID, actor_id: UUID) -> Payslip:
        """Remove a query. Deleting an open query returns the payslip to draft."""
        async with self._locked_payslip(payslip_id) as payslip:
            from_status = payslip.status
            query = self._find_note(payslip, note_id)
            payslip.notes.remove(query)
            moved = False
            if not query.resolved:
                moved = PayslipStateMachine.apply_note_action(
                    payslip, NoteAction.DELETED, actor_id
                )
            await self.repository.save(payslip)

        if moved:
            await self._emit_status_change(payslip, from_status, actor_id)
        return payslip

    async def resolve_query_note(
        self,
        payslip_id: UUID,
        note_id: UUID,
        actor_id: UUID,
        resolution_note: str | None = None,
    ) -> Payslip:
        """Mark a query resolved and move the payslip to query_handled."""
        async with self._locked_payslip(payslip_id) as payslip:
            from_status = payslip.status
            query = self._find_note(payslip, note_id)
            query.resolved = True
            if resolution_note is not None:
                query.resolution_note = resolution_note
            moved = PayslipStateMachine.apply_note_action(payslip, NoteAction.RESOLVED, actor_id)
            await self.repository.save(payslip)

        if moved:
            await self._emit_status_change(payslip, from_status, actor_id)
        return payslip

    @staticmethod
    def _find_note(payslip: Payslip, note_id: UUID) -> QueryNote:
        query = payslip.find_note(note_id)
        if query is None:
            raise QueryNoteNotFoundError(payslip.payslip_id, note_id)
        return query

    # ========================================================================
    # Internals
    # ========================================================================

    async def _get_or_create_draft(
        self, user_id: UUID, pay_period: str
    ) -> tuple[Payslip, bool]:
        """Return the draft and whether it was created by this call."""
        existing = await self.repository.find_draft(user_id, pay_period)
        if existing is not None:
            return existing, False

        payslip = Payslip(user_id=user_id, pay_period=pay_period)
        PayslipStateMachine.transition(payslip, PayslipStatus.DRAFT, user_id)
        await self.repository.save(payslip)
        logger.info("Created draft payslip %s for user %s (%s)", payslip.payslip_id, user_id, pay_period)
        return payslip, True

    @asynccontextmanager
    async def _user_lock(self, user_id: UUID) -> AsyncIterator[None]:
        """Hold the user's lock when serialization is on.

        A lock lives only while some task holds or awaits it, so the table
        never outgrows the set of users with writes in flight.
        """
        if not self.serialize_user_writes:
            yield
            return

        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._user_locks[user_id]

    @asynccontextmanager
    async def _locked_payslip(self, payslip_id: UUID) -> AsyncIterator[Payslip]:
        """Load a payslip, holding its user's lock when serialization is on."""
        payslip = await self.get_payslip(payslip_id)
        if not self.serialize_user_writes:
            yield payslip
            return

        async with self._user_lock(payslip.user_id):
            # Reload under the lock so we see writes that finished while waiting
            yield await self.get_payslip(payslip_id)

    # Events are emitted after the user's lock is released so handlers may
    # write to the same user's payslips.

    async def _emit_created(self, payslip: Payslip) -> None:
        await self._emit(
            PayslipCreated(
                metadata=EventMetadata.create(actor_id=payslip.user_id),
                payslip_id=payslip.payslip_id,
                user_id=payslip.user_id,
                pay_period=payslip.pay_period,
            )
        )

    async def _emit_recalculated(self, payslip: Payslip) -> None:
        await self._emit(
            PayslipRecalculated(
                metadata=EventMetadata.create(),
                payslip_id=payslip.payslip_id,
                user_id=payslip.user_id,
                pay_period=payslip.pay_period,
                gross_earnings=payslip.gross_earnings,
                paye=payslip.paye,
                uif=payslip.uif,
                net_pay=payslip.net_pay,
            )
        )

    async def _emit_status_change(
        self, payslip: Payslip, from_status: PayslipStatus, actor_id: UUID
    ) -> None:
        await self._emit(
            PayslipStatusChanged(
                metadata=EventMetadata.create(actor_id=actor_id),
                payslip_id=payslip.payslip_id,
                user_id=payslip.user_id,
                pay_period=payslip.pay_period,
                from_status=from_status.value,
                to_status=payslip.status.value,
            )
        )

    async def _emit(self, event: PayslipEvent) -> None:
        if self.emitter is not None:
            await self.emitter.emit(event)
