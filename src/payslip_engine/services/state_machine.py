"""Payslip state machine and status history."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from payslip_engine.domain import PayslipStatus, StatusHistoryEntry, utcnow

if TYPE_CHECKING:
    from payslip_engine.domain import Payslip


class PayslipError(Exception):
    """Base class for payslip engine failures."""


class InvalidPayslipStateError(PayslipError):
    """Raised when an operation is not permitted in the payslip's status."""

    def __init__(self, status: str, operation: str, allowed: set[PayslipStatus]):
        self.status = status
        self.operation = operation
        self.allowed = allowed
        allowed_text = ", ".join(sorted(s.value for s in allowed))
        super().__init__(
            f"Cannot {operation} while payslip is '{status}' (allowed: {allowed_text})"
        )


class UnknownStatusError(ValueError):
    """Raised when a status value is not a known payslip status."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown payslip status {value!r}")


class NoteAction(str, Enum):
    """Query note mutations that move payslip status."""

    RAISED = "raised"
    EDITED = "edited"
    DELETED = "deleted"
    RESOLVED = "resolved"


class PayslipStateMachine:
    """Owns every status change a payslip can undergo.

    Explicit transitions (``transition``) are unrestricted: any status may be
    set to any other, so administrators can override freely. Query note
    mutations force status through ``apply_note_action``:
    - raising, editing or deleting a note -> draft
    - resolving a note -> query_handled
    """

    # Statuses whose figures count towards later periods' year-to-date
    FINALIZED = frozenset({PayslipStatus.LOCKED, PayslipStatus.PAID})

    # Statuses where bonuses, deductions and misc earnings can change
    LINES_MUTABLE = frozenset({PayslipStatus.DRAFT})

    # Statuses where earning lines can be corrected
    EARNINGS_MUTABLE = frozenset(
        {PayslipStatus.DRAFT, PayslipStatus.QUERY, PayslipStatus.QUERY_HANDLED}
    )

    NOTE_TRANSITIONS: dict[NoteAction, PayslipStatus] = {
        NoteAction.RAISED: PayslipStatus.DRAFT,
        NoteAction.EDITED: PayslipStatus.DRAFT,
        NoteAction.DELETED: PayslipStatus.DRAFT,
        NoteAction.RESOLVED: PayslipStatus.QUERY_HANDLED,
    }

    @staticmethod
    def coerce(value: PayslipStatus | str) -> PayslipStatus:
        """Turn a raw value into a status, raising UnknownStatusError."""
        try:
            return PayslipStatus(value)
        except ValueError:
            raise UnknownStatusError(value) from None

    @classmethod
    def is_finalized(cls, status: str) -> bool:
        return status in cls.FINALIZED

    @classmethod
    def can_modify_lines(cls, status: str) -> bool:
        return status in cls.LINES_MUTABLE

    @classmethod
    def can_modify_earnings(cls, status: str) -> bool:
        return status in cls.EARNINGS_MUTABLE

    @classmethod
    def require_status(
        cls,
        payslip: Payslip,
        allowed: frozenset[PayslipStatus],
        operation: str,
    ) -> None:
        """Raise InvalidPayslipStateError unless the payslip is in ``allowed``."""
        if payslip.status not in allowed:
            raise InvalidPayslipStateError(payslip.status.value, operation, set(allowed))

    @classmethod
    def transition(
        cls,
        payslip: Payslip,
        to_status: PayslipStatus | str,
        actor_id: UUID,
        record_unchanged: bool = True,
    ) -> bool:
        """Set the payslip's status and append one history entry.

        With ``record_unchanged=False`` a transition to the current status
        is a no-op. Returns True when a history entry was appended.
        """
        new_status = cls.coerce(to_status)
        if not record_unchanged and payslip.status == new_status:
            return False

        payslip.status = new_status
        payslip.history.append(
            StatusHistoryEntry(status=new_status, timestamp=utcnow(), updated_by=actor_id)
        )
        return True

    @classmethod
    def apply_note_action(
        cls,
        payslip: Payslip,
        action: NoteAction,
        actor_id: UUID,
    ) -> bool:
        """Apply the forced transition for a query note mutation."""
        return cls.transition(
            payslip,
            cls.NOTE_TRANSITIONS[action],
            actor_id,
            record_unchanged=False,
        )
