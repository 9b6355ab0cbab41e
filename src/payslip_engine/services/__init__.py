"""Payslip engine services."""

from payslip_engine.services.payslip_service import (
    InvalidLineIndexError,
    PayslipNotFoundError,
    PayslipService,
    QueryNoteNotFoundError,
)
from payslip_engine.services.state_machine import (
    InvalidPayslipStateError,
    NoteAction,
    PayslipError,
    PayslipStateMachine,
    UnknownStatusError,
)

__all__ = [
    "PayslipService",
    "PayslipStateMachine",
    "NoteAction",
    "PayslipError",
    "PayslipNotFoundError",
    "InvalidPayslipStateError",
    "InvalidLineIndexError",
    "QueryNoteNotFoundError",
    "UnknownStatusError",
]
