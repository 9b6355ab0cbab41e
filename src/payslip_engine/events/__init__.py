"""Payslip notification events."""

from payslip_engine.events.emitter import EventEmitter
from payslip_engine.events.types import (
    EarningRecorded,
    EventMetadata,
    PayslipCreated,
    PayslipEvent,
    PayslipRecalculated,
    PayslipStatusChanged,
)

__all__ = [
    "EventEmitter",
    "EventMetadata",
    "PayslipEvent",
    "PayslipCreated",
    "EarningRecorded",
    "PayslipRecalculated",
    "PayslipStatusChanged",
]
