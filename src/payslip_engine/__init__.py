"""Payslip engine: PAYE/UIF withholding and payslip lifecycle for tutors."""

from payslip_engine.config import Settings, TaxBracket, TaxTable, get_settings
from payslip_engine.domain import (
    AmountLine,
    EarningLine,
    Payslip,
    PayslipStatus,
    QueryNote,
    StatusHistoryEntry,
)
from payslip_engine.repository import (
    InMemoryPayslipRepository,
    PayslipRepository,
    SqlPayslipRepository,
)
from payslip_engine.services import PayslipService

__version__ = "1.0.0"

__all__ = [
    "Settings",
    "TaxBracket",
    "TaxTable",
    "get_settings",
    "AmountLine",
    "EarningLine",
    "Payslip",
    "PayslipStatus",
    "QueryNote",
    "StatusHistoryEntry",
    "InMemoryPayslipRepository",
    "PayslipRepository",
    "SqlPayslipRepository",
    "PayslipService",
]
