"""SQLAlchemy ORM models."""

from payslip_engine.models.base import Base, TimestampMixin
from payslip_engine.models.payslip import PayslipRecord

__all__ = ["Base", "TimestampMixin", "PayslipRecord"]
