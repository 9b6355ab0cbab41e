"""Payslip notification events.

Events are immutable and carry enough of the payslip to let a
notification dispatcher act without reloading it.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from payslip_engine.domain import utcnow


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every payslip event."""

    event_id: UUID
    timestamp: datetime
    actor_id: UUID | None  # User that triggered, None for system work
    source_service: str = "payslips"

    @classmethod
    def create(cls, actor_id: UUID | None = None) -> EventMetadata:
        return cls(event_id=uuid4(), timestamp=utcnow(), actor_id=actor_id)


@dataclass(frozen=True)
class PayslipEvent:
    """Base class for payslip events."""

    metadata: EventMetadata
    payslip_id: UUID
    user_id: UUID
    pay_period: str

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return _serialize_dict(data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class PayslipCreated(PayslipEvent):
    """A draft payslip was opened for a new (user, period)."""


@dataclass(frozen=True)
class EarningRecorded(PayslipEvent):
    """A completed-work event became an earnings line."""

    description: str
    total: Decimal


@dataclass(frozen=True)
class PayslipRecalculated(PayslipEvent):
    """Totals were re-derived from the line items."""

    gross_earnings: Decimal
    paye: Decimal
    uif: Decimal
    net_pay: Decimal


@dataclass(frozen=True)
class PayslipStatusChanged(PayslipEvent):
    """Status moved, e.g. a payslip was locked or paid."""

    from_status: str
    to_status: str
