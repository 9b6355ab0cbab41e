"""Lesson pay rate resolution from a user's rate history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol
from uuid import UUID


@dataclass(frozen=True)
class RateAdjustment:
    """A change to a tutor's hourly rate from ``effective_date`` onwards."""

    new_rate: Decimal
    effective_date: date


@dataclass(frozen=True)
class UserRateProfile:
    """What the user directory knows about a tutor's pay."""

    user_id: UUID
    rate_adjustments: tuple[RateAdjustment, ...] = ()
    badge_bonuses: tuple[Decimal, ...] = field(default_factory=tuple)


class UserRateLookup(Protocol):
    """User directory collaborator."""

    async def get_rate_profile(self, user_id: UUID) -> UserRateProfile | None:
        ...


def resolve_lesson_rate(profile: UserRateProfile | None) -> Decimal | None:
    """Resolve the hourly rate for a lesson.

    The newest adjustment by effective date wins, then every badge bonus is
    added on top. Returns None when the user has no rate on record.
    """
    if profile is None or not profile.rate_adjustments:
        return None

    latest = max(profile.rate_adjustments, key=lambda a: a.effective_date)
    return latest.new_rate + sum(profile.badge_bonuses, Decimal("0"))
