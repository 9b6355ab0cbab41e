"""Tests for lesson rate resolution."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from payslip_engine.calculators.rate_resolver import (
    RateAdjustment,
    UserRateProfile,
    resolve_lesson_rate,
)


class TestResolveLessonRate:
    def test_no_profile(self):
        assert resolve_lesson_rate(None) is None

    def test_no_adjustments(self):
        profile = UserRateProfile(user_id=uuid4(), badge_bonuses=(Decimal("20"),))
        assert resolve_lesson_rate(profile) is None

    def test_newest_adjustment_wins_regardless_of_order(self):
        profile = UserRateProfile(
            user_id=uuid4(),
            rate_adjustments=(
                RateAdjustment(Decimal("250"), date(2025, 6, 1)),
                RateAdjustment(Decimal("300"), date(2025, 9, 1)),
                RateAdjustment(Decimal("200"), date(2025, 1, 1)),
            ),
        )
        assert resolve_lesson_rate(profile) == Decimal("300")

    def test_badge_bonuses_added(self):
        profile = UserRateProfile(
            user_id=uuid4(),
            rate_adjustments=(RateAdjustment(Decimal("250"), date(2025, 6, 1)),),
            badge_bonuses=(Decimal("20"), Decimal("12.50")),
        )
        assert resolve_lesson_rate(profile) == Decimal("282.50")
