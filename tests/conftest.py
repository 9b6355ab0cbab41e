"""Pytest fixtures for payslip engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from payslip_engine.calculators.rate_resolver import RateAdjustment, UserRateProfile
from payslip_engine.config import TaxTable
from payslip_engine.database import create_schema, make_session_factory
from payslip_engine.domain import AmountLine, EarningLine, Payslip, PayslipStatus
from payslip_engine.events import EventEmitter, PayslipEvent
from payslip_engine.repository import InMemoryPayslipRepository, SqlPayslipRepository
from payslip_engine.services import PayslipService

# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeRateLookup:
    """User directory stand-in keyed by user id."""

    def __init__(self) -> None:
        self.profiles: dict[UUID, UserRateProfile] = {}

    def add(
        self,
        user_id: UUID,
        rates: list[tuple[str, date]],
        badge_bonuses: list[str] | None = None,
    ) -> None:
        self.profiles[user_id] = UserRateProfile(
            user_id=user_id,
            rate_adjustments=tuple(RateAdjustment(Decimal(r), d) for r, d in rates),
            badge_bonuses=tuple(Decimal(b) for b in badge_bonuses or []),
        )

    async def get_rate_profile(self, user_id: UUID) -> UserRateProfile | None:
        return self.profiles.get(user_id)


def make_payslip(
    user_id: UUID,
    pay_period: str,
    status: PayslipStatus = PayslipStatus.DRAFT,
    gross: str = "0",
    paye: str = "0",
    bonuses: list[AmountLine] | None = None,
    misc_earnings: list[AmountLine] | None = None,
) -> Payslip:
    """Build a payslip whose stored gross is a single earning line."""
    year, month = (int(p) for p in pay_period.split("-"))
    earnings = []
    if Decimal(gross):
        earnings.append(
            EarningLine.build(
                description=f"Tutoring on {pay_period}-01",
                hours=Decimal("1"),
                rate=Decimal(gross),
                work_date=date(year, month, 1),
            )
        )
    return Payslip(
        user_id=user_id,
        pay_period=pay_period,
        status=status,
        earnings=earnings,
        bonuses=bonuses if bonuses is not None else [],
        misc_earnings=misc_earnings if misc_earnings is not None else [],
        gross_earnings=Decimal(gross),
        paye=Decimal(paye),
    )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def actor_id() -> UUID:
    return uuid4()


@pytest.fixture
def tax_table() -> TaxTable:
    return TaxTable()


@pytest.fixture
def repository() -> InMemoryPayslipRepository:
    return InMemoryPayslipRepository()


@pytest.fixture
def rate_lookup() -> FakeRateLookup:
    return FakeRateLookup()


@pytest.fixture
def emitted() -> list[PayslipEvent]:
    return []


@pytest.fixture
def emitter(emitted: list[PayslipEvent]) -> EventEmitter:
    emitter = EventEmitter()

    async def collect(event: PayslipEvent) -> None:
        emitted.append(event)

    emitter.on_all(collect)
    return emitter


@pytest.fixture
def service(
    repository: InMemoryPayslipRepository,
    tax_table: TaxTable,
    rate_lookup: FakeRateLookup,
    emitter: EventEmitter,
) -> PayslipService:
    return PayslipService(
        repository,
        tax_table=tax_table,
        rate_lookup=rate_lookup,
        emitter=emitter,
    )


@pytest_asyncio.fixture
async def sql_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_repository(sql_engine: AsyncEngine) -> SqlPayslipRepository:
    return SqlPayslipRepository(make_session_factory(sql_engine))
