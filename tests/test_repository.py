"""Tests for the SQL and in-memory payslip repositories."""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from payslip_engine.domain import AmountLine, Payslip, PayslipStatus, QueryNote
from payslip_engine.repository import InMemoryPayslipRepository
from payslip_engine.services import PayslipService, PayslipStateMachine
from tests.conftest import make_payslip


@pytest.fixture(params=["memory", "sql"])
def any_repository(request, sql_repository):
    """Run a test against both repository implementations."""
    if request.param == "memory":
        return InMemoryPayslipRepository()
    return sql_repository


class TestRoundTrip:
    async def test_all_fields_survive(self, sql_repository, user_id, actor_id):
        payslip = make_payslip(user_id, "2025-03", gross="1234.50", paye="12.34")
        payslip.earnings[0].base_rate = Decimal("50")
        payslip.bonuses = [AmountLine("Exam bonus", Decimal("500.00"))]
        payslip.misc_earnings = [AmountLine("Travel", Decimal("75.25"))]
        payslip.deductions = [AmountLine("Uniform", Decimal("100"))]
        payslip.notes = [QueryNote(item_id="earning-0", note="Check hours", resolved=True, resolution_note="ok")]
        PayslipStateMachine.transition(payslip, PayslipStatus.DRAFT, actor_id)
        payslip.uif = Decimal("12.35")
        payslip.net_pay = Decimal("1709.06")
        await sql_repository.save(payslip)

        loaded = await sql_repository.load(payslip.payslip_id)

        assert loaded.payslip_id == payslip.payslip_id
        assert loaded.user_id == user_id
        assert loaded.pay_period == "2025-03"
        assert loaded.status == PayslipStatus.DRAFT
        assert loaded.earnings == payslip.earnings
        assert loaded.earnings[0].work_date == date(2025, 3, 1)
        assert loaded.bonuses == payslip.bonuses
        assert loaded.misc_earnings == payslip.misc_earnings
        assert loaded.deductions == payslip.deductions
        assert loaded.notes == payslip.notes
        assert loaded.history[0].status == PayslipStatus.DRAFT
        assert loaded.history[0].updated_by == actor_id
        assert loaded.gross_earnings == Decimal("1234.50")
        assert loaded.paye == Decimal("12.34")
        assert loaded.uif == Decimal("12.35")
        assert loaded.net_pay == Decimal("1709.06")

    async def test_missing_optional_lists_stay_missing(self, sql_repository, user_id):
        payslip = make_payslip(user_id, "2025-03")
        payslip.bonuses = None
        payslip.misc_earnings = None
        await sql_repository.save(payslip)

        loaded = await sql_repository.load(payslip.payslip_id)

        assert loaded.bonuses is None
        assert loaded.misc_earnings is None
        assert loaded.total_bonuses == Decimal("0")

    async def test_save_replaces(self, any_repository, user_id):
        payslip = make_payslip(user_id, "2025-03")
        await any_repository.save(payslip)
        payslip.status = PayslipStatus.LOCKED
        payslip.deductions.append(AmountLine("Uniform", Decimal("10")))
        await any_repository.save(payslip)

        loaded = await any_repository.load(payslip.payslip_id)

        assert loaded.status == PayslipStatus.LOCKED
        assert len(loaded.deductions) == 1
        assert len(await any_repository.search()) == 1

    async def test_load_missing(self, any_repository):
        assert await any_repository.load(uuid4()) is None

    async def test_memory_returns_copies(self, user_id):
        repository = InMemoryPayslipRepository()
        payslip = make_payslip(user_id, "2025-03")
        await repository.save(payslip)

        loaded = await repository.load(payslip.payslip_id)
        loaded.deductions.append(AmountLine("x", Decimal("1")))

        again = await repository.load(payslip.payslip_id)
        assert again.deductions == []


class TestQueries:
    async def test_find_draft_ignores_other_statuses(self, any_repository, user_id):
        await any_repository.save(make_payslip(user_id, "2025-03", PayslipStatus.LOCKED))
        assert await any_repository.find_draft(user_id, "2025-03") is None

        draft = make_payslip(user_id, "2025-03")
        await any_repository.save(draft)

        found = await any_repository.find_draft(user_id, "2025-03")
        assert found.payslip_id == draft.payslip_id
        assert await any_repository.find_draft(user_id, "2025-04") is None
        assert await any_repository.find_draft(uuid4(), "2025-03") is None

    async def test_find_finalized_window(self, any_repository, user_id):
        for period, status in [
            ("2025-02", PayslipStatus.LOCKED),  # previous tax year
            ("2025-03", PayslipStatus.LOCKED),
            ("2025-04", PayslipStatus.PAID),
            ("2025-05", PayslipStatus.QUERY_HANDLED),
            ("2025-06", PayslipStatus.LOCKED),  # current period
        ]:
            await any_repository.save(make_payslip(user_id, period, status, gross="100"))
        await any_repository.save(make_payslip(uuid4(), "2025-04", PayslipStatus.PAID, gross="100"))

        found = await any_repository.find_finalized(user_id, "2025-03", "2025-06")

        assert [p.pay_period for p in found] == ["2025-03", "2025-04"]

    async def test_search_filters_and_orders(self, any_repository, user_id):
        other = uuid4()
        await any_repository.save(make_payslip(user_id, "2025-03", PayslipStatus.PAID))
        await any_repository.save(make_payslip(user_id, "2025-05"))
        await any_repository.save(make_payslip(user_id, "2025-04", PayslipStatus.LOCKED))
        await any_repository.save(make_payslip(other, "2025-04"))

        everything = await any_repository.search()
        assert [p.pay_period for p in everything][:2] == ["2025-05", "2025-04"]
        assert len(everything) == 4

        mine = await any_repository.list_for_user(user_id)
        assert [p.pay_period for p in mine] == ["2025-05", "2025-04", "2025-03"]

        drafts = await any_repository.search(status=PayslipStatus.DRAFT)
        assert {p.user_id for p in drafts} == {user_id, other}

        april = await any_repository.search(pay_period="2025-04", user_id=other)
        assert len(april) == 1
        assert april[0].user_id == other


class TestServiceOnSql:
    async def test_event_to_locked_payslip(self, sql_repository, tax_table, user_id, actor_id):
        service = PayslipService(sql_repository, tax_table=tax_table)
        payload = {
            "user_id": user_id,
            "event_date": datetime(2025, 3, 5, 9, 0),
            "description": "Physics lesson for Sam",
            "quantity": "10",
            "rate": "1000",
        }

        payslip = await service.add_completed_event(payload)
        again = await service.add_completed_event(payload)
        payslip = await service.add_bonus(payslip.payslip_id, "Exam prep bonus", Decimal("500"))
        await service.update_status(payslip.payslip_id, PayslipStatus.LOCKED, actor_id)

        stored = await sql_repository.load(payslip.payslip_id)
        assert again.payslip_id == payslip.payslip_id
        assert len(stored.earnings) == 1
        assert stored.status == PayslipStatus.LOCKED
        assert stored.paye == Decimal("453.75")
        assert stored.uif == Decimal("105.00")
        assert stored.net_pay == Decimal("9941.25")
        assert [h.status for h in stored.history] == [PayslipStatus.DRAFT, PayslipStatus.LOCKED]

    async def test_ytd_reads_locked_history(self, sql_repository, tax_table, user_id):
        service = PayslipService(sql_repository, tax_table=tax_table)
        await sql_repository.save(
            make_payslip(user_id, "2025-03", PayslipStatus.LOCKED, gross="10000", paye="363.75")
        )
        april = make_payslip(user_id, "2025-04", gross="20000")
        await sql_repository.save(april)

        result = await service.recalculate(april.payslip_id)

        assert result.paye == Decimal("2163.75")


def test_payslip_defaults():
    payslip = Payslip(user_id=uuid4(), pay_period="2025-03")

    assert payslip.status == PayslipStatus.DRAFT
    assert payslip.bonuses == []
    assert payslip.taxable_gross == Decimal("0")


class TestStoredTotals:
    async def test_fractional_hours_store_cent_totals(self, any_repository, tax_table, user_id):
        service = PayslipService(any_repository, tax_table=tax_table)

        payslip = await service.add_completed_event(
            {
                "user_id": user_id,
                "event_date": date(2025, 3, 12),
                "description": "Maths lesson for Jane",
                "quantity": Decimal(50) / 60,
                "rate": "250",
                "base_rate": "50",
            }
        )
        payslip = await service.add_deduction(payslip.payslip_id, "Stationery", Decimal("3.335"))

        stored = await any_repository.load(payslip.payslip_id)
        for loaded in (payslip, stored):
            assert loaded.gross_earnings == Decimal("258.33")
            assert loaded.gross_earnings == loaded.gross_earnings.quantize(Decimal("0.01"))
            assert loaded.total_deductions == Decimal("3.34")
            assert loaded.uif == Decimal("2.58")
            assert loaded.net_pay == Decimal("252.41")
        assert stored.gross_earnings == payslip.gross_earnings
