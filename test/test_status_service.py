"""
Tests for the status service: input gathering plus evaluation.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import FixedClock, seed_balance, seed_calls, seed_config, seed_leads
from governor.billing.ledger import LedgerReader, SqlLedgerReader
from governor.campaigns.models import CampaignRun, ExecutionMode, RunOrigin, RunPhase
from governor.campaigns.repository import CampaignConfigRepository, CampaignRunRepository
from governor.config import Settings
from governor.leads.repository import LeadRepository
from governor.status.evaluator import CampaignState, RemedialAction
from governor.status.service import StatusService

TODAY = date(2026, 10, 19)


def build_service(session: AsyncSession, settings: Settings, clock: FixedClock, ledger: LedgerReader | None = None) -> StatusService:
    return StatusService(
        configs=CampaignConfigRepository(session),
        runs=CampaignRunRepository(session),
        ledger=ledger or SqlLedgerReader(session),
        leads=LeadRepository(session),
        settings=settings,
        clock=clock,
    )


async def start_run(
    session: AsyncSession,
    account_id: UUID,
    started_at: datetime,
    *,
    mode: ExecutionMode = ExecutionMode.BUDGET,
    target: int | None = None,
) -> CampaignRun:
    run = CampaignRun(
        account_id=account_id,
        phase=RunPhase.RUNNING,
        origin=RunOrigin.MANUAL,
        execution_mode=mode,
        lead_count_target=target,
        started_at=started_at,
    )
    session.add(run)
    await session.flush()
    return run


class TestStatusService:
    @pytest.mark.asyncio
    async def test_stopped_without_run(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 5)

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.state == CampaignState.STOPPED
        assert runtime.action == RemedialAction.LAUNCH
        assert runtime.run_id is None
        assert runtime.remaining_minutes == 360

    @pytest.mark.asyncio
    async def test_running_with_today_totals(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id, budget_limit_cents=1500)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 5)
        run = await start_run(db_session, account_id, clock.now - timedelta(hours=2))
        await seed_calls(db_session, account_id, 10, at=clock.now - timedelta(hours=1), run_id=run.id)

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.state == CampaignState.RUNNING
        assert runtime.today_spend_cents == 300
        assert runtime.today_calls == 10
        assert runtime.progress_percent == pytest.approx(20.0)
        assert runtime.run_phase == "running"

    @pytest.mark.asyncio
    async def test_budget_of_fifteen_dollars_spent_pauses(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id, budget_limit_cents=1500, auto_schedule_enabled=True)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 5)
        await start_run(db_session, account_id, clock.now - timedelta(hours=2))
        await seed_calls(db_session, account_id, 50, at=clock.now - timedelta(hours=1))

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.state == CampaignState.PAUSED_BUDGET
        assert runtime.progress_percent == 100.0
        assert runtime.override_recommendation is not None
        # 14:00 local, 360 minutes left: 360 dials * 20% = 72
        assert runtime.override_recommendation.extra_leads == 72

    @pytest.mark.asyncio
    async def test_progress_is_clamped_when_overspent(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id, budget_limit_cents=1500)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 5)
        await start_run(db_session, account_id, clock.now - timedelta(hours=2))
        await seed_calls(db_session, account_id, 80, at=clock.now - timedelta(hours=1))

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.today_spend_cents == 2400
        assert runtime.progress_percent == 100.0

    @pytest.mark.asyncio
    async def test_live_override_keeps_running(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id, budget_limit_cents=1500)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 5)
        run = await start_run(db_session, account_id, clock.now - timedelta(hours=2))
        await seed_calls(db_session, account_id, 50, at=clock.now - timedelta(hours=1))
        run.override_leads = 20
        run.override_estimated_cost_cents = 600
        run.override_started_at = clock.now - timedelta(minutes=10)
        run.override_expires_at = clock.now + timedelta(hours=6)
        await seed_calls(db_session, account_id, 5, at=clock.now - timedelta(minutes=5))

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.state == CampaignState.RUNNING
        assert runtime.active_override is not None
        assert runtime.active_override["extra_leads"] == 20

    @pytest.mark.asyncio
    async def test_used_up_override_pauses_again(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id, budget_limit_cents=1500)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 5)
        run = await start_run(db_session, account_id, clock.now - timedelta(hours=2))
        await seed_calls(db_session, account_id, 50, at=clock.now - timedelta(hours=1))
        run.override_leads = 10
        run.override_started_at = clock.now - timedelta(minutes=30)
        run.override_expires_at = clock.now + timedelta(hours=6)
        await seed_calls(db_session, account_id, 10, at=clock.now - timedelta(minutes=20))

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.state == CampaignState.PAUSED_BUDGET

    @pytest.mark.asyncio
    async def test_outside_hours(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id, budget_limit_cents=1500)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 5)
        await start_run(db_session, account_id, clock.now - timedelta(hours=2))
        await seed_calls(db_session, account_id, 50, at=clock.now - timedelta(hours=1))
        clock.now = datetime(2026, 10, 20, 1, 0, tzinfo=timezone.utc)  # 21:00 local

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.state == CampaignState.OUTSIDE_HOURS
        assert runtime.remaining_minutes == 0

    @pytest.mark.asyncio
    async def test_low_balance(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id)
        await seed_balance(db_session, account_id, balance_cents=100)

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.state == CampaignState.PAUSED_BALANCE

    @pytest.mark.asyncio
    async def test_no_leads_sub_reason(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 40, last_attempt_date=TODAY)
        await start_run(db_session, account_id, clock.now - timedelta(hours=1))

        runtime = await build_service(db_session, settings, clock).get_status(account_id)

        assert runtime.state == CampaignState.NO_LEADS
        assert runtime.sub_reason == "all_dialed_today"

    @pytest.mark.asyncio
    async def test_lead_count_progress_and_target(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id, execution_mode=ExecutionMode.LEAD_COUNT)
        await seed_balance(db_session, account_id)
        await seed_leads(db_session, account_id, 5)
        await start_run(
            db_session, account_id, clock.now - timedelta(hours=2), mode=ExecutionMode.LEAD_COUNT, target=20
        )
        await seed_calls(db_session, account_id, 5, at=clock.now - timedelta(hours=1))
        service = build_service(db_session, settings, clock)

        runtime = await service.get_status(account_id)
        assert runtime.state == CampaignState.RUNNING
        assert runtime.progress_percent == pytest.approx(25.0)

        await seed_calls(db_session, account_id, 15, at=clock.now - timedelta(minutes=30))
        runtime = await service.get_status(account_id)
        assert runtime.state == CampaignState.STOPPED
        assert runtime.progress_percent == 100.0

    @pytest.mark.asyncio
    async def test_ledger_fault_reports_error(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id)
        ledger = AsyncMock(spec=SqlLedgerReader)
        ledger.read_day.side_effect = ConnectionError("ledger unreachable")

        runtime = await build_service(db_session, settings, clock, ledger=ledger).get_status(account_id)

        assert runtime.state == CampaignState.ERROR
        assert runtime.action == RemedialAction.RETRY

    @pytest.mark.asyncio
    async def test_as_dict_is_json_ready(
        self, db_session: AsyncSession, account_id: UUID, settings: Settings, clock: FixedClock
    ) -> None:
        await seed_config(db_session, account_id)
        await seed_balance(db_session, account_id)

        payload = (await build_service(db_session, settings, clock).get_status(account_id)).as_dict()

        assert payload["state"] == "stopped"
        assert payload["account_id"] == str(account_id)
        assert payload["evaluated_at"] == clock.now.isoformat()
