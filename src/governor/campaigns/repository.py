"""
Repositories for campaign configuration and runs.
"""

from datetime import date, datetime
from typing import Any, Protocol, Sequence
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from governor.campaigns.models import (
    DEFAULT_ACTIVE_DAYS,
    DEFAULT_AUTO_SCHEDULE_TIME,
    DEFAULT_BUDGET_LIMIT_CENTS,
    DEFAULT_LEAD_COUNT_TARGET,
    DEFAULT_WINDOW_END,
    DEFAULT_WINDOW_START,
    CampaignConfig,
    CampaignRun,
    ExecutionMode,
    PlanTier,
    RunOrigin,
    RunPhase,
)


def default_config(account_id: UUID, timezone: str = "America/New_York") -> CampaignConfig:
    """Unsaved configuration for an account that never edited its settings."""
    return CampaignConfig(
        account_id=account_id,
        execution_mode=ExecutionMode.BUDGET,
        budget_limit_cents=DEFAULT_BUDGET_LIMIT_CENTS,
        lead_count_target=DEFAULT_LEAD_COUNT_TARGET,
        window_start=DEFAULT_WINDOW_START,
        window_end=DEFAULT_WINDOW_END,
        active_days=list(DEFAULT_ACTIVE_DAYS),
        timezone=timezone,
        auto_schedule_enabled=False,
        auto_schedule_time=DEFAULT_AUTO_SCHEDULE_TIME,
        last_auto_start_date=None,
        live_transfer=True,
        plan_tier=PlanTier.STARTER,
        min_lead_age_days=0,
    )


class CampaignConfigRepositoryProtocol(Protocol):
    async def get(self, account_id: UUID) -> CampaignConfig | None: ...

    async def load(self, account_id: UUID) -> CampaignConfig: ...

    async def save(self, config: CampaignConfig, changes: dict[str, Any] | None = None) -> CampaignConfig: ...

    async def list_auto_scheduled(self) -> Sequence[CampaignConfig]: ...

    async def mark_auto_started(self, config: CampaignConfig, day: date) -> None: ...


class CampaignConfigRepository:
    """Repository for ``campaign_configs``."""

    def __init__(self, session: AsyncSession, default_timezone: str = "America/New_York") -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
            default_timezone: Zone given to accounts without a stored row.
        """
        self._session = session
        self._default_timezone = default_timezone

    async def get(self, account_id: UUID) -> CampaignConfig | None:
        return await self._session.get(CampaignConfig, account_id)

    async def load(self, account_id: UUID) -> CampaignConfig:
        """Stored configuration, or the defaults when the account has none."""
        config = await self.get(account_id)
        if config is None:
            return default_config(account_id, self._default_timezone)
        return config

    async def save(self, config: CampaignConfig, changes: dict[str, Any] | None = None) -> CampaignConfig:
        """Apply ``changes`` and persist; transient defaults get inserted."""
        for field, value in (changes or {}).items():
            setattr(config, field, value)
        self._session.add(config)
        await self._session.flush()
        return config

    async def list_auto_scheduled(self) -> Sequence[CampaignConfig]:
        stmt = select(CampaignConfig).where(CampaignConfig.auto_schedule_enabled.is_(True))
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def mark_auto_started(self, config: CampaignConfig, day: date) -> None:
        config.last_auto_start_date = day
        await self._session.flush()


class CampaignRunRepositoryProtocol(Protocol):
    async def get(self, run_id: UUID) -> CampaignRun | None: ...

    async def get_live(self, account_id: UUID) -> CampaignRun | None: ...

    async def create(
        self,
        account_id: UUID,
        *,
        execution_mode: ExecutionMode,
        lead_count_target: int | None,
        budget_limit_cents: int | None,
        live_transfer: bool,
        origin: RunOrigin,
        started_at: datetime,
    ) -> CampaignRun: ...

    async def mark_running(self, run: CampaignRun, at: datetime) -> CampaignRun: ...

    async def mark_stopped(self, run: CampaignRun, at: datetime, reason: str) -> CampaignRun: ...

    async def set_override(
        self,
        run: CampaignRun,
        *,
        extra_leads: int,
        estimated_cost_cents: int,
        started_at: datetime,
        expires_at: datetime | None,
    ) -> CampaignRun: ...

    async def commit(self) -> None: ...


class CampaignRunRepository:
    """Repository for ``campaign_runs``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, run_id: UUID) -> CampaignRun | None:
        return await self._session.get(CampaignRun, run_id)

    async def get_live(self, account_id: UUID) -> CampaignRun | None:
        """The account's non-stopped run, if any."""
        stmt = (
            select(CampaignRun)
            .where(CampaignRun.account_id == account_id)
            .where(CampaignRun.phase != RunPhase.STOPPED)
            .order_by(desc(CampaignRun.started_at))
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        account_id: UUID,
        *,
        execution_mode: ExecutionMode,
        lead_count_target: int | None,
        budget_limit_cents: int | None,
        live_transfer: bool,
        origin: RunOrigin,
        started_at: datetime,
    ) -> CampaignRun:
        """Insert a ``requested`` run.

        The insert runs in a savepoint so a unique-index violation (another
        live run for the account) leaves the surrounding transaction usable.

        Raises:
            sqlalchemy.exc.IntegrityError: If the account already has a live run.
        """
        run = CampaignRun(
            account_id=account_id,
            phase=RunPhase.REQUESTED,
            origin=origin,
            execution_mode=execution_mode,
            lead_count_target=lead_count_target,
            budget_limit_cents=budget_limit_cents,
            live_transfer=live_transfer,
            started_at=started_at,
        )
        async with self._session.begin_nested():
            self._session.add(run)
            await self._session.flush()
        return run

    async def commit(self) -> None:
        """Commit the unit of work so other connections see the run."""
        await self._session.commit()

    async def mark_running(self, run: CampaignRun, at: datetime) -> CampaignRun:
        run.phase = RunPhase.RUNNING
        run.confirmed_at = at
        await self._session.flush()
        return run

    async def mark_stopped(self, run: CampaignRun, at: datetime, reason: str) -> CampaignRun:
        run.phase = RunPhase.STOPPED
        if run.stop_requested_at is None:
            run.stop_requested_at = at
        run.stopped_at = at
        run.stop_reason = reason
        await self._session.flush()
        return run

    async def set_override(
        self,
        run: CampaignRun,
        *,
        extra_leads: int,
        estimated_cost_cents: int,
        started_at: datetime,
        expires_at: datetime | None,
    ) -> CampaignRun:
        """Store a grant on the run, replacing any earlier one."""
        run.override_leads = extra_leads
        run.override_estimated_cost_cents = estimated_cost_cents
        run.override_started_at = started_at
        run.override_expires_at = expires_at
        await self._session.flush()
        return run
