"""
Repository for lead pool queries.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from governor.calling.window import local_today
from governor.leads.availability import LeadAvailability, LeadCounts, LeadPolicy, classify
from governor.leads.models import TERMINAL_LEAD_STATUSES, Lead, LeadSource


class LeadPoolReader(Protocol):
    """What the governor needs to know about an account's lead pool."""

    async def count_pool(
        self,
        account_id: UUID,
        *,
        today: date,
        now: datetime,
        policy: LeadPolicy,
    ) -> LeadCounts: ...


class LeadRepository:
    """Aggregate queries over ``lead_sources`` and ``leads``."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def count_active_sources(self, account_id: UUID) -> int:
        stmt = (
            select(func.count(LeadSource.id))
            .where(LeadSource.account_id == account_id)
            .where(LeadSource.is_active.is_(True))
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one() or 0)

    async def count_pool(
        self,
        account_id: UUID,
        *,
        today: date,
        now: datetime,
        policy: LeadPolicy,
    ) -> LeadCounts:
        """Count total, potential, dialed-today and callable leads in one query.

        Only leads of active sources are considered.
        """
        sources = await self.count_active_sources(account_id)

        potential = and_(
            Lead.status.not_in(sorted(TERMINAL_LEAD_STATUSES)),
            Lead.total_calls_made < policy.dead_lead_attempts,
        )
        dialed = Lead.last_attempt_date == today
        not_dialed = or_(Lead.last_attempt_date.is_(None), Lead.last_attempt_date != today)
        if policy.min_lead_age_days > 0:
            cutoff = now.astimezone(timezone.utc) - timedelta(days=policy.min_lead_age_days)
            old_enough = Lead.created_at <= cutoff
        else:
            old_enough = true()

        stmt = (
            select(
                func.count(Lead.id),
                func.coalesce(func.sum(case((potential, 1), else_=0)), 0),
                func.coalesce(func.sum(case((and_(potential, dialed), 1), else_=0)), 0),
                func.coalesce(
                    func.sum(case((and_(potential, not_dialed, old_enough), 1), else_=0)), 0
                ),
            )
            .select_from(Lead)
            .join(LeadSource, LeadSource.id == Lead.source_id)
            .where(Lead.account_id == account_id)
            .where(LeadSource.is_active.is_(True))
        )
        row = (await self._session.execute(stmt)).one()

        return LeadCounts(
            sources_connected=sources,
            total_leads=int(row[0] or 0),
            potential=int(row[1] or 0),
            dialed_today=int(row[2] or 0),
            callable=int(row[3] or 0),
        )


async def read_availability(
    reader: LeadPoolReader,
    account_id: UUID,
    *,
    tz_name: str,
    now: datetime,
    policy: LeadPolicy,
) -> LeadAvailability:
    """Count the pool for the account-local ``today`` and classify it."""
    counts = await reader.count_pool(
        account_id,
        today=local_today(now, tz_name),
        now=now,
        policy=policy,
    )
    return classify(counts)
