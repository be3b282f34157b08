"""
Budget ledger reader.

Resolves today's accumulated spend, the configured daily limit and the
prepaid balance. The ledger is append-only and written by the telephony
executor; nothing here mutates it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import case, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from governor.billing.models import CallBalance, CallRecord
from governor.shared.clock import as_utc


@dataclass(frozen=True)
class DayTotals:
    """Ledger totals for one account-local day."""

    spend_cents: int = 0
    calls: int = 0
    minutes: float = 0.0
    appointments: int = 0


@dataclass(frozen=True)
class BalanceState:
    balance_cents: int = 0
    auto_refill_enabled: bool = False


@dataclass(frozen=True)
class LiveCall:
    """Most recent call activity: the lead being dialed and the last outcome."""

    current_lead_id: UUID | None = None
    last_outcome: str | None = None


@dataclass(frozen=True)
class BudgetSnapshot:
    today_spend_cents: int
    daily_limit_cents: int
    balance_cents: int
    min_balance_cents: int
    auto_refill_enabled: bool

    @property
    def balance_ok(self) -> bool:
        return self.auto_refill_enabled or self.balance_cents >= self.min_balance_cents

    @property
    def budget_reached(self) -> bool:
        # A zero limit means "not configured", never "already spent".
        return self.daily_limit_cents > 0 and self.today_spend_cents >= self.daily_limit_cents

    @property
    def progress_percent(self) -> float:
        return progress_percent(self.today_spend_cents, self.daily_limit_cents)


def progress_percent(done: float, limit: float) -> float:
    """Share of ``limit`` consumed, clamped to [0, 100]; 0 when no limit."""
    if limit <= 0:
        return 0.0
    return max(0.0, min(100.0, done / limit * 100.0))


class LedgerReader(Protocol):
    async def read_day(self, account_id: UUID, start: datetime, end: datetime) -> DayTotals: ...

    async def read_balance(self, account_id: UUID) -> BalanceState: ...

    async def count_calls_since(self, account_id: UUID, since: datetime) -> int: ...

    async def read_live_call(self, account_id: UUID) -> LiveCall: ...


class SqlLedgerReader:
    """Reads ``call_records`` and ``call_balances``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def read_day(self, account_id: UUID, start: datetime, end: datetime) -> DayTotals:
        start, end = as_utc(start), as_utc(end)
        stmt = (
            select(
                func.count(CallRecord.id),
                func.coalesce(func.sum(CallRecord.cost_cents), 0),
                func.coalesce(func.sum(CallRecord.duration_minutes), 0.0),
                func.coalesce(func.sum(case((CallRecord.appointment_booked.is_(True), 1), else_=0)), 0),
            )
            .where(CallRecord.account_id == account_id)
            .where(CallRecord.created_at >= start)
            .where(CallRecord.created_at < end)
        )
        row = (await self._session.execute(stmt)).one()
        return DayTotals(
            calls=int(row[0] or 0),
            spend_cents=int(row[1] or 0),
            minutes=float(row[2] or 0.0),
            appointments=int(row[3] or 0),
        )

    async def read_balance(self, account_id: UUID) -> BalanceState:
        balance = await self._session.get(CallBalance, account_id)
        if balance is None:
            return BalanceState()
        return BalanceState(
            balance_cents=balance.balance_cents,
            auto_refill_enabled=balance.auto_refill_enabled,
        )

    async def count_calls_since(self, account_id: UUID, since: datetime) -> int:
        since = as_utc(since)
        stmt = (
            select(func.count(CallRecord.id))
            .where(CallRecord.account_id == account_id)
            .where(CallRecord.created_at >= since)
        )
        return int((await self._session.execute(stmt)).scalar_one() or 0)

    async def read_live_call(self, account_id: UUID) -> LiveCall:
        in_progress = await self._session.execute(
            select(CallRecord.lead_id)
            .where(CallRecord.account_id == account_id)
            .where(CallRecord.ended_at.is_(None))
            .order_by(desc(CallRecord.created_at))
            .limit(1)
        )
        last = await self._session.execute(
            select(CallRecord.outcome)
            .where(CallRecord.account_id == account_id)
            .where(CallRecord.ended_at.is_not(None))
            .order_by(desc(CallRecord.ended_at))
            .limit(1)
        )
        return LiveCall(
            current_lead_id=in_progress.scalar_one_or_none(),
            last_outcome=last.scalar_one_or_none(),
        )
