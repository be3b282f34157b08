"""
Pytest configuration and shared fixtures.

Database tests run against an in-memory aiosqlite engine with the full
schema created from the ORM metadata.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID, uuid4

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only-32chars")
os.environ.setdefault("RUN_EXECUTOR_TYPE", "mock")
os.environ.setdefault("AUTO_SCHEDULE_ENABLED", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import governor.billing.models  # noqa: F401
import governor.campaigns.models  # noqa: F401
import governor.leads.models  # noqa: F401
from governor.billing.models import CallBalance, CallRecord
from governor.campaigns.models import CampaignConfig, ExecutionMode, PlanTier
from governor.config import Settings
from governor.leads.models import Lead, LeadSource
from governor.shared.database import Base

NEW_YORK = "America/New_York"

# Monday 2026-10-19, 14:00 in New York (EDT, UTC-4).
MONDAY_AFTERNOON = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock pinned to ``now``; tests move it explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        jwt_secret_key="test-secret-key-for-testing-only-32chars",
        min_balance_cents=500,
        dials_per_hour=60,
        minutes_per_call=1.0,
        per_minute_cost_cents=30,
        dead_lead_attempts=20,
        run_executor_type="mock",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(MONDAY_AFTERNOON)


@pytest.fixture
def account_id() -> UUID:
    return uuid4()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


# ============================================================================
# Seed helpers
# ============================================================================


async def seed_config(
    session: AsyncSession,
    account_id: UUID,
    **overrides: object,
) -> CampaignConfig:
    values: dict[str, object] = {
        "account_id": account_id,
        "execution_mode": ExecutionMode.BUDGET,
        "budget_limit_cents": 5000,
        "lead_count_target": 100,
        "window_start": time(9, 0),
        "window_end": time(20, 0),
        "active_days": [1, 2, 3, 4, 5],
        "timezone": NEW_YORK,
        "auto_schedule_enabled": False,
        "auto_schedule_time": time(9, 0),
        "live_transfer": True,
        "plan_tier": PlanTier.STARTER,
        "min_lead_age_days": 0,
    }
    values.update(overrides)
    config = CampaignConfig(**values)
    session.add(config)
    await session.flush()
    return config


async def seed_balance(
    session: AsyncSession,
    account_id: UUID,
    balance_cents: int = 10000,
    auto_refill_enabled: bool = False,
) -> CallBalance:
    balance = CallBalance(
        account_id=account_id,
        balance_cents=balance_cents,
        auto_refill_enabled=auto_refill_enabled,
    )
    session.add(balance)
    await session.flush()
    return balance


async def seed_leads(
    session: AsyncSession,
    account_id: UUID,
    count: int,
    *,
    source: LeadSource | None = None,
    status: str = "new",
    total_calls_made: int = 0,
    last_attempt_date: date | None = None,
    created_at: datetime | None = None,
) -> LeadSource:
    if source is None:
        source = LeadSource(account_id=account_id, name="Sheet", is_active=True)
        session.add(source)
        await session.flush()
    for i in range(count):
        session.add(
            Lead(
                account_id=account_id,
                source_id=source.id,
                name=f"Lead {i}",
                phone=f"+1555000{i:04d}",
                status=status,
                total_calls_made=total_calls_made,
                last_attempt_date=last_attempt_date,
                created_at=created_at or datetime(2026, 1, 1, tzinfo=timezone.utc),
            )
        )
    await session.flush()
    return source


async def seed_calls(
    session: AsyncSession,
    account_id: UUID,
    count: int,
    *,
    at: datetime,
    cost_cents: int = 30,
    run_id: UUID | None = None,
    appointment_booked: bool = False,
    outcome: str = "no_answer",
) -> None:
    for i in range(count):
        session.add(
            CallRecord(
                account_id=account_id,
                run_id=run_id,
                lead_id=uuid4(),
                created_at=at + timedelta(seconds=i),
                ended_at=at + timedelta(seconds=i + 30),
                duration_minutes=1.0,
                cost_cents=cost_cents,
                outcome=outcome,
                appointment_booked=appointment_booked,
            )
        )
    await session.flush()
