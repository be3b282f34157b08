"""
SQLAlchemy models for campaign configuration and runs.
"""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    Index,
    Integer,
    String,
    Time,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from governor.calling.window import CallingWindow
from governor.shared.database import Base


class ExecutionMode(str, Enum):
    """How a run decides it has done enough for the day."""

    BUDGET = "budget"
    LEAD_COUNT = "lead_count"


class RunPhase(str, Enum):
    """Lifecycle of a single run."""

    REQUESTED = "requested"
    RUNNING = "running"
    STOPPED = "stopped"


class RunOrigin(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class PlanTier(str, Enum):
    STARTER = "starter"
    PRO = "pro"
    ELITE = "elite"
    FREE_TRIAL = "free_trial"
    FREE_ACCESS = "free_access"


PLAN_TIER_MAX_DAILY_CALLS: dict[PlanTier, int] = {
    PlanTier.STARTER: 600,
    PlanTier.PRO: 1200,
    PlanTier.ELITE: 1800,
    PlanTier.FREE_TRIAL: 600,
    PlanTier.FREE_ACCESS: 600,
}

DEFAULT_BUDGET_LIMIT_CENTS = 5000
DEFAULT_LEAD_COUNT_TARGET = 100
DEFAULT_WINDOW_START = time(9, 0)
DEFAULT_WINDOW_END = time(20, 0)
DEFAULT_ACTIVE_DAYS = [1, 2, 3, 4, 5]
DEFAULT_AUTO_SCHEDULE_TIME = time(9, 0)


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class CampaignConfig(Base):
    """Durable campaign policy, one row per account."""

    __tablename__ = "campaign_configs"

    account_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    execution_mode: Mapped[ExecutionMode] = mapped_column(
        SQLEnum(ExecutionMode, name="execution_mode", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=ExecutionMode.BUDGET,
    )
    budget_limit_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_BUDGET_LIMIT_CENTS
    )
    lead_count_target: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_LEAD_COUNT_TARGET
    )

    # Calling window
    window_start: Mapped[time] = mapped_column(Time, nullable=False, default=DEFAULT_WINDOW_START)
    window_end: Mapped[time] = mapped_column(Time, nullable=False, default=DEFAULT_WINDOW_END)
    active_days: Mapped[list[int]] = mapped_column(
        JSON, nullable=False, default=lambda: list(DEFAULT_ACTIVE_DAYS)
    )
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="America/New_York")

    # Auto-schedule
    auto_schedule_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_schedule_time: Mapped[time] = mapped_column(
        Time, nullable=False, default=DEFAULT_AUTO_SCHEDULE_TIME
    )
    last_auto_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    live_transfer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    plan_tier: Mapped[PlanTier] = mapped_column(
        SQLEnum(PlanTier, name="plan_tier", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=PlanTier.STARTER,
    )
    min_lead_age_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def calling_window(self) -> CallingWindow:
        return CallingWindow.build(
            start=self.window_start,
            end=self.window_end,
            active_days=self.active_days,
            timezone=self.timezone,
        )

    @property
    def max_daily_calls(self) -> int:
        return PLAN_TIER_MAX_DAILY_CALLS[PlanTier(self.plan_tier)]

    def __repr__(self) -> str:
        return f"<CampaignConfig(account_id={self.account_id}, mode={self.execution_mode})>"


class CampaignRun(Base):
    """One execution of a campaign between launch and stop."""

    __tablename__ = "campaign_runs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    phase: Mapped[RunPhase] = mapped_column(
        SQLEnum(RunPhase, name="run_phase", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=RunPhase.REQUESTED,
    )
    origin: Mapped[RunOrigin] = mapped_column(
        SQLEnum(RunOrigin, name="run_origin", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=RunOrigin.MANUAL,
    )
    execution_mode: Mapped[ExecutionMode] = mapped_column(
        SQLEnum(ExecutionMode, name="execution_mode", native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    lead_count_target: Mapped[int | None] = mapped_column(Integer, nullable=True)
    budget_limit_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    live_transfer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stop_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stopped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stop_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Active override grant, if any
    override_leads: Mapped[int | None] = mapped_column(Integer, nullable=True)
    override_estimated_cost_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    override_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    override_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # At most one live run per account.
        Index(
            "uq_campaign_runs_live_account",
            "account_id",
            unique=True,
            postgresql_where=text("phase <> 'stopped'"),
            sqlite_where=text("phase <> 'stopped'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<CampaignRun(id={self.id}, account_id={self.account_id}, phase={self.phase})>"
