"""
Pydantic schemas for the dialer API.
"""

from datetime import date, datetime, time
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from governor.campaigns.models import ExecutionMode, PlanTier

MIN_BUDGET_CENTS = 500
MAX_BUDGET_CENTS = 50000


def _check_days(days: list[int] | None) -> list[int] | None:
    if days is None:
        return None
    if not days:
        raise ValueError("active_days must contain at least one weekday")
    if any(d < 1 or d > 7 for d in days):
        raise ValueError("active_days must hold ISO weekday numbers 1-7")
    return sorted(set(days))


def _check_timezone(tz: str | None) -> str | None:
    if tz is None:
        return None
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    try:
        ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {tz}") from exc
    return tz


class CampaignConfigResponse(BaseModel):
    """Stored (or default) campaign configuration of the account."""

    model_config = ConfigDict(from_attributes=True)

    account_id: UUID
    execution_mode: ExecutionMode
    budget_limit_cents: int
    lead_count_target: int
    window_start: time
    window_end: time
    active_days: list[int]
    timezone: str
    auto_schedule_enabled: bool
    auto_schedule_time: time
    last_auto_start_date: date | None = None
    live_transfer: bool
    plan_tier: PlanTier
    max_daily_calls: int
    min_lead_age_days: int


class CampaignConfigUpdate(BaseModel):
    """Partial settings update; omitted fields keep their stored value."""

    execution_mode: ExecutionMode | None = None
    budget_limit_cents: int | None = Field(
        None,
        ge=MIN_BUDGET_CENTS,
        le=MAX_BUDGET_CENTS,
        description="Daily budget in cents ($5 - $500)",
    )
    lead_count_target: int | None = Field(None, ge=1, description="Leads to call per day")
    window_start: time | None = Field(None, description="Calling window start (local)")
    window_end: time | None = Field(None, description="Calling window end (local)")
    active_days: list[int] | None = Field(None, description="ISO weekdays, 1 = Monday")
    timezone: str | None = Field(None, description="IANA timezone name")
    auto_schedule_enabled: bool | None = None
    auto_schedule_time: time | None = None
    live_transfer: bool | None = None
    min_lead_age_days: int | None = Field(None, ge=0, le=365)

    @field_validator("active_days")
    @classmethod
    def validate_days(cls, v: list[int] | None) -> list[int] | None:
        return _check_days(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        return _check_timezone(v)

    @model_validator(mode="after")
    def validate_window_if_both_present(self) -> "CampaignConfigUpdate":
        """Start and end may cross midnight but must differ."""
        if (
            self.window_start is not None
            and self.window_end is not None
            and self.window_start == self.window_end
        ):
            raise ValueError("window_start and window_end must differ")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class LaunchRequest(BaseModel):
    mode: ExecutionMode
    target_or_budget: int | None = Field(
        None,
        description="Budget in cents (budget mode) or lead target (lead_count mode)",
    )
    live_transfer: bool | None = None


class LaunchResponse(BaseModel):
    ok: bool = True
    accepted: bool = True
    already_running: bool = False
    run_id: UUID | None = None
    phase: str | None = None


class StopResponse(BaseModel):
    ok: bool = True
    stopped: bool
    run_id: UUID | None = None


class OverrideRequest(BaseModel):
    extra_leads: int = Field(..., description="Extra leads to allow past today's budget")


class OverrideGrantSchema(BaseModel):
    extra_leads: int
    estimated_cost_cents: int
    expires_at: datetime | None = None


class OverrideResponse(BaseModel):
    ok: bool = True
    grant: OverrideGrantSchema


class CheckLeadsResponse(BaseModel):
    has_callable: bool
    reason: str | None = None
    callable_count: int = 0
    potential_count: int = 0
    dialed_today: int = 0
    total_leads: int = 0
    message: str = ""


class RunConfirmResponse(BaseModel):
    ok: bool = True
    run_id: UUID
    phase: str


class ErrorResponse(BaseModel):
    """Body of every governor error response."""

    error: str
    message: str
    remedy: str | None = None
    sub_reason: str | None = None
    details: dict[str, Any] | None = None
