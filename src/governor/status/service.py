"""
Status service.

Gathers one snapshot of constraints for an account and runs the pure
evaluator over it. Nothing here writes: configuration and runs are only
read, so any number of concurrent pollers converge on the same answer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from governor.billing.ledger import BudgetSnapshot, LedgerReader, progress_percent
from governor.calling.window import WindowCheck, check_window, local_day_bounds
from governor.campaigns.models import CampaignRun, ExecutionMode
from governor.campaigns.repository import (
    CampaignConfigRepositoryProtocol,
    CampaignRunRepositoryProtocol,
)
from governor.config import Settings, get_settings
from governor.leads.availability import LeadPolicy
from governor.leads.repository import LeadPoolReader, read_availability
from governor.overrides.recommender import OverrideGrant, recommend_override
from governor.shared.clock import Clock, as_utc, utcnow
from governor.shared.logging import get_logger
from governor.status.evaluator import (
    CampaignState,
    RemedialAction,
    RunInfo,
    StatusEvaluation,
    StatusInputs,
    error_evaluation,
    evaluate_status,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class CampaignRuntime:
    """Everything a dashboard shows about a campaign at one instant."""

    account_id: UUID
    state: CampaignState
    reason: str
    action: RemedialAction
    evaluated_at: datetime
    sub_reason: str | None = None
    execution_mode: ExecutionMode | None = None
    today_spend_cents: int = 0
    daily_budget_cents: int = 0
    today_calls: int = 0
    today_appointments: int = 0
    lead_count_target: int | None = None
    calls_this_run: int = 0
    progress_percent: float = 0.0
    remaining_minutes: int = 0
    current_lead_id: UUID | None = None
    last_outcome: str | None = None
    run_id: UUID | None = None
    run_phase: str | None = None
    override_recommendation: OverrideGrant | None = None
    active_override: dict[str, Any] | None = field(default=None)

    def as_dict(self) -> dict[str, Any]:
        return {
            "account_id": str(self.account_id),
            "state": self.state.value,
            "reason": self.reason,
            "action": self.action.value,
            "sub_reason": self.sub_reason,
            "execution_mode": self.execution_mode.value if self.execution_mode else None,
            "today_spend_cents": self.today_spend_cents,
            "daily_budget_cents": self.daily_budget_cents,
            "today_calls": self.today_calls,
            "today_appointments": self.today_appointments,
            "lead_count_target": self.lead_count_target,
            "calls_this_run": self.calls_this_run,
            "progress_percent": self.progress_percent,
            "remaining_minutes": self.remaining_minutes,
            "current_lead_id": str(self.current_lead_id) if self.current_lead_id else None,
            "last_outcome": self.last_outcome,
            "run_id": str(self.run_id) if self.run_id else None,
            "run_phase": self.run_phase,
            "override_recommendation": (
                self.override_recommendation.as_dict() if self.override_recommendation else None
            ),
            "active_override": self.active_override,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


async def calls_this_run(
    ledger: LedgerReader,
    run: CampaignRun,
    *,
    now: datetime,
    tz_name: str,
) -> int:
    """Calls placed for the run during the current local day."""
    day_start, _ = local_day_bounds(now, tz_name)
    started = as_utc(run.started_at)
    since = max(started, day_start) if started else day_start
    return await ledger.count_calls_since(run.account_id, since)


async def override_is_live(ledger: LedgerReader, run: CampaignRun, *, now: datetime) -> bool:
    """A grant holds until its window closes or its extra leads are used up."""
    if not run.override_leads or run.override_started_at is None:
        return False
    expires_at = as_utc(run.override_expires_at)
    if expires_at is not None and now >= expires_at:
        return False
    used = await ledger.count_calls_since(run.account_id, as_utc(run.override_started_at))
    return used < run.override_leads


class StatusService:
    """Produces a fresh ``CampaignRuntime`` per call."""

    def __init__(
        self,
        configs: CampaignConfigRepositoryProtocol,
        runs: CampaignRunRepositoryProtocol,
        ledger: LedgerReader,
        leads: LeadPoolReader,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._configs = configs
        self._runs = runs
        self._ledger = ledger
        self._leads = leads
        self._settings = settings or get_settings()
        self._clock = clock

    async def get_status(self, account_id: UUID) -> CampaignRuntime:
        """Evaluate the campaign; gathering faults come back as ``error``."""
        now = self._clock()
        try:
            return await self._evaluate(account_id, now)
        except Exception:
            logger.exception(
                "Status evaluation failed",
                extra={"account_id": str(account_id)},
            )
            evaluation = error_evaluation()
            return CampaignRuntime(
                account_id=account_id,
                state=evaluation.state,
                reason=evaluation.reason,
                action=evaluation.action,
                evaluated_at=now,
            )

    async def _evaluate(self, account_id: UUID, now: datetime) -> CampaignRuntime:
        settings = self._settings
        config = await self._configs.load(account_id)
        window = check_window(now, config.calling_window())
        day_start, day_end = local_day_bounds(now, config.timezone)

        totals = await self._ledger.read_day(account_id, day_start, day_end)
        balance = await self._ledger.read_balance(account_id)
        live_call = await self._ledger.read_live_call(account_id)
        budget = BudgetSnapshot(
            today_spend_cents=totals.spend_cents,
            daily_limit_cents=config.budget_limit_cents,
            balance_cents=balance.balance_cents,
            min_balance_cents=settings.min_balance_cents,
            auto_refill_enabled=balance.auto_refill_enabled,
        )
        availability = await read_availability(
            self._leads,
            account_id,
            tz_name=config.timezone,
            now=now,
            policy=LeadPolicy(
                dead_lead_attempts=settings.dead_lead_attempts,
                min_lead_age_days=config.min_lead_age_days,
            ),
        )

        run = await self._runs.get_live(account_id)
        run_info: RunInfo | None = None
        run_calls = 0
        override_live = False
        if run is not None:
            run_calls = await calls_this_run(self._ledger, run, now=now, tz_name=config.timezone)
            override_live = await override_is_live(self._ledger, run, now=now)
            run_info = RunInfo(
                phase=run.phase,
                execution_mode=run.execution_mode,
                lead_count_target=run.lead_count_target,
                calls_this_run=run_calls,
                override_live=override_live,
            )

        evaluation = evaluate_status(
            StatusInputs(
                window=window,
                budget=budget,
                leads=availability,
                run=run_info,
                auto_schedule_enabled=config.auto_schedule_enabled,
            )
        )

        mode = run.execution_mode if run is not None else config.execution_mode
        target = run.lead_count_target if run is not None else config.lead_count_target
        if mode == ExecutionMode.LEAD_COUNT:
            progress = progress_percent(run_calls, target or 0)
        else:
            progress = budget.progress_percent

        runtime = CampaignRuntime(
            account_id=account_id,
            state=evaluation.state,
            reason=evaluation.reason,
            action=evaluation.action,
            evaluated_at=now,
            sub_reason=evaluation.sub_reason.value if evaluation.sub_reason else None,
            execution_mode=mode,
            today_spend_cents=totals.spend_cents,
            daily_budget_cents=config.budget_limit_cents,
            today_calls=totals.calls,
            today_appointments=totals.appointments,
            lead_count_target=target,
            calls_this_run=run_calls,
            progress_percent=progress,
            remaining_minutes=window.remaining_minutes,
            current_lead_id=live_call.current_lead_id,
            last_outcome=live_call.last_outcome,
            run_id=run.id if run is not None else None,
            run_phase=run.phase.value if run is not None else None,
            override_recommendation=self._recommendation(evaluation, window),
            active_override=_grant_of(run) if override_live else None,
        )
        logger.debug(
            "Status evaluated",
            extra={"account_id": str(account_id), "state": runtime.state.value},
        )
        return runtime

    def _recommendation(self, evaluation: StatusEvaluation, window: WindowCheck) -> OverrideGrant | None:
        if not evaluation.offers_override:
            return None
        return recommend_override(
            window.remaining_minutes,
            dials_per_hour=self._settings.dials_per_hour,
            minutes_per_call=self._settings.minutes_per_call,
            per_minute_cost_cents=self._settings.per_minute_cost_cents,
            expires_at=window.closes_at,
        )


def _grant_of(run: CampaignRun) -> dict[str, Any]:
    expires_at = as_utc(run.override_expires_at)
    return {
        "extra_leads": run.override_leads,
        "estimated_cost_cents": run.override_estimated_cost_cents,
        "expires_at": expires_at.isoformat() if expires_at else None,
    }
