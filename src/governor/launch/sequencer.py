"""
Launch sequencer.

Validates launch preconditions, persists the chosen execution policy and
hands the run to the executor. Also owns the other run transitions an
operator or the executor can request: stop, budget override and start
confirmation.

Launch preconditions, checked in order:

1. no live run (a target-reached one is retired) -> ConcurrentLaunchError
2. callable leads exist           -> NoCallableLeadsError(sub_reason)
3. budget mode: budget > 0        -> ValidationError
4. lead-count mode: 0 < target <= plan-tier daily maximum -> ValidationError
5. balance sufficient or auto-refill on -> InsufficientBalanceError
6. manual launch with auto-schedule on  -> ValidationError

The run is inserted before the config edits are saved, and both are
committed before the executor is asked to start dialing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from governor.billing.ledger import LedgerReader
from governor.calling.window import check_window
from governor.campaigns.models import CampaignConfig, CampaignRun, ExecutionMode, RunOrigin, RunPhase
from governor.campaigns.repository import (
    CampaignConfigRepositoryProtocol,
    CampaignRunRepositoryProtocol,
)
from governor.config import Settings, get_settings
from governor.launch.executor import RunExecutor, RunExecutorError, RunStartRequest
from governor.leads.availability import LeadAvailability, LeadPolicy
from governor.leads.repository import LeadPoolReader, read_availability
from governor.overrides.recommender import (
    MAX_OVERRIDE_LEADS,
    OverrideGrant,
    estimate_cost_cents,
)
from governor.shared.clock import Clock, utcnow
from governor.shared.exceptions import (
    ConcurrentLaunchError,
    InsufficientBalanceError,
    NoCallableLeadsError,
    NotFoundError,
    TransientFault,
    ValidationError,
)
from governor.shared.logging import get_logger
from governor.status.evaluator import CampaignState
from governor.status.service import StatusService, calls_this_run

logger = get_logger(__name__)


@dataclass(frozen=True)
class LaunchResult:
    """Launch accepted; the run is ``requested`` until the executor confirms."""

    run_id: UUID
    phase: RunPhase
    execution_mode: ExecutionMode


@dataclass(frozen=True)
class StopResult:
    stopped: bool
    run_id: UUID | None = None


class LaunchSequencer:
    """Run lifecycle operations for one request or scheduler tick."""

    def __init__(
        self,
        configs: CampaignConfigRepositoryProtocol,
        runs: CampaignRunRepositoryProtocol,
        ledger: LedgerReader,
        leads: LeadPoolReader,
        executor: RunExecutor,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._configs = configs
        self._runs = runs
        self._ledger = ledger
        self._leads = leads
        self._executor = executor
        self._settings = settings or get_settings()
        self._clock = clock

    def _policy(self, config: CampaignConfig) -> LeadPolicy:
        return LeadPolicy(
            dead_lead_attempts=self._settings.dead_lead_attempts,
            min_lead_age_days=config.min_lead_age_days,
        )

    async def check_leads(self, account_id: UUID) -> LeadAvailability:
        config = await self._configs.load(account_id)
        return await read_availability(
            self._leads,
            account_id,
            tz_name=config.timezone,
            now=self._clock(),
            policy=self._policy(config),
        )

    async def launch(
        self,
        account_id: UUID,
        mode: ExecutionMode,
        target_or_budget: int | None = None,
        live_transfer: bool | None = None,
        origin: RunOrigin = RunOrigin.MANUAL,
    ) -> LaunchResult:
        """Validate preconditions and request a run start.

        Args:
            account_id: Account launching the campaign.
            mode: Budget-capped or lead-count-capped execution.
            target_or_budget: Budget in cents or lead target; the stored
                value is used when omitted.
            live_transfer: Live transfer flag; stored value when omitted.
            origin: Manual click or auto-schedule.

        Returns:
            The accepted run; callers poll status for ``running``.

        Raises:
            ConcurrentLaunchError: A run is already live for the account.
            NoCallableLeadsError: No lead can be dialed.
            ValidationError: Invalid budget or target, or auto-schedule on.
            InsufficientBalanceError: Balance too low without auto-refill.
            TransientFault: The executor could not be reached.
        """
        now = self._clock()
        config = await self._configs.load(account_id)

        live = await self._runs.get_live(account_id)
        if live is not None:
            if await self._target_reached(live, config, now):
                await self._runs.mark_stopped(live, now, reason="target_reached")
            else:
                raise ConcurrentLaunchError(
                    "A campaign run is already active",
                    details={"run_id": str(live.id)},
                )

        availability = await read_availability(
            self._leads,
            account_id,
            tz_name=config.timezone,
            now=now,
            policy=self._policy(config),
        )
        if not availability.has_callable:
            raise NoCallableLeadsError(
                availability.message,
                sub_reason=availability.reason.value if availability.reason else None,
                details={
                    "potential_count": availability.potential_count,
                    "dialed_today": availability.dialed_today,
                },
            )

        changes: dict[str, Any] = {"execution_mode": mode}
        lead_count_target: int | None = None
        budget_limit_cents: int | None = None
        if mode == ExecutionMode.BUDGET:
            budget = config.budget_limit_cents if target_or_budget is None else target_or_budget
            if budget is None or budget <= 0:
                raise ValidationError("Set a daily budget greater than $0 before launching.")
            changes["budget_limit_cents"] = budget_limit_cents = budget
        else:
            target = config.lead_count_target if target_or_budget is None else target_or_budget
            max_calls = config.max_daily_calls
            if target is None or target <= 0:
                raise ValidationError("Set a lead target greater than 0 before launching.")
            if target > max_calls:
                raise ValidationError(
                    f"Lead target {target} exceeds your plan's daily maximum of {max_calls} calls.",
                    details={"max_daily_calls": max_calls},
                )
            changes["lead_count_target"] = lead_count_target = target

        balance = await self._ledger.read_balance(account_id)
        if not balance.auto_refill_enabled and balance.balance_cents < self._settings.min_balance_cents:
            raise InsufficientBalanceError(
                f"Call balance must be at least ${self._settings.min_balance_cents / 100:.2f} "
                "or auto-refill must be enabled.",
                details={"balance_cents": balance.balance_cents},
            )

        if origin == RunOrigin.MANUAL and config.auto_schedule_enabled:
            raise ValidationError(
                "Auto-schedule is enabled. Turn it off to launch manually."
            )

        if live_transfer is not None:
            changes["live_transfer"] = live_transfer

        # Run first: a launch that loses the insert race leaves the config untouched.
        try:
            run = await self._runs.create(
                account_id,
                execution_mode=mode,
                lead_count_target=lead_count_target,
                budget_limit_cents=budget_limit_cents,
                live_transfer=config.live_transfer if live_transfer is None else live_transfer,
                origin=origin,
                started_at=now,
            )
        except IntegrityError as e:
            logger.info("Concurrent launch lost the insert race", extra={"account_id": str(account_id)})
            raise ConcurrentLaunchError("A campaign run is already active") from e
        await self._configs.save(config, changes)

        # The executor may confirm from another connection before this request ends.
        await self._runs.commit()

        try:
            await self._executor.start_run(
                RunStartRequest(
                    run_id=run.id,
                    account_id=account_id,
                    execution_mode=mode,
                    origin=origin,
                    live_transfer=run.live_transfer,
                    lead_count_target=run.lead_count_target,
                    budget_limit_cents=run.budget_limit_cents,
                )
            )
        except RunExecutorError as e:
            await self._runs.mark_stopped(run, now, reason="executor_unreachable")
            await self._runs.commit()
            raise TransientFault("Could not reach the dialer. Please try again.") from e

        logger.info(
            "Campaign run requested",
            extra={
                "account_id": str(account_id),
                "run_id": str(run.id),
                "mode": mode.value,
                "origin": origin.value,
            },
        )
        return LaunchResult(run_id=run.id, phase=run.phase, execution_mode=mode)

    async def _target_reached(self, run: CampaignRun, config: CampaignConfig, now: datetime) -> bool:
        if run.execution_mode != ExecutionMode.LEAD_COUNT or not run.lead_count_target:
            return False
        calls = await calls_this_run(self._ledger, run, now=now, tz_name=config.timezone)
        return calls >= run.lead_count_target

    async def stop(self, account_id: UUID) -> StopResult:
        """Stop the live run; a no-op when nothing runs.

        The run row is stopped before the executor is told, so the next
        status evaluation is ``stopped`` whatever the executor does.
        """
        run = await self._runs.get_live(account_id)
        if run is None:
            return StopResult(stopped=False)

        now = self._clock()
        await self._runs.mark_stopped(run, now, reason="manual_stop")
        try:
            await self._executor.stop_run(run.id, account_id)
        except RunExecutorError:
            logger.warning(
                "Run stopped but executor not notified",
                extra={"account_id": str(account_id), "run_id": str(run.id)},
            )

        logger.info("Campaign run stopped", extra={"account_id": str(account_id), "run_id": str(run.id)})
        return StopResult(stopped=True, run_id=run.id)

    async def override(self, account_id: UUID, extra_leads: int) -> OverrideGrant:
        """Allow ``extra_leads`` more dials past today's budget.

        Raises:
            ValidationError: Out-of-range count, or no budget-paused run.
            InsufficientBalanceError: Balance too low without auto-refill.
            TransientFault: Status could not be evaluated.
        """
        if not 1 <= extra_leads <= MAX_OVERRIDE_LEADS:
            raise ValidationError(f"Extra leads must be between 1 and {MAX_OVERRIDE_LEADS}.")

        status = StatusService(
            self._configs,
            self._runs,
            self._ledger,
            self._leads,
            settings=self._settings,
            clock=self._clock,
        )
        runtime = await status.get_status(account_id)
        if runtime.state == CampaignState.PAUSED_BALANCE:
            raise InsufficientBalanceError(runtime.reason)
        if runtime.state == CampaignState.ERROR:
            raise TransientFault(runtime.reason)
        if runtime.state != CampaignState.PAUSED_BUDGET:
            raise ValidationError(
                "Overrides are only available while the campaign is paused at its daily budget.",
                details={"state": runtime.state.value},
            )

        run = await self._runs.get_live(account_id)
        if run is None:
            raise TransientFault("The campaign run changed. Please try again.")

        now = self._clock()
        config = await self._configs.load(account_id)
        window = check_window(now, config.calling_window())
        grant = OverrideGrant(
            extra_leads=extra_leads,
            estimated_cost_cents=estimate_cost_cents(
                extra_leads,
                minutes_per_call=self._settings.minutes_per_call,
                per_minute_cost_cents=self._settings.per_minute_cost_cents,
            ),
            expires_at=window.closes_at,
        )
        await self._runs.set_override(
            run,
            extra_leads=grant.extra_leads,
            estimated_cost_cents=grant.estimated_cost_cents,
            started_at=now,
            expires_at=grant.expires_at,
        )
        logger.info(
            "Budget override granted",
            extra={
                "account_id": str(account_id),
                "run_id": str(run.id),
                "extra_leads": extra_leads,
                "estimated_cost_cents": grant.estimated_cost_cents,
            },
        )
        return grant

    async def confirm_started(self, run_id: UUID, account_id: UUID | None = None) -> CampaignRun:
        """Executor callback: the run is dialing.

        Raises:
            NotFoundError: Unknown run, or a run of another account.
        """
        run = await self._runs.get(run_id)
        if run is None or (account_id is not None and run.account_id != account_id):
            raise NotFoundError(f"Run {run_id} not found")

        if run.phase == RunPhase.REQUESTED:
            await self._runs.mark_running(run, self._clock())
            logger.info("Campaign run confirmed", extra={"run_id": str(run_id)})
        elif run.phase == RunPhase.STOPPED:
            logger.info("Ignoring confirmation for stopped run", extra={"run_id": str(run_id)})
        return run
