"""
Campaign status evaluator.

Combines balance, calling window, run lifecycle, budget and lead pool into
exactly one ``CampaignState``. Evaluation is a pure function of a
``StatusInputs`` snapshot; the first matching rule wins:

1. balance below minimum, auto-refill off   -> paused_balance
2. outside the calling window                -> outside_hours
3. no live run                               -> stopped
4. lead-count run at its target              -> stopped ("target reached")
5. budget run at its limit, no live override -> paused_budget
6. no callable leads                         -> no_leads (+ sub-reason)
7. otherwise                                 -> running

Faults while gathering the inputs are reported as ``error`` by the caller
through ``error_evaluation``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from governor.billing.ledger import BudgetSnapshot
from governor.calling.window import WindowCheck
from governor.campaigns.models import ExecutionMode, RunPhase
from governor.leads.availability import LeadAvailability, NoLeadsReason


class CampaignState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    OUTSIDE_HOURS = "outside_hours"
    PAUSED_BUDGET = "paused_budget"
    PAUSED_BALANCE = "paused_balance"
    NO_LEADS = "no_leads"
    ERROR = "error"


class RemedialAction(str, Enum):
    """What the operator can do about the current state."""

    FUND_BALANCE = "fund_balance"
    WAIT_FOR_WINDOW = "wait_for_window"
    LAUNCH = "launch"
    OVERRIDE = "override"
    INCREASE_BUDGET = "increase_budget"
    UPLOAD_LEADS = "upload_leads"
    RESUME_TOMORROW = "resume_tomorrow"
    RETRY = "retry"
    NONE = "none"


@dataclass(frozen=True)
class RunInfo:
    """The live run as the evaluator sees it."""

    phase: RunPhase
    execution_mode: ExecutionMode
    lead_count_target: int | None = None
    calls_this_run: int = 0
    override_live: bool = False

    @property
    def target_reached(self) -> bool:
        if self.execution_mode != ExecutionMode.LEAD_COUNT or not self.lead_count_target:
            return False
        return self.calls_this_run >= self.lead_count_target


@dataclass(frozen=True)
class StatusInputs:
    window: WindowCheck
    budget: BudgetSnapshot
    leads: LeadAvailability
    run: RunInfo | None = None
    auto_schedule_enabled: bool = False


@dataclass(frozen=True)
class StatusEvaluation:
    state: CampaignState
    reason: str
    action: RemedialAction
    sub_reason: NoLeadsReason | None = None

    @property
    def offers_override(self) -> bool:
        return self.action == RemedialAction.OVERRIDE


def _dollars(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def _no_leads(leads: LeadAvailability) -> StatusEvaluation:
    if leads.reason == NoLeadsReason.ALL_DIALED_TODAY:
        action = RemedialAction.RESUME_TOMORROW
    else:
        action = RemedialAction.UPLOAD_LEADS
    return StatusEvaluation(
        state=CampaignState.NO_LEADS,
        reason=leads.message,
        action=action,
        sub_reason=leads.reason,
    )


def evaluate_status(inputs: StatusInputs) -> StatusEvaluation:
    """Reduce one snapshot of inputs to the authoritative campaign state."""
    budget = inputs.budget
    run = inputs.run

    if not budget.balance_ok:
        return StatusEvaluation(
            state=CampaignState.PAUSED_BALANCE,
            reason=(
                f"Call balance {_dollars(budget.balance_cents)} is below the "
                f"{_dollars(budget.min_balance_cents)} minimum. Add funds or enable auto-refill."
            ),
            action=RemedialAction.FUND_BALANCE,
        )

    if not inputs.window.is_open:
        return StatusEvaluation(
            state=CampaignState.OUTSIDE_HOURS,
            reason="Outside calling hours. Dialing resumes when the calling window opens.",
            action=RemedialAction.WAIT_FOR_WINDOW,
        )

    if run is None or run.phase == RunPhase.STOPPED:
        if inputs.auto_schedule_enabled:
            return StatusEvaluation(
                state=CampaignState.STOPPED,
                reason="Campaign stopped. Auto-schedule starts it at the configured time.",
                action=RemedialAction.NONE,
            )
        return StatusEvaluation(
            state=CampaignState.STOPPED,
            reason="Campaign stopped.",
            action=RemedialAction.LAUNCH,
        )

    if run.target_reached:
        return StatusEvaluation(
            state=CampaignState.STOPPED,
            reason=f"Target reached: {run.calls_this_run} of {run.lead_count_target} leads called.",
            action=RemedialAction.RESUME_TOMORROW,
        )

    if (
        run.execution_mode == ExecutionMode.BUDGET
        and budget.budget_reached
        and not run.override_live
    ):
        reason = (
            f"Daily budget reached: {_dollars(budget.today_spend_cents)} of "
            f"{_dollars(budget.daily_limit_cents)} spent."
        )
        if inputs.auto_schedule_enabled:
            return StatusEvaluation(
                state=CampaignState.PAUSED_BUDGET,
                reason=reason + " Override to call extra leads today.",
                action=RemedialAction.OVERRIDE,
            )
        return StatusEvaluation(
            state=CampaignState.PAUSED_BUDGET,
            reason=reason + " Increase the daily budget to continue.",
            action=RemedialAction.INCREASE_BUDGET,
        )

    if not inputs.leads.has_callable:
        return _no_leads(inputs.leads)

    if run.phase == RunPhase.REQUESTED:
        reason = "Campaign starting."
    else:
        reason = "Campaign running."
    return StatusEvaluation(state=CampaignState.RUNNING, reason=reason, action=RemedialAction.NONE)


def error_evaluation(message: str = "Status temporarily unavailable. Retrying.") -> StatusEvaluation:
    return StatusEvaluation(
        state=CampaignState.ERROR,
        reason=message,
        action=RemedialAction.RETRY,
    )
