"""
Lead availability checker.

Answers "can the dialer call anyone right now?" and, when it cannot,
which of four reasons applies. "All dialed today" is informational (the
pool refills tomorrow); "all exhausted" needs new leads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable

from governor.leads.models import TERMINAL_LEAD_STATUSES


class NoLeadsReason(str, Enum):
    NO_SOURCE = "no_source"
    NO_LEADS = "no_leads"
    ALL_DIALED_TODAY = "all_dialed_today"
    ALL_EXHAUSTED = "all_exhausted"


@dataclass(frozen=True)
class LeadPolicy:
    """Account rules deciding which leads are dialable."""

    dead_lead_attempts: int = 20
    min_lead_age_days: int = 0


@dataclass(frozen=True)
class LeadView:
    """The fields of one lead the checker looks at."""

    status: str
    total_calls_made: int = 0
    last_attempt_date: date | None = None
    created_at: datetime | None = None
    source_active: bool = True


@dataclass(frozen=True)
class LeadCounts:
    """Aggregate shape of an account's lead pool."""

    sources_connected: int
    total_leads: int
    potential: int
    dialed_today: int
    callable: int


@dataclass(frozen=True)
class LeadAvailability:
    has_callable: bool
    reason: NoLeadsReason | None
    callable_count: int
    potential_count: int
    dialed_today: int
    total_leads: int
    message: str

    def as_dict(self) -> dict[str, object]:
        return {
            "has_callable": self.has_callable,
            "reason": self.reason.value if self.reason else None,
            "callable_count": self.callable_count,
            "potential_count": self.potential_count,
            "dialed_today": self.dialed_today,
            "total_leads": self.total_leads,
            "message": self.message,
        }


def is_potential(lead: LeadView, policy: LeadPolicy) -> bool:
    """Not in a terminal disposition and not dialed to death."""
    if lead.status in TERMINAL_LEAD_STATUSES:
        return False
    return (lead.total_calls_made or 0) < policy.dead_lead_attempts


def count_pool(
    leads: Iterable[LeadView],
    *,
    sources_connected: int,
    today: date,
    now: datetime,
    policy: LeadPolicy,
) -> LeadCounts:
    """Count an in-memory lead pool the same way the SQL repository does."""
    age_cutoff = now - timedelta(days=policy.min_lead_age_days) if policy.min_lead_age_days > 0 else None

    total = potential = dialed = callable_ = 0
    for lead in leads:
        if not lead.source_active:
            continue
        total += 1
        if not is_potential(lead, policy):
            continue
        potential += 1
        dialed_now = lead.last_attempt_date == today
        if dialed_now:
            dialed += 1
        too_young = (
            age_cutoff is not None
            and lead.created_at is not None
            and lead.created_at > age_cutoff
        )
        if not dialed_now and not too_young:
            callable_ += 1

    return LeadCounts(
        sources_connected=sources_connected,
        total_leads=total,
        potential=potential,
        dialed_today=dialed,
        callable=callable_,
    )


def classify(counts: LeadCounts) -> LeadAvailability:
    """Turn pool counts into a has-callable answer with a reason."""
    if counts.callable > 0:
        return LeadAvailability(
            has_callable=True,
            reason=None,
            callable_count=counts.callable,
            potential_count=counts.potential,
            dialed_today=counts.dialed_today,
            total_leads=counts.total_leads,
            message=f"Found {counts.callable} leads ready to call.",
        )

    if counts.sources_connected == 0:
        reason = NoLeadsReason.NO_SOURCE
        message = "No active lead source found. Connect and activate a lead sheet first."
    elif counts.total_leads == 0:
        reason = NoLeadsReason.NO_LEADS
        message = "You have 0 leads worth calling. Upload a lead sheet to get started."
    elif counts.potential == 0:
        reason = NoLeadsReason.ALL_EXHAUSTED
        message = (
            f"All {counts.total_leads} leads have been exhausted "
            "(booked, not interested, or maxed out). Upload new leads to continue."
        )
    else:
        # Leads held back by the age gate are waiting too, same remedy as dialed-today.
        reason = NoLeadsReason.ALL_DIALED_TODAY
        too_new = counts.potential - counts.dialed_today
        if too_new == 0:
            message = f"All {counts.potential} leads have been dialed today. Come back tomorrow!"
        elif counts.dialed_today == 0:
            message = (
                f"All {counts.potential} leads are too new to call yet. "
                "They become callable once they reach the minimum lead age."
            )
        else:
            message = (
                f"No leads are ready to call: {counts.dialed_today} dialed today, "
                f"{too_new} too new to call yet."
            )

    return LeadAvailability(
        has_callable=False,
        reason=reason,
        callable_count=0,
        potential_count=counts.potential,
        dialed_today=counts.dialed_today,
        total_leads=counts.total_leads,
        message=message,
    )


def check_lead_pool(
    leads: Iterable[LeadView],
    *,
    sources_connected: int,
    today: date,
    now: datetime,
    policy: LeadPolicy | None = None,
) -> LeadAvailability:
    """Classify an in-memory lead pool."""
    counts = count_pool(
        leads,
        sources_connected=sources_connected,
        today=today,
        now=now,
        policy=policy or LeadPolicy(),
    )
    return classify(counts)
