"""
Override recommender.

When a budget-capped run has paused for the day, operators may buy one
extra batch of dials. The suggested batch size tracks how much calling
time is left: 20% of the theoretical dials until the window closes,
kept within [MIN_OVERRIDE_LEADS, MAX_OVERRIDE_LEADS].
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from governor.calling.window import CallingWindow, check_window

MIN_OVERRIDE_LEADS = 10
MAX_OVERRIDE_LEADS = 200
CAPACITY_SHARE = 0.20


@dataclass(frozen=True)
class OverrideGrant:
    """Extra leads allowed past the daily cap, valid until ``expires_at``."""

    extra_leads: int
    estimated_cost_cents: int
    expires_at: datetime | None = None

    def as_dict(self) -> dict[str, object]:
        return {
            "extra_leads": self.extra_leads,
            "estimated_cost_cents": self.estimated_cost_cents,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (``round`` would go to even)."""
    return int(math.floor(value + 0.5))


def clamp_override(extra_leads: int) -> int:
    return max(MIN_OVERRIDE_LEADS, min(MAX_OVERRIDE_LEADS, extra_leads))


def estimate_cost_cents(
    extra_leads: int,
    *,
    minutes_per_call: float = 1.0,
    per_minute_cost_cents: int = 30,
) -> int:
    return round_half_up(extra_leads * minutes_per_call * per_minute_cost_cents)


def recommend_override(
    remaining_minutes: int,
    *,
    dials_per_hour: int = 60,
    minutes_per_call: float = 1.0,
    per_minute_cost_cents: int = 30,
    expires_at: datetime | None = None,
) -> OverrideGrant:
    """Size an override from the minutes left in today's calling window.

    Args:
        remaining_minutes: Minutes until the window closes, 0 once closed.
        dials_per_hour: Throughput constant.
        minutes_per_call: Average billed minutes per dial.
        per_minute_cost_cents: Billed cost of one minute.
        expires_at: Window close the grant lapses at.

    Returns:
        Recommended grant, always within the override bounds.
    """
    remaining = max(0, remaining_minutes)
    potential_dials = round_half_up(remaining / 60 * dials_per_hour)
    recommended = clamp_override(round_half_up(potential_dials * CAPACITY_SHARE))
    return OverrideGrant(
        extra_leads=recommended,
        estimated_cost_cents=estimate_cost_cents(
            recommended,
            minutes_per_call=minutes_per_call,
            per_minute_cost_cents=per_minute_cost_cents,
        ),
        expires_at=expires_at,
    )


def recommend_for(
    now: datetime,
    window: CallingWindow,
    *,
    dials_per_hour: int = 60,
    minutes_per_call: float = 1.0,
    per_minute_cost_cents: int = 30,
) -> OverrideGrant:
    """Recommend an override for ``now`` against the account's window."""
    check = check_window(now, window)
    return recommend_override(
        check.remaining_minutes,
        dials_per_hour=dials_per_hour,
        minutes_per_call=minutes_per_call,
        per_minute_cost_cents=per_minute_cost_cents,
        expires_at=check.closes_at,
    )
