"""
Poll reconciliation.

The dashboard keeps one ``DisplayState`` value and replaces it on every
event: a successful poll, a failed poll, or an optimistic operator action.
Optimistic actions are recorded as a pending ``requested`` phase on top of
the last confirmed snapshot; the next successful poll always wins.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from governor.status.evaluator import CampaignState


@dataclass(frozen=True)
class StatusSnapshot:
    """One confirmed answer from ``GET /api/dialer/status``."""

    state: CampaignState
    reason: str = ""
    action: str = "none"
    sub_reason: str | None = None
    run_id: str | None = None
    run_phase: str | None = None
    today_spend_cents: int = 0
    today_calls: int = 0
    today_appointments: int = 0
    progress_percent: float = 0.0
    remaining_minutes: int = 0
    current_lead_id: str | None = None
    last_outcome: str | None = None
    evaluated_at: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StatusSnapshot":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in payload.items() if k in known}
        values["state"] = CampaignState(payload["state"])
        return cls(**values)


@dataclass(frozen=True)
class FieldChange:
    field: str
    before: Any
    after: Any


# evaluated_at changes on every poll and says nothing about the campaign.
_IGNORED_FIELDS = frozenset({"evaluated_at"})


def diff_snapshots(previous: StatusSnapshot | None, current: StatusSnapshot) -> tuple[FieldChange, ...]:
    """Fields whose value differs between two snapshots.

    With no previous snapshot every field counts as changed.
    """
    changes = []
    for f in fields(StatusSnapshot):
        if f.name in _IGNORED_FIELDS:
            continue
        after = getattr(current, f.name)
        before = getattr(previous, f.name) if previous is not None else None
        if previous is None or before != after:
            changes.append(FieldChange(f.name, before, after))
    return tuple(changes)


class PendingKind(str, Enum):
    STOP = "stop"
    LAUNCH = "launch"


@dataclass(frozen=True)
class PendingAction:
    kind: PendingKind
    requested_at: datetime


@dataclass(frozen=True)
class DisplayState:
    confirmed: StatusSnapshot | None = None
    pending: PendingAction | None = None
    failures: int = 0
    error: bool = False

    @property
    def phase(self) -> str:
        return "requested" if self.pending is not None else "confirmed"

    @property
    def shown_state(self) -> CampaignState | None:
        """State to render: error, then the optimistic hint, then the confirmed state."""
        if self.error:
            return CampaignState.ERROR
        if self.pending is not None and self.pending.kind == PendingKind.STOP:
            return CampaignState.STOPPED
        return self.confirmed.state if self.confirmed is not None else None


def apply_optimistic_stop(display: DisplayState, at: datetime) -> DisplayState:
    return replace(display, pending=PendingAction(PendingKind.STOP, at))


def apply_optimistic_launch(display: DisplayState, at: datetime) -> DisplayState:
    return replace(display, pending=PendingAction(PendingKind.LAUNCH, at))


def clear_pending(display: DisplayState) -> DisplayState:
    return replace(display, pending=None)


def reconcile(
    display: DisplayState,
    snapshot: StatusSnapshot,
) -> tuple[DisplayState, tuple[FieldChange, ...]]:
    """Adopt a confirmed snapshot, dropping any optimistic hint."""
    changes = diff_snapshots(display.confirmed, snapshot)
    return DisplayState(confirmed=snapshot), changes


def record_failure(display: DisplayState, max_silent_failures: int = 3) -> DisplayState:
    """Count a failed poll; surface ``error`` once the budget of silent failures is spent."""
    failures = display.failures + 1
    return replace(display, failures=failures, error=failures >= max_silent_failures)
