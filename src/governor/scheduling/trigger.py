"""
Auto-schedule trigger.

Checked once per tick for every account with auto-schedule enabled. A rule
fires when, in the account's timezone:

- today is one of the active weekdays,
- the local time is at or past ``trigger_time``,
- it has not fired yet today,
- the calling window is still open.

A tick that lands late (slow tick, restart, leader failover) still fires
the same day. A launch that fails its preconditions leaves the day
unmarked, so later ticks retry until the window closes.

Firing runs the launch sequencer with the stored mode and target, origin
``scheduled``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from governor.calling.window import check_window
from governor.campaigns.models import CampaignConfig, RunOrigin
from governor.campaigns.repository import (
    CampaignConfigRepositoryProtocol,
    CampaignRunRepositoryProtocol,
)
from governor.launch.sequencer import LaunchSequencer
from governor.shared.clock import Clock, utcnow
from governor.shared.exceptions import ConcurrentLaunchError, GovernorError
from governor.shared.logging import bind_account, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TriggerOutcome:
    account_id: UUID
    fired: bool
    reason: str
    run_id: UUID | None = None


def is_due(config: CampaignConfig, now: datetime) -> bool:
    """Whether the rule should fire for ``config`` at ``now``."""
    if not config.auto_schedule_enabled:
        return False
    window = config.calling_window()
    local = now.astimezone(window.zone)
    today = local.date()
    if today.isoweekday() not in window.active_days:
        return False
    if config.last_auto_start_date == today:
        return False
    fire_at = datetime.combine(today, config.auto_schedule_time, tzinfo=window.zone)
    if local < fire_at:
        return False
    return check_window(now, window).is_open


class AutoScheduleTrigger:
    """Starts scheduled runs without operator action."""

    def __init__(
        self,
        configs: CampaignConfigRepositoryProtocol,
        runs: CampaignRunRepositoryProtocol,
        sequencer: LaunchSequencer,
        clock: Clock = utcnow,
    ) -> None:
        self._configs = configs
        self._runs = runs
        self._sequencer = sequencer
        self._clock = clock

    async def run_once(self) -> list[TriggerOutcome]:
        """Evaluate every auto-scheduled account once.

        Returns:
            One outcome per due account. A failing account never stops the
            others from being evaluated.
        """
        now = self._clock()
        outcomes: list[TriggerOutcome] = []
        for config in await self._configs.list_auto_scheduled():
            if not is_due(config, now):
                continue
            with bind_account(config.account_id):
                try:
                    outcome = await self._fire(config, now)
                except Exception:
                    logger.exception("Auto-schedule failed for account")
                    outcome = TriggerOutcome(config.account_id, fired=False, reason="unexpected_error")
                logger.info(
                    "Auto-schedule evaluated",
                    extra={"fired": outcome.fired, "reason": outcome.reason},
                )
            outcomes.append(outcome)
        return outcomes

    async def _fire(self, config: CampaignConfig, now: datetime) -> TriggerOutcome:
        account_id = config.account_id
        today = now.astimezone(config.calling_window().zone).date()

        if await self._runs.get_live(account_id) is not None:
            await self._configs.mark_auto_started(config, today)
            return TriggerOutcome(account_id, fired=False, reason="already_running")

        try:
            result = await self._sequencer.launch(
                account_id,
                mode=config.execution_mode,
                origin=RunOrigin.SCHEDULED,
            )
        except ConcurrentLaunchError:
            await self._configs.mark_auto_started(config, today)
            return TriggerOutcome(account_id, fired=False, reason="already_running")
        except GovernorError as e:
            return TriggerOutcome(account_id, fired=False, reason=e.kind)

        await self._configs.mark_auto_started(config, today)
        return TriggerOutcome(account_id, fired=True, reason="launched", run_id=result.run_id)
