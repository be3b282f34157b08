"""
Dashboard status poller.

Two independent loops: campaign status on a short interval and account
settings on a longer one (auto-schedule may be toggled from another
screen). Every result replaces the poller's ``DisplayState`` wholesale.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from governor.client.http import GovernorClient, GovernorClientError
from governor.client.reconcile import (
    DisplayState,
    FieldChange,
    StatusSnapshot,
    apply_optimistic_launch,
    apply_optimistic_stop,
    clear_pending,
    reconcile,
    record_failure,
)
from governor.config import get_settings
from governor.shared.clock import Clock, utcnow
from governor.shared.logging import get_logger

logger = get_logger(__name__)

StatusListener = Callable[[DisplayState, tuple[FieldChange, ...]], Awaitable[None]]
SettingsListener = Callable[[dict[str, Any]], Awaitable[None]]


class StatusPoller:
    """Keeps a displayed campaign status in step with the server."""

    def __init__(
        self,
        client: GovernorClient,
        status_interval: float | None = None,
        settings_interval: float | None = None,
        max_silent_failures: int | None = None,
        on_status: StatusListener | None = None,
        on_settings: SettingsListener | None = None,
        clock: Clock = utcnow,
    ) -> None:
        settings = get_settings()
        self._client = client
        self._status_interval = status_interval or settings.status_poll_interval_seconds
        self._settings_interval = settings_interval or settings.settings_poll_interval_seconds
        self._max_silent_failures = max_silent_failures or settings.poll_max_silent_failures
        self._on_status = on_status
        self._on_settings = on_settings
        self._clock = clock

        self.display = DisplayState()
        self.settings: dict[str, Any] | None = None

        self._running = False
        self._tasks: list[asyncio.Task[None]] = []

    async def poll_status_once(self) -> DisplayState:
        try:
            payload = await self._client.get_status()
            snapshot = StatusSnapshot.from_payload(payload)
        except (GovernorClientError, KeyError, ValueError) as e:
            self.display = record_failure(self.display, self._max_silent_failures)
            logger.warning(
                "Status poll failed",
                extra={"failures": self.display.failures, "error": str(e)},
            )
            await self._notify_status(())
            return self.display

        self.display, changes = reconcile(self.display, snapshot)
        if changes:
            await self._notify_status(changes)
        return self.display

    async def poll_settings_once(self) -> dict[str, Any] | None:
        try:
            settings = await self._client.get_settings()
        except GovernorClientError as e:
            logger.warning("Settings poll failed", extra={"error": str(e)})
            return self.settings

        if settings != self.settings:
            self.settings = settings
            if self._on_settings is not None:
                await self._on_settings(settings)
        return self.settings

    async def request_stop(self) -> DisplayState:
        """Show ``stopped`` at once, send the stop, then confirm with a poll."""
        self.display = apply_optimistic_stop(self.display, self._clock())
        await self._notify_status(())
        try:
            await self._client.stop()
        except GovernorClientError as e:
            logger.warning("Stop request failed", extra={"error": str(e)})
            self.display = clear_pending(self.display)
            await self._notify_status(())
            return self.display
        return await self.poll_status_once()

    async def request_launch(
        self,
        mode: str,
        target_or_budget: int | None = None,
        live_transfer: bool | None = None,
    ) -> dict[str, Any]:
        self.display = apply_optimistic_launch(self.display, self._clock())
        try:
            result = await self._client.launch(mode, target_or_budget, live_transfer)
        except GovernorClientError:
            self.display = clear_pending(self.display)
            raise
        if not result.get("ok"):
            self.display = clear_pending(self.display)
        await self.poll_status_once()
        return result

    async def _notify_status(self, changes: tuple[FieldChange, ...]) -> None:
        if self._on_status is not None:
            await self._on_status(self.display, changes)

    async def start(self) -> None:
        if self._running:
            logger.warning("Status poller already running")
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._loop(self.poll_status_once, self._status_interval)),
            asyncio.create_task(self._loop(self.poll_settings_once, self._settings_interval)),
        ]
        logger.info("Status poller started")

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Status poller stopped")

    async def _loop(self, poll: Callable[[], Awaitable[Any]], interval: float) -> None:
        while self._running:
            try:
                await poll()
            except Exception:
                logger.exception("Poll iteration failed")
            await asyncio.sleep(interval)
