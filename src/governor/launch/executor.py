"""
Run executor collaborator.

The governor never places calls itself. It asks an external executor to
start or stop dialing for a run; the executor confirms the start through
``POST /api/dialer/runs/{run_id}/confirm``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any
from uuid import UUID

import httpx

from governor.campaigns.models import ExecutionMode, RunOrigin
from governor.config import get_settings
from governor.shared.logging import get_logger

logger = get_logger(__name__)


class RunExecutorError(Exception):
    """Raised when the executor cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class RunStartRequest:
    run_id: UUID
    account_id: UUID
    execution_mode: ExecutionMode
    origin: RunOrigin
    live_transfer: bool
    lead_count_target: int | None = None
    budget_limit_cents: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "account_id": str(self.account_id),
            "execution_mode": self.execution_mode.value,
            "origin": self.origin.value,
            "live_transfer": self.live_transfer,
            "lead_count_target": self.lead_count_target,
            "budget_limit_cents": self.budget_limit_cents,
            **self.extra,
        }


class RunExecutor(ABC):
    """Starts and stops dialing for a run."""

    @abstractmethod
    async def start_run(self, request: RunStartRequest) -> None:
        """Ask the executor to begin dialing.

        Raises:
            RunExecutorError: If the request could not be delivered.
        """

    @abstractmethod
    async def stop_run(self, run_id: UUID, account_id: UUID) -> None:
        """Ask the executor to stop dialing for the run."""

    async def close(self) -> None:
        return None


class WebhookRunExecutor(RunExecutor):
    """Posts start/stop requests to the executor's HTTP endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, payload: dict[str, Any]) -> None:
        client = await self._get_client()
        url = f"{self._base_url}{path}"
        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Run executor rejected request",
                extra={"url": url, "status_code": e.response.status_code},
            )
            raise RunExecutorError(
                f"Run executor error: {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error("Run executor unreachable", extra={"url": url, "error": str(e)})
            raise RunExecutorError(f"Run executor request failed: {e}") from e

    async def start_run(self, request: RunStartRequest) -> None:
        logger.info(
            "Requesting run start",
            extra={"run_id": str(request.run_id), "account_id": str(request.account_id)},
        )
        await self._post("/start", request.to_payload())

    async def stop_run(self, run_id: UUID, account_id: UUID) -> None:
        logger.info(
            "Requesting run stop",
            extra={"run_id": str(run_id), "account_id": str(account_id)},
        )
        await self._post("/stop", {"run_id": str(run_id), "account_id": str(account_id)})


class MockRunExecutor(RunExecutor):
    """Records requests instead of sending them. For local runs and tests."""

    def __init__(self) -> None:
        self.started: list[RunStartRequest] = []
        self.stopped: list[UUID] = []

    async def start_run(self, request: RunStartRequest) -> None:
        self.started.append(request)
        logger.info("Mock run start", extra={"run_id": str(request.run_id)})

    async def stop_run(self, run_id: UUID, account_id: UUID) -> None:
        self.stopped.append(run_id)
        logger.info("Mock run stop", extra={"run_id": str(run_id)})


@lru_cache(maxsize=1)
def get_run_executor() -> RunExecutor:
    """Create and cache the configured run executor."""
    settings = get_settings()

    logger.info(
        "Run executor resolved",
        extra={
            "executor_type": settings.run_executor_type,
            "executor_url": settings.run_executor_url,
        },
    )

    if settings.run_executor_type == "webhook":
        return WebhookRunExecutor(
            settings.run_executor_url,
            timeout=settings.run_executor_timeout_seconds,
        )

    if settings.run_executor_type == "mock":
        return MockRunExecutor()

    raise ValueError(f"Unsupported run executor type: {settings.run_executor_type}")
