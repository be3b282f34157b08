"""
HTTP client for the dialer API.
"""

from __future__ import annotations

from typing import Any

import httpx

from governor.shared.logging import get_logger

logger = get_logger(__name__)

# Statuses whose JSON body is a governor error payload ({"error": kind, ...}).
DOMAIN_ERROR_STATUSES = frozenset({400, 409, 503})


class GovernorClientError(Exception):
    """Transport failure, or an answer from the dialer API that is not a domain result."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GovernorClient:
    """Thin async wrapper over ``/api/dialer``.

    Domain errors (HTTP 400/409/503 carrying an ``error`` kind) come back as
    their JSON body so callers can route on ``error``. Transport failures and
    every other non-2xx answer (401, 404, 422, 5xx) raise
    ``GovernorClientError``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                f"/api/dialer{path}",
                json=json,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.RequestError as e:
            raise GovernorClientError(f"Dialer API unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success:
            if not isinstance(body, dict):
                raise GovernorClientError(
                    "Dialer API returned a non-JSON body",
                    status_code=response.status_code,
                )
            return body
        if (
            response.status_code in DOMAIN_ERROR_STATUSES
            and isinstance(body, dict)
            and "error" in body
        ):
            return body
        raise GovernorClientError(
            f"Dialer API error: {response.status_code}",
            status_code=response.status_code,
        )

    async def get_status(self) -> dict[str, Any]:
        return await self._request("GET", "/status")

    async def get_settings(self) -> dict[str, Any]:
        return await self._request("GET", "/settings")

    async def check_leads(self) -> dict[str, Any]:
        return await self._request("GET", "/check-leads")

    async def launch(
        self,
        mode: str,
        target_or_budget: int | None = None,
        live_transfer: bool | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/launch",
            json={"mode": mode, "target_or_budget": target_or_budget, "live_transfer": live_transfer},
        )

    async def stop(self) -> dict[str, Any]:
        return await self._request("POST", "/stop")

    async def override(self, extra_leads: int) -> dict[str, Any]:
        return await self._request("POST", "/override", json={"extra_leads": extra_leads})
