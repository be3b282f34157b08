"""
Tests for the run executor adapters.
"""

import json
from uuid import uuid4

import httpx
import pytest

from governor.campaigns.models import ExecutionMode, RunOrigin
from governor.launch.executor import (
    MockRunExecutor,
    RunExecutorError,
    RunStartRequest,
    WebhookRunExecutor,
    get_run_executor,
)


def start_request() -> RunStartRequest:
    return RunStartRequest(
        run_id=uuid4(),
        account_id=uuid4(),
        execution_mode=ExecutionMode.LEAD_COUNT,
        origin=RunOrigin.SCHEDULED,
        live_transfer=True,
        lead_count_target=50,
    )


def webhook(handler) -> WebhookRunExecutor:
    return WebhookRunExecutor(
        "https://dialer.example.com/api/ai-control/",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestWebhookRunExecutor:
    @pytest.mark.asyncio
    async def test_start_posts_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202, json={"accepted": True})

        request = start_request()
        await webhook(handler).start_run(request)

        assert str(seen[0].url) == "https://dialer.example.com/api/ai-control/start"
        body = json.loads(seen[0].content)
        assert body["run_id"] == str(request.run_id)
        assert body["execution_mode"] == "lead_count"
        assert body["origin"] == "scheduled"
        assert body["lead_count_target"] == 50

    @pytest.mark.asyncio
    async def test_stop_posts_run(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        run_id, account_id = uuid4(), uuid4()
        await webhook(handler).stop_run(run_id, account_id)

        assert seen[0].url.path == "/api/ai-control/stop"
        assert json.loads(seen[0].content) == {"run_id": str(run_id), "account_id": str(account_id)}

    @pytest.mark.asyncio
    async def test_rejection_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="executor down")

        with pytest.raises(RunExecutorError) as exc_info:
            await webhook(handler).start_run(start_request())

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unreachable_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(RunExecutorError) as exc_info:
            await webhook(handler).start_run(start_request())

        assert exc_info.value.status_code is None


class TestMockRunExecutor:
    @pytest.mark.asyncio
    async def test_records_requests(self) -> None:
        executor = MockRunExecutor()
        request = start_request()

        await executor.start_run(request)
        await executor.stop_run(request.run_id, request.account_id)

        assert executor.started == [request]
        assert executor.stopped == [request.run_id]


class TestFactory:
    def test_mock_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RUN_EXECUTOR_TYPE", "mock")
        get_run_executor.cache_clear()

        assert isinstance(get_run_executor(), MockRunExecutor)

        get_run_executor.cache_clear()

    def test_webhook_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RUN_EXECUTOR_TYPE", "webhook")
        monkeypatch.setenv("RUN_EXECUTOR_URL", "https://dialer.example.com/api/ai-control")
        get_run_executor.cache_clear()

        assert isinstance(get_run_executor(), WebhookRunExecutor)

        get_run_executor.cache_clear()
