"""
客户端断开连接时取消 turn
"""

import asyncio

import pytest

from storefront_chat import server
from storefront_chat.pipeline import ChatPipeline
from storefront_chat.server import ClientDisconnected, run_until_disconnected

from .conftest import FakeAssistantService, make_run


class FakeRequest:
    """Reports a disconnect after `connected_checks` checks."""

    def __init__(self, connected_checks: int = 0):
        self.connected_checks = connected_checks
        self.checks = 0

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.checks > self.connected_checks


class TestRunUntilDisconnected:
    @pytest.mark.asyncio
    async def test_returns_result_while_connected(self):
        async def turn():
            return "ok"

        request = FakeRequest(connected_checks=100)

        assert await run_until_disconnected(request, turn(), 0.01) == "ok"

    @pytest.mark.asyncio
    async def test_disconnect_cancels_inner_coroutine(self):
        cancelled = asyncio.Event()

        async def slow_turn():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(ClientDisconnected):
            await run_until_disconnected(FakeRequest(), slow_turn(), 0.01)

        await asyncio.wait_for(cancelled.wait(), timeout=1)
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_disconnect_stops_polling(self, settings, fake_lookup):
        settings.poll_interval_seconds = 0.005
        service = FakeAssistantService(runs=[make_run("in_progress")])
        pipeline = ChatPipeline(settings, service, fake_lookup)

        with pytest.raises(ClientDisconnected):
            await run_until_disconnected(
                FakeRequest(connected_checks=2),
                pipeline.handle_turn("Quando chega?"),
                0.02,
            )

        await asyncio.sleep(0.01)
        polls = service.count("get_run")
        await asyncio.sleep(0.05)

        assert polls >= 1
        assert service.count("get_run") == polls
        assert service.count("list_messages") == 0


class TestChatDisconnect:
    def test_disconnect_returns_499(self, make_client, monkeypatch):
        async def disconnected(request, coro, check_interval):
            coro.close()
            raise ClientDisconnected()

        monkeypatch.setattr(server, "run_until_disconnected", disconnected)
        client = make_client(FakeAssistantService())

        response = client.post("/api/chat", json={"userInput": "Quando chega?"})

        assert response.status_code == 499
