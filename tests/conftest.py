"""
Shared fixtures: a scripted in-memory assistant service and policy lookup.
"""

import pytest
from fastapi.testclient import TestClient

from storefront_chat.assistant.schemas import (
    RequiredAction,
    Run,
    ThreadMessage,
    ToolCall,
    ToolOutput,
)
from storefront_chat.config import Settings
from storefront_chat.errors import UpstreamError
from storefront_chat.pipeline import ChatPipeline
from storefront_chat.server import create_app
from storefront_chat.tools.policy import PolicyPage

SHIPPING_ANSWER = "Enviamos em até 3 dias úteis para todo o Brasil."


def make_run(status: str, tool_calls: list[ToolCall] | None = None, run_id: str = "run_1") -> Run:
    required_action = None
    if tool_calls is not None:
        required_action = RequiredAction(type="submit_tool_outputs", tool_calls=tool_calls)
    return Run(id=run_id, thread_id="thread_1", status=status, required_action=required_action)


def tool_call(name: str, call_id: str = "call_1", **arguments) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)


class FakeAssistantService:
    """
    Replays a script of runs.

    create_run / get_run / submit_tool_outputs each consume the next run of
    the script; the last one repeats forever.
    """

    def __init__(
        self,
        runs: list[Run] | None = None,
        reply: str | None = "Envio em 3 dias.",
        fail_on: set[str] | None = None,
    ):
        self.script = list(runs or [make_run("completed")])
        self.reply = reply
        self.fail_on = fail_on or set()
        self.calls: list[str] = []
        self.threads_created = 0
        self.messages: list[tuple[str, ThreadMessage]] = []
        self.submitted: list[list[ToolOutput]] = []
        self.assistant_ids: list[str] = []

    def _record(self, name: str):
        self.calls.append(name)
        if name in self.fail_on:
            raise UpstreamError(f"OpenAI {name} → 500: boom", status_code=500)

    def _next_run(self) -> Run:
        if len(self.script) > 1:
            return self.script.pop(0)
        return self.script[0]

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def create_thread(self) -> str:
        self._record("create_thread")
        self.threads_created += 1
        return f"thread_new_{self.threads_created}"

    async def create_message(self, thread_id: str, role: str, content: str) -> ThreadMessage:
        self._record("create_message")
        message = ThreadMessage(id=f"msg_{len(self.messages) + 1}", role=role, content=content)
        self.messages.append((thread_id, message))
        return message

    async def list_messages(self, thread_id: str, *, limit: int = 20, order: str = "desc"):
        self._record("list_messages")
        if self.reply is not None:
            return [ThreadMessage(id="msg_reply", role="assistant", content=self.reply)][:limit]
        own = [m for t, m in self.messages if t == thread_id]
        return list(reversed(own))[:limit]

    async def create_run(self, thread_id: str, assistant_id: str) -> Run:
        self._record("create_run")
        self.assistant_ids.append(assistant_id)
        return self._next_run()

    async def get_run(self, thread_id: str, run_id: str) -> Run:
        self._record("get_run")
        return self._next_run()

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: list[ToolOutput]) -> Run:
        self._record("submit_tool_outputs")
        self.submitted.append(outputs)
        return self._next_run()


class FakePolicyLookup:
    def __init__(self, answer: str = SHIPPING_ANSWER, error: Exception | None = None):
        self.answer = answer
        self.error = error
        self.lookups: list[tuple[PolicyPage, str]] = []

    async def lookup(self, page: PolicyPage, query: str) -> str:
        self.lookups.append((page, query))
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def settings():
    return Settings(
        assistant_id="asst_test",
        openai_api_key="sk-test",
        poll_interval_seconds=0,
        run_timeout_seconds=5,
        disconnect_check_interval_seconds=5,
    )


@pytest.fixture
def fake_service():
    return FakeAssistantService()


@pytest.fixture
def fake_lookup():
    return FakePolicyLookup()


@pytest.fixture
def make_client(settings, fake_lookup):
    """Build a TestClient over a given fake service."""

    def _make(service: FakeAssistantService) -> TestClient:
        pipeline = ChatPipeline(settings, service, fake_lookup)
        return TestClient(create_app(settings, pipeline))

    return _make
