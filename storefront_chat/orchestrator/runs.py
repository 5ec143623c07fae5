"""
Run Orchestrator - run 生命周期编排

状态机:
    CREATED -> PENDING (queued | in_progress)
    PENDING -> PENDING (轮询，无变化)
    PENDING -> NEEDS_TOOL (requires_action)
    PENDING -> SETTLED (completed | failed | cancelled | expired | incomplete)
    NEEDS_TOOL -> PENDING (提交 tool output 之后)

轮询有截止时间，超时抛出 RunTimeoutError。
"""

import asyncio
import time

import structlog

from ..assistant.client import AssistantService
from ..assistant.schemas import Run, RunStatus, ToolOutput
from ..config import Settings
from ..errors import RunFailedError, RunTimeoutError
from ..tools.dispatcher import CapabilityDispatcher

logger = structlog.get_logger()

NO_REPLY = "(sem resposta)"

SUBMIT_TOOL_OUTPUTS = "submit_tool_outputs"


class RunOrchestrator:
    """Drives one run per user turn from creation to a settled status."""

    def __init__(self, service: AssistantService, settings: Settings):
        self.service = service
        self.settings = settings

    def new_deadline(self, timeout: float | None = None) -> float:
        """Monotonic deadline for all polling within one turn."""
        budget = self.settings.run_timeout_seconds if timeout is None else timeout
        return time.monotonic() + budget

    async def start_run(self, thread_id: str) -> Run:
        run = await self.service.create_run(thread_id, self.settings.assistant_id)
        logger.info("run.created", thread_id=thread_id, run_id=run.id, status=run.status.value)
        return run

    async def await_settled(
        self,
        thread_id: str,
        run: Run,
        *,
        deadline: float | None = None,
    ) -> Run:
        """
        Poll until the run leaves queued/in_progress.

        Returns the first non-pending run observed. Only status checks are
        repeated here; mutating calls are never retried.
        """
        if deadline is None:
            deadline = self.new_deadline()
        started = time.monotonic()
        polls = 0

        while run.status.is_pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                waited = time.monotonic() - started
                logger.warning("run.timeout", run_id=run.id, polls=polls, waited=round(waited, 2))
                raise RunTimeoutError(run.id, waited)

            await asyncio.sleep(min(self.settings.poll_interval_seconds, remaining))
            run = await self.service.get_run(thread_id, run.id)
            polls += 1
            logger.debug("run.polled", run_id=run.id, status=run.status.value, polls=polls)

        logger.info(
            "run.settled",
            run_id=run.id,
            status=run.status.value,
            terminal=run.status.is_terminal,
            polls=polls,
        )
        return run

    async def resolve_required_action(
        self,
        thread_id: str,
        run: Run,
        dispatcher: CapabilityDispatcher,
        *,
        user_input: str | None = None,
    ) -> Run:
        """Dispatch the run's tool call(s) and submit their outputs."""
        action = run.required_action
        if action is None or action.type != SUBMIT_TOOL_OUTPUTS or not action.tool_calls:
            action_type = action.type if action else None
            logger.error("run.unsupported_action", run_id=run.id, action_type=action_type)
            raise RunFailedError(run.status.value, f"unsupported required action: {action_type}")

        outputs: list[ToolOutput] = []
        for call in action.tool_calls:
            output = await dispatcher.dispatch(call.name, call.arguments, user_input=user_input)
            outputs.append(ToolOutput(tool_call_id=call.id, output=output))

        logger.info(
            "run.tool_outputs_submitted",
            run_id=run.id,
            tool_calls=[c.name for c in action.tool_calls],
        )
        return await self.service.submit_tool_outputs(thread_id, run.id, outputs)

    def check_tool_round(self, run: Run, rounds_done: int) -> None:
        if rounds_done >= self.settings.max_tool_rounds:
            raise RunFailedError(run.status.value, "tool rounds exceeded")

    @staticmethod
    def ensure_completed(run: Run) -> Run:
        if run.status != RunStatus.COMPLETED:
            raise RunFailedError(run.status.value, run.last_error)
        return run

    async def run_to_completion(
        self,
        thread_id: str,
        dispatcher: CapabilityDispatcher,
        *,
        user_input: str | None = None,
        timeout: float | None = None,
    ) -> Run:
        """Start a run and drive it until it completes.

        Library-level convenience for callers outside the HTTP path. The turn
        graph drives the same primitives node by node and does not call this.
        """
        deadline = self.new_deadline(timeout)
        run = await self.start_run(thread_id)
        run = await self.await_settled(thread_id, run, deadline=deadline)

        rounds = 0
        while run.status == RunStatus.REQUIRES_ACTION:
            self.check_tool_round(run, rounds)
            run = await self.resolve_required_action(
                thread_id, run, dispatcher, user_input=user_input
            )
            rounds += 1
            run = await self.await_settled(thread_id, run, deadline=deadline)

        return self.ensure_completed(run)

    async def fetch_latest_reply(self, thread_id: str) -> str:
        """Text of the newest message if the assistant wrote it, else a placeholder."""
        messages = await self.service.list_messages(thread_id, limit=1, order="desc")
        if messages and messages[0].role == "assistant" and messages[0].content:
            return messages[0].content
        return NO_REPLY
