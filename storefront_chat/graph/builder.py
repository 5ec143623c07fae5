"""
Turn graph builder.

    ensure_thread -> append_message -> start_run -> await_run
    await_run --(requires_action)--> resolve_tools -> await_run
    await_run --(settled)--> fetch_reply -> END

节点里抛出的异常直接从 ainvoke 传播出去，由 HTTP 层统一映射。
"""

import structlog
from langchain_core.messages import AIMessage
from langgraph.graph import END, StateGraph

from ..assistant.schemas import RunStatus
from ..orchestrator.runs import RunOrchestrator
from ..orchestrator.session import ConversationSessionManager
from ..tools.dispatcher import CapabilityDispatcher
from .state import TurnState

logger = structlog.get_logger()


def build_turn_graph(
    sessions: ConversationSessionManager,
    runs: RunOrchestrator,
    dispatcher: CapabilityDispatcher,
):
    """Compile the per-turn state graph over the three components."""

    async def ensure_thread(state: TurnState) -> TurnState:
        thread_id = await sessions.ensure_thread(state.get("thread_id"))
        return {"thread_id": thread_id, "current_step": "thread_ready"}

    async def append_message(state: TurnState) -> TurnState:
        await sessions.append_user_message(state["thread_id"], state["user_input"])
        return {"current_step": "message_appended"}

    async def start_run(state: TurnState) -> TurnState:
        run = await runs.start_run(state["thread_id"])
        return {
            "run": run,
            "deadline": runs.new_deadline(),
            "tool_rounds": 0,
            "current_step": "run_started",
        }

    async def await_run(state: TurnState) -> TurnState:
        run = await runs.await_settled(
            state["thread_id"],
            state["run"],
            deadline=state["deadline"],
        )
        return {"run": run, "current_step": "run_settled"}

    async def resolve_tools(state: TurnState) -> TurnState:
        run = state["run"]
        rounds = state.get("tool_rounds", 0)
        runs.check_tool_round(run, rounds)

        run = await runs.resolve_required_action(
            state["thread_id"],
            run,
            dispatcher,
            user_input=state.get("user_input"),
        )
        return {"run": run, "tool_rounds": rounds + 1, "current_step": "tools_resolved"}

    async def fetch_reply(state: TurnState) -> TurnState:
        runs.ensure_completed(state["run"])
        reply = await runs.fetch_latest_reply(state["thread_id"])
        return {
            "reply": reply,
            "messages": [AIMessage(content=reply)],
            "current_step": "complete",
        }

    def route_after_run(state: TurnState) -> str:
        if state["run"].status == RunStatus.REQUIRES_ACTION:
            return "resolve_tools"
        return "fetch_reply"

    graph = StateGraph(TurnState)
    graph.add_node("ensure_thread", ensure_thread)
    graph.add_node("append_message", append_message)
    graph.add_node("start_run", start_run)
    graph.add_node("await_run", await_run)
    graph.add_node("resolve_tools", resolve_tools)
    graph.add_node("fetch_reply", fetch_reply)

    graph.set_entry_point("ensure_thread")
    graph.add_edge("ensure_thread", "append_message")
    graph.add_edge("append_message", "start_run")
    graph.add_edge("start_run", "await_run")
    graph.add_conditional_edges(
        "await_run",
        route_after_run,
        {"resolve_tools": "resolve_tools", "fetch_reply": "fetch_reply"},
    )
    graph.add_edge("resolve_tools", "await_run")
    graph.add_edge("fetch_reply", END)

    logger.debug("turn_graph.compiled")
    return graph.compile()
