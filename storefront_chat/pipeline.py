"""
Chat pipeline - 一个用户请求对应一次 turn

把配置、远程 client、三个编排组件和 turn graph 组装在一起。
配置对象在启动时构建一次，之后只读。
"""

from dataclasses import dataclass

import httpx
import structlog
from langchain_core.messages import HumanMessage

from .assistant.client import AssistantsClient, AssistantService
from .config import Settings
from .errors import ValidationError
from .graph.builder import build_turn_graph
from .orchestrator.runs import RunOrchestrator
from .orchestrator.session import ConversationSessionManager
from .tools.dispatcher import CapabilityDispatcher
from .tools.policy import PolicyLookup, build_policy_lookup

logger = structlog.get_logger()

USER_INPUT_REQUIRED = "userInput é obrigatório"


@dataclass
class TurnResult:
    reply: str
    thread_id: str


class ChatPipeline:
    """Validate a turn and run it through the turn graph."""

    def __init__(
        self,
        settings: Settings,
        service: AssistantService,
        lookup: PolicyLookup,
    ):
        self.settings = settings
        self.sessions = ConversationSessionManager(service)
        self.runs = RunOrchestrator(service, settings)
        self.dispatcher = CapabilityDispatcher(lookup)
        self.graph = build_turn_graph(self.sessions, self.runs, self.dispatcher)

    @property
    def recursion_limit(self) -> int:
        # 6 个固定节点 + 每轮 tool 调用 2 步
        return 10 + 2 * self.settings.max_tool_rounds

    async def handle_turn(self, user_input: str | None, thread_id: str | None = None) -> TurnResult:
        text = validate_user_input(user_input)

        result = await self.graph.ainvoke(
            {
                "messages": [HumanMessage(content=text)],
                "user_input": text,
                "thread_id": thread_id or None,
                "run": None,
                "tool_rounds": 0,
                "current_step": "start",
                "reply": None,
            },
            {"recursion_limit": self.recursion_limit},
        )

        return TurnResult(reply=result["reply"], thread_id=result["thread_id"])


def validate_user_input(user_input: str | None) -> str:
    if not isinstance(user_input, str) or not user_input.strip():
        raise ValidationError(USER_INPUT_REQUIRED)
    return user_input.strip()


def build_pipeline(settings: Settings) -> tuple[ChatPipeline, httpx.AsyncClient]:
    """
    Build the production pipeline.

    Returns the pipeline and the shared httpx client, which the caller
    closes on shutdown.
    """
    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    client = AssistantsClient(settings, http_client=http_client)
    lookup = build_policy_lookup(settings, client, http_client)

    logger.info(
        "pipeline.created",
        assistant_id=settings.assistant_id,
        policy_lookup=settings.policy_lookup_strategy,
    )
    return ChatPipeline(settings, client, lookup), http_client
