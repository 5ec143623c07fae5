"""
Assistant service boundary - 远程 Assistants API 的唯一出入口
"""

from .client import AssistantsClient, AssistantService, parse_message, parse_run
from .schemas import RequiredAction, Run, RunStatus, ThreadMessage, ToolCall, ToolOutput

__all__ = [
    "AssistantService",
    "AssistantsClient",
    "parse_message",
    "parse_run",
    "RequiredAction",
    "Run",
    "RunStatus",
    "ThreadMessage",
    "ToolCall",
    "ToolOutput",
]
