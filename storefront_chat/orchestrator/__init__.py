"""
Orchestrator - 对话与 run 编排

职责:
- 管理远程 thread
- 驱动 run 生命周期（轮询、tool 调用、超时）
"""

from .runs import NO_REPLY, RunOrchestrator
from .session import ConversationSessionManager

__all__ = ["ConversationSessionManager", "RunOrchestrator", "NO_REPLY"]
