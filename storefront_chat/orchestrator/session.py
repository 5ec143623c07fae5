"""
Conversation Session Manager - 会话（thread）管理

职责:
- 没有 thread_id 时在远程创建 thread
- 把用户消息追加到 thread

thread 由远程服务持有，本地不做任何持久化；调用方负责在请求之间传回 thread_id。
"""

import structlog

from ..assistant.client import AssistantService

logger = structlog.get_logger()


class ConversationSessionManager:
    """Ensures every user turn lands on a remote thread."""

    def __init__(self, service: AssistantService):
        self.service = service

    async def ensure_thread(self, thread_id: str | None) -> str:
        """
        Return `thread_id` unchanged, or create a thread when it is empty.

        The id is not validated; an unknown thread surfaces later as an
        UpstreamError from the remote service.
        """
        if thread_id:
            return thread_id

        thread_id = await self.service.create_thread()
        logger.info("thread.created", thread_id=thread_id)
        return thread_id

    async def append_user_message(self, thread_id: str, text: str) -> None:
        await self.service.create_message(thread_id, "user", text)
        logger.debug("thread.message_appended", thread_id=thread_id, chars=len(text))
