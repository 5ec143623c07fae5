"""
Assistants API client.

所有对远程服务的请求都经过 `AssistantsClient._request`：
- 统一的认证头与 `OpenAI-Beta: assistants=v2`
- 非 2xx 响应统一转换为 UpstreamError
- tool call 参数在这里归一化为 dict，不向编排层泄漏
"""

import json
from typing import Any, Protocol

import httpx
import structlog

from ..config import Settings
from ..errors import UpstreamError
from .schemas import RequiredAction, Run, ThreadMessage, ToolCall, ToolOutput

logger = structlog.get_logger()


class AssistantService(Protocol):
    """Thread store + run execution contract consumed by the orchestrator."""

    async def create_thread(self) -> str: ...

    async def create_message(self, thread_id: str, role: str, content: str) -> ThreadMessage: ...

    async def list_messages(
        self,
        thread_id: str,
        *,
        limit: int = 20,
        order: str = "desc",
    ) -> list[ThreadMessage]: ...

    async def create_run(self, thread_id: str, assistant_id: str) -> Run: ...

    async def get_run(self, thread_id: str, run_id: str) -> Run: ...

    async def submit_tool_outputs(
        self,
        thread_id: str,
        run_id: str,
        outputs: list[ToolOutput],
    ) -> Run: ...


class AssistantsClient:
    """httpx implementation of `AssistantService` plus the Responses API."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.openai_api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()

    # ========================================
    # Threads / messages
    # ========================================

    async def create_thread(self) -> str:
        data = await self._request("POST", "threads", payload={})
        return data["id"]

    async def create_message(self, thread_id: str, role: str, content: str) -> ThreadMessage:
        data = await self._request(
            "POST",
            f"threads/{thread_id}/messages",
            payload={"role": role, "content": content},
        )
        return parse_message(data)

    async def list_messages(
        self,
        thread_id: str,
        *,
        limit: int = 20,
        order: str = "desc",
    ) -> list[ThreadMessage]:
        data = await self._request(
            "GET",
            f"threads/{thread_id}/messages",
            params={"limit": limit, "order": order},
        )
        return [parse_message(item) for item in data.get("data", [])]

    # ========================================
    # Runs
    # ========================================

    async def create_run(self, thread_id: str, assistant_id: str) -> Run:
        data = await self._request(
            "POST",
            f"threads/{thread_id}/runs",
            payload={"assistant_id": assistant_id},
        )
        return parse_run(data)

    async def get_run(self, thread_id: str, run_id: str) -> Run:
        data = await self._request("GET", f"threads/{thread_id}/runs/{run_id}")
        return parse_run(data)

    async def submit_tool_outputs(
        self,
        thread_id: str,
        run_id: str,
        outputs: list[ToolOutput],
    ) -> Run:
        data = await self._request(
            "POST",
            f"threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
            payload={"tool_outputs": [o.model_dump() for o in outputs]},
        )
        return parse_run(data)

    # ========================================
    # Responses API（web search）
    # ========================================

    async def create_response(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "responses", payload=payload)

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.settings.openai_base_url.rstrip('/')}/{endpoint}"

        # 只有非 GET 且有 payload 时才带 body
        body = None
        if payload is not None and method != "GET":
            body = json.dumps(payload)

        try:
            response = await self._http.request(
                method,
                url,
                headers=self.headers,
                content=body,
                params=params,
            )
        except httpx.HTTPError as e:
            logger.error("assistant.request_failed", method=method, endpoint=endpoint, error=str(e))
            raise UpstreamError(f"OpenAI {method} {endpoint} → {e}") from e

        if not response.is_success:
            logger.warning(
                "assistant.bad_status",
                method=method,
                endpoint=endpoint,
                status_code=response.status_code,
            )
            raise UpstreamError(
                f"OpenAI {method} {endpoint} → {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.warning("assistant.bad_body", method=method, endpoint=endpoint, error=str(e))
            raise UpstreamError(
                f"OpenAI {method} {endpoint} → {response.status_code}: invalid JSON body",
                status_code=response.status_code,
            ) from e


# ========================================
# Wire → model normalisation
# ========================================

def parse_run(data: dict[str, Any]) -> Run:
    """Build a `Run`, flattening `required_action` and `last_error`."""
    required_action = None
    raw_action = data.get("required_action")
    if raw_action:
        action_type = raw_action.get("type", "")
        raw_calls = (raw_action.get(action_type) or {}).get("tool_calls", [])
        required_action = RequiredAction(
            type=action_type,
            tool_calls=[_parse_tool_call(c) for c in raw_calls],
        )

    last_error = data.get("last_error")
    if isinstance(last_error, dict):
        last_error = last_error.get("message") or last_error.get("code")

    return Run(
        id=data["id"],
        thread_id=data.get("thread_id"),
        status=data["status"],
        required_action=required_action,
        last_error=last_error,
    )


def parse_message(data: dict[str, Any]) -> ThreadMessage:
    """Build a `ThreadMessage` from the first text block of its content."""
    content = data.get("content") or ""
    if isinstance(content, list):
        text = ""
        for block in content:
            if block.get("type") == "text":
                text = (block.get("text") or {}).get("value", "")
                break
        content = text
    return ThreadMessage(id=data.get("id"), role=data["role"], content=content or "")


def _parse_tool_call(data: dict[str, Any]) -> ToolCall:
    function = data.get("function") or {}
    return ToolCall(
        id=data["id"],
        name=function.get("name", ""),
        arguments=_normalize_arguments(function.get("arguments")),
    )


def _normalize_arguments(raw: Any) -> dict[str, Any]:
    """Arguments arrive as a JSON string or an object; always return a dict."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {"raw": raw}
        return parsed if isinstance(parsed, dict) else {"raw": parsed}
    return {"raw": raw}
