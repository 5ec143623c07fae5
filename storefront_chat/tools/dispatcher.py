"""
Capability Dispatcher - 把 run 请求的 tool call 映射到具体的 policy 查询

dispatch 永远返回字符串，不向上抛异常：远程 run 必须能继续执行，
由 assistant 自己处理没有帮助的 tool 结果。
"""

from enum import Enum
from typing import Any

import httpx
import structlog

from ..errors import CapabilityError, UpstreamError
from .policy import PolicyLookup, PolicyPage

logger = structlog.get_logger()

UNRECOGNIZED_CAPABILITY = "unrecognized capability"
LOOKUP_FAILED = "Desculpe, não consegui obter a política no momento."


class Capability(str, Enum):
    """Tools the assistant may call."""

    SHIPPING_POLICY = "get_shipping_policy"
    REFUND_POLICY = "get_refund_policy"

    @classmethod
    def parse(cls, tool_name: str) -> "Capability":
        try:
            return cls(tool_name)
        except ValueError:
            raise CapabilityError(tool_name) from None


_POLICY_PAGES: dict[Capability, PolicyPage] = {
    Capability.SHIPPING_POLICY: PolicyPage.SHIPPING,
    Capability.REFUND_POLICY: PolicyPage.REFUND,
}

if set(_POLICY_PAGES) != set(Capability):
    raise RuntimeError(f"capabilities without a handler: {set(Capability) - set(_POLICY_PAGES)}")


class CapabilityDispatcher:
    """Resolve tool calls into tool output text."""

    def __init__(self, lookup: PolicyLookup):
        self.lookup = lookup

    async def dispatch(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        *,
        user_input: str | None = None,
    ) -> str:
        """
        Execute one tool call.

        Args:
            tool_name: capability name requested by the run
            arguments: normalised tool arguments
            user_input: raw user message, used when no query argument is present

        Returns:
            Tool output text; never empty
        """
        try:
            capability = Capability.parse(tool_name)
        except CapabilityError as e:
            logger.warning("tool.unknown", tool_name=e.tool_name)
            return UNRECOGNIZED_CAPABILITY

        page = _POLICY_PAGES[capability]
        query = resolve_query(arguments, user_input, default=page.label)

        logger.info("tool.dispatch", capability=capability.value, query=query[:100])

        try:
            result = await self.lookup.lookup(page, query)
        except (UpstreamError, httpx.HTTPError) as e:
            logger.error("policy.lookup_failed", capability=capability.value, error=str(e))
            return LOOKUP_FAILED
        except Exception as e:
            # 结果格式异常也不能中断远程 run
            logger.error(
                "policy.lookup_error",
                capability=capability.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return LOOKUP_FAILED

        return result or LOOKUP_FAILED


def resolve_query(
    arguments: dict[str, Any],
    user_input: str | None,
    default: str,
) -> str:
    """Structured query argument, else the raw user input, else `default`."""
    for key in ("user_query", "query"):
        value = arguments.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    if user_input and user_input.strip():
        return user_input.strip()
    return default
