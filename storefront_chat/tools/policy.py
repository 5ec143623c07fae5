"""
Policy lookup strategies.

每个部署只选一种检索策略：
- search: Responses API + web_search_preview，限定在店铺的 policy 页面
- scrape: 直接抓取 policy 页面，提取正文富文本区域
"""

from enum import Enum
from typing import Any, Protocol

import httpx
import structlog
from bs4 import BeautifulSoup

from ..assistant.client import AssistantsClient
from ..config import Settings
from ..errors import UpstreamError

logger = structlog.get_logger()

NOT_FOUND = "not found"

# Shopify 主题里 policy 正文所在的通用容器
FALLBACK_CONTENT_SELECTOR = ".rte"


class PolicyPage(str, Enum):
    """Store policy pages, keyed by their URL slug."""

    SHIPPING = "shipping-policy"
    REFUND = "refund-policy"

    @property
    def label(self) -> str:
        return self.value.replace("-", " ")


class PolicyLookup(Protocol):
    async def lookup(self, page: PolicyPage, query: str) -> str: ...


class WebSearchPolicyLookup:
    """Hosted web search scoped to a single policy page."""

    def __init__(self, settings: Settings, client: AssistantsClient):
        self.settings = settings
        self.client = client

    def build_input(self, page: PolicyPage, query: str) -> str:
        url = self.settings.policy_url(page.value)
        return f'site:{url} "{page.label}" {self.settings.store_name} {query}'.strip()

    async def lookup(self, page: PolicyPage, query: str) -> str:
        payload = {
            "model": self.settings.search_model,
            "tools": [{"type": "web_search_preview"}],
            "input": self.build_input(page, query),
        }
        data = await self.client.create_response(payload)
        text = extract_output_text(data)
        logger.info("policy.searched", page=page.value, chars=len(text))
        return text


class PagePolicyLookup:
    """Fetch the policy page and read its main rich-text region."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self.settings = settings
        self.http = http_client

    async def lookup(self, page: PolicyPage, query: str) -> str:
        url = self.settings.policy_url(page.value)
        response = await self.http.get(url, follow_redirects=True)
        if not response.is_success:
            raise UpstreamError(
                f"GET {url} → {response.status_code}",
                status_code=response.status_code,
            )

        text = extract_policy_text(response.text, self.settings.policy_content_selector)
        logger.info("policy.scraped", page=page.value, found=text != NOT_FOUND)
        return text


def extract_policy_text(html: str, selector: str) -> str:
    """Whitespace-collapsed text of the policy body, or ``"not found"``."""
    soup = BeautifulSoup(html, "html.parser")
    region = soup.select_one(selector) or soup.select_one(FALLBACK_CONTENT_SELECTOR)
    if region is None:
        return NOT_FOUND

    text = " ".join(region.get_text(" ").split())
    return text or NOT_FOUND


def extract_output_text(data: dict[str, Any]) -> str:
    """Synthesised answer of a Responses API payload."""
    if data.get("output_text"):
        return data["output_text"]

    parts = []
    for item in data.get("output") or []:
        if item.get("type") != "message":
            continue
        for block in item.get("content") or []:
            if block.get("type") == "output_text" and block.get("text"):
                parts.append(block["text"])
    return "\n".join(parts)


def build_policy_lookup(
    settings: Settings,
    client: AssistantsClient,
    http_client: httpx.AsyncClient,
) -> PolicyLookup:
    if settings.policy_lookup_strategy == "scrape":
        return PagePolicyLookup(settings, http_client)
    return WebSearchPolicyLookup(settings, client)
