"""
Capability Dispatcher 测试
"""

import httpx
import pytest

from storefront_chat.assistant import AssistantsClient
from storefront_chat.errors import CapabilityError, UpstreamError
from storefront_chat.tools import (
    LOOKUP_FAILED,
    UNRECOGNIZED_CAPABILITY,
    Capability,
    CapabilityDispatcher,
    PolicyPage,
    WebSearchPolicyLookup,
    resolve_query,
)

from .conftest import SHIPPING_ANSWER, FakePolicyLookup


class TestCapability:
    def test_known_names(self):
        assert Capability.parse("get_shipping_policy") is Capability.SHIPPING_POLICY
        assert Capability.parse("get_refund_policy") is Capability.REFUND_POLICY

    def test_unknown_name(self):
        with pytest.raises(CapabilityError) as exc_info:
            Capability.parse("get_weather")
        assert exc_info.value.tool_name == "get_weather"


class TestResolveQuery:
    def test_prefers_user_query(self):
        args = {"user_query": " prazo para SP ", "query": "outro"}
        assert resolve_query(args, "texto cru", default="shipping policy") == "prazo para SP"

    def test_falls_back_to_query_then_user_input(self):
        assert resolve_query({"query": "frete"}, "texto cru", default="x") == "frete"
        assert resolve_query({"inquiry_type": "shipping"}, "texto cru", default="x") == "texto cru"

    def test_default_when_nothing_given(self):
        assert resolve_query({"user_query": 42}, "  ", default="refund policy") == "refund policy"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_shipping_policy(self):
        lookup = FakePolicyLookup()
        dispatcher = CapabilityDispatcher(lookup)

        result = await dispatcher.dispatch(
            "get_shipping_policy",
            {"user_query": "quanto tempo demora?", "inquiry_type": "shipping"},
        )

        assert result == SHIPPING_ANSWER
        assert lookup.lookups == [(PolicyPage.SHIPPING, "quanto tempo demora?")]

    @pytest.mark.asyncio
    async def test_refund_policy_uses_raw_user_input(self):
        lookup = FakePolicyLookup(answer="Devoluções em até 7 dias.")
        dispatcher = CapabilityDispatcher(lookup)

        result = await dispatcher.dispatch("get_refund_policy", {}, user_input="posso trocar?")

        assert result == "Devoluções em até 7 dias."
        assert lookup.lookups == [(PolicyPage.REFUND, "posso trocar?")]

    @pytest.mark.asyncio
    async def test_unknown_tool_returns_sentinel(self):
        lookup = FakePolicyLookup()
        dispatcher = CapabilityDispatcher(lookup)

        result = await dispatcher.dispatch("get_weather", {"city": "Lisboa"})

        assert result == UNRECOGNIZED_CAPABILITY
        assert lookup.lookups == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [UpstreamError("OpenAI POST responses → 500: boom", 500), httpx.ConnectError("refused")],
    )
    async def test_lookup_failure_returns_apology(self, error):
        dispatcher = CapabilityDispatcher(FakePolicyLookup(error=error))

        result = await dispatcher.dispatch("get_shipping_policy", {})

        assert result == LOOKUP_FAILED

    @pytest.mark.asyncio
    async def test_empty_lookup_result_is_never_submitted(self):
        dispatcher = CapabilityDispatcher(FakePolicyLookup(answer=""))

        result = await dispatcher.dispatch("get_shipping_policy", {})

        assert result == LOOKUP_FAILED


class TestDispatchOverWebSearch:
    """Dispatch through the real Responses client with malformed upstream bodies."""

    @staticmethod
    def _dispatcher(settings, response: httpx.Response) -> CapabilityDispatcher:
        def handler(request: httpx.Request) -> httpx.Response:
            return response

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = AssistantsClient(settings, http_client=http)
        return CapabilityDispatcher(WebSearchPolicyLookup(settings, client))

    @pytest.mark.asyncio
    async def test_non_json_body(self, settings):
        dispatcher = self._dispatcher(settings, httpx.Response(200, text="<html>gateway</html>"))

        result = await dispatcher.dispatch("get_shipping_policy", {"user_query": "prazo"})

        assert result == LOOKUP_FAILED

    @pytest.mark.asyncio
    async def test_null_output(self, settings):
        dispatcher = self._dispatcher(settings, httpx.Response(200, json={"output": None}))

        result = await dispatcher.dispatch("get_shipping_policy", {"user_query": "prazo"})

        assert result == LOOKUP_FAILED

    @pytest.mark.asyncio
    async def test_non_object_body(self, settings):
        dispatcher = self._dispatcher(settings, httpx.Response(200, json=["unexpected"]))

        result = await dispatcher.dispatch("get_refund_policy", {})

        assert result == LOOKUP_FAILED
