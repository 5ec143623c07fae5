"""
Tools the assistant can call mid-run.

目前只有两个 policy 查询能力：运费政策与退款政策。
"""

from .dispatcher import (
    LOOKUP_FAILED,
    UNRECOGNIZED_CAPABILITY,
    Capability,
    CapabilityDispatcher,
    resolve_query,
)
from .policy import (
    NOT_FOUND,
    PagePolicyLookup,
    PolicyLookup,
    PolicyPage,
    WebSearchPolicyLookup,
    build_policy_lookup,
    extract_output_text,
    extract_policy_text,
)

__all__ = [
    # Dispatcher
    "Capability",
    "CapabilityDispatcher",
    "resolve_query",
    "UNRECOGNIZED_CAPABILITY",
    "LOOKUP_FAILED",
    # Policy lookup
    "PolicyLookup",
    "PolicyPage",
    "WebSearchPolicyLookup",
    "PagePolicyLookup",
    "build_policy_lookup",
    "extract_output_text",
    "extract_policy_text",
    "NOT_FOUND",
]
