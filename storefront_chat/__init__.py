"""
Storefront chat proxy.

Relays storefront widget messages to a hosted assistant and answers its
shipping/refund policy tool calls.
"""

__version__ = "0.1.0"
