"""
Error taxonomy for the chat pipeline.

- ValidationError  → 400, bad caller input
- UpstreamError    → 500, non-success response from a remote service
- RunFailedError   → 500, run settled in a status other than "completed"
- RunTimeoutError  → 500, run still pending after the wait budget
- CapabilityError  → never leaves the dispatcher
"""


class ChatProxyError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(ChatProxyError):
    """Missing or empty required input."""


class UpstreamError(ChatProxyError):
    """A thread/run/message or lookup call did not return a success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RunFailedError(ChatProxyError):
    """Run reached a terminal status other than ``completed``."""

    def __init__(self, status: str, last_error: str | None = None):
        message = f'Run terminou em estado "{status}"'
        if last_error:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.status = status
        self.last_error = last_error


class RunTimeoutError(ChatProxyError, TimeoutError):
    """Run did not leave queued/in_progress within the wait budget."""

    def __init__(self, run_id: str, waited: float):
        super().__init__(f"Run {run_id} não terminou em {waited:.1f}s")
        self.run_id = run_id
        self.waited = waited


class CapabilityError(ChatProxyError):
    """The assistant requested a tool this service does not provide."""

    def __init__(self, tool_name: str):
        super().__init__(f"unknown capability: {tool_name}")
        self.tool_name = tool_name
