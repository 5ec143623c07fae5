"""
Assistants API wire models.

只解析编排需要的字段，其余字段忽略。
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class RunStatus(str, Enum):
    """Lifecycle status of a run."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    EXPIRED = "expired"

    @property
    def is_pending(self) -> bool:
        return self in (RunStatus.QUEUED, RunStatus.IN_PROGRESS)

    @property
    def is_terminal(self) -> bool:
        return self in (
            RunStatus.CANCELLED,
            RunStatus.FAILED,
            RunStatus.COMPLETED,
            RunStatus.INCOMPLETE,
            RunStatus.EXPIRED,
        )


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ToolCall(_WireModel):
    """A capability request embedded in a run's required action."""
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolOutput(_WireModel):
    """Result of a tool call, correlated by the originating call id."""
    tool_call_id: str
    output: str


class RequiredAction(_WireModel):
    type: str
    tool_calls: list[ToolCall] = Field(default_factory=list)


class Run(_WireModel):
    """One execution of the assistant over a thread."""
    id: str
    thread_id: str | None = None
    status: RunStatus
    required_action: RequiredAction | None = None
    last_error: str | None = None


class ThreadMessage(_WireModel):
    """A message in a thread, flattened to its text content."""
    id: str | None = None
    role: Literal["user", "assistant"]
    content: str = ""
