"""
Turn State Definition for LangGraph.
"""

from typing import Annotated, TypedDict

from langgraph.graph.message import add_messages

from ..assistant.schemas import Run


class TurnState(TypedDict, total=False):
    """
    单轮对话的状态

    每个用户请求新建一份，不跨请求复用；thread 本身由远程服务持有。
    """

    # ========================================
    # 消息
    # ========================================
    messages: Annotated[list, add_messages]
    user_input: str

    # ========================================
    # 远程对象引用
    # ========================================
    thread_id: str | None
    run: Run | None

    # ========================================
    # 流程控制
    # ========================================
    deadline: float
    tool_rounds: int
    current_step: str

    # ========================================
    # 结果
    # ========================================
    reply: str | None
