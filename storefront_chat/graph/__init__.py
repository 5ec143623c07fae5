"""
LangGraph turn pipeline.
"""

from .builder import build_turn_graph
from .state import TurnState

__all__ = ["TurnState", "build_turn_graph"]
