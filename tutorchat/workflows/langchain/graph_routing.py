"""
Conditional edges of the tutoring workflows. A graph ends early when
the question was rejected by validation ('empty_query',
'long_query') or when a node recorded a failure ('error').
"""

from collections.abc import Callable

from langgraph.graph import END  # type: ignore (missing stubs)

from .base import ChatState

Router = Callable[[ChatState], str]


def _route(next_node: str, proceed: Callable[[str], bool]) -> Router:
    def _continuation(state: ChatState) -> str:
        return next_node if proceed(state.get("status", "error")) else END

    return _continuation


def continue_if_valid(next_node: str) -> Router:
    """Route to next_node if the question passed validation."""
    return _route(next_node, lambda status: status == "valid")


def continue_if_no_error(next_node: str) -> Router:
    """Route to next_node unless a node failed."""
    return _route(next_node, lambda status: status != "error")
