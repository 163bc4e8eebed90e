"""
One-shot summary of a document: the fixed summary instruction is
used as the query of the retriever and as the question answered from
the retrieved chunks. There is no history.
"""

# LangGraph missing type stubs
# pyright: reportMissingTypeStubs=false
# pyright: reportUnknownMemberType=false

from langchain_core.language_models import BaseChatModel

from langgraph.graph import StateGraph, START, END

from tutorchat.config.config import ConfigSettings
from tutorchat.config.appchat import ChatSettings

from .base import (
    ChatState,
    ChatStateGraphType,
    ChatWorkflowContext,
    create_initial_state,
)
from .graph_routing import continue_if_no_error
from .nodes import create_generate_node, format_query, retrieve_context


def create_summary_state(chat_settings: ChatSettings) -> ChatState:
    return create_initial_state(chat_settings.SUMMARY_PROMPT)


def create_summary_workflow(
    settings: ConfigSettings,
    llm_major: BaseChatModel | None = None,
) -> ChatStateGraphType:
    """
    Create the summary workflow graph:

    START               ---> retrieve context
    retrieve context    -.-> END [error]
                        -.-> format query
    format query        ---> generate
    generate            ---> END
    """

    workflow: StateGraph[
        ChatState, ChatWorkflowContext, ChatState, ChatState
    ] = StateGraph(ChatState, ChatWorkflowContext)

    workflow.add_node("retrieve_context", retrieve_context)
    workflow.add_node("format_query", format_query)
    workflow.add_node(
        "generate", create_generate_node(settings, llm_major)
    )

    workflow.add_edge(START, "retrieve_context")
    workflow.add_conditional_edges(
        "retrieve_context", continue_if_no_error("format_query")
    )
    workflow.add_edge("format_query", "generate")
    workflow.add_edge("generate", END)

    return workflow.compile()
