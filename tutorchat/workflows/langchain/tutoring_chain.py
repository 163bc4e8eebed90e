"""
Homework help workflow: an open dialogue with a tutor persona.

The prompt is the tutoring template of ChatSettings filled with the
topic of the session (from the workflow context), the previous turns
of the session and the new question. The persona rules in the
template are instructions to the model only.
"""

# LangGraph missing type stubs
# pyright: reportMissingTypeStubs=false
# pyright: reportUnknownMemberType=false

from langchain_core.language_models import BaseChatModel

from langgraph.graph import StateGraph, START, END

from tutorchat.config.config import ConfigSettings

from .base import ChatState, ChatStateGraphType, ChatWorkflowContext
from .graph_routing import continue_if_valid
from .nodes import create_generate_node, format_tutor_prompt, validate_query


def create_tutoring_workflow(
    settings: ConfigSettings,
    llm_major: BaseChatModel | None = None,
) -> ChatStateGraphType:
    """
    Create the homework help workflow graph:

    START               ---> validate query
    validate query      -.-> END [empty or long query]
                        -.-> format tutor prompt
    format tutor prompt ---> generate
    generate            ---> END
    """

    workflow: StateGraph[
        ChatState, ChatWorkflowContext, ChatState, ChatState
    ] = StateGraph(ChatState, ChatWorkflowContext)

    workflow.add_node("validate_query", validate_query)
    workflow.add_node("format_tutor_prompt", format_tutor_prompt)
    workflow.add_node(
        "generate", create_generate_node(settings, llm_major)
    )

    workflow.add_edge(START, "validate_query")
    workflow.add_conditional_edges(
        "validate_query", continue_if_valid("format_tutor_prompt")
    )
    workflow.add_edge("format_tutor_prompt", "generate")
    workflow.add_edge("generate", END)

    return workflow.compile()
