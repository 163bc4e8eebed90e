"""
Workflow answering questions on a document uploaded by the student.

The graph workflow is created with the `create_retrieval_workflow`
function, taking a ConfigSettings argument to specify the major and
minor models:

```python
settings = ConfigSettings()
workflow = create_retrieval_workflow(settings)
state: ChatState = create_initial_state(
    "What is photosynthesis?", history=memory.messages
)
context = ChatWorkflowContext(retriever=retriever)
stream = stream_graph_state(workflow, state, context)
```

The follow-up question is rewritten only if the session has history.
The retriever in the context is scoped to one document of one
student; the number of chunks it returns is set at its creation.

Note:
    the answer is not in a `messages` channel, but in the `response`
    field of the state. When used with `.ainvoke()`, extract the
    response from this key in the returned state. When used with
    `.astream()`, consume the stream.
"""

# LangGraph missing type stubs
# pyright: reportMissingTypeStubs=false
# pyright: reportUnknownMemberType=false

from langchain_core.language_models import BaseChatModel

from langgraph.graph import StateGraph, START, END

from tutorchat.config.config import ConfigSettings

from .base import ChatState, ChatStateGraphType, ChatWorkflowContext
from .graph_routing import continue_if_no_error, continue_if_valid
from .nodes import (
    create_condense_question_node,
    create_generate_node,
    format_query,
    retrieve_context,
    validate_query,
)


def create_retrieval_workflow(
    settings: ConfigSettings,
    llm_major: BaseChatModel | None = None,
    llm_minor: BaseChatModel | None = None,
) -> ChatStateGraphType:
    """
    Create the document chat workflow graph.

    The graph implements the following flow:

    START               ---> validate query
    validate query      -.-> END [empty query]
                        -.-> END [long query]
                        -.-> condense question
    condense question   -.-> END [error]
                        -.-> retrieve context
    retrieve context    -.-> END [error]
                        -.-> format query
    format query        ---> generate
    generate            ---> END

    Args:
        settings: a ConfigSettings object (for settings.major,
            settings.minor)
        llm_major: an override of settings.major
        llm_minor: an override of settings.minor

    Returns:
        Compiled StateGraph ready for streaming
    """

    workflow: StateGraph[
        ChatState, ChatWorkflowContext, ChatState, ChatState
    ] = StateGraph(ChatState, ChatWorkflowContext)

    # Add nodes
    workflow.add_node("validate_query", validate_query)
    workflow.add_node(
        "condense_question",
        create_condense_question_node(settings, llm_minor),
    )
    workflow.add_node("retrieve_context", retrieve_context)
    workflow.add_node("format_query", format_query)
    workflow.add_node(
        "generate", create_generate_node(settings, llm_major)
    )

    # Add edges
    workflow.add_edge(START, "validate_query")
    workflow.add_conditional_edges(
        "validate_query",
        continue_if_valid("condense_question"),
    )
    workflow.add_conditional_edges(
        "condense_question",
        continue_if_no_error("retrieve_context"),
    )
    workflow.add_conditional_edges(
        "retrieve_context", continue_if_no_error("format_query")
    )
    workflow.add_edge("format_query", "generate")
    workflow.add_edge("generate", END)

    return workflow.compile()
