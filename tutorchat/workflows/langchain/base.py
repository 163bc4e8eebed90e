"""
State and dependencies shared by the tutoring workflows.
"""

# LangGraph missing type stubs
# pyright: reportMissingTypeStubs=false

from typing import TypedDict, Literal
import logging

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from langchain_core.messages import BaseMessage
from langchain_core.retrievers import BaseRetriever

from langgraph.graph.state import CompiledStateGraph

from tutorchat.config.appchat import ChatSettings


class ChatState(TypedDict):
    """
    State object for the tutoring workflows.

    Attributes:
        status: status of the graph
        model_identification: the model that generated the response
        query: the question of the student
        history: the messages of the session so far, oldest first
        refined_query: the question rewritten as a standalone
            question (the original question if there is no history)
        context: chunks retrieved from the vector store
        prompt: the messages sent to the generating model
        response: the generated response. The streamed chunks are not
            in the state; the full text is collected here.
        error: description of the failure, if status is 'error'
    """

    status: Literal["valid", "empty_query", "long_query", "error"]
    model_identification: str

    query: str
    history: list[BaseMessage]
    refined_query: str

    context: str
    prompt: list[BaseMessage]

    response: str
    error: str


def create_initial_state(
    query: str, history: list[BaseMessage] | None = None
) -> ChatState:
    """Creates a default initial state, set to a user query."""

    return ChatState(
        status="valid",
        model_identification="<unknown>",
        query=query,
        history=list(history or []),
        refined_query=query,
        context="",
        prompt=[],
        response="",
        error="",
    )


# (inherit from BaseModel as dataclass cannot be used for context)
class ChatWorkflowContext(BaseModel):
    """
    Dependencies of a workflow run, passed to the graph at stream
    time.

    Attributes:
        retriever: the retriever scoped to the document of the
            session (document chat and summary only)
        chat_settings: prompts and messages
        logger: the logger receiving the errors of the nodes
        topic: the homework topic (homework help only)
    """

    retriever: BaseRetriever | None = None
    chat_settings: ChatSettings = Field(default_factory=ChatSettings)
    logger: logging.Logger = Field(
        default_factory=lambda: logging.getLogger("tutorchat.workflows")
    )
    topic: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)


# graph alias type
ChatStateGraphType = CompiledStateGraph[
    ChatState, ChatWorkflowContext, ChatState, ChatState
]
