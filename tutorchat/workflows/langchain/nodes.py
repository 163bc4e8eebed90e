"""
Graph node functions of the tutoring workflows.

Nodes defined here:
- `validate_query`: rejects empty and overlong questions
- `create_condense_question_node`: factory of the node rewriting a
  follow-up question into a standalone question (minor model)
- `retrieve_context`: queries the retriever of the session
- `format_query`: builds the prompt answering from the retrieved
  chunks
- `format_tutor_prompt`: builds the homework help prompt
- `create_generate_node`: factory of the node streaming the answer
  (major model)

Nodes that call a model or the retriever do not raise: they log the
failure and set the status to 'error', which ends the graph. There is
no retry policy on any node.
"""

# LangGraph missing type stubs
# pyright: reportMissingTypeStubs=false
# pyright: reportUnknownMemberType=false

from collections.abc import Callable, Coroutine
from typing import Any

from langchain_core.documents import Document
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    BaseMessage,
    HumanMessage,
    get_buffer_string,
)
from langchain_core.prompts import PromptTemplate

from langgraph.constants import TAG_NOSTREAM
from langgraph.runtime import Runtime

from tutorchat.config.config import ConfigSettings
from tutorchat.config.appchat import ChatSettings
from tutorchat.language_models import create_model_from_settings

from .base import ChatState, ChatWorkflowContext

# Node return type: a partial state update
NodeReturn = dict[str, Any]

# Type for nodes created by factories
FactoryNode = Callable[
    [ChatState, Runtime[ChatWorkflowContext]],
    Coroutine[Any, Any, NodeReturn],
]


def _failure(message: str) -> NodeReturn:
    return {'status': "error", 'error': message}


def validate_query(
    state: ChatState, runtime: Runtime[ChatWorkflowContext]
) -> NodeReturn:
    """Validate the user's query for length and content."""

    query: str = state.get("query", "")
    settings: ChatSettings = runtime.context.chat_settings

    if not query or not query.strip():
        return {
            "status": "empty_query",
            "response": settings.MSG_EMPTY_QUERY,
        }

    if len(query.split()) > settings.max_query_word_count:
        return {
            "status": "long_query",
            "response": settings.MSG_LONG_QUERY,
        }

    return {'status': "valid"}  # no change, everything ok.


def create_condense_question_node(
    settings: ConfigSettings,
    llm_minor: BaseChatModel | None = None,
) -> FactoryNode:
    """Factory that creates the condense_question node.

    Args:
        settings: ConfigSettings providing the minor model config
        llm_minor: an override of settings.minor (used to inject a
            model for testing purposes)
    """

    async def condense_question(
        state: ChatState, runtime: Runtime[ChatWorkflowContext]
    ) -> NodeReturn:
        """Rewrite the question using the chat history."""
        # not for streaming

        query: str = state["query"]
        history: list[BaseMessage] = state.get("history", [])
        if not history:
            return {"refined_query": query}

        context: ChatWorkflowContext = runtime.context
        template = PromptTemplate.from_template(
            context.chat_settings.CONDENSE_QUESTION_TEMPLATE
        )
        prompt: str = template.format(
            chat_history=get_buffer_string(history),
            question=query,
        )

        llm: BaseChatModel = llm_minor or create_model_from_settings(
            settings.minor
        )
        try:
            result = await llm.ainvoke(
                prompt, config={'tags': [TAG_NOSTREAM]}
            )
        except Exception as e:
            context.logger.error(f"Error condensing question: {e}")
            return _failure(f"condense_question: {e}")

        refined: str = result.text.strip()
        return {"refined_query": refined or query}

    return condense_question


async def retrieve_context(
    state: ChatState, runtime: Runtime[ChatWorkflowContext]
) -> NodeReturn:
    """Retrieve relevant chunks from the vector store."""

    config: ChatWorkflowContext = runtime.context
    if config.retriever is None:
        config.logger.error("No retriever in workflow context")
        return _failure("retrieve_context: no retriever")

    try:
        documents: list[Document] = await config.retriever.ainvoke(
            state["refined_query"]
        )
    except Exception as e:
        config.logger.error(
            f"Error retrieving from vector database:\n{e}"
        )
        return _failure(f"retrieve_context: {e}")

    return {
        "context": "\n\n".join([d.page_content for d in documents])
    }


def format_query(
    state: ChatState, runtime: Runtime[ChatWorkflowContext]
) -> NodeReturn:
    """Format the question with the retrieved chunks. The messages
    of the session precede the formatted question."""

    settings: ChatSettings = runtime.context.chat_settings
    template = PromptTemplate.from_template(settings.QA_TEMPLATE)
    formatted_query: str = template.format(
        context=state.get("context", ""),
        question=state["refined_query"],
    )

    return {
        "prompt": [
            *state.get("history", []),
            HumanMessage(content=formatted_query),
        ]
    }


def format_tutor_prompt(
    state: ChatState, runtime: Runtime[ChatWorkflowContext]
) -> NodeReturn:
    """Fill the homework help template with topic, history and
    question."""

    context: ChatWorkflowContext = runtime.context
    template = PromptTemplate.from_template(
        context.chat_settings.TUTOR_TEMPLATE
    ).partial(topic=context.topic)
    text: str = template.format(
        history=get_buffer_string(state.get("history", [])),
        input=state["query"],
    )

    return {"prompt": [HumanMessage(content=text)]}


def create_generate_node(
    settings: ConfigSettings,
    llm_major: BaseChatModel | None = None,
) -> FactoryNode:
    """Factory that creates the generate node.

    The node streams the major model on the prompt in the state. The
    chunks reach the caller through LangGraph's astream() with
    stream_mode "messages"; the node collects the full text in the
    `response` field. A new model object is created at each run.

    Args:
        settings: a ConfigSettings object (for settings.major)
        llm_major: an override of settings.major (used to inject
            a model for testing purposes)
    """

    async def generate(
        state: ChatState, runtime: Runtime[ChatWorkflowContext]
    ) -> NodeReturn:

        llm: BaseChatModel = llm_major or create_model_from_settings(
            settings.major, streaming=True
        )

        response_chunks: list[str] = []
        try:
            async for chunk in llm.astream(state["prompt"]):
                response_chunks.append(chunk.text)
        except Exception as e:
            runtime.context.logger.error(
                f"Error while streaming in 'generate' node: {e}"
            )
            return _failure(f"generate: {e}")

        return {
            'model_identification': (
                llm.get_name() if llm_major else settings.major.model
            ),
            'response': "".join(response_chunks),
        }

    return generate
