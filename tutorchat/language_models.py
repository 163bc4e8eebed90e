"""
Creation of the LangChain chat and embedding models named in the
configuration.

A new chat model object is created for every request that needs one.
Model objects hold no session data, but they are cheap to create and
creating them per request keeps a streaming client from being shared
between sessions.
"""

from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel

from tutorchat.config.config import (
    EmbeddingSettings,
    LanguageModelSettings,
)

DEBUG_RESPONSE = (
    "This is a debug response. Configure a language model provider "
    "in config.toml to obtain real answers."
)


def create_model_from_settings(
    settings: LanguageModelSettings,
    *,
    streaming: bool = False,
) -> BaseChatModel:
    """
    Create a chat model from its settings.

    Args:
        settings: the settings of the model ('Provider/model')
        streaming: ask the provider to stream tokens

    Returns:
        a LangChain chat model

    Raises:
        ValueError: for providers that are not supported
    """

    match settings.get_provider():
        case "OpenAI":
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(
                model=settings.get_model_name(),
                temperature=settings.temperature,
                max_retries=settings.max_retries,
                streaming=streaming,
            )
        case "Debug":
            from langchain_core.language_models.fake_chat_models import (
                FakeListChatModel,
            )

            return FakeListChatModel(
                responses=[DEBUG_RESPONSE], name=settings.model
            )
        case _:
            raise ValueError(
                f"Unsupported model provider: {settings.model}"
            )


def create_embeddings(settings: EmbeddingSettings) -> Embeddings:
    """Create the embedding model used to encode queries."""

    match settings.get_provider():
        case "OpenAI":
            from langchain_openai import OpenAIEmbeddings

            return OpenAIEmbeddings(
                model=settings.get_model_name(),
                dimensions=settings.size,
            )
        case "Debug":
            from langchain_core.embeddings.fake import (
                DeterministicFakeEmbedding,
            )

            return DeterministicFakeEmbedding(size=settings.size)
        case _:
            raise ValueError(
                f"Unsupported embedding provider: {settings.model}"
            )
