"""Creates the LangGraph workflows of the tutoring sessions."""

import logging
from typing import Literal

from langchain_core.language_models import BaseChatModel

from tutorchat.config.config import ConfigSettings, load_settings

from .langchain.base import ChatStateGraphType
from .langchain.retrieval_chain import create_retrieval_workflow
from .langchain.summary_chain import create_summary_workflow
from .langchain.tutoring_chain import create_tutoring_workflow

WorkflowName = Literal["doc_chat", "homework_help", "summary"]


def workflow_factory(
    workflow_name: WorkflowName,
    settings: ConfigSettings | None = None,
    *,
    llm_major: BaseChatModel | None = None,
    llm_minor: BaseChatModel | None = None,
    logger: logging.Logger | None = None,
) -> ChatStateGraphType:
    """
    Factory function to retrieve compiled workflow graphs.

    Args:
        workflow_name: the name of the workflow to load.
        settings: a ConfigSettings object for the major and minor
            models used in the workflow. If None, read from
            config.toml.
        llm_major, llm_minor: overrides of the configured models
        logger: a logger object for errors.

    Behaviour:
        raises errors if fails to load settings or create workflow.
    """

    if settings is None:
        settings = load_settings(logger=logger)
    if settings is None:
        raise ValueError("Could not create workflow.")

    match workflow_name:
        case "doc_chat":
            return create_retrieval_workflow(
                settings, llm_major, llm_minor
            )
        case "homework_help":
            return create_tutoring_workflow(settings, llm_major)
        case "summary":
            return create_summary_workflow(settings, llm_major)
        case _:
            raise ValueError(f"Invalid workflow: {workflow_name}")
