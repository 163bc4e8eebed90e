"""
Tutoring sessions: one per open connection.

A session authenticates the peer from the handshake payload, resolves
the conversation it writes to, and then answers the chat messages of
the peer one at a time, streaming the generated text through an
EventSink. Each completed exchange is recorded in the transcript
store in the background, as a user record followed by an assistant
record.

Two kinds of sessions are provided:

- DocumentChatSession: questions on a document uploaded by the
  student. Handshake: studentId, documentId. The conversation of the
  document is resolved or created; the memory starts empty. Also
  supports generating the summary of the document.
- HomeworkHelpSession: open dialogue with a tutor on a homework
  topic. Handshake: studentId, topic, optionally conversationId. A
  new conversation is created if none is given; the memory is seeded
  with the last records of the conversation.

Events emitted to the peer (chat_event and summary_event are set in
ChatSettings):

    ready(True)                 once, after the session is resolved
    <chat_event> start(token)   generated text, in generation order
    <chat_event> end(answer)    once per exchange, after the tokens
    <chat_event> error(msg)     instead of 'end' if a provider failed
    <summary_event> start/end/error   the same for the summary

Example:
    ```python
    services = SessionServices.from_config()
    session = create_session(
        "homework_help", services, sink,
        {'studentId': "s1", 'topic': "algebra"},
    )
    await session.open()
    answer = await session.handle_message("How do I solve x + 1 = 3?")
    session.close()
    ```
"""

from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, ClassVar, Literal, Protocol
import asyncio
import logging

from pydantic import BaseModel, ConfigDict, Field

from langchain_core.language_models import BaseChatModel
from langchain_core.retrievers import BaseRetriever
from qdrant_client import AsyncQdrantClient

from tutorchat.config.config import ConfigSettings
from tutorchat.config.appchat import ChatSettings
from tutorchat.errors import (
    AuthorizationError,
    ExternalProviderError,
    PersistenceError,
    SessionStateError,
)
from tutorchat.memory import ConversationMemory, build_memory_window
from tutorchat.stores import Stores, stores_from_config
from tutorchat.workflows.langchain.base import (
    ChatState,
    ChatStateGraphType,
    ChatWorkflowContext,
    create_initial_state,
)
from tutorchat.workflows.langchain.stream_adapters import (
    stream_graph_state,
    terminal_tier1_adapter,
    tier_1_to_3_adapter,
)
from tutorchat.workflows.langchain.summary_chain import (
    create_summary_state,
)
from tutorchat.workflows.workflow_factory import workflow_factory

SessionMode = Literal["doc_chat", "homework_help"]

# Builds the retriever of a session from (student_id, document_id)
RetrieverFactory = Callable[[str, str], BaseRetriever]


class SessionState(Enum):
    CONNECTING = "connecting"
    RESOLVING = "resolving"
    READY = "ready"
    EXCHANGING = "exchanging"
    CLOSED = "closed"


class EventSink(Protocol):
    """Receives the events a session emits to its peer."""

    async def emit(self, event: str, data: Any) -> None: ...


class SessionServices(BaseModel):
    """
    The process-wide collaborators of the sessions. Read-only after
    startup; nothing in here holds session data.

    Attributes:
        settings: the server configuration
        chat_settings: prompts, messages and event names
        stores: transcript, conversation and document stores
        retriever_factory: creates the retriever of a document
            session
        vector_client: the qdrant client used by the retrievers
        llm_major, llm_minor: overrides of the configured models
        logger: the logger of the sessions
    """

    settings: ConfigSettings
    chat_settings: ChatSettings
    stores: Stores
    retriever_factory: RetrieverFactory
    vector_client: AsyncQdrantClient | None = None
    llm_major: BaseChatModel | None = None
    llm_minor: BaseChatModel | None = None
    logger: logging.Logger = Field(
        default_factory=lambda: logging.getLogger("tutorchat.session")
    )

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @classmethod
    def from_config(
        cls,
        settings: ConfigSettings | None = None,
        chat_settings: ChatSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> 'SessionServices':
        """Create the collaborators named in the configuration files
        (or in the settings objects, if given)."""
        from tutorchat.language_models import create_embeddings
        from tutorchat.stores.vector_store_qdrant import (
            async_client_from_config,
        )
        from tutorchat.stores.langchain import (
            AsyncQdrantDocumentRetriever,
        )

        if settings is None:
            settings = ConfigSettings()
        if chat_settings is None:
            chat_settings = ChatSettings()
        if logger is None:
            logger = logging.getLogger("tutorchat.session")

        client = async_client_from_config(settings)
        embeddings = create_embeddings(settings.embeddings)
        top_k: int = chat_settings.top_k

        def _retriever_factory(
            student_id: str, document_id: str
        ) -> BaseRetriever:
            return AsyncQdrantDocumentRetriever.from_config_settings(
                student_id,
                document_id,
                settings,
                client=client,
                embeddings=embeddings,
                k=top_k,
            )

        return cls(
            settings=settings,
            chat_settings=chat_settings,
            stores=stores_from_config(settings.transcripts),
            retriever_factory=_retriever_factory,
            vector_client=client,
            logger=logger,
        )


def _required(auth: Mapping[str, Any], key: str) -> str:
    value = auth.get(key)
    if not isinstance(value, str) or not value.strip():
        raise AuthorizationError(f"{key} required")
    return value


class ChatSession:
    """
    Base class of the tutoring sessions. Subclasses resolve the
    conversation and choose the workflow answering the messages.

    Exchanges are serialized: a message arriving while another is
    being answered waits for it to complete (in arrival order).
    """

    mode: ClassVar[SessionMode]

    def __init__(
        self,
        services: SessionServices,
        sink: EventSink,
        auth: Mapping[str, Any],
    ):
        self.services = services
        self.sink = sink
        self.auth = dict(auth)
        self.logger = services.logger
        self.chat_settings: ChatSettings = services.chat_settings

        self.state = SessionState.CONNECTING
        self.student_id: str = ""
        self.conversation_id: str = ""
        self.memory = ConversationMemory()

        self._workflow: ChatStateGraphType | None = None
        self._exchange_lock = asyncio.Lock()
        # background writes of the exchanges, in order
        self._persist_lock = asyncio.Lock()

    # --------------------------------------------------------------
    # lifecycle

    async def open(self) -> None:
        """
        Authenticate and resolve the session, then emit 'ready'.

        Raises:
            AuthorizationError: if the handshake lacks a required
                field. Nothing is resolved.
            SessionStateError: if the session was already opened.
            other errors of the stores: setup is aborted and the
                session is closed.
        """
        if self.state is not SessionState.CONNECTING:
            raise SessionStateError(
                f"Session cannot be opened in state {self.state.value}"
            )

        try:
            self.student_id = _required(self.auth, 'studentId')
            self._authorize()
        except AuthorizationError:
            self.state = SessionState.CLOSED
            raise

        self.state = SessionState.RESOLVING
        try:
            await self._resolve()
        except Exception:
            self.state = SessionState.CLOSED
            raise

        self.state = SessionState.READY
        await self.sink.emit("ready", True)
        self.logger.info(
            f"{self.mode} session ready: student {self.student_id}, "
            f"conversation {self.conversation_id}"
        )

    def close(self) -> None:
        """Release the session; nothing is written on close."""
        self.state = SessionState.CLOSED
        self.memory.clear()
        self._workflow = None

    @property
    def is_open(self) -> bool:
        return self.state in (SessionState.READY, SessionState.EXCHANGING)

    def _check_open(self) -> None:
        if not self.is_open:
            raise SessionStateError(
                f"Session is not ready (state {self.state.value})"
            )

    # --------------------------------------------------------------
    # hooks

    def _authorize(self) -> None:
        """Check the fields of the handshake specific to the mode."""
        pass

    async def _resolve(self) -> None:
        raise NotImplementedError

    def _workflow_context(self) -> ChatWorkflowContext:
        return ChatWorkflowContext(
            chat_settings=self.chat_settings, logger=self.logger
        )

    # --------------------------------------------------------------
    # exchanges

    async def handle_message(self, message: str) -> str | None:
        """
        Answer a chat message.

        Returns:
            the answer sent with the 'end' event, or None if a
            provider failed (an 'error' event was sent instead).

        Raises:
            SessionStateError: if the session is not ready
        """
        self._check_open()
        async with self._exchange_lock:
            # the session may have closed while waiting
            self._check_open()
            self.state = SessionState.EXCHANGING
            try:
                return await self._exchange(message)
            finally:
                if self.state is SessionState.EXCHANGING:
                    self.state = SessionState.READY

    async def _exchange(self, message: str) -> str | None:
        if self._workflow is None:
            raise SessionStateError("Session has no workflow")
        event: str = self.chat_settings.chat_event

        initial_state: ChatState = create_initial_state(
            message, self.memory.messages
        )
        try:
            final_state = await self._stream(
                self._workflow,
                initial_state,
                self._workflow_context(),
                event,
            )
        except ExternalProviderError as e:
            self.logger.error(
                f"Exchange failed in conversation "
                f"{self.conversation_id}: {e}"
            )
            await self.sink.emit(
                f"{event} error", self.chat_settings.MSG_ERROR_QUERY
            )
            return None

        answer: str = final_state.get("response", "")
        await self.sink.emit(f"{event} end", answer)

        # rejected questions are not part of the conversation
        if final_state.get("status") != "valid":
            return answer

        self.memory.add_exchange(message, answer)
        self.services.stores.transcripts.schedule_exchange(
            self.student_id,
            self.conversation_id,
            message,
            answer,
            lock=self._persist_lock,
            error_callback=self._log_persistence_error,
        )
        return answer

    async def generate_summary(self) -> str | None:
        raise SessionStateError(
            f"Summaries are not available in {self.mode} sessions"
        )

    async def _stream(
        self,
        workflow: ChatStateGraphType,
        initial_state: ChatState,
        context: ChatWorkflowContext,
        event: str,
    ) -> dict[str, Any]:
        """
        Run a workflow, emitting the text of its 'generate' node as
        '<event> start' events, and return its terminal state.

        Raises:
            ExternalProviderError: if the workflow failed
        """
        final_state: dict[str, Any] = {}
        raw = stream_graph_state(workflow, initial_state, context)
        stream = terminal_tier1_adapter(
            raw, on_terminal_state=final_state.update, logger=self.logger
        )
        text_stream = tier_1_to_3_adapter(stream, ["generate"])

        try:
            while True:
                try:
                    text: str = await anext(text_stream)
                except StopAsyncIteration:
                    break
                except Exception as e:
                    raise ExternalProviderError(
                        f"Workflow failed: {e}"
                    ) from e
                if text:
                    await self.sink.emit(f"{event} start", text)
        finally:
            await text_stream.aclose()

        if not final_state:
            raise ExternalProviderError("Workflow returned no state")
        if final_state.get("status") == "error":
            raise ExternalProviderError(
                final_state.get("error") or "unknown error"
            )
        return final_state

    def _log_persistence_error(self, e: Exception) -> None:
        if not isinstance(e, PersistenceError):
            e = PersistenceError(str(e))
        self.logger.error(f"Exchange not recorded: {e}")


class DocumentChatSession(ChatSession):
    """Chat about one document of the student, grounded on the
    chunks retrieved from it."""

    mode: ClassVar[SessionMode] = "doc_chat"

    def __init__(
        self,
        services: SessionServices,
        sink: EventSink,
        auth: Mapping[str, Any],
    ):
        super().__init__(services, sink, auth)
        self.document_id: str = ""
        self.retriever: BaseRetriever | None = None
        self._summary_workflow: ChatStateGraphType | None = None

    def _authorize(self) -> None:
        self.document_id = _required(self.auth, 'documentId')

    async def _resolve(self) -> None:
        conversations = self.services.stores.conversations
        self.conversation_id = await conversations.get_chat_conversation_id(
            self.document_id, 'document'
        )
        self.retriever = self.services.retriever_factory(
            self.student_id, self.document_id
        )
        self._workflow = workflow_factory(
            "doc_chat",
            self.services.settings,
            llm_major=self.services.llm_major,
            llm_minor=self.services.llm_minor,
        )
        self._summary_workflow = workflow_factory(
            "summary",
            self.services.settings,
            llm_major=self.services.llm_major,
        )

    def _workflow_context(self) -> ChatWorkflowContext:
        return ChatWorkflowContext(
            retriever=self.retriever,
            chat_settings=self.chat_settings,
            logger=self.logger,
        )

    async def generate_summary(self) -> str | None:
        """
        Summarize the document and write the summary to the document
        store. Does not use nor change the memory of the session.

        Returns:
            the summary, or None if a provider failed
        """
        self._check_open()
        if self._summary_workflow is None:
            raise SessionStateError("Session has no summary workflow")
        event: str = self.chat_settings.summary_event

        try:
            final_state = await self._stream(
                self._summary_workflow,
                create_summary_state(self.chat_settings),
                self._workflow_context(),
                event,
            )
        except ExternalProviderError as e:
            self.logger.error(
                f"Summary of document {self.document_id} failed: {e}"
            )
            await self.sink.emit(
                f"{event} error", self.chat_settings.MSG_ERROR_QUERY
            )
            return None

        summary: str = final_state.get("response", "")
        await self.sink.emit(f"{event} end", summary)

        try:
            await self.services.stores.documents.update_document(
                self.document_id, self.student_id, {'summary': summary}
            )
        except Exception as e:
            self.logger.error(
                str(
                    PersistenceError(
                        f"Could not write summary of document "
                        f"{self.document_id}: {e}"
                    )
                )
            )
        return summary

    def close(self) -> None:
        super().close()
        self.retriever = None
        self._summary_workflow = None


class HomeworkHelpSession(ChatSession):
    """Dialogue with a tutor on a homework topic."""

    mode: ClassVar[SessionMode] = "homework_help"

    def __init__(
        self,
        services: SessionServices,
        sink: EventSink,
        auth: Mapping[str, Any],
    ):
        super().__init__(services, sink, auth)
        self.topic: str = ""

    def _authorize(self) -> None:
        self.topic = _required(self.auth, 'topic')

    async def _resolve(self) -> None:
        stores = self.services.stores

        conversation_id = self.auth.get('conversationId')
        if isinstance(conversation_id, str) and conversation_id:
            self.conversation_id = conversation_id
        else:
            conversation = await stores.conversations.create_new_conversation(
                self.student_id, 'student'
            )
            self.conversation_id = conversation.id

        window: int = self.chat_settings.history_window
        records = await stores.transcripts.paginate(
            {
                'student_id': self.student_id,
                'conversation_id': self.conversation_id,
            },
            limit=window,
        )
        self.memory.seed(build_memory_window(records, window))

        self._workflow = workflow_factory(
            "homework_help",
            self.services.settings,
            llm_major=self.services.llm_major,
        )

    def _workflow_context(self) -> ChatWorkflowContext:
        return ChatWorkflowContext(
            chat_settings=self.chat_settings,
            logger=self.logger,
            topic=self.topic,
        )


SESSION_TYPES: dict[SessionMode, type[ChatSession]] = {
    "doc_chat": DocumentChatSession,
    "homework_help": HomeworkHelpSession,
}


def create_session(
    mode: SessionMode,
    services: SessionServices,
    sink: EventSink,
    auth: Mapping[str, Any],
) -> ChatSession:
    """Create a session of the given mode (not yet opened)."""
    try:
        session_type = SESSION_TYPES[mode]
    except KeyError:
        raise ValueError(f"Invalid session mode: {mode}") from None
    return session_type(services, sink, auth)
