"""Tests of the document chat and homework help sessions"""

# pyright: basic

import asyncio
import logging
import unittest
from typing import Any

from langchain_core.language_models import BaseChatModel

from tutorchat.background_task_manager import drain_tasks
from tutorchat.config.config import (
    ConfigSettings,
    LanguageModelSettings,
    TranscriptSettings,
)
from tutorchat.config.appchat import ChatSettings
from tutorchat.errors import AuthorizationError, SessionStateError
from tutorchat.session import (
    DocumentChatSession,
    HomeworkHelpSession,
    SessionServices,
    SessionState,
    create_session,
)
from tutorchat.stores import (
    InMemoryConversationStore,
    InMemoryDocumentStore,
    InMemoryTranscriptStore,
    Stores,
    stores_from_config,
    wrap_for_log,
)

from tests.test_mocks import MockRetriever, RecordingSink, ScriptedChatModel
from tests.test_transcript_store import FailingTranscriptStore

debug_model = LanguageModelSettings(model="Debug/debug")
settings = ConfigSettings(
    storage=':memory:',
    major=debug_model,
    minor=debug_model,
    transcripts=TranscriptSettings(storage=':memory:'),
)

DOC_AUTH = {'studentId': "s1", 'documentId': "doc1"}
HOMEWORK_AUTH = {'studentId': "s1", 'topic': "fractions"}


def make_services(
    llm_major: BaseChatModel | None = None,
    llm_minor: BaseChatModel | None = None,
    stores: Stores | None = None,
    retriever: MockRetriever | None = None,
) -> SessionServices:
    retriever = retriever or MockRetriever()
    return SessionServices(
        settings=settings,
        chat_settings=ChatSettings(),
        stores=stores or stores_from_config(settings.transcripts),
        retriever_factory=lambda student_id, document_id: retriever,
        llm_major=llm_major or ScriptedChatModel(
            responses=["Plants turn light into sugar."]
        ),
        llm_minor=llm_minor or ScriptedChatModel(
            responses=["standalone question"]
        ),
        logger=logging.getLogger("test_session"),
    )


async def transcript(
    services: SessionServices, conversation_id: str, student_id="s1"
) -> list[tuple[str, str]]:
    records = await services.stores.transcripts.paginate(
        {'student_id': student_id, 'conversation_id': conversation_id},
        limit=100,
    )
    return [(r.log['role'], r.log['content']) for r in reversed(records)]


class TestSessionLifecycle(unittest.IsolatedAsyncioTestCase):

    async def test_ready_before_tokens(self):
        sink = RecordingSink()
        session = create_session(
            "doc_chat", make_services(), sink, DOC_AUTH
        )
        await session.open()
        await session.handle_message("What is photosynthesis?")

        self.assertEqual(sink.names()[0], "ready")
        self.assertEqual(sink.names().count("ready"), 1)
        self.assertEqual(sink.data("ready"), [True])
        self.assertIsInstance(session, DocumentChatSession)

    async def test_missing_student_id(self):
        sink = RecordingSink()
        session = create_session(
            "doc_chat", make_services(), sink, {'documentId': "doc1"}
        )
        with self.assertRaises(AuthorizationError) as cm:
            await session.open()

        self.assertIn("studentId", str(cm.exception))
        self.assertEqual(session.state, SessionState.CLOSED)
        self.assertEqual(sink.events, [])

    async def test_missing_document_id(self):
        services = make_services()
        session = create_session(
            "doc_chat", services, RecordingSink(), {'studentId': "s1"}
        )
        with self.assertRaises(AuthorizationError):
            await session.open()
        self.assertIsNone(
            await services.stores.conversations.find_conversation(
                "doc1", 'document'
            )
        )

    async def test_missing_topic(self):
        session = create_session(
            "homework_help",
            make_services(),
            RecordingSink(),
            {'studentId': "s1", 'topic': "  "},
        )
        with self.assertRaises(AuthorizationError):
            await session.open()

    async def test_message_before_open(self):
        session = create_session(
            "homework_help", make_services(), RecordingSink(), HOMEWORK_AUTH
        )
        with self.assertRaises(SessionStateError):
            await session.handle_message("Hello")

    async def test_message_after_close(self):
        session = create_session(
            "homework_help", make_services(), RecordingSink(), HOMEWORK_AUTH
        )
        await session.open()
        session.close()
        self.assertFalse(session.is_open)
        with self.assertRaises(SessionStateError):
            await session.handle_message("Hello")

    async def test_open_twice(self):
        session = create_session(
            "homework_help", make_services(), RecordingSink(), HOMEWORK_AUTH
        )
        await session.open()
        with self.assertRaises(SessionStateError):
            await session.open()

    async def test_store_failure_aborts_setup(self):
        class BrokenConversationStore(InMemoryConversationStore):
            async def create_new_conversation(self, reference_id, reference):
                raise OSError("store unavailable")

        stores = Stores(
            transcripts=InMemoryTranscriptStore(),
            conversations=BrokenConversationStore(),
            documents=InMemoryDocumentStore(),
        )
        sink = RecordingSink()
        session = create_session(
            "homework_help", make_services(stores=stores), sink, HOMEWORK_AUTH
        )
        with self.assertRaises(OSError):
            await session.open()
        self.assertEqual(session.state, SessionState.CLOSED)
        self.assertNotIn("ready", sink.names())

    def test_invalid_mode(self):
        with self.assertRaises(ValueError):
            create_session(
                "videocast", make_services(), RecordingSink(), {}  # type: ignore
            )


class TestDocumentChatSession(unittest.IsolatedAsyncioTestCase):

    async def test_exchange_recorded(self):
        services = make_services()
        sink = RecordingSink()
        session = create_session("doc_chat", services, sink, DOC_AUTH)
        await session.open()

        answer = await session.handle_message("What is photosynthesis?")
        await drain_tasks()

        self.assertEqual(answer, "Plants turn light into sugar.")
        self.assertEqual(sink.tokens(), answer)
        self.assertEqual(sink.data("chat response end"), [answer])
        self.assertEqual(
            await transcript(services, session.conversation_id),
            [
                ("user", "What is photosynthesis?"),
                ("assistant", "Plants turn light into sugar."),
            ],
        )

    async def test_answer_grounded_on_chunk(self):
        services = make_services(
            llm_major=ScriptedChatModel(echo_prompt=True)
        )
        session = create_session(
            "doc_chat", services, RecordingSink(), DOC_AUTH
        )
        await session.open()

        answer = await session.handle_message("What is photosynthesis?")
        await drain_tasks()

        self.assertIn("Photosynthesis converts light to energy", answer)
        records = await transcript(services, session.conversation_id)
        self.assertEqual(len(records), 2)
        self.assertEqual(records[1], ("assistant", answer))

    async def test_conversation_shared_by_document(self):
        services = make_services()
        first = create_session("doc_chat", services, RecordingSink(), DOC_AUTH)
        second = create_session(
            "doc_chat", services, RecordingSink(), DOC_AUTH
        )
        await first.open()
        await second.open()
        self.assertEqual(first.conversation_id, second.conversation_id)

        other = create_session(
            "doc_chat",
            services,
            RecordingSink(),
            {'studentId': "s1", 'documentId': "doc2"},
        )
        await other.open()
        self.assertNotEqual(other.conversation_id, first.conversation_id)

    async def test_memory_starts_empty(self):
        services = make_services()
        conversations = services.stores.conversations
        conversation_id = await conversations.get_chat_conversation_id(
            "doc1", 'document'
        )
        await services.stores.transcripts.append(
            "s1", conversation_id, wrap_for_log("user", "old question")
        )

        session = create_session(
            "doc_chat", services, RecordingSink(), DOC_AUTH
        )
        await session.open()
        self.assertEqual(session.conversation_id, conversation_id)
        self.assertEqual(session.memory.messages, [])

    async def test_follow_up_uses_history(self):
        minor = ScriptedChatModel(responses=["Where does photosynthesis occur?"])
        retriever = MockRetriever()
        services = make_services(llm_minor=minor, retriever=retriever)
        session = create_session(
            "doc_chat", services, RecordingSink(), DOC_AUTH
        )
        await session.open()

        await session.handle_message("What is photosynthesis?")
        self.assertEqual(minor.call_count, 0)
        self.assertEqual(retriever.last_query, "What is photosynthesis?")

        await session.handle_message("Where does it happen?")
        self.assertEqual(minor.call_count, 1)
        self.assertEqual(
            retriever.last_query, "Where does photosynthesis occur?"
        )
        self.assertEqual(len(session.memory.messages), 4)

    async def test_exchanges_do_not_interleave(self):
        major = ScriptedChatModel(
            responses=["first answer in words", "second answer in words"]
        )
        sink = RecordingSink()
        services = make_services(llm_major=major)
        session = create_session("doc_chat", services, sink, DOC_AUTH)
        await session.open()

        answers = await asyncio.gather(
            session.handle_message("first question"),
            session.handle_message("second question"),
        )
        self.assertEqual(
            answers, ["first answer in words", "second answer in words"]
        )

        events = [e for e in sink.events if e[0] != "ready"]
        first_end = events.index(("chat response end", answers[0]))
        first_tokens = "".join(d for _, d in events[:first_end])
        self.assertEqual(first_tokens, answers[0])
        self.assertEqual(events[-1], ("chat response end", answers[1]))

        await drain_tasks()
        self.assertEqual(
            [c for _, c in await transcript(services, session.conversation_id)],
            [
                "first question",
                "first answer in words",
                "second question",
                "second answer in words",
            ],
        )

    async def test_provider_failure(self):
        major = ScriptedChatModel(failures=1, responses=["It works now."])
        services = make_services(llm_major=major)
        sink = RecordingSink()
        session = create_session("doc_chat", services, sink, DOC_AUTH)
        await session.open()

        answer = await session.handle_message("What is photosynthesis?")
        await drain_tasks()

        self.assertIsNone(answer)
        self.assertEqual(
            sink.data("chat response error"),
            [services.chat_settings.MSG_ERROR_QUERY],
        )
        self.assertNotIn("chat response end", sink.names())
        self.assertEqual(
            await transcript(services, session.conversation_id), []
        )
        self.assertEqual(session.memory.messages, [])

        # the session stays usable
        answer = await session.handle_message("What is photosynthesis?")
        self.assertEqual(answer, "It works now.")
        self.assertEqual(session.state, SessionState.READY)

    async def test_retriever_failure(self):
        services = make_services(
            retriever=MockRetriever(exception=ConnectionError("no db"))
        )
        sink = RecordingSink()
        session = create_session("doc_chat", services, sink, DOC_AUTH)
        await session.open()

        self.assertIsNone(await session.handle_message("Question?"))
        self.assertIn("chat response error", sink.names())

    async def test_empty_query(self):
        services = make_services()
        sink = RecordingSink()
        session = create_session("doc_chat", services, sink, DOC_AUTH)
        await session.open()

        answer = await session.handle_message("   ")
        await drain_tasks()

        self.assertEqual(answer, services.chat_settings.MSG_EMPTY_QUERY)
        self.assertEqual(sink.data("chat response end"), [answer])
        self.assertEqual(sink.tokens(), "")
        self.assertEqual(session.memory.messages, [])
        self.assertEqual(
            await transcript(services, session.conversation_id), []
        )

    async def test_persistence_failure_is_logged(self):
        stores = Stores(
            transcripts=FailingTranscriptStore({"user"}),
            conversations=InMemoryConversationStore(),
            documents=InMemoryDocumentStore(),
        )
        services = make_services(stores=stores)
        sink = RecordingSink()
        session = create_session("doc_chat", services, sink, DOC_AUTH)
        await session.open()

        with self.assertLogs("test_session", level="ERROR"):
            answer = await session.handle_message("What is photosynthesis?")
            await drain_tasks()

        self.assertEqual(sink.data("chat response end"), [answer])

    async def test_summary(self):
        major = ScriptedChatModel(responses=["A summary of the document."])
        services = make_services(llm_major=major)
        sink = RecordingSink()
        session = create_session("doc_chat", services, sink, DOC_AUTH)
        await session.open()

        summary = await session.generate_summary()

        self.assertEqual(summary, "A summary of the document.")
        self.assertEqual(sink.tokens("summary"), summary)
        self.assertEqual(sink.data("summary end"), [summary])
        self.assertEqual(
            await services.stores.documents.get_document("doc1", "s1"),
            {'summary': summary},
        )
        self.assertEqual(session.memory.messages, [])

    async def test_summary_failure(self):
        major = ScriptedChatModel(failures=1)
        services = make_services(llm_major=major)
        sink = RecordingSink()
        session = create_session("doc_chat", services, sink, DOC_AUTH)
        await session.open()

        self.assertIsNone(await session.generate_summary())
        self.assertIn("summary error", sink.names())
        self.assertIsNone(
            await services.stores.documents.get_document("doc1", "s1")
        )


class TestHomeworkHelpSession(unittest.IsolatedAsyncioTestCase):

    async def test_new_conversation(self):
        services = make_services()
        first = create_session(
            "homework_help", services, RecordingSink(), HOMEWORK_AUTH
        )
        second = create_session(
            "homework_help", services, RecordingSink(), HOMEWORK_AUTH
        )
        await first.open()
        await second.open()

        self.assertIsInstance(first, HomeworkHelpSession)
        self.assertTrue(first.conversation_id)
        self.assertNotEqual(first.conversation_id, second.conversation_id)

    async def test_new_conversation_reused(self):
        major = ScriptedChatModel(responses=["first answer", "second answer"])
        services = make_services(llm_major=major)
        session = create_session(
            "homework_help", services, RecordingSink(), HOMEWORK_AUTH
        )
        await session.open()
        conversation_id = session.conversation_id

        await session.handle_message("first question")
        await session.handle_message("second question")
        await drain_tasks()

        self.assertEqual(session.conversation_id, conversation_id)
        self.assertEqual(
            await transcript(services, conversation_id),
            [
                ("user", "first question"),
                ("assistant", "first answer"),
                ("user", "second question"),
                ("assistant", "second answer"),
            ],
        )
        conversation = await services.stores.conversations.find_conversation(
            "s1", 'student'
        )
        self.assertIsNotNone(conversation)
        self.assertEqual(conversation.id, conversation_id)

    async def test_resumed_conversation(self):
        services = make_services()
        first = create_session(
            "homework_help", services, RecordingSink(), HOMEWORK_AUTH
        )
        await first.open()
        await first.handle_message("How do I add 1/2 and 1/3?")
        await drain_tasks()

        resumed = create_session(
            "homework_help",
            services,
            RecordingSink(),
            {**HOMEWORK_AUTH, 'conversationId': first.conversation_id},
        )
        await resumed.open()
        self.assertEqual(resumed.conversation_id, first.conversation_id)
        self.assertEqual(
            [m.content for m in resumed.memory.messages],
            ["How do I add 1/2 and 1/3?", "Plants turn light into sugar."],
        )

    async def test_memory_window(self):
        services = make_services()
        for i in range(12):
            role = "user" if i % 2 == 0 else "assistant"
            await services.stores.transcripts.append(
                "s1", "c1", wrap_for_log(role, f"m{i + 1}")
            )

        session = create_session(
            "homework_help",
            services,
            RecordingSink(),
            {**HOMEWORK_AUTH, 'conversationId': "c1"},
        )
        await session.open()

        self.assertEqual(
            [m.content for m in session.memory.messages],
            [f"m{i}" for i in range(3, 13)],
        )

    async def test_prompt_carries_topic_and_history(self):
        major = ScriptedChatModel(echo_prompt=True)
        services = make_services(llm_major=major)
        sink = RecordingSink()
        session = create_session("homework_help", services, sink, HOMEWORK_AUTH)
        await session.open()

        await session.handle_message("What is a numerator?")
        answer: Any = await session.handle_message("And a denominator?")

        self.assertIn("fractions", answer)
        self.assertIn("Human: What is a numerator?", answer)
        self.assertIn("And a denominator?", answer)

    async def test_summary_not_available(self):
        session = create_session(
            "homework_help", make_services(), RecordingSink(), HOMEWORK_AUTH
        )
        await session.open()
        with self.assertRaises(SessionStateError):
            await session.generate_summary()


if __name__ == "__main__":
    unittest.main()
