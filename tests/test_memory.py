"""Tests of the memory window and the session memory"""

# pyright: basic

import unittest
from datetime import datetime

from langchain_core.messages import AIMessage, HumanMessage

from tutorchat.errors import SessionStateError
from tutorchat.memory import ConversationMemory, build_memory_window
from tutorchat.stores.transcript import MessageRecord, MessageLog


def make_records(n: int, roles: tuple[str, ...] = ("user", "assistant")):
    """n records with content 'm1'...'mn' in chronological order,
    returned newest first as the stores do."""
    records = [
        MessageRecord(
            student_id="s1",
            conversation_id="c1",
            log=MessageLog(role=roles[i % len(roles)], content=f"m{i + 1}"),
            sequence=i + 1,
            created_at=datetime.now(),
        )
        for i in range(n)
    ]
    return list(reversed(records))


class TestBuildMemoryWindow(unittest.TestCase):

    def test_chronological_order(self):
        window = build_memory_window(make_records(10))

        self.assertEqual(len(window), 10)
        self.assertEqual(
            [m.content for m in window], [f"m{i}" for i in range(1, 11)]
        )
        self.assertIsInstance(window[0], HumanMessage)
        for previous, current in zip(window, window[1:]):
            self.assertNotEqual(type(previous), type(current))

    def test_roles_mapped(self):
        window = build_memory_window(make_records(2))
        self.assertIsInstance(window[0], HumanMessage)
        self.assertIsInstance(window[1], AIMessage)

    def test_other_roles_dropped(self):
        records = make_records(3, roles=("user", "system", "assistant"))
        window = build_memory_window(records)
        self.assertEqual([m.content for m in window], ["m1", "m3"])

    def test_limit_keeps_newest(self):
        window = build_memory_window(make_records(12), limit=10)
        self.assertEqual(len(window), 10)
        self.assertEqual(window[0].content, "m3")
        self.assertEqual(window[-1].content, "m12")

    def test_empty(self):
        self.assertEqual(build_memory_window([]), [])

    def test_idempotent(self):
        records = make_records(6)
        first = build_memory_window(records)
        second = build_memory_window(records)
        self.assertEqual(
            [m.content for m in first], [m.content for m in second]
        )


class TestConversationMemory(unittest.TestCase):

    def test_seed_then_exchange(self):
        memory = ConversationMemory()
        memory.seed(build_memory_window(make_records(2)))
        memory.add_exchange("question", "answer")

        self.assertEqual(
            [m.content for m in memory.messages],
            ["m1", "m2", "question", "answer"],
        )

    def test_seed_after_exchange_refused(self):
        memory = ConversationMemory()
        memory.add_exchange("question", "answer")
        with self.assertRaises(SessionStateError):
            memory.seed(build_memory_window(make_records(2)))

    def test_messages_is_a_copy(self):
        memory = ConversationMemory()
        memory.add_exchange("q", "a")
        memory.messages.clear()
        self.assertEqual(len(memory.messages), 2)

    def test_clear(self):
        memory = ConversationMemory()
        memory.add_exchange("q", "a")
        memory.clear()
        self.assertEqual(memory.messages, [])


if __name__ == "__main__":
    unittest.main()
