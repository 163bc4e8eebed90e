"""
Conversation store: the durable identities grouping message records.

A conversation refers either to a document (the conversation of the
document chat, one per document) or to a student (homework help
conversations, a new one per session unless one is resumed).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Literal, Self
import asyncio
import csv
import threading
import uuid

from pydantic import BaseModel, ConfigDict

Reference = Literal['document', 'student']


class Conversation(BaseModel):
    id: str
    reference_id: str
    reference: Reference
    created_at: datetime

    model_config = ConfigDict(frozen=True)


def _new_conversation(
    reference_id: str, reference: Reference
) -> Conversation:
    return Conversation(
        id=uuid.uuid4().hex,
        reference_id=reference_id,
        reference=reference,
        created_at=datetime.now(),
    )


class ConversationStoreInterface(ABC):
    """Abstract base class for conversation stores."""

    def __init__(self) -> None:
        self._resolve_lock = asyncio.Lock()

    @abstractmethod
    async def create_new_conversation(
        self, reference_id: str, reference: Reference
    ) -> Conversation:
        """Create and store a new conversation."""
        pass

    @abstractmethod
    async def find_conversation(
        self, reference_id: str, reference: Reference
    ) -> Conversation | None:
        """Return the first conversation created for the reference,
        or None."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore
        self.close()

    async def get_chat_conversation_id(
        self, reference_id: str, reference: Reference
    ) -> str:
        """
        Resolve the conversation of a reference, creating it the
        first time. Repeated calls with the same reference return the
        same id, also when made concurrently.
        """
        async with self._resolve_lock:
            conversation = await self.find_conversation(
                reference_id, reference
            )
            if conversation is None:
                conversation = await self.create_new_conversation(
                    reference_id, reference
                )
            return conversation.id


class InMemoryConversationStore(ConversationStoreInterface):

    def __init__(self) -> None:
        super().__init__()
        self._conversations: list[Conversation] = []

    async def create_new_conversation(
        self, reference_id: str, reference: Reference
    ) -> Conversation:
        conversation = _new_conversation(reference_id, reference)
        self._conversations.append(conversation)
        return conversation

    async def find_conversation(
        self, reference_id: str, reference: Reference
    ) -> Conversation | None:
        for c in self._conversations:
            if c.reference_id == reference_id and c.reference == reference:
                return c
        return None

    def close(self) -> None:
        pass


class CsvFileConversationStore(ConversationStoreInterface):
    """Conversations appended to a CSV file."""

    FIELDS: list[str] = ["id", "reference_id", "reference", "timestamp"]

    def __init__(self, database_file: str | Path):
        super().__init__()
        self.database_file = Path(database_file)
        self._lock = threading.Lock()
        if not self.database_file.exists():
            self.database_file.parent.mkdir(parents=True, exist_ok=True)
            with open(
                self.database_file, "w", encoding="utf-8", newline=""
            ) as f:
                csv.writer(f).writerow(self.FIELDS)

    def _write_sync(self, conversation: Conversation) -> None:
        with self._lock:
            with open(
                self.database_file, "a", encoding="utf-8", newline=""
            ) as f:
                csv.writer(f).writerow(
                    [
                        conversation.id,
                        conversation.reference_id,
                        conversation.reference,
                        conversation.created_at.isoformat(),
                    ]
                )

    def _find_sync(
        self, reference_id: str, reference: Reference
    ) -> Conversation | None:
        with self._lock:
            with open(
                self.database_file, "r", encoding="utf-8", newline=""
            ) as f:
                for row in csv.DictReader(f):
                    if (
                        row["reference_id"] == reference_id
                        and row["reference"] == reference
                    ):
                        return Conversation(
                            id=row["id"],
                            reference_id=row["reference_id"],
                            reference=reference,
                            created_at=datetime.fromisoformat(
                                row["timestamp"]
                            ),
                        )
        return None

    async def create_new_conversation(
        self, reference_id: str, reference: Reference
    ) -> Conversation:
        conversation = _new_conversation(reference_id, reference)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_sync, conversation)
        return conversation

    async def find_conversation(
        self, reference_id: str, reference: Reference
    ) -> Conversation | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._find_sync, reference_id, reference
        )

    def close(self) -> None:
        pass
