"""
Transcript store: append-only message records of the conversations.

Each exchange of a session is recorded as two records, the question
of the student (role 'user') followed by the answer (role
'assistant'). Records are read back newest first, to rebuild the
memory of a resumed conversation.

Two implementations are provided: an in-memory store, and a CSV file
store for single-process deployments.

Example:
    ```python
    store = CsvFileTranscriptStore("transcripts/messages.csv")
    await store.append("s1", "c1", wrap_for_log("user", "Hi"))
    records = await store.paginate(
        {'student_id': "s1", 'conversation_id': "c1"}, limit=10
    )
    ```
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Literal, Self
import asyncio
import csv
import threading

from pydantic import BaseModel, ConfigDict
from typing_extensions import TypedDict

from tutorchat.background_task_manager import schedule_task
from tutorchat.errors import PersistenceError

Role = Literal['user', 'assistant']


class MessageLog(TypedDict):
    """The payload of a message record."""

    role: str
    content: str


class TranscriptFilter(TypedDict):
    student_id: str
    conversation_id: str


class MessageRecord(BaseModel):
    """An immutable message record. The sequence number gives the
    creation order within the store."""

    student_id: str
    conversation_id: str
    log: MessageLog
    sequence: int
    created_at: datetime

    model_config = ConfigDict(frozen=True)


def wrap_for_log(role: Role, content: str) -> MessageLog:
    return MessageLog(role=role, content=content)


class TranscriptStoreInterface(ABC):
    """Abstract base class for transcript stores."""

    @abstractmethod
    async def append(
        self,
        student_id: str,
        conversation_id: str,
        log: MessageLog,
    ) -> MessageRecord:
        """Write one message record."""
        pass

    @abstractmethod
    async def paginate(
        self,
        filter: TranscriptFilter,
        *,
        limit: int = 10,
    ) -> list[MessageRecord]:
        """Return the most recent `limit` records matching the
        filter, newest first."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the store and release resources."""
        pass

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore
        self.close()

    async def append_exchange(
        self,
        student_id: str,
        conversation_id: str,
        question: str,
        answer: str,
    ) -> None:
        """
        Write the user record, then the assistant record. The
        assistant record is not written if the user record failed.

        Raises:
            PersistenceError: if either write fails
        """
        try:
            await self.append(
                student_id, conversation_id, wrap_for_log("user", question)
            )
        except Exception as e:
            raise PersistenceError(
                f"Could not record question in conversation "
                f"{conversation_id}: {e}"
            ) from e

        try:
            await self.append(
                student_id,
                conversation_id,
                wrap_for_log("assistant", answer),
            )
        except Exception as e:
            raise PersistenceError(
                f"Could not record answer in conversation "
                f"{conversation_id}: {e}"
            ) from e

    def schedule_exchange(
        self,
        student_id: str,
        conversation_id: str,
        question: str,
        answer: str,
        *,
        lock: asyncio.Lock | None = None,
        error_callback: Callable[[Exception], None] | None = None,
    ) -> asyncio.Task[None]:
        """Record an exchange in the background (fire-and-forget).

        Args:
            lock: if given, the writes are made while holding the
                lock, so that exchanges sharing it are recorded in
                the order in which they were scheduled.
            error_callback: called with the PersistenceError if the
                exchange could not be recorded.
        """

        async def _record() -> None:
            if lock is None:
                await self.append_exchange(
                    student_id, conversation_id, question, answer
                )
                return
            async with lock:
                await self.append_exchange(
                    student_id, conversation_id, question, answer
                )

        return schedule_task(_record(), error_callback=error_callback)


class InMemoryTranscriptStore(TranscriptStoreInterface):
    """Transcript store held in process memory."""

    def __init__(self) -> None:
        self._records: list[MessageRecord] = []

    async def append(
        self,
        student_id: str,
        conversation_id: str,
        log: MessageLog,
    ) -> MessageRecord:
        record = MessageRecord(
            student_id=student_id,
            conversation_id=conversation_id,
            log=log,
            sequence=len(self._records) + 1,
            created_at=datetime.now(),
        )
        self._records.append(record)
        return record

    async def paginate(
        self,
        filter: TranscriptFilter,
        *,
        limit: int = 10,
    ) -> list[MessageRecord]:
        # snapshot: appends made while the caller awaits are not seen
        records = list(self._records)
        matching: list[MessageRecord] = [
            r
            for r in records
            if r.student_id == filter['student_id']
            and r.conversation_id == filter['conversation_id']
        ]
        return list(reversed(matching[-limit:])) if limit > 0 else []

    def close(self) -> None:
        pass


class CsvFileTranscriptStore(TranscriptStoreInterface):
    """
    File-based CSV transcript store. Handles file creation, header
    initialization, and proper cleanup. Can be used as a context
    manager or with explicit close() calls.

    Writes and reads hold the same lock, so that a read never sees a
    partially written row.
    """

    FIELDS: list[str] = [
        "sequence",
        "student_id",
        "conversation_id",
        "timestamp",
        "role",
        "content",
    ]

    def __init__(self, database_file: str | Path):
        self.database_file = Path(database_file)
        self._lock = threading.Lock()

        self._ensure_headers()
        self._sequence: int = self._last_sequence()
        self._file = open(
            self.database_file, "a", encoding="utf-8", newline=""
        )
        self._writer = csv.writer(self._file)

    def _ensure_headers(self) -> None:
        """Creates the database file with the header if it does not
        exist."""
        if not self.database_file.exists():
            self.database_file.parent.mkdir(parents=True, exist_ok=True)
            with open(
                self.database_file, "w", encoding="utf-8", newline=""
            ) as f:
                csv.writer(f).writerow(self.FIELDS)

    def _read_rows(self) -> list[dict[str, str]]:
        with open(
            self.database_file, "r", encoding="utf-8", newline=""
        ) as f:
            return list(csv.DictReader(f))

    def _last_sequence(self) -> int:
        rows = self._read_rows()
        return int(rows[-1]["sequence"]) if rows else 0

    def _write_sync(
        self,
        student_id: str,
        conversation_id: str,
        log: MessageLog,
    ) -> MessageRecord:
        with self._lock:
            record = MessageRecord(
                student_id=student_id,
                conversation_id=conversation_id,
                log=log,
                sequence=self._sequence + 1,
                created_at=datetime.now(),
            )
            self._writer.writerow(
                [
                    record.sequence,
                    record.student_id,
                    record.conversation_id,
                    record.created_at.isoformat(),
                    record.log['role'],
                    record.log['content'],
                ]
            )
            self._file.flush()
            self._sequence = record.sequence
            return record

    def _paginate_sync(
        self, filter: TranscriptFilter, limit: int
    ) -> list[MessageRecord]:
        with self._lock:
            rows = self._read_rows()

        matching: list[MessageRecord] = [
            MessageRecord(
                student_id=row["student_id"],
                conversation_id=row["conversation_id"],
                log=MessageLog(
                    role=row["role"], content=row["content"]
                ),
                sequence=int(row["sequence"]),
                created_at=datetime.fromisoformat(row["timestamp"]),
            )
            for row in rows
            if row["student_id"] == filter['student_id']
            and row["conversation_id"] == filter['conversation_id']
        ]
        matching.sort(key=lambda r: r.sequence)
        return list(reversed(matching[-limit:])) if limit > 0 else []

    async def append(
        self,
        student_id: str,
        conversation_id: str,
        log: MessageLog,
    ) -> MessageRecord:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._write_sync, student_id, conversation_id, log
        )

    async def paginate(
        self,
        filter: TranscriptFilter,
        *,
        limit: int = 10,
    ) -> list[MessageRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._paginate_sync, filter, limit
        )

    def close(self) -> None:
        """Explicitly close the database file."""
        if not self._file.closed:
            self._file.close()
