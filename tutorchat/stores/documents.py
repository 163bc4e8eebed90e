"""
Document metadata store. The sessions only write the summary of a
document; the other fields are owned by the service that registers
the uploaded documents.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Self
import asyncio
import json
import threading


class DocumentStoreInterface(ABC):
    """Abstract base class for document metadata stores."""

    @abstractmethod
    async def update_document(
        self,
        document_id: str,
        reference_id: str,
        data: dict[str, Any],
    ) -> None:
        """Merge `data` into the metadata of the document owned by
        `reference_id` (the student)."""
        pass

    @abstractmethod
    async def get_document(
        self, document_id: str, reference_id: str
    ) -> dict[str, Any] | None:
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore
        self.close()


def _key(document_id: str, reference_id: str) -> str:
    return f"{reference_id}/{document_id}"


class InMemoryDocumentStore(DocumentStoreInterface):

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}

    async def update_document(
        self,
        document_id: str,
        reference_id: str,
        data: dict[str, Any],
    ) -> None:
        key = _key(document_id, reference_id)
        self._documents.setdefault(key, {}).update(data)

    async def get_document(
        self, document_id: str, reference_id: str
    ) -> dict[str, Any] | None:
        document = self._documents.get(_key(document_id, reference_id))
        return dict(document) if document is not None else None


class JsonFileDocumentStore(DocumentStoreInterface):
    """Document metadata kept in a JSON file, rewritten at every
    update."""

    def __init__(self, database_file: str | Path):
        self.database_file = Path(database_file)
        self._lock = threading.Lock()
        if not self.database_file.exists():
            self.database_file.parent.mkdir(parents=True, exist_ok=True)
            self.database_file.write_text("{}", encoding="utf-8")

    def _load(self) -> dict[str, dict[str, Any]]:
        return json.loads(self.database_file.read_text(encoding="utf-8"))

    def _update_sync(
        self, document_id: str, reference_id: str, data: dict[str, Any]
    ) -> None:
        with self._lock:
            documents = self._load()
            documents.setdefault(_key(document_id, reference_id), {}).update(
                data
            )
            self.database_file.write_text(
                json.dumps(documents, indent=2), encoding="utf-8"
            )

    def _get_sync(
        self, document_id: str, reference_id: str
    ) -> dict[str, Any] | None:
        with self._lock:
            return self._load().get(_key(document_id, reference_id))

    async def update_document(
        self,
        document_id: str,
        reference_id: str,
        data: dict[str, Any],
    ) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, self._update_sync, document_id, reference_id, data
        )

    async def get_document(
        self, document_id: str, reference_id: str
    ) -> dict[str, Any] | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._get_sync, document_id, reference_id
        )
