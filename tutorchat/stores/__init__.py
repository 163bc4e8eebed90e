"""
Stores used by the tutoring sessions: message records (transcripts),
conversations, document metadata, and the vector database.

`stores_from_config` creates the first three from the `transcripts`
section of the configuration:

    ':memory:'             in-memory stores (lost at shutdown)
    LocalStorage(folder)   CSV/JSON files in the folder
"""

# pyright: reportUnusedImport=false
# flake8: noqa

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from tutorchat.config.config import LocalStorage, TranscriptSettings

from .transcript import (
    MessageLog,
    MessageRecord,
    TranscriptFilter,
    TranscriptStoreInterface,
    InMemoryTranscriptStore,
    CsvFileTranscriptStore,
    wrap_for_log,
)
from .conversations import (
    Conversation,
    Reference,
    ConversationStoreInterface,
    InMemoryConversationStore,
    CsvFileConversationStore,
)
from .documents import (
    DocumentStoreInterface,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
)

TRANSCRIPT_FILE = "messages.csv"
CONVERSATIONS_FILE = "conversations.csv"
DOCUMENTS_FILE = "documents.json"


class Stores(BaseModel):
    transcripts: TranscriptStoreInterface
    conversations: ConversationStoreInterface
    documents: DocumentStoreInterface

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def close(self) -> None:
        self.transcripts.close()
        self.conversations.close()
        self.documents.close()


def stores_from_config(settings: TranscriptSettings) -> Stores:
    """Create the stores at the location given in the settings."""
    match settings.storage:
        case ':memory:':
            return Stores(
                transcripts=InMemoryTranscriptStore(),
                conversations=InMemoryConversationStore(),
                documents=InMemoryDocumentStore(),
            )
        case LocalStorage(folder=folder):
            root = Path(folder)
            return Stores(
                transcripts=CsvFileTranscriptStore(root / TRANSCRIPT_FILE),
                conversations=CsvFileConversationStore(
                    root / CONVERSATIONS_FILE
                ),
                documents=JsonFileDocumentStore(root / DOCUMENTS_FILE),
            )
        case _:
            raise ValueError("Invalid transcript storage")
