"""A langchain interface to the chunks of one document in the Qdrant
vector store. Note: only asynchronous queries are supported."""

from typing_extensions import override

from langchain_core.retrievers import BaseRetriever
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings
from langchain_core.callbacks.manager import (
    AsyncCallbackManagerForRetrieverRun,
    CallbackManagerForRetrieverRun,
)

from qdrant_client import AsyncQdrantClient
from pydantic import ConfigDict, Field

from .. import vector_store_qdrant as vsq
from tutorchat.config.config import ConfigSettings
from tutorchat.language_models import create_embeddings


class AsyncQdrantDocumentRetriever(BaseRetriever):
    """
    Langchain asynchronous retriever of the chunks of one document
    of a student. A retriever is created for each session and is
    never shared; the client it holds may be.
    """

    client: AsyncQdrantClient
    collection_name: str
    embeddings: Embeddings
    student_id: str
    document_id: str
    k: int = Field(default=15, gt=0)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @staticmethod
    def from_config_settings(
        student_id: str,
        document_id: str,
        opts: ConfigSettings | None = None,
        *,
        client: AsyncQdrantClient | None = None,
        embeddings: Embeddings | None = None,
        k: int = 15,
    ) -> 'AsyncQdrantDocumentRetriever':
        """
        Initializes a retriever scoped to a document from a
        ConfigSettings object, or from the config.toml file.

        Args:
            student_id: the namespace of the chunks
            document_id: the document
            opts: a ConfigSettings object, or none to read settings
                from the configuration file
            client: a client to reuse; if None, a client is created
                from the settings
            embeddings: an embedding model to reuse; if None, the
                model is created from the settings
            k: the number of chunks retrieved

        Returns:
            An AsyncQdrantDocumentRetriever object
        """
        if opts is None:
            opts = ConfigSettings()

        if client is None:
            client = vsq.async_client_from_config(opts)
        if embeddings is None:
            embeddings = create_embeddings(opts.embeddings)

        return AsyncQdrantDocumentRetriever(
            client=client,
            collection_name=opts.database.collection_name,
            embeddings=embeddings,
            student_id=student_id,
            document_id=document_id,
            k=k,
            metadata={
                'student_id': student_id,
                'document_id': document_id,
            },
        )

    def _points_to_documents(
        self, points: list[vsq.ScoredPoint]
    ) -> list[Document]:
        docs: list[Document] = []
        for p in points:
            payload = dict(p.payload) if p.payload is not None else {}
            docs.append(
                Document(
                    page_content=payload.pop('page_content', ""),
                    metadata=payload.pop('metadata', {}),
                )
            )

        return docs

    @override
    def _get_relevant_documents(
        self,
        query: str,
        *,
        run_manager: CallbackManagerForRetrieverRun,
    ) -> list[Document]:
        raise NotImplementedError(
            "Sync retrieval is not supported by this retriever. "
            "Use .ainvoke instead of .invoke."
        )

    @override
    async def _aget_relevant_documents(
        self,
        query: str,
        *,
        run_manager: AsyncCallbackManagerForRetrieverRun,
    ) -> list[Document]:

        points: list[vsq.ScoredPoint] = await vsq.aquery(
            self.client,
            self.collection_name,
            self.embeddings,
            query,
            student_id=self.student_id,
            document_id=self.document_id,
            limit=self.k,
        )

        return self._points_to_documents(points)
