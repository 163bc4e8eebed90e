"""
Operations on the Qdrant vector database holding the chunks of the
documents uploaded by the students.

Every point carries the chunk text and metadata in the LangChain
payload layout ('page_content', 'metadata'), plus two top-level keys
used to scope the queries of a session:

    namespace: the id of the student owning the document
    document_id: the id of the document the chunk was taken from

Main functions:
    async_client_from_config: create an AsyncQdrantClient
    ainitialize_collection: create the collection if missing
    aupload_texts: encode and write the chunks of a document
    aquery: retrieve the chunks of one document most similar to a
        query text
"""

from collections.abc import Sequence
from typing import Any
import logging
import uuid

from langchain_core.embeddings import Embeddings
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.models import ScoredPoint

from tutorchat.config.config import (
    ConfigSettings,
    LocalStorage,
    RemoteSource,
)

DENSE_VECTOR_NAME = "dense"
NAMESPACE_KEY = "namespace"
DOCUMENT_ID_KEY = "document_id"

logger = logging.getLogger(__name__)


def async_client_from_config(
    opts: ConfigSettings | None = None,
) -> AsyncQdrantClient:
    """
    Create a qdrant client from config settings. Reads from config
    toml file settings if none given.

    Args:
        opts: the config settings

    Returns:
        an AsyncQdrantClient object
    """
    if opts is None:
        opts = ConfigSettings()

    match opts.storage:
        case ':memory:':
            return AsyncQdrantClient(':memory:')
        case LocalStorage(folder=folder):
            return AsyncQdrantClient(path=folder)
        case RemoteSource(url=url, port=port):
            return AsyncQdrantClient(url=str(url), port=port)
        case _:
            raise ValueError("Invalid database source")


async def ainitialize_collection(
    client: AsyncQdrantClient,
    collection_name: str,
    embedding_size: int,
) -> None:
    """Create a collection for dense vectors of the given size, if
    not already in the database."""

    if await client.collection_exists(collection_name):
        return

    await client.create_collection(
        collection_name=collection_name,
        vectors_config={
            DENSE_VECTOR_NAME: models.VectorParams(
                size=embedding_size,
                distance=models.Distance.COSINE,
            )
        },
    )
    logger.info(f"Created collection {collection_name}")


def scope_filter(student_id: str, document_id: str) -> models.Filter:
    """The filter restricting a query to one document of a
    student."""
    return models.Filter(
        must=[
            models.FieldCondition(
                key=NAMESPACE_KEY,
                match=models.MatchValue(value=student_id),
            ),
            models.FieldCondition(
                key=DOCUMENT_ID_KEY,
                match=models.MatchValue(value=document_id),
            ),
        ]
    )


async def aupload_texts(
    client: AsyncQdrantClient,
    collection_name: str,
    embeddings: Embeddings,
    texts: Sequence[str],
    *,
    student_id: str,
    document_id: str,
    metadata: dict[str, Any] | None = None,
) -> list[str]:
    """
    Encode the chunks of a document and write them to the
    collection.

    Args:
        client: the qdrant client
        collection_name: the collection
        embeddings: the embedding model
        texts: the chunks of the document
        student_id: the owner of the document
        document_id: the id of the document
        metadata: metadata added to each chunk

    Returns:
        the ids of the points written
    """
    if not texts:
        return []

    vectors: list[list[float]] = await embeddings.aembed_documents(
        list(texts)
    )
    points: list[models.PointStruct] = []
    for text, vector in zip(texts, vectors):
        points.append(
            models.PointStruct(
                id=str(uuid.uuid4()),
                vector={DENSE_VECTOR_NAME: vector},
                payload={
                    'page_content': text,
                    'metadata': dict(metadata or {}),
                    NAMESPACE_KEY: student_id,
                    DOCUMENT_ID_KEY: document_id,
                },
            )
        )

    await client.upsert(collection_name=collection_name, points=points)
    return [str(p.id) for p in points]


async def aquery(
    client: AsyncQdrantClient,
    collection_name: str,
    embeddings: Embeddings,
    querytext: str,
    *,
    student_id: str,
    document_id: str,
    limit: int = 15,
    payload: list[str] | bool = ['page_content', 'metadata'],
) -> list[ScoredPoint]:
    """
    Executes a query on the client asynchronously, restricted to the
    chunks of one document of a student.

    Args:
        client: an AsyncQdrantClient object
        collection_name: the collection to query
        embeddings: the model encoding the query text
        querytext: the target text
        student_id: the namespace of the chunks
        document_id: the document the chunks were taken from
        limit: max number of chunks retrieved
        payload: what properties to be retrieved

    Returns:
        a list of ScoredPoint objects, most similar first.

    Raises:
        the errors of the embedding model and of the client.
    """

    vect: list[float] = await embeddings.aembed_query(querytext)
    response = await client.query_points(
        collection_name=collection_name,
        query=vect,
        using=DENSE_VECTOR_NAME,
        query_filter=scope_filter(student_id, document_id),
        with_payload=payload,
        limit=limit,
    )
    return response.points
