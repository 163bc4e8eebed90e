# pyright: reportUnusedImport=false
# flake8: noqa

from .vector_store_qdrant_langchain import (
    AsyncQdrantDocumentRetriever,
)
