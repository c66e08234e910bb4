"""Backend-agnostic semantic retrieval.

This package turns documents into embeddings, stores them in Qdrant or Chroma,
and answers similarity queries with one normalized result shape. The MCP server
in `retrieval_mcp` consumes it as a service layer.

Architecture:
    - embedding: Provider-agnostic embedding client with fallback vectors
    - index: Qdrant/Chroma adapters with score normalization
    - ingestion: Batched, bounded-concurrency ingestion pipeline
    - service: Retrieval facade selecting one adapter from configuration
    - knowledge: Knowledge capture/recall helpers over the facade
    - models: Pydantic schemas for documents, points and search results

Usage:
    >>> from vector_retrieval import RetrievalService, load_config
    >>> service = RetrievalService(load_config("default"))
    >>> await service.initialize()
    >>> results = await service.search("protein aggregation in neurons", limit=10)
"""

__version__ = "0.1.0"

from vector_retrieval.config import RetrievalConfig, load_config
from vector_retrieval.errors import (
    BackendUnavailable,
    ConfigurationError,
    EmbeddingProviderError,
    NotInitialized,
    PartialIngestionFailure,
    RetrievalError,
)
from vector_retrieval.models import Document, IngestionReport, SearchResult, StoredPoint
from vector_retrieval.service import RetrievalService

__all__ = [
    "BackendUnavailable",
    "ConfigurationError",
    "Document",
    "EmbeddingProviderError",
    "IngestionReport",
    "NotInitialized",
    "PartialIngestionFailure",
    "RetrievalConfig",
    "RetrievalError",
    "RetrievalService",
    "SearchResult",
    "StoredPoint",
    "load_config",
]
