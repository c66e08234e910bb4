"""Retrieval facade: one entry point over whichever vector store is configured."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from types import TracebackType
from typing import Any

from loguru import logger

from vector_retrieval.config import RetrievalConfig
from vector_retrieval.embedding import BaseEmbedding, EmbeddingClient, create_embedding_client
from vector_retrieval.errors import NotInitialized
from vector_retrieval.index import StoreBackend, VectorStoreAdapter, create_adapter
from vector_retrieval.ingestion import IngestionPipeline
from vector_retrieval.models import Document, IngestionReport, SearchResult, new_document_id

AdapterFactory = Callable[[RetrievalConfig], VectorStoreAdapter]


def _default_adapter_factory(config: RetrievalConfig) -> VectorStoreAdapter:
    return create_adapter(config.store, config.embedding.dimensions)


class RetrievalService:
    """Semantic search and ingestion over the configured vector store.

    The backend is chosen once, from `config.store.backend`, when the service is
    built; an unknown name falls back to Qdrant. Call `initialize()` before
    `search()` or `upsert()`.

    Example:
        >>> service = RetrievalService(load_config("default"))
        >>> await service.initialize()
        >>> results = await service.search("retry policies", limit=5)
    """

    def __init__(
        self,
        config: RetrievalConfig | None = None,
        *,
        embedding_client: EmbeddingClient | None = None,
        adapter_factory: AdapterFactory | None = None,
    ):
        """Initialize the service without touching the network.

        Args:
            config: Retrieval configuration (defaults apply when None)
            embedding_client: Embedding client override (defaults to the
                client selected by `config.embedding.model`)
            adapter_factory: Adapter constructor override, called by `initialize`
        """
        self.config = config or RetrievalConfig()
        self.backend = StoreBackend.resolve(self.config.store.backend)
        self.embedding_client: EmbeddingClient = embedding_client or create_embedding_client(
            self.config.embedding
        )
        self._adapter_factory = adapter_factory or _default_adapter_factory
        self._adapter: VectorStoreAdapter | None = None
        self._pipeline: IngestionPipeline | None = None
        logger.info(f"Using database type: {self.backend.value}")

    @property
    def initialized(self) -> bool:
        return self._adapter is not None

    @property
    def adapter(self) -> VectorStoreAdapter:
        if self._adapter is None:
            raise NotInitialized("RetrievalService.initialize() must be called first")
        return self._adapter

    @property
    def fallback_count(self) -> int:
        """Number of embeddings replaced by fallback vectors so far."""
        if isinstance(self.embedding_client, BaseEmbedding):
            return self.embedding_client.fallback_count
        return 0

    async def initialize(self) -> None:
        """Build the adapter and make sure its collection exists.

        Raises:
            ConfigurationError: If the collection dimensionality is invalid
            BackendUnavailable: If the vector store cannot be reached
        """
        if self._adapter is not None:
            logger.debug("RetrievalService already initialized")
            return

        config = self.config.model_copy(
            update={"store": self.config.store.model_copy(update={"backend": self.backend.value})}
        )
        adapter = self._adapter_factory(config)
        try:
            await adapter.ensure_collection()
        except Exception:
            await adapter.close()
            raise

        self._adapter = adapter
        self._pipeline = IngestionPipeline(
            embedding_client=self.embedding_client,
            adapter=adapter,
            batch_size=self.config.ingestion.batch_size,
        )
        logger.info(
            f"Retrieval service ready ({self.backend.value}, "
            f"collection={self.config.store.collection_name})"
        )

    async def search(
        self, query: str, limit: int = 3, score_threshold: float = 0.7
    ) -> list[SearchResult]:
        """Embed the query text and return the most similar stored documents.

        Args:
            query: Natural language query
            limit: Maximum number of results
            score_threshold: Minimum normalized score (0-1, higher is better)

        Returns:
            Results sorted by descending score; empty when nothing qualifies
        """
        adapter = self.adapter
        vector = await self.embedding_client.embed(query)
        results = await adapter.query(vector, limit, score_threshold)
        logger.debug(f"Search returned {len(results)} results for query of {len(query)} chars")
        return results

    async def upsert(self, documents: Sequence[Document]) -> IngestionReport:
        """Embed and store documents through the batched ingestion pipeline.

        Raises:
            NotInitialized: If `initialize()` has not run
            PartialIngestionFailure: If a batch fails mid-way
        """
        if self._pipeline is None:
            raise NotInitialized("RetrievalService.initialize() must be called first")
        return await self._pipeline.ingest(documents)

    async def store_domain_knowledge(
        self, content: str, domain: str, metadata: dict[str, Any] | None = None
    ) -> str:
        """Store one piece of domain knowledge and return its document id.

        Args:
            content: Text to store
            domain: Knowledge domain, kept in the metadata as `domain`
            metadata: Extra metadata; its `source` (if any) becomes the
                document source, otherwise the domain does

        Returns:
            The generated document id
        """
        fields = dict(metadata or {})
        source = fields.pop("source", None) or domain
        document = Document(
            id=new_document_id(),
            text=content,
            source=source,
            metadata={**fields, "domain": domain},
        )
        await self.upsert([document])
        logger.info(f"Stored knowledge {document.id} in domain {domain!r}")
        return document.id

    async def health_check(self) -> bool:
        if self._adapter is None:
            return False
        return await self._adapter.health_check()

    async def close(self) -> None:
        """Release the vector store and embedding provider connections."""
        if self._adapter is not None:
            await self._adapter.close()
            self._adapter = None
            self._pipeline = None
        await self.embedding_client.close()

    async def __aenter__(self) -> RetrievalService:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
