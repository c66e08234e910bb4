"""Batched ingestion of documents into a vector store.

Documents are split into fixed-size groups. Each group is embedded
concurrently, then written with a single `upsert_batch` call, so a run of N
documents costs ceil(N / batch_size) backend round trips and never has more
than one group's worth of embedding requests in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Sequence

from loguru import logger

from vector_retrieval.embedding import EmbeddingClient
from vector_retrieval.errors import PartialIngestionFailure
from vector_retrieval.index import VectorStoreAdapter
from vector_retrieval.models import Document, IngestionReport, StoredPoint

DEFAULT_BATCH_SIZE = 10


def partition(documents: Sequence[Document], batch_size: int) -> Iterator[Sequence[Document]]:
    """Yield consecutive groups of at most `batch_size` documents."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    for start in range(0, len(documents), batch_size):
        yield documents[start : start + batch_size]


class IngestionPipeline:
    """Embeds and upserts documents group by group.

    Groups are processed strictly in order. If a group fails, nothing from it
    is written, the remaining groups are skipped, and a
    `PartialIngestionFailure` reports how many documents were committed.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        adapter: VectorStoreAdapter,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Initialize ingestion pipeline.

        Args:
            embedding_client: Client for generating embeddings
            adapter: Vector store receiving the points
            batch_size: Documents per group (embedding fan-out width)
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.embedding_client = embedding_client
        self.adapter = adapter
        self.batch_size = batch_size

    async def ingest(self, documents: Sequence[Document]) -> IngestionReport:
        """Embed and store all documents.

        Args:
            documents: Documents to ingest, in order

        Returns:
            Report with the number of committed documents and batch calls

        Raises:
            PartialIngestionFailure: If any group's embedding or upsert fails
        """
        total = len(documents)
        batch_count = -(-total // self.batch_size)
        committed = 0
        batches = 0

        logger.info(f"Processing {total} documents in {batch_count} batches...")

        for number, group in enumerate(partition(documents, self.batch_size), start=1):
            logger.debug(f"Processing batch {number}/{batch_count} ({len(group)} documents)...")
            try:
                points = await self._embed_group(group)
                await self.adapter.upsert_batch(points)
            except Exception as exc:
                logger.error(
                    f"Batch {number}/{batch_count} failed after {committed} committed "
                    f"documents: {exc}"
                )
                raise PartialIngestionFailure(committed, exc) from exc

            committed += len(group)
            batches += 1
            logger.debug(f"Batch {number} processed successfully.")

        return IngestionReport(total=total, committed=committed, batches=batches)

    async def _embed_group(self, group: Sequence[Document]) -> list[StoredPoint]:
        # Every embedding in the group settles before an error propagates
        vectors = await asyncio.gather(
            *(self.embedding_client.embed(document.text) for document in group),
            return_exceptions=True,
        )
        for vector in vectors:
            if isinstance(vector, BaseException):
                raise vector

        # gather preserves argument order, pairing each vector with its document
        return [
            StoredPoint.from_document(document, vector)  # type: ignore[arg-type]
            for document, vector in zip(group, vectors, strict=True)
        ]
