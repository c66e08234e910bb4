"""Vector store adapters and similarity search.

Provides one interface over Qdrant and Chroma with:
- Idempotent collection creation with a fixed dimensionality and cosine metric
- Batch upsert keyed by document id
- Similarity queries normalized to "higher is better" scores, thresholded and
  sorted descending regardless of backend
"""

from __future__ import annotations

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar
from urllib.parse import urlparse

import chromadb
from chromadb.api.types import Documents, EmbeddingFunction, Embeddings
from loguru import logger
from qdrant_client import AsyncQdrantClient, models

from vector_retrieval.config import StoreConfig
from vector_retrieval.errors import BackendUnavailable, ConfigurationError, NotInitialized
from vector_retrieval.models import SearchResult, StoredPoint

# Namespace for mapping caller ids that are not UUIDs onto Qdrant point ids
POINT_ID_NAMESPACE = uuid.UUID("6f1c1f3e-5b8e-4c55-9a64-0d7c3a7e2b10")

JSON_FIELDS_KEY = "_json_fields"


class StoreBackend(str, Enum):
    """Supported vector store backends."""

    QDRANT = "qdrant"
    CHROMA = "chroma"

    @classmethod
    def resolve(cls, name: str | None) -> StoreBackend:
        """Map a configured backend name onto a backend, defaulting to Qdrant."""
        normalized = (name or "").strip().lower()
        for backend in cls:
            if backend.value == normalized:
                return backend
        logger.warning(f"Unrecognized vector store backend {name!r}; using qdrant")
        return cls.QDRANT


class VectorStoreAdapter(ABC):
    """Abstract base class for vector store implementations."""

    backend: ClassVar[str]

    def __init__(self, collection_name: str, dimensions: int):
        self.collection_name = collection_name
        self.dimensions = dimensions

    @abstractmethod
    async def ensure_collection(self) -> None:
        """Create the configured collection if it does not exist yet.

        Raises:
            ConfigurationError: If the dimensionality is invalid or differs
                from the existing collection
            BackendUnavailable: If listing or creating collections fails
        """
        ...

    @abstractmethod
    async def upsert_batch(self, points: list[StoredPoint]) -> None:
        """Insert or overwrite points keyed by id.

        Args:
            points: Points to store; an empty list is a no-op
        """
        ...

    @abstractmethod
    async def query(
        self, vector: list[float], limit: int, score_threshold: float
    ) -> list[SearchResult]:
        """Return at most `limit` results scoring at least `score_threshold`.

        Returns:
            Results sorted by descending normalized score
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the backend is reachable.

        Returns:
            True if healthy, False otherwise
        """
        ...

    async def close(self) -> None:
        return None

    def _check_dimensions(self, vector: list[float]) -> None:
        if len(vector) != self.dimensions:
            raise ConfigurationError(
                f"Vector has {len(vector)} dimensions but collection "
                f"{self.collection_name!r} expects {self.dimensions}"
            )

    def _check_collection_dimensions(self, existing: Any) -> None:
        if isinstance(existing, int) and existing != self.dimensions:
            raise ConfigurationError(
                f"Collection {self.collection_name!r} was created with {existing} "
                f"dimensions, but the embedding model produces {self.dimensions}"
            )

    def _validate_dimensions(self) -> None:
        if self.dimensions <= 0:
            raise ConfigurationError(f"dimensions must be > 0, got {self.dimensions}")

    def _unavailable(self, operation: str, exc: Exception) -> BackendUnavailable:
        logger.error(f"{self.backend} {operation} failed: {exc}")
        return BackendUnavailable(self.backend, operation, str(exc))

    @staticmethod
    def _rank(
        results: list[SearchResult], limit: int, score_threshold: float
    ) -> list[SearchResult]:
        kept = [result for result in results if result.score >= score_threshold]
        kept.sort(key=lambda result: result.score, reverse=True)
        return kept[:limit]


def qdrant_point_id(document_id: str) -> str:
    """Return a Qdrant-compatible point id for a document id.

    UUIDs pass through; any other id maps to a stable uuid5.
    """
    try:
        return str(uuid.UUID(document_id))
    except ValueError:
        return str(uuid.uuid5(POINT_ID_NAMESPACE, document_id))


class QdrantAdapter(VectorStoreAdapter):
    """Qdrant vector store implementation."""

    backend = "qdrant"

    def __init__(
        self,
        collection_name: str,
        dimensions: int,
        *,
        url: str | None = None,
        api_key: str | None = None,
        client: Any | None = None,
    ):
        """Initialize Qdrant collection client.

        Args:
            collection_name: Name of Qdrant collection
            dimensions: Vector size of the collection
            url: Qdrant server URL; None runs an in-process store
            api_key: Optional API key for authentication
            client: Pre-built async client (tests)
        """
        super().__init__(collection_name, dimensions)
        if client is None:
            if url:
                client = AsyncQdrantClient(url=url, api_key=api_key)
            else:
                client = AsyncQdrantClient(location=":memory:")
        self.client = client
        self._ready = False

    async def ensure_collection(self) -> None:
        self._validate_dimensions()
        if self._ready:
            return

        try:
            response = await self.client.get_collections()
            exists = any(item.name == self.collection_name for item in response.collections)
            existing_size = None
            if exists:
                info = await self.client.get_collection(collection_name=self.collection_name)
                existing_size = getattr(info.config.params.vectors, "size", None)
            else:
                logger.info(f"Creating Qdrant collection {self.collection_name}...")
                await self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=models.VectorParams(
                        size=self.dimensions,
                        distance=models.Distance.COSINE,
                    ),
                )
        except Exception as exc:
            raise self._unavailable("ensure_collection", exc) from exc

        if exists:
            self._check_collection_dimensions(existing_size)
            logger.info(f"Qdrant collection {self.collection_name} already exists.")
        else:
            logger.info(f"Qdrant collection {self.collection_name} created.")
        self._ready = True

    async def upsert_batch(self, points: list[StoredPoint]) -> None:
        if not points:
            return

        structs = []
        for point in points:
            self._check_dimensions(point.vector)
            structs.append(
                models.PointStruct(
                    id=qdrant_point_id(point.id),
                    vector=point.vector,
                    payload={**point.payload, "document_id": point.id},
                )
            )

        try:
            await self.client.upsert(
                collection_name=self.collection_name,
                points=structs,
                wait=True,
            )
        except Exception as exc:
            raise self._unavailable("upsert", exc) from exc

    async def query(
        self, vector: list[float], limit: int, score_threshold: float
    ) -> list[SearchResult]:
        if limit <= 0:
            return []
        self._check_dimensions(vector)

        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
            )
        except Exception as exc:
            raise self._unavailable("query", exc) from exc

        # Qdrant cosine scores are already "higher is better"
        results = [
            SearchResult.from_payload(point.payload, point.score)
            for point in getattr(response, "points", response)
        ]
        return self._rank(results, limit, score_threshold)

    async def health_check(self) -> bool:
        try:
            await self.client.get_collections()
            return True
        except Exception:
            return False

    async def close(self) -> None:
        await self.client.close()


class PrecomputedEmbeddingFunction(EmbeddingFunction[Documents]):
    """Chroma embedding function that only returns vectors registered up front.

    Chroma's SDK requires an embedding function on every collection, but the
    retrieval core always computes embeddings itself and passes them along.
    """

    def __init__(self) -> None:
        self._vectors: dict[str, list[float]] = {}

    @staticmethod
    def name() -> str:
        return "vector-retrieval-precomputed"

    def register(self, texts: list[str], vectors: list[list[float]]) -> None:
        self._vectors.update(zip(texts, vectors, strict=True))

    def forget(self, texts: list[str]) -> None:
        for text in texts:
            self._vectors.pop(text, None)

    def __call__(self, input: Documents) -> Embeddings:  # noqa: A002 - Chroma's signature
        missing = [text for text in input if text not in self._vectors]
        if missing:
            raise ValueError(f"No precomputed embedding for {len(missing)} document(s)")
        return [self._vectors[text] for text in input]  # type: ignore[misc]


def encode_metadata(payload: dict[str, Any]) -> dict[str, Any]:
    """Flatten a payload into Chroma-compatible scalar metadata.

    Mappings and lists are JSON-encoded and their keys recorded under
    `JSON_FIELDS_KEY`; None values are dropped.
    """
    encoded: dict[str, Any] = {}
    json_fields: list[str] = []
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, str | int | float | bool):
            encoded[key] = value
        else:
            encoded[key] = json.dumps(value, default=str)
            json_fields.append(key)
    if json_fields:
        encoded[JSON_FIELDS_KEY] = json.dumps(json_fields)
    return encoded


def decode_metadata(metadata: dict[str, Any] | None) -> dict[str, Any]:
    """Reverse `encode_metadata`."""
    decoded = dict(metadata or {})
    json_fields = decoded.pop(JSON_FIELDS_KEY, None)
    if json_fields:
        for key in json.loads(json_fields):
            if isinstance(decoded.get(key), str):
                decoded[key] = json.loads(decoded[key])
    return decoded


def _connect_chroma(url: str | None) -> Any:
    if not url:
        return chromadb.EphemeralClient()
    parsed = urlparse(url)
    return chromadb.HttpClient(
        host=parsed.hostname or "localhost",
        port=parsed.port or 8000,
        ssl=parsed.scheme == "https",
    )


class ChromaAdapter(VectorStoreAdapter):
    """Chroma vector store implementation.

    Chroma's Python client is synchronous, so every call runs in a worker
    thread to keep the event loop free.
    """

    backend = "chroma"

    def __init__(
        self,
        collection_name: str,
        dimensions: int,
        *,
        url: str | None = None,
        client: Any | None = None,
    ):
        """Initialize Chroma adapter.

        Args:
            collection_name: Name of Chroma collection
            dimensions: Vector size recorded in the collection metadata
            url: Chroma server URL; None runs an in-process store
            client: Pre-built Chroma client (tests)
        """
        super().__init__(collection_name, dimensions)
        self.url = url
        self.client = client
        self.embedding_function = PrecomputedEmbeddingFunction()
        self._collection: Any | None = None

    async def ensure_collection(self) -> None:
        self._validate_dimensions()
        if self._collection is not None:
            return

        try:
            if self.client is None:
                self.client = await asyncio.to_thread(_connect_chroma, self.url)
            listed = await asyncio.to_thread(self.client.list_collections)
            exists = self.collection_name in {_collection_name(item) for item in listed}
            if exists:
                collection = await asyncio.to_thread(
                    self.client.get_collection,
                    name=self.collection_name,
                    embedding_function=self.embedding_function,
                )
            else:
                logger.info(f"Creating Chroma collection {self.collection_name}...")
                collection = await asyncio.to_thread(
                    self.client.create_collection,
                    name=self.collection_name,
                    metadata={
                        "description": "Vector retrieval collection",
                        "hnsw:space": "cosine",
                        "dimension": self.dimensions,
                    },
                    embedding_function=self.embedding_function,
                )
        except Exception as exc:
            raise self._unavailable("ensure_collection", exc) from exc

        if exists:
            metadata = getattr(collection, "metadata", None) or {}
            self._check_collection_dimensions(metadata.get("dimension"))
            logger.info(f"Chroma collection {self.collection_name} already exists.")
        else:
            logger.info(f"Chroma collection {self.collection_name} created.")
        self._collection = collection

    async def upsert_batch(self, points: list[StoredPoint]) -> None:
        if not points:
            return
        collection = self._require_collection()
        for point in points:
            self._check_dimensions(point.vector)

        # Chroma rejects duplicate ids in one call; the last occurrence wins.
        unique = list({point.id: point for point in points}.values())

        ids: list[str] = []
        vectors: list[list[float]] = []
        documents: list[str] = []
        metadatas: list[dict[str, Any]] = []
        for point in unique:
            fields = dict(point.payload)
            text = fields.pop("text", None)
            ids.append(point.id)
            vectors.append(point.vector)
            documents.append("" if text is None else str(text))
            metadatas.append(encode_metadata(fields))

        self.embedding_function.register(documents, vectors)
        try:
            await asyncio.to_thread(
                collection.upsert,
                ids=ids,
                embeddings=vectors,
                documents=documents,
                metadatas=metadatas,
            )
        except Exception as exc:
            raise self._unavailable("upsert", exc) from exc
        finally:
            self.embedding_function.forget(documents)

    async def query(
        self, vector: list[float], limit: int, score_threshold: float
    ) -> list[SearchResult]:
        if limit <= 0:
            return []
        collection = self._require_collection()
        self._check_dimensions(vector)

        try:
            raw = await asyncio.to_thread(
                collection.query,
                query_embeddings=[vector],
                n_results=limit,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise self._unavailable("query", exc) from exc

        ids = _first_batch(raw.get("ids"))
        documents = _first_batch(raw.get("documents"))
        metadatas = _first_batch(raw.get("metadatas"))
        distances = _first_batch(raw.get("distances"))

        results: list[SearchResult] = []
        for idx, distance in enumerate(distances):
            payload = decode_metadata(metadatas[idx] if idx < len(metadatas) else None)
            payload["text"] = documents[idx] if idx < len(documents) else None
            if idx < len(ids):
                payload.setdefault("document_id", str(ids[idx]))
            results.append(SearchResult.from_payload(payload, _distance_to_score(distance)))
        # Chroma has no server-side score threshold
        return self._rank(results, limit, score_threshold)

    async def health_check(self) -> bool:
        if self.client is None:
            return False
        try:
            await asyncio.to_thread(self.client.list_collections)
            return True
        except Exception:
            return False

    async def close(self) -> None:
        self._collection = None

    def _require_collection(self) -> Any:
        if self._collection is None:
            raise NotInitialized(
                f"Chroma collection {self.collection_name!r} not initialized; "
                "call ensure_collection() first"
            )
        return self._collection


def _distance_to_score(distance: Any) -> float:
    """Convert a cosine distance into a similarity clamped to [0, 1]."""
    score = 1.0 - float(distance if distance is not None else 0.0)
    return min(1.0, max(0.0, score))


def _collection_name(item: Any) -> str | None:
    if isinstance(item, str):
        return item
    return getattr(item, "name", None)


def _as_list(values: Any) -> list[Any]:
    if values is None:
        return []
    if hasattr(values, "tolist"):
        values = values.tolist()
    return list(values)


def _first_batch(values: Any) -> list[Any]:
    """Return the row for the single submitted query from Chroma's nested lists."""
    outer = _as_list(values)
    if not outer:
        return []
    return _as_list(outer[0])


def create_adapter(config: StoreConfig, dimensions: int) -> VectorStoreAdapter:
    """Factory function to create the adapter selected by the store config.

    Args:
        config: Vector store configuration
        dimensions: Embedding dimensionality of the collection

    Returns:
        Adapter for the resolved backend
    """
    backend = StoreBackend.resolve(config.backend)
    if backend is StoreBackend.CHROMA:
        return ChromaAdapter(config.collection_name, dimensions, url=config.chroma_url)
    return QdrantAdapter(
        config.collection_name,
        dimensions,
        url=config.qdrant_url,
        api_key=config.qdrant_api_key,
    )
