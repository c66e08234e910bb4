"""Pydantic models for retrieval data structures.

All data flowing through the retrieval core is validated against these schemas.
Documents are immutable once built; search results always carry a string
`source` and a float `score` inside their metadata.
"""

from __future__ import annotations

import math
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_document_id() -> str:
    """Return a fresh opaque document identifier."""
    return uuid4().hex


class Document(BaseModel):
    """A raw document submitted for ingestion.

    Attributes:
        id: Caller-supplied or generated identifier
        text: Text content to embed (may be empty)
        source: Where the document came from (file name, "conversation", ...)
        metadata: Arbitrary extra fields stored alongside the vector
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_document_id, min_length=1)
    text: str
    source: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("source", mode="before")
    @classmethod
    def coerce_source(cls, v: Any) -> str:
        """Accept non-string sources but always store a string."""
        if v is None:
            return ""
        return str(v)


class StoredPoint(BaseModel):
    """One (id, vector, payload) triple handed to a vector store adapter.

    Attributes:
        id: Document identifier
        vector: Embedding vector
        payload: `{text, source, **metadata}`
    """

    id: str
    vector: list[float]
    payload: dict[str, Any]

    @field_validator("vector")
    @classmethod
    def validate_vector_values(cls, v: list[float]) -> list[float]:
        """Ensure vector contains valid finite floats."""
        for i, val in enumerate(v):
            if not math.isfinite(val):
                raise ValueError(f"Vector contains non-finite value at index {i}: {val}")
        return v

    @classmethod
    def from_document(cls, document: Document, vector: list[float]) -> StoredPoint:
        payload: dict[str, Any] = {
            **document.metadata,
            "text": document.text,
            "source": document.source,
        }
        return cls(id=document.id, vector=vector, payload=payload)


class SearchResult(BaseModel):
    """A normalized search hit, identical in shape for every backend.

    Attributes:
        text: Stored document text ("" when missing)
        metadata: Stored metadata plus `source` (always a string) and `score`
            (higher is better, approximately 0-1)
    """

    text: str
    metadata: dict[str, Any]

    @property
    def score(self) -> float:
        return float(self.metadata["score"])

    @property
    def source(self) -> str:
        return str(self.metadata["source"])

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None, score: float) -> SearchResult:
        """Build a result from a stored payload, coercing missing fields to ""."""
        fields = dict(payload or {})
        text = fields.pop("text", None)
        source = fields.pop("source", None)
        return cls(
            text="" if text is None else str(text),
            metadata={
                **fields,
                "source": "" if source is None else str(source),
                "score": float(score),
            },
        )


class IngestionReport(BaseModel):
    """Outcome of a completed ingestion run.

    Attributes:
        total: Number of documents submitted
        committed: Number of documents upserted
        batches: Number of backend batch calls issued
    """

    total: int = Field(ge=0)
    committed: int = Field(ge=0)
    batches: int = Field(ge=0)
