"""Error taxonomy for the retrieval core.

Every error raised by the core derives from `RetrievalError` so callers (the MCP
server, the importer) can catch the whole family at one seam.
"""

from __future__ import annotations


class RetrievalError(Exception):
    """Base class for retrieval-core failures."""


class ConfigurationError(RetrievalError):
    """Invalid or inconsistent configuration (e.g. vector dimensionality).

    Fatal: surfaces at `initialize` or on the first mismatched vector and is
    never retried.
    """


class EmbeddingProviderError(RetrievalError):
    """Embedding provider failed to return a vector.

    Raised inside the provider only; the provider recovers by substituting a
    fallback vector, so this never reaches callers of `embed`.
    """


class BackendUnavailable(RetrievalError):
    """Network or protocol failure talking to the vector store."""

    def __init__(self, backend: str, operation: str, detail: str | None = None) -> None:
        self.backend = backend
        self.operation = operation
        message = f"{backend} backend failed during {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NotInitialized(RetrievalError):
    """`search` or `upsert` was called before `initialize`."""


class PartialIngestionFailure(RetrievalError):
    """Ingestion aborted after some batches were committed.

    Attributes:
        committed: Number of documents upserted before the failure
        cause: The error that aborted the remaining batches
    """

    def __init__(self, committed: int, cause: BaseException) -> None:
        self.committed = committed
        self.cause = cause
        super().__init__(
            f"Ingestion aborted after {committed} committed documents: "
            f"{type(cause).__name__}: {cause}"
        )
