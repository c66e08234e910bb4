"""MCP server entry point exposing vector retrieval tools."""

from __future__ import annotations

import asyncio
import inspect
import os
import sys
from collections.abc import Callable, Coroutine
from importlib import metadata
from typing import Any, cast

from loguru import logger

from vector_retrieval import knowledge
from vector_retrieval.config import load_config
from vector_retrieval.errors import RetrievalError
from vector_retrieval.knowledge import RetrievalOptions
from vector_retrieval.service import RetrievalService

FastMCP: type[Any] | None = None

__all__ = [
    "run_server",
    "run",
    "register_tools",
    "__version__",
    "FastMCP",
    "RetrievalService",
]


def _resolve_version() -> str:
    """Return the installed distribution version or fall back to the project default."""

    try:
        return metadata.version("vector-retrieval-mcp")
    except metadata.PackageNotFoundError:
        return "0.1.0"


__version__ = _resolve_version()


def _import_fastmcp() -> type[Any]:
    """Import FastMCP lazily so tests can stub the implementation."""

    global FastMCP
    if FastMCP is not None:
        return FastMCP

    try:
        import fastmcp
        from fastmcp import FastMCP as FastMCPClass

        # Disable banner for stdio transport compatibility
        fastmcp.settings.show_cli_banner = False
    except ModuleNotFoundError as exc:  # pragma: no cover - exercised in tests
        raise ImportError(
            "FastMCP is required to run the retrieval MCP server. Install `fastmcp` to proceed."
        ) from exc

    FastMCP = cast(type[Any], FastMCPClass)
    return FastMCP


def register_tools(server: Any, service: RetrievalService) -> None:
    """Register the retrieval and knowledge tools on a FastMCP server."""

    @server.tool()  # type: ignore[misc]
    async def retrieve_information(
        query: str, limit: int = 3, score_threshold: float = 0.7
    ) -> dict[str, Any]:
        """Retrieve information from the vector database by semantic similarity.

        Args:
            query: The search query for retrieval
            limit: Number of results to retrieve (default 3)
            score_threshold: Minimum similarity score threshold (0-1, default 0.7)

        Returns:
            Dictionary with:
            - results: List of matches, each with `text` and `metadata`
              (`source`, `score` and any stored fields)
            - error: Present only when the search failed
        """
        logger.info(f"retrieve_information called: query='{query}', limit={limit}")
        try:
            results = await service.search(query, limit, score_threshold)
        except RetrievalError as exc:
            logger.error(f"Error during vector search: {exc}")
            return {"results": [], "error": f"Failed to retrieve information: {exc}"}

        return {"results": [result.model_dump() for result in results]}

    @server.tool()  # type: ignore[misc]
    async def store_knowledge(
        content: str,
        domain: str,
        knowledge_type: str,
        context: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Store knowledge, insights, and experiences in a specific domain.

        This includes best practices, lessons learned, understandings,
        experiences, and solutions.

        Args:
            content: The knowledge content to store
            domain: The knowledge domain this belongs to
            knowledge_type: One of best_practice, lesson_learned, insight,
                experience, solution, understanding, pattern, anti_pattern,
                tip, troubleshooting
            context: Situation, impact, prerequisites and related_topics
            metadata: Source, timestamp, confidence (0-1) and verified flag

        Returns:
            Dictionary with success flag, document_id, domain, knowledge_type, message
        """
        logger.info(f"store_knowledge called: domain={domain}, type={knowledge_type}")
        try:
            return await knowledge.store_knowledge(
                service, content, domain, knowledge_type, context=context, metadata=metadata
            )
        except Exception as exc:
            logger.exception(f"Failed to store knowledge: {exc}")
            raise

    @server.tool()  # type: ignore[misc]
    async def retrieve_knowledge_context(
        query: str,
        domains: list[str] | None = None,
        knowledge_types: list[str] | None = None,
        context: dict[str, Any] | None = None,
        max_results: int = 5,
        min_confidence: float = 0.7,
        include_context: bool = True,
        prioritize_recent: bool = True,
    ) -> dict[str, Any]:
        """Retrieve relevant knowledge and context for a task or query.

        Args:
            query: The current task or query to find relevant knowledge for
            domains: Optional domains to search in (all when omitted)
            knowledge_types: Optional knowledge types to include
            context: Current situation, related topics and constraints
            max_results: Maximum number of results (default 5)
            min_confidence: Minimum similarity threshold (default 0.7)
            include_context: Include stored context with each result
            prioritize_recent: Order results newest first

        Returns:
            Dictionary with relevant_knowledge, current_context and metadata
        """
        logger.info(f"retrieve_knowledge_context called: query='{query}'")
        try:
            return await knowledge.retrieve_knowledge_context(
                service,
                query,
                domains=domains,
                knowledge_types=knowledge_types,
                context=context,
                options=RetrievalOptions(
                    max_results=max_results,
                    min_confidence=min_confidence,
                    include_context=include_context,
                    prioritize_recent=prioritize_recent,
                ),
            )
        except Exception as exc:
            logger.exception(f"Failed to retrieve knowledge context: {exc}")
            raise


async def run_server() -> None:
    """Run the MCP server event loop."""

    config = load_config(os.environ.get("RETRIEVAL_CONFIG_NAME", "default"))
    fastmcp_class = _import_fastmcp()

    async with RetrievalService(config) as service:
        server = _instantiate_fastmcp(
            fastmcp_class,
            server_id="vector-retrieval-server",
            name="Vector Retrieval Server",
            version=__version__,
            description="Semantic retrieval over Qdrant or Chroma vector stores.",
        )
        register_tools(server, service)
        logger.info("Vector Retrieval Server running on stdio")
        await server.run_async()


def run(main: Callable[[], Coroutine[Any, Any, None]] | None = None) -> None:
    """Synchronous helper for CLI entry points."""
    logger.remove()
    logger.add(sys.stderr, level=os.environ.get("RETRIEVAL_LOG_LEVEL", "INFO").upper())

    entry = main or run_server
    try:
        asyncio.run(entry())
    except KeyboardInterrupt:
        logger.warning("MCP server interrupted by user.")
    except Exception as exc:  # noqa: BLE001
        logger.exception("Fatal error running server: {}", exc)
        raise


def _instantiate_fastmcp(class_: type[Any], **metadata: Any) -> Any:
    signature = inspect.signature(class_.__init__)
    parameters = signature.parameters

    filtered: dict[str, Any] = {key: value for key, value in metadata.items() if key in parameters}

    if "server_id" in metadata and "server_id" not in filtered and "id" in parameters:
        filtered["id"] = metadata["server_id"]

    if not filtered and any(
        param.kind == inspect.Parameter.VAR_KEYWORD for param in parameters.values()
    ):
        filtered = metadata

    return class_(**filtered)
