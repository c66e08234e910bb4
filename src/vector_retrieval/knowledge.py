"""Knowledge capture and recall on top of the retrieval service.

Knowledge items are ordinary documents whose metadata carries a domain, a
knowledge type, optional context, and provenance fields. The taxonomy is passed
through as metadata; nothing here persists it separately.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from vector_retrieval.models import SearchResult
from vector_retrieval.service import RetrievalService

DEFAULT_KNOWLEDGE_SOURCE = "llm_interaction"
DEFAULT_CONFIDENCE = 0.8


class KnowledgeType(str, Enum):
    """Kinds of knowledge an assistant can store."""

    BEST_PRACTICE = "best_practice"
    LESSON_LEARNED = "lesson_learned"
    INSIGHT = "insight"
    EXPERIENCE = "experience"
    SOLUTION = "solution"
    UNDERSTANDING = "understanding"
    PATTERN = "pattern"
    ANTI_PATTERN = "anti_pattern"
    TIP = "tip"
    TROUBLESHOOTING = "troubleshooting"


class RetrievalOptions(BaseModel):
    """Options for `retrieve_knowledge_context`.

    Attributes:
        max_results: Maximum number of results to request from the store
        min_confidence: Minimum similarity score
        include_context: Attach stored context fields to each result
        prioritize_recent: Order results by timestamp, newest first
    """

    max_results: int = Field(default=5, ge=1, le=100)
    min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    include_context: bool = True
    prioritize_recent: bool = True


async def store_knowledge(
    service: RetrievalService,
    content: str,
    domain: str,
    knowledge_type: KnowledgeType | str,
    context: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Store a knowledge item and describe the outcome.

    Args:
        service: Initialized retrieval service
        content: Knowledge text (best practice, lesson learned, ...)
        domain: Knowledge domain
        knowledge_type: One of `KnowledgeType`
        context: Situation, impact, prerequisites, related topics
        metadata: Source, timestamp, confidence, verified

    Returns:
        Dictionary with `success`, `document_id`, `domain`, `knowledge_type`
        and `message`

    Raises:
        ValueError: If `knowledge_type` is not a known type
    """
    kind = KnowledgeType(knowledge_type)
    supplied = dict(metadata or {})
    fields = {
        **supplied,
        "knowledge_type": kind.value,
        "context": dict(context or {}),
        "source": supplied.get("source") or DEFAULT_KNOWLEDGE_SOURCE,
        "timestamp": supplied.get("timestamp") or datetime.now(UTC).isoformat(),
        "confidence": supplied.get("confidence") or DEFAULT_CONFIDENCE,
        "verified": bool(supplied.get("verified", False)),
    }
    document_id = await service.store_domain_knowledge(content, domain, fields)
    return {
        "success": True,
        "document_id": document_id,
        "domain": domain,
        "knowledge_type": kind.value,
        "message": "Knowledge stored successfully",
    }


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_result(result: SearchResult, include_context: bool) -> dict[str, Any]:
    meta = result.metadata
    item: dict[str, Any] = {
        "content": result.text,
        "type": meta.get("knowledge_type"),
        "domain": meta.get("domain"),
        "confidence": meta.get("score"),
        "timestamp": meta.get("timestamp"),
    }
    if include_context:
        stored = meta.get("context")
        stored = stored if isinstance(stored, dict) else {}
        item["context"] = {
            "situation": stored.get("situation"),
            "impact": stored.get("impact"),
            "prerequisites": stored.get("prerequisites"),
            "related_topics": stored.get("related_topics", stored.get("relatedTopics")),
        }
    return item


async def retrieve_knowledge_context(
    service: RetrievalService,
    query: str,
    domains: list[str] | None = None,
    knowledge_types: list[str] | None = None,
    context: dict[str, Any] | None = None,
    options: RetrievalOptions | None = None,
) -> dict[str, Any]:
    """Find stored knowledge relevant to a task.

    Args:
        service: Initialized retrieval service
        query: Current task or question
        domains: Restrict results to these domains (all when empty)
        knowledge_types: Restrict results to these knowledge types (all when empty)
        context: Caller's current context, echoed back unchanged
        options: Result count, score threshold and formatting options

    Returns:
        Dictionary with `relevant_knowledge`, `current_context` and `metadata`
    """
    opts = options or RetrievalOptions()
    results = await service.search(query, opts.max_results, opts.min_confidence)

    if domains:
        results = [r for r in results if r.metadata.get("domain") in domains]
    if knowledge_types:
        results = [r for r in results if r.metadata.get("knowledge_type") in knowledge_types]

    formatted = [_format_result(result, opts.include_context) for result in results]
    if opts.prioritize_recent:
        oldest = datetime.min.replace(tzinfo=UTC)
        formatted.sort(
            key=lambda item: _parse_timestamp(item["timestamp"]) or oldest,
            reverse=True,
        )

    return {
        "relevant_knowledge": formatted,
        "current_context": dict(context or {}),
        "metadata": {
            "total_results": len(formatted),
            "domains": domains or "all",
            "knowledge_types": knowledge_types or "all",
            "confidence_threshold": opts.min_confidence,
        },
    }
