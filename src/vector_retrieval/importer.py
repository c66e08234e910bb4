"""Import documents into the configured vector store.

Usage:
    vector-retrieval-import --file documents.json
    vector-retrieval-import --text-file notes.txt --domain documentation

The JSON file holds a list of objects with `text` and optional `id`, `source`
and `metadata` fields. A text file is stored as a single knowledge document
together with its file metadata.
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click
from loguru import logger
from pydantic import ValidationError

from vector_retrieval.config import load_config
from vector_retrieval.errors import RetrievalError
from vector_retrieval.models import Document, IngestionReport
from vector_retrieval.service import RetrievalService

TEXT_EXTENSIONS = {".txt": "text/plain", ".md": "text/markdown"}


def load_documents(path: Path) -> list[Document]:
    """Parse a JSON document list.

    Raises:
        ValueError: If the file is not a JSON list of valid documents
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(raw, list):
        raise ValueError(f"{path} must contain a JSON list of documents")

    documents = []
    for position, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Document #{position} in {path} is not an object")
        fields = {key: value for key, value in item.items() if value is not None}
        if "id" in fields:
            fields["id"] = str(fields["id"])
        try:
            documents.append(Document.model_validate(fields))
        except ValidationError as exc:
            raise ValueError(f"Document #{position} in {path} is invalid: {exc}") from exc
    return documents


def read_text_document(path: Path) -> tuple[str, dict[str, Any]]:
    """Read a plain-text file and describe it.

    Returns:
        File content and metadata (source, file name, size, timestamps, type)

    Raises:
        ValueError: For file types other than .txt and .md
    """
    extension = path.suffix.lower()
    if extension not in TEXT_EXTENSIONS:
        raise ValueError(f"Unsupported file type: {path.suffix or '(none)'}")

    stats = path.stat()
    content = path.read_text(encoding="utf-8")
    metadata = {
        "source": "documentation",
        "file_name": path.name,
        "file_extension": extension,
        "file_size": stats.st_size,
        "last_modified": datetime.fromtimestamp(stats.st_mtime, UTC).isoformat(),
        "content_type": TEXT_EXTENSIONS[extension],
    }
    return content, metadata


async def import_documents(service: RetrievalService, path: Path) -> IngestionReport:
    """Load a JSON document list and ingest it."""
    documents = load_documents(path)
    logger.info(f"Importing {len(documents)} documents from {path}...")
    report = await service.upsert(documents)
    logger.success(f"Import completed! {report.committed} documents processed.")
    return report


async def store_text_file(service: RetrievalService, path: Path, domain: str) -> str:
    """Store a text file as one knowledge document and return its id."""
    content, metadata = read_text_document(path)
    document_id = await service.store_domain_knowledge(content, domain, metadata)
    logger.success(f"Stored {path.name} with ID: {document_id} ({len(content)} characters)")
    return document_id


async def _run(
    json_file: Path | None,
    text_file: Path | None,
    domain: str,
    config_name: str,
    overrides: list[str],
) -> None:
    config = load_config(config_name, overrides=overrides)
    async with RetrievalService(config) as service:
        if json_file is not None:
            await import_documents(service, json_file)
        if text_file is not None:
            await store_text_file(service, text_file, domain)
        if service.fallback_count:
            logger.warning(
                f"{service.fallback_count} embeddings used fallback vectors; "
                "check the embedding provider credentials"
            )


@click.command()  # type: ignore[misc]
@click.option(  # type: ignore[misc]
    "--file",
    "json_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with a list of documents",
)
@click.option(  # type: ignore[misc]
    "--text-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Plain-text or Markdown file to store as one document",
)
@click.option(  # type: ignore[misc]
    "--domain",
    default="documentation",
    show_default=True,
    help="Knowledge domain for --text-file",
)
@click.option(  # type: ignore[misc]
    "--config-name",
    default="default",
    show_default=True,
    help="Config file name under conf/retrieval/",
)
@click.option(  # type: ignore[misc]
    "--override",
    "overrides",
    multiple=True,
    help="Hydra override, e.g. store.backend=chroma (repeatable)",
)
@click.option(  # type: ignore[misc]
    "--log-level",
    default="INFO",
    show_default=True,
    help="Log level for stderr output",
)
def main(
    json_file: Path | None,
    text_file: Path | None,
    domain: str,
    config_name: str,
    overrides: tuple[str, ...],
    log_level: str,
) -> None:
    """Import documents into the vector store."""
    logger.remove()
    logger.add(sys.stderr, level=log_level.upper())

    if json_file is None and text_file is None:
        raise click.UsageError("Provide --file and/or --text-file")

    try:
        asyncio.run(_run(json_file, text_file, domain, config_name, list(overrides)))
    except (RetrievalError, ValueError) as exc:
        logger.error(f"Import failed: {exc}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
