"""Unit tests for the document importer CLI."""

import json
from unittest.mock import AsyncMock

import pytest
from click.testing import CliRunner

from vector_retrieval import importer
from vector_retrieval.config import RetrievalConfig
from vector_retrieval.embedding import EmbeddingConfig
from vector_retrieval.errors import BackendUnavailable
from vector_retrieval.importer import (
    import_documents,
    load_documents,
    main,
    read_text_document,
    store_text_file,
)
from vector_retrieval.models import IngestionReport


@pytest.fixture
def documents_file(tmp_path):
    path = tmp_path / "documents.json"
    path.write_text(
        json.dumps(
            [
                {"id": 1, "text": "first", "source": "faq", "metadata": {"lang": "en"}},
                {"text": "second", "source": None},
            ]
        )
    )
    return path


class TestLoadDocuments:
    """Tests for JSON document parsing."""

    def test_parses_list(self, documents_file):
        documents = load_documents(documents_file)

        assert [d.text for d in documents] == ["first", "second"]
        assert documents[0].id == "1"
        assert documents[0].metadata == {"lang": "en"}
        assert documents[1].source == ""
        assert documents[1].id

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="not valid JSON"):
            load_documents(path)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "object.json"
        path.write_text(json.dumps({"text": "x"}))
        with pytest.raises(ValueError, match="JSON list"):
            load_documents(path)

    def test_missing_text(self, tmp_path):
        path = tmp_path / "missing.json"
        path.write_text(json.dumps([{"id": "a"}]))
        with pytest.raises(ValueError, match="Document #0"):
            load_documents(path)


class TestReadTextDocument:
    """Tests for text file metadata extraction."""

    def test_text_file(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("retry with backoff")

        content, metadata = read_text_document(path)

        assert content == "retry with backoff"
        assert metadata["source"] == "documentation"
        assert metadata["file_name"] == "notes.txt"
        assert metadata["file_extension"] == ".txt"
        assert metadata["file_size"] == len("retry with backoff")
        assert metadata["content_type"] == "text/plain"
        assert metadata["last_modified"]

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "scan.pdf"
        path.write_bytes(b"%PDF")
        with pytest.raises(ValueError, match="Unsupported file type"):
            read_text_document(path)


class TestImportFunctions:
    """Tests for the async import helpers."""

    @pytest.mark.asyncio
    async def test_import_documents(self, documents_file):
        service = AsyncMock()
        service.upsert.return_value = IngestionReport(total=2, committed=2, batches=1)

        report = await import_documents(service, documents_file)

        assert report.committed == 2
        [documents] = service.upsert.call_args.args
        assert len(documents) == 2

    @pytest.mark.asyncio
    async def test_store_text_file(self, tmp_path):
        path = tmp_path / "guide.md"
        path.write_text("# Guide")
        service = AsyncMock()
        service.store_domain_knowledge.return_value = "doc-1"

        document_id = await store_text_file(service, path, "docs")

        assert document_id == "doc-1"
        content, domain, metadata = service.store_domain_knowledge.call_args.args
        assert content == "# Guide"
        assert domain == "docs"
        assert metadata["content_type"] == "text/markdown"


class TestCli:
    """Tests for the click entry point."""

    @pytest.fixture
    def stub_config(self, monkeypatch):
        captured = {}

        def fake_load_config(config_name, overrides=None):
            captured["config_name"] = config_name
            captured["overrides"] = overrides
            return RetrievalConfig(
                embedding=EmbeddingConfig(model="stub/local", dimensions=128),
            )

        monkeypatch.setattr(importer, "load_config", fake_load_config)
        return captured

    def test_requires_an_input(self):
        result = CliRunner().invoke(main, [])
        assert result.exit_code == 2
        assert "Provide --file" in result.output

    def test_imports_json_file(self, documents_file, stub_config):
        result = CliRunner().invoke(
            main, ["--file", str(documents_file), "--override", "store.collection_name=cli"]
        )

        assert result.exit_code == 0, result.output
        assert stub_config["config_name"] == "default"
        assert stub_config["overrides"] == ["store.collection_name=cli"]

    def test_backend_failure_exits_nonzero(self, documents_file, stub_config, monkeypatch):
        async def failing(service, path):
            raise BackendUnavailable("qdrant", "upsert", "connection refused")

        monkeypatch.setattr(importer, "import_documents", failing)

        result = CliRunner().invoke(main, ["--file", str(documents_file)])

        assert result.exit_code == 1
