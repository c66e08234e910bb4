"""Sanity tests for the retrieval package skeleton."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, cast

import pytest

import vector_retrieval
from retrieval_mcp import run_server
from vector_retrieval.errors import ConfigurationError, RetrievalError


def test_public_api_exports() -> None:
    """Given the package, when imported, then the facade and error family
    are exposed at the top level."""
    for name in vector_retrieval.__all__:
        assert hasattr(vector_retrieval, name), name
    assert issubclass(vector_retrieval.BackendUnavailable, RetrievalError)
    assert issubclass(vector_retrieval.PartialIngestionFailure, RetrievalError)


def test_default_config_file_present() -> None:
    """Given the repository, when locating the Hydra config, then the default
    retrieval config exists."""
    repo_root = Path(__file__).parent.parent
    assert (repo_root / "conf" / "retrieval" / "default.yaml").is_file()


def test_run_server_surfaces_missing_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Given a missing config directory, when `run_server()` is awaited,
    then a `FileNotFoundError` surfaces."""
    from retrieval_mcp import mcp_server

    mcp_module = cast(Any, mcp_server)

    def mock_load_config(config_name: str) -> None:
        raise FileNotFoundError("Config directory not found: conf/retrieval")

    monkeypatch.setattr(mcp_module, "load_config", mock_load_config)

    with pytest.raises(FileNotFoundError, match="Config directory not found"):
        asyncio.run(run_server())


def test_run_server_surfaces_invalid_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Given an invalid config, when `run_server()` is awaited, then the
    configuration error propagates before any tool is registered."""
    from retrieval_mcp import mcp_server

    mcp_module = cast(Any, mcp_server)

    def mock_load_config(config_name: str) -> None:
        raise ConfigurationError("Invalid retrieval configuration")

    monkeypatch.setattr(mcp_module, "load_config", mock_load_config)

    with pytest.raises(ConfigurationError):
        asyncio.run(run_server())
