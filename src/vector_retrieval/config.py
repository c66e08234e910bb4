"""Configuration management for the retrieval core using Hydra.

All configuration is loaded from YAML files in conf/retrieval/.
This module provides typed config objects and validation.
"""

from pathlib import Path

from hydra import compose, initialize_config_dir
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, Field, ValidationError

from vector_retrieval.embedding import EmbeddingConfig
from vector_retrieval.errors import ConfigurationError


class StoreConfig(BaseModel):
    """Vector store configuration.

    Attributes:
        backend: Store backend name ("qdrant" or "chroma"); anything else
            falls back to qdrant when the service starts
        collection_name: Name of the collection holding the points
        qdrant_url: Qdrant server URL; None selects the in-process store
        qdrant_api_key: API key for hosted Qdrant
        chroma_url: Chroma server URL; None selects the in-process store
    """

    backend: str = "qdrant"
    collection_name: str = Field(default="documents", min_length=1)
    qdrant_url: str | None = None
    qdrant_api_key: str | None = None
    chroma_url: str | None = None


class IngestionConfig(BaseModel):
    """Batched ingestion configuration.

    Attributes:
        batch_size: Number of documents embedded concurrently and upserted per call
    """

    batch_size: int = Field(default=10, ge=1, le=500)


class RetrievalConfig(BaseModel):
    """Top-level configuration for the retrieval service.

    Attributes:
        embedding: Embedding model configuration
        store: Vector store configuration
        ingestion: Ingestion pipeline configuration
    """

    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)


def load_config(
    config_name: str = "default",
    config_path: str | Path | None = None,
    overrides: list[str] | None = None,
) -> RetrievalConfig:
    """Load retrieval configuration from Hydra YAML files.

    Args:
        config_name: Name of config file (without .yaml extension)
        config_path: Path to config directory (defaults to conf/retrieval/)
        overrides: List of config overrides (e.g., ["store.backend=chroma"])

    Returns:
        Validated configuration object

    Raises:
        FileNotFoundError: If the config directory does not exist
        ConfigurationError: If the composed values fail validation

    Example:
        >>> config = load_config("default")
        >>> config.embedding.model
        'openai/text-embedding-3-small'

        >>> config = load_config("default", overrides=["store.backend=chroma"])
        >>> config.store.backend
        'chroma'
    """
    if config_path is None:
        # Default to conf/retrieval/ relative to repo root
        repo_root = Path(__file__).parent.parent.parent
        config_path = repo_root / "conf" / "retrieval"

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config directory not found: {config_path}\n" f"Create it with: mkdir -p {config_path}"
        )

    with initialize_config_dir(
        config_dir=str(config_path), version_base=None, job_name="retrieval"
    ):
        cfg: DictConfig = compose(config_name=config_name, overrides=overrides or [])

    config_dict = OmegaConf.to_container(cfg, resolve=True)
    try:
        return RetrievalConfig.model_validate(config_dict)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid retrieval configuration: {exc}") from exc
