"""Embedding model management."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Literal, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from litfinder.base import Embedder
from litfinder.embedding.stub import HashEmbedder

if TYPE_CHECKING:
    from litfinder.config import AppConfig

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx"] = "torch"
    device: str | None = None


class EmbeddingModel(Embedder):
    """Thin wrapper around `SentenceTransformer` producing normalized float32 vectors.

    Falls back to the PyTorch backend when another backend fails to load.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()

        try:
            self._model = self._load_model()
        except Exception as e:
            if self.config.backend == "torch":
                raise
            logger.warning(
                "Failed to load model with backend '%s': %s. Falling back to PyTorch.",
                self.config.backend,
                e,
            )
            self.config.backend = "torch"
            self._model = self._load_model()

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            "Loaded %s (backend: %s, dimension: %d)",
            self.config.model_name,
            self.config.backend,
            self.dimension,
        )

    def _load_model(self) -> SentenceTransformer:
        return SentenceTransformer(
            self.config.model_name,
            backend=self.config.backend,
            device=self.config.device,
        )

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)


def create_embedder(config: "AppConfig") -> Embedder:
    """Build the embedder selected by the application config."""
    if config.embedder == "hash":
        return HashEmbedder(config.hash_dimension)
    if config.embedder == "sentence-transformers":
        return EmbeddingModel(EmbeddingConfig(model_name=config.model_name))
    raise ValueError(f"Unknown embedder: {config.embedder}")
