"""Embedder protocol for dependency injection."""
from typing import Protocol, runtime_checkable
import numpy as np


@runtime_checkable
class EmbedderProtocol(Protocol):
    """Protocol for embedding service."""

    def encode_passages(self, texts: list[str]) -> np.ndarray:
        """Encode documents for storage.

        Args:
            texts: Texts to encode.

        Returns:
            Matrix of embeddings, one row per text.
        """
        ...

    def encode_query(self, text: str) -> np.ndarray:
        """Encode a search query.

        Args:
            text: Query text.

        Returns:
            Embedding vector.
        """
        ...

    def cosine_similarity(
        self,
        query_embedding: np.ndarray,
        embeddings: np.ndarray
    ) -> np.ndarray:
        """Compute cosine similarity between query and embeddings.

        Args:
            query_embedding: Query embedding vector.
            embeddings: Matrix of embeddings to compare against.

        Returns:
            Array of similarity scores.
        """
        ...

    def warmup(self) -> None:
        """Pre-load the model for faster inference."""
        ...
