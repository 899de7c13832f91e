import logging
from functools import cached_property

import numpy as np
from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

# E5-family models expect role prefixes on their inputs.
QUERY_PREFIX = "query: "
PASSAGE_PREFIX = "passage: "


class SentenceTransformerEmbedder:
    def __init__(
        self,
        model_name: str = "intfloat/multilingual-e5-base",
        batch_size: int = 32,
        use_prefixes: bool = True,
    ):
        self._model_name = model_name
        self._batch_size = batch_size
        self._use_prefixes = use_prefixes

    @cached_property
    def model(self) -> SentenceTransformer:
        logger.info(f"Loading embedding model: {self._model_name}")
        return SentenceTransformer(self._model_name)

    def warmup(self) -> None:
        _ = self.model
        logger.info("Embedding model warmed up")

    def encode_passages(self, texts: list[str]) -> np.ndarray:
        if self._use_prefixes:
            texts = [f"{PASSAGE_PREFIX}{t}" for t in texts]
        return self.model.encode(
            texts,
            batch_size=self._batch_size,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )

    def encode_query(self, text: str) -> np.ndarray:
        if self._use_prefixes:
            text = f"{QUERY_PREFIX}{text}"
        return self.model.encode(text, convert_to_numpy=True, normalize_embeddings=True)

    def cosine_similarity(
        self, query_embedding: np.ndarray, embeddings: np.ndarray
    ) -> np.ndarray:
        if embeddings.size == 0:
            return np.zeros(0, dtype=np.float32)
        query_norm = query_embedding / (np.linalg.norm(query_embedding) or 1.0)
        norms = np.linalg.norm(embeddings, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return np.dot(embeddings / norms, query_norm)
