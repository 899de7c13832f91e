import logging
import os
import threading
from pathlib import Path
from typing import Optional

import numpy as np

from skillsearch.core.content import content_hash, embedding_text
from skillsearch.core.exceptions import VectorStoreError
from skillsearch.core.models.search import SearchHit
from skillsearch.core.models.skill import Skill
from skillsearch.core.protocols.embedder import EmbedderProtocol

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
INDEX_FILE = "vectors.npz"


class LocalVectorStore:
    """In-process vector store backed by a numpy matrix.

    Writes build new arrays and swap them in under the lock, so readers
    always see a whole batch or none of it. The index is saved to a
    single .npz file after every write when a data directory is given.
    """

    def __init__(self, embedder: EmbedderProtocol, data_dir: Optional[str] = None):
        """Initialize store.

        Args:
            embedder: Embedding service.
            data_dir: Directory for the persisted index; None keeps it in memory.
        """
        self._embedder = embedder
        self._lock = threading.Lock()
        self._closed = False

        self._ids: list[str] = []
        self._hashes: list[str] = []
        self._embeddings: Optional[np.ndarray] = None

        self._path: Optional[Path] = None
        if data_dir:
            directory = Path(data_dir).expanduser()
            directory.mkdir(parents=True, exist_ok=True)
            self._path = directory / INDEX_FILE
            self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return

        with np.load(self._path, allow_pickle=False) as data:
            ids = [str(i) for i in data["ids"]]
            hashes = [str(h) for h in data["hashes"]]
            embeddings = data["embeddings"]

        self._ids = ids
        self._hashes = hashes
        self._embeddings = embeddings.astype(np.float32) if ids else None
        logger.info(f"Loaded {len(ids)} vectors from {self._path}")

    def _save(self, ids: list[str], hashes: list[str], embeddings: Optional[np.ndarray]) -> None:
        if self._path is None:
            return

        tmp_path = self._path.with_suffix(".tmp")
        with open(tmp_path, "wb") as f:
            np.savez(
                f,
                ids=np.array(ids, dtype=str),
                hashes=np.array(hashes, dtype=str),
                embeddings=embeddings if embeddings is not None else np.zeros((0, 0), np.float32),
            )
        os.replace(tmp_path, self._path)

    def _check_open(self) -> None:
        if self._closed:
            raise VectorStoreError("Vector store is closed")

    def add_skill(self, skill: Skill) -> str:
        """Embed and store one skill, returning its content hash."""
        _, errors = self.add_skill_batch([skill])
        if errors:
            raise errors[0]
        return content_hash(embedding_text(skill))

    def add_skill_batch(self, skills: list[Skill]) -> tuple[int, list[Exception]]:
        """Embed and store skills; all or nothing."""
        if not skills:
            return 0, []

        texts = [embedding_text(s) for s in skills]
        try:
            self._check_open()
            vectors = np.asarray(self._embedder.encode_passages(texts), dtype=np.float32)
        except Exception as e:
            return 0, [e if isinstance(e, VectorStoreError) else VectorStoreError(f"Embedding failed: {e}")]

        if vectors.ndim != 2 or vectors.shape[0] != len(skills):
            return 0, [VectorStoreError(f"Embedder returned shape {vectors.shape} for {len(skills)} texts")]

        with self._lock:
            try:
                self._check_open()
                if self._embeddings is not None and self._embeddings.shape[1] != vectors.shape[1]:
                    raise VectorStoreError(
                        f"Embedding dimension {vectors.shape[1]} != index dimension "
                        f"{self._embeddings.shape[1]}"
                    )

                ids = list(self._ids)
                hashes = list(self._hashes)
                rows = list(self._embeddings) if self._embeddings is not None else []
                positions = {skill_id: i for i, skill_id in enumerate(ids)}

                for skill, text, vector in zip(skills, texts, vectors):
                    digest = content_hash(text)
                    if skill.id in positions:
                        i = positions[skill.id]
                        hashes[i] = digest
                        rows[i] = vector
                    else:
                        positions[skill.id] = len(ids)
                        ids.append(skill.id)
                        hashes.append(digest)
                        rows.append(vector)

                embeddings = np.vstack(rows).astype(np.float32)
                self._save(ids, hashes, embeddings)
            except Exception as e:
                logger.error(f"Failed to store batch of {len(skills)}: {e}")
                return 0, [e]

            self._ids, self._hashes, self._embeddings = ids, hashes, embeddings

        return len(skills), []

    def search(self, query: str, limit: int, threshold: float) -> list[SearchHit]:
        """Search by query text."""
        if limit <= 0:
            limit = DEFAULT_LIMIT

        with self._lock:
            self._check_open()
            ids, hashes, embeddings = self._ids, self._hashes, self._embeddings

        if not ids:
            return []

        query_embedding = np.asarray(self._embedder.encode_query(query), dtype=np.float32)
        scores = np.clip(self._embedder.cosine_similarity(query_embedding, embeddings), 0.0, 1.0)

        hits = []
        for i in np.argsort(-scores, kind="stable"):
            score = float(scores[i])
            if score < threshold:
                break
            hits.append(SearchHit(skill_id=ids[i], score=score, content_hash=hashes[i]))
            if len(hits) >= limit:
                break

        return hits

    def delete(self, skill_id: str) -> None:
        """Remove a skill's embedding if present."""
        with self._lock:
            self._check_open()
            if skill_id not in self._ids:
                return

            i = self._ids.index(skill_id)
            ids = self._ids[:i] + self._ids[i + 1:]
            hashes = self._hashes[:i] + self._hashes[i + 1:]
            embeddings = np.delete(self._embeddings, i, axis=0) if ids else None
            self._save(ids, hashes, embeddings)
            self._ids, self._hashes, self._embeddings = ids, hashes, embeddings

    def count(self) -> int:
        """Get indexed skill count."""
        with self._lock:
            return len(self._ids)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        logger.info("Local vector store closed")
