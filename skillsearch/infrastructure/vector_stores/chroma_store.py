import logging
import threading
from typing import Optional

import requests

from skillsearch.core.content import content_hash, embedding_text
from skillsearch.core.exceptions import VectorStoreError
from skillsearch.core.models.search import SearchHit
from skillsearch.core.models.skill import Skill
from skillsearch.core.protocols.embedder import EmbedderProtocol

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


class ChromaVectorStore:
    """Vector store using ChromaDB HTTP API."""

    def __init__(
        self,
        embedder: EmbedderProtocol,
        host: str = "localhost",
        port: int = 8001,
        collection_name: str = "skills",
        tenant: str = "default_tenant",
        database: str = "default_database",
        timeout: float = 30.0,
    ):
        """Initialize ChromaDB client.

        Args:
            embedder: Embedding service.
            host: ChromaDB host.
            port: ChromaDB port.
            collection_name: Collection name.
            tenant: Tenant name.
            database: Database name.
            timeout: HTTP timeout in seconds.
        """
        self._embedder = embedder
        self._base_url = f"http://{host}:{port}/api/v2"
        self._tenant = tenant
        self._database = database
        self._collection_name = collection_name
        self._collection_id: Optional[str] = None
        self._timeout = timeout
        self._session = requests.Session()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def _collections_url(self) -> str:
        return f"{self._base_url}/tenants/{self._tenant}/databases/{self._database}/collections"

    def _ensure_collection(self) -> str:
        """Get or create collection, return ID."""
        with self._lock:
            if self._closed:
                raise VectorStoreError("Vector store is closed")
            if self._collection_id:
                return self._collection_id

            resp = self._session.get(self._collections_url, timeout=self._timeout)
            if resp.status_code == 200:
                for col in resp.json():
                    if col["name"] == self._collection_name:
                        self._collection_id = col["id"]
                        return self._collection_id

            resp = self._session.post(
                self._collections_url,
                json={"name": self._collection_name, "metadata": {"hnsw:space": "cosine"}},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            self._collection_id = resp.json()["id"]
            logger.info(f"Created collection: {self._collection_name}")
            return self._collection_id

    def _post(self, action: str, payload: dict) -> requests.Response:
        col_id = self._ensure_collection()
        resp = self._session.post(
            f"{self._collections_url}/{col_id}/{action}", json=payload, timeout=self._timeout
        )
        resp.raise_for_status()
        return resp

    def add_skill(self, skill: Skill) -> str:
        """Embed and upsert one skill, returning its content hash."""
        _, errors = self.add_skill_batch([skill])
        if errors:
            raise errors[0]
        return content_hash(embedding_text(skill))

    def add_skill_batch(self, skills: list[Skill]) -> tuple[int, list[Exception]]:
        """Embed skills and upsert them in a single request."""
        if not skills:
            return 0, []

        texts = [embedding_text(s) for s in skills]
        try:
            embeddings = self._embedder.encode_passages(texts).tolist()
            self._post(
                "upsert",
                {
                    "ids": [s.id for s in skills],
                    "embeddings": embeddings,
                    "documents": texts,
                    "metadatas": [
                        {"title": s.title, "content_hash": content_hash(t)}
                        for s, t in zip(skills, texts)
                    ],
                },
            )
        except Exception as e:
            logger.error(f"Chroma upsert of {len(skills)} skills failed: {e}")
            return 0, [VectorStoreError(f"Chroma upsert failed: {e}")]

        return len(skills), []

    def search(self, query: str, limit: int, threshold: float) -> list[SearchHit]:
        """Search by query text."""
        if limit <= 0:
            limit = DEFAULT_LIMIT

        # Chroma rejects n_results larger than the collection.
        limit = min(limit, self.count())
        if limit == 0:
            return []

        query_embedding = self._embedder.encode_query(query).tolist()
        try:
            data = self._post(
                "query",
                {
                    "query_embeddings": [query_embedding],
                    "n_results": limit,
                    "include": ["metadatas", "distances"],
                },
            ).json()
        except requests.RequestException as e:
            raise VectorStoreError(f"Chroma query failed: {e}") from e

        hits = []
        if data.get("ids") and data["ids"][0]:
            for i, skill_id in enumerate(data["ids"][0]):
                similarity = min(max(1.0 - data["distances"][0][i], 0.0), 1.0)
                if similarity < threshold:
                    continue
                metadata = (data.get("metadatas") or [[]])[0][i] or {}
                hits.append(
                    SearchHit(
                        skill_id=skill_id,
                        score=similarity,
                        content_hash=metadata.get("content_hash", ""),
                    )
                )

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits

    def delete(self, skill_id: str) -> None:
        """Delete a skill's embedding."""
        try:
            self._post("delete", {"ids": [skill_id]})
        except requests.RequestException as e:
            raise VectorStoreError(f"Chroma delete failed: {e}") from e

    def count(self) -> int:
        """Get indexed skill count."""
        col_id = self._ensure_collection()
        try:
            resp = self._session.get(
                f"{self._collections_url}/{col_id}/count", timeout=self._timeout
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise VectorStoreError(f"Chroma count failed: {e}") from e
        return int(resp.json())

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._session.close()
