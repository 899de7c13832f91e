"""Shared fixtures and test doubles."""

import re
import threading
import zlib
from dataclasses import replace
from datetime import datetime
from typing import Optional

import numpy as np
import pytest

from skillsearch.core.content import skill_content_hash
from skillsearch.core.models.search import SearchHit
from skillsearch.core.models.skill import RepositoryStats, Skill, Tag


class FakeEmbedder:
    """Deterministic bag-of-words embedder."""

    def __init__(self, dim: int = 256):
        self.dim = dim
        self.passage_calls = 0

    def _vector(self, text: str) -> np.ndarray:
        vec = np.zeros(self.dim, dtype=np.float32)
        for word in re.findall(r"\w+", text.lower()):
            vec[zlib.crc32(word.encode()) % self.dim] += 1.0
        return vec

    def encode_passages(self, texts: list[str]) -> np.ndarray:
        self.passage_calls += 1
        return np.vstack([self._vector(t) for t in texts])

    def encode_query(self, text: str) -> np.ndarray:
        return self._vector(text)

    def cosine_similarity(self, query_embedding, embeddings):
        query_norm = query_embedding / (np.linalg.norm(query_embedding) or 1.0)
        norms = np.linalg.norm(embeddings, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return np.dot(embeddings / norms, query_norm)

    def warmup(self) -> None:
        pass


class InMemoryRepository:
    """Skill repository kept in a dict; returns copies like a real store."""

    def __init__(self, skills: Optional[list[Skill]] = None):
        self._lock = threading.Lock()
        self._skills: dict[str, Skill] = {}
        self.update_calls = 0
        self.search_error: Optional[Exception] = None
        self.fail_updates_for: set[str] = set()
        for skill in skills or []:
            self.save_skill(skill)

    @staticmethod
    def _copy(skill: Skill) -> Skill:
        return replace(skill, tags=list(skill.tags))

    def save_skill(self, skill: Skill) -> None:
        with self._lock:
            self._skills[skill.id] = self._copy(skill)

    def update_skill(self, skill: Skill) -> None:
        with self._lock:
            self.update_calls += 1
            if skill.id in self.fail_updates_for:
                raise RuntimeError(f"update failed for {skill.id}")
            if skill.id not in self._skills:
                raise KeyError(skill.id)
            self._skills[skill.id] = self._copy(skill)

    def delete_skill(self, skill_id: str) -> bool:
        with self._lock:
            return self._skills.pop(skill_id, None) is not None

    def get_skill(self, skill_id: str) -> Optional[Skill]:
        with self._lock:
            skill = self._skills.get(skill_id)
            return self._copy(skill) if skill else None

    def list_skills(self, limit: int, offset: int = 0) -> list[Skill]:
        with self._lock:
            return [self._copy(s) for s in list(self._skills.values())[offset:offset + limit]]

    def count_pending_embeddings(self) -> int:
        with self._lock:
            return sum(1 for s in self._skills.values() if not s.embedding_id)

    def get_pending_embeddings(self, limit: int) -> list[Skill]:
        with self._lock:
            pending = [self._copy(s) for s in self._skills.values() if not s.embedding_id]
            return pending[:limit]

    def search_ranked(self, query: str, limit: int) -> list[Skill]:
        if self.search_error is not None:
            raise self.search_error
        words = query.lower().split()
        with self._lock:
            found = []
            for skill in self._skills.values():
                text = " ".join(
                    [skill.title, skill.description, skill.summary, skill.content]
                ).lower()
                if words and all(w in text for w in words):
                    found.append(self._copy(skill))
            return found[:limit]

    def get_stats(self) -> RepositoryStats:
        with self._lock:
            return RepositoryStats(
                total_skills=len(self._skills),
                total_tags=len({t.id for s in self._skills.values() for t in s.tags}),
                last_updated=datetime(2026, 1, 1),
            )


class ScriptedVectorStore:
    """Vector store double with scripted failures and hits."""

    def __init__(self, fail_batches: int = 0, hits: Optional[list[SearchHit]] = None):
        self.fail_batches = fail_batches
        self.hits = hits or []
        self.search_error: Optional[Exception] = None
        self.batch_calls: list[list[str]] = []
        self.search_calls: list[tuple[str, int, float]] = []
        self.batch_delay = 0.0
        self.close_calls = 0
        self.deleted: list[str] = []
        self._stored: dict[str, str] = {}
        self._lock = threading.Lock()

    def add_skill(self, skill: Skill) -> str:
        added, errors = self.add_skill_batch([skill])
        if errors:
            raise errors[0]
        return skill_content_hash(skill)

    def add_skill_batch(self, skills: list[Skill]) -> tuple[int, list[Exception]]:
        if self.batch_delay:
            threading.Event().wait(self.batch_delay)
        with self._lock:
            self.batch_calls.append([s.id for s in skills])
            if self.fail_batches > 0:
                self.fail_batches -= 1
                return 0, [RuntimeError("embedding service unavailable")]
            for skill in skills:
                self._stored[skill.id] = skill_content_hash(skill)
            return len(skills), []

    def search(self, query: str, limit: int, threshold: float) -> list[SearchHit]:
        self.search_calls.append((query, limit, threshold))
        if self.search_error is not None:
            raise self.search_error
        return [h for h in self.hits if h.score >= threshold][:limit]

    def delete(self, skill_id: str) -> None:
        self.deleted.append(skill_id)
        with self._lock:
            self._stored.pop(skill_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._stored)

    def close(self) -> None:
        self.close_calls += 1


def make_skill(skill_id: str, title: str = "", content: str = "", tags=(), **fields) -> Skill:
    return Skill(
        id=skill_id,
        title=title,
        content=content,
        tags=[Tag(id=t.lower(), name=t, slug=t.lower().replace(" ", "-")) for t in tags],
        **fields,
    )


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def sample_skills():
    return [
        make_skill(
            "react-testing",
            title="React Testing Guide",
            description="Testing components with React Testing Library",
            content="Render components and assert on what the user sees.",
            tags=["react", "testing"],
        ),
        make_skill(
            "go-concurrency",
            title="Concurrency Patterns",
            description="Practical patterns for concurrent programs",
            content="Use goroutines and channels to fan out work, then collect results.",
            tags=["go"],
        ),
        make_skill(
            "pandas-cleaning",
            title="Data Cleaning",
            content="Python guide about pandas dataframes and missing values.",
            tags=["python", "data"],
        ),
    ]


@pytest.fixture
def repository(sample_skills):
    return InMemoryRepository(sample_skills)


@pytest.fixture
def vector_store():
    return ScriptedVectorStore()
