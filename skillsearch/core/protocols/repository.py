"""Skill repository protocol for dependency injection."""
from typing import Optional, Protocol, runtime_checkable

from ..models.skill import RepositoryStats, Skill


@runtime_checkable
class SkillRepositoryProtocol(Protocol):
    """Persistent skill storage with ranked full-text search."""

    def count_pending_embeddings(self) -> int:
        """Count skills without an embedding."""
        ...

    def get_pending_embeddings(self, limit: int) -> list[Skill]:
        """Get skills without an embedding, tags loaded."""
        ...

    def save_skill(self, skill: Skill) -> None:
        """Insert or update a skill with its tags."""
        ...

    def update_skill(self, skill: Skill) -> None:
        """Persist skill fields, including embedding_id."""
        ...

    def delete_skill(self, skill_id: str) -> bool:
        """Delete a skill; returns False if it did not exist."""
        ...

    def get_skill(self, skill_id: str) -> Optional[Skill]:
        """Get a skill with tags, or None if it does not exist."""
        ...

    def list_skills(self, limit: int, offset: int = 0) -> list[Skill]:
        """List skills with tags."""
        ...

    def search_ranked(self, query: str, limit: int) -> list[Skill]:
        """Full-text search, best match first."""
        ...

    def get_stats(self) -> RepositoryStats:
        """Aggregate repository counters."""
        ...
