"""Vector store protocol for dependency injection."""
from typing import Protocol, runtime_checkable

from ..models.search import SearchHit
from ..models.skill import Skill


@runtime_checkable
class VectorStoreProtocol(Protocol):
    """Protocol for vector storage with built-in embedding.

    Implementations embed skills themselves; callers never handle vectors.
    Search must be safe while a batch write is in progress.
    """

    def add_skill(self, skill: Skill) -> str:
        """Embed and store a skill.

        Args:
            skill: Skill to index.

        Returns:
            Content hash of the embedded text.
        """
        ...

    def add_skill_batch(self, skills: list[Skill]) -> tuple[int, list[Exception]]:
        """Embed and store skills as one unit.

        Either every skill is stored or nothing from this call is.

        Args:
            skills: Skills to index.

        Returns:
            Number of skills added and the errors that occurred.
        """
        ...

    def search(self, query: str, limit: int, threshold: float) -> list[SearchHit]:
        """Find skills similar to a query.

        Args:
            query: Query text.
            limit: Maximum number of hits.
            threshold: Minimum similarity in [0, 1].

        Returns:
            Hits sorted by descending score.
        """
        ...

    def delete(self, skill_id: str) -> None:
        """Remove a skill's embedding."""
        ...

    def count(self) -> int:
        """Get indexed skill count."""
        ...

    def close(self) -> None:
        """Release resources. Safe to call more than once."""
        ...
