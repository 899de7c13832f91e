"""Skill domain models."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class Tag:
    """Categorization tag attached to skills."""
    id: str
    name: str
    slug: str = ""


@dataclass
class Skill:
    """Indexed skill document.

    An empty embedding_id means the skill is pending: it has no
    up-to-date vector in the vector store.
    """
    id: str
    title: str = ""
    description: str = ""
    summary: str = ""
    content: str = ""
    tags: list[Tag] = field(default_factory=list)
    embedding_id: str = ""
    author: str = ""
    updated_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return not self.embedding_id


@dataclass
class RepositoryStats:
    """Aggregate counters reported by the skill repository."""
    total_skills: int
    total_tags: int
    last_updated: datetime
