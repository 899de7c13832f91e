"""Search and indexing result models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .skill import Skill


@dataclass
class SearchHit:
    """Vector store hit."""
    skill_id: str
    score: float  # cosine similarity clamped to [0, 1]
    content_hash: str = ""


@dataclass
class Highlight:
    """Highlighted region, as character offsets into Snippet.text."""
    start: int
    end: int


@dataclass
class Snippet:
    """Excerpt of matching text."""
    text: str
    highlights: list[Highlight] = field(default_factory=list)


class MatchType(Enum):
    """Where the query matched a skill."""
    TITLE = "title"      # title or tag
    CONTENT = "content"  # description, summary or body


@dataclass
class SkillMatch:
    """Search result with classification and snippets."""
    skill: Skill
    score: float
    match_type: MatchType
    snippets: list[Snippet] = field(default_factory=list)


@dataclass
class SearchResults:
    """Categorized search results."""
    query: str
    title_matches: list[SkillMatch] = field(default_factory=list)
    content_matches: list[SkillMatch] = field(default_factory=list)
    duration: float = 0.0
    total_hits: int = 0


@dataclass
class SearchOptions:
    """Per-call search behavior. Non-positive limit/threshold use service defaults."""
    limit: int = 50
    threshold: float = 0.6
    include_fts: bool = True
    include_semantic: bool = True


@dataclass
class IndexStats:
    """Statistics about the search index."""
    total_skills: int = 0
    indexed_skills: int = 0
    pending_skills: int = 0
    last_indexed_at: Optional[datetime] = None
    vector_store_ready: bool = False


@dataclass
class IndexProgress:
    """Indexing progress event.

    Emitted by the indexer after every batch (counters) and by the
    background indexer for run lifecycle (running flag and message).
    """
    running: bool = False
    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    duration: float = 0.0
    message: str = ""
