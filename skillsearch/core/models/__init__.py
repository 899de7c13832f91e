"""Domain models."""
from .skill import Skill, Tag, RepositoryStats
from .search import (
    Highlight,
    IndexProgress,
    IndexStats,
    MatchType,
    SearchHit,
    SearchOptions,
    SearchResults,
    SkillMatch,
    Snippet,
)

__all__ = [
    "Skill",
    "Tag",
    "RepositoryStats",
    "Highlight",
    "IndexProgress",
    "IndexStats",
    "MatchType",
    "SearchHit",
    "SearchOptions",
    "SearchResults",
    "SkillMatch",
    "Snippet",
]
