"""Search service - hybrid full-text and semantic search."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..content import skill_content_hash
from ..exceptions import StoreNotConfiguredError
from ..models.search import (
    IndexStats,
    MatchType,
    SearchHit,
    SearchOptions,
    SearchResults,
    SkillMatch,
)
from ..models.skill import Skill
from ..protocols.repository import SkillRepositoryProtocol
from ..protocols.vector_store import VectorStoreProtocol
from .snippets import extract_snippets

DEFAULT_MIN_SIMILARITY = 0.6
DEFAULT_MAX_RESULTS = 50
DEFAULT_MAX_SNIPPETS = 3

# Full-text results carry no similarity comparable to vector scores.
FTS_SCORE = 0.5

# Shorter query terms are ignored when matching titles and tags.
MIN_TERM_LENGTH = 3


@dataclass
class SearchConfig:
    """Search service settings."""
    min_similarity: float = DEFAULT_MIN_SIMILARITY
    max_results: int = DEFAULT_MAX_RESULTS
    max_snippets: int = DEFAULT_MAX_SNIPPETS


class SearchService:
    """Combines vector similarity and ranked full-text search.

    A failure of either method is logged and the other one still
    contributes results.
    """

    def __init__(
        self,
        repository: SkillRepositoryProtocol,
        vector_store: Optional[VectorStoreProtocol] = None,
        config: Optional[SearchConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize search service.

        Args:
            repository: Skill repository providing full-text search.
            vector_store: Vector store; None disables semantic search.
            config: Search settings; non-positive values use defaults.
            logger: Logger (defaults to module logger).
        """
        if repository is None:
            raise StoreNotConfiguredError("SearchService requires a skill repository")

        config = config or SearchConfig()
        self._repository = repository
        self._vector_store = vector_store
        self._min_similarity = (
            config.min_similarity if config.min_similarity > 0 else DEFAULT_MIN_SIMILARITY
        )
        self._max_results = config.max_results if config.max_results > 0 else DEFAULT_MAX_RESULTS
        self._max_snippets = (
            config.max_snippets if config.max_snippets > 0 else DEFAULT_MAX_SNIPPETS
        )
        self._logger = logger or logging.getLogger(__name__)

    @property
    def has_vector_store(self) -> bool:
        return self._vector_store is not None

    def search(self, query: str, options: Optional[SearchOptions] = None) -> SearchResults:
        """Search skills.

        Semantic hits are processed first, so a skill found by both
        methods keeps its semantic score and classification.

        Args:
            query: Search query.
            options: Search options (defaults to both methods enabled).

        Returns:
            Results split into title/tag matches and content matches.
        """
        options = options or SearchOptions()
        started = time.monotonic()

        results = SearchResults(query=query)
        seen: set[str] = set()
        limit = options.limit if options.limit > 0 else self._max_results

        if options.include_semantic and self._vector_store is not None:
            threshold = options.threshold if options.threshold > 0 else self._min_similarity
            try:
                hits = self._vector_store.search(query, limit, threshold)
            except Exception as e:
                self._logger.warning(f"Semantic search failed: {e} (continuing with FTS only)")
                hits = []
            self._merge_semantic(hits, results, query, seen)

        if options.include_fts:
            try:
                skills = self._repository.search_ranked(query, limit)
            except Exception as e:
                self._logger.warning(f"FTS search failed: {e} (continuing with semantic only)")
                skills = []
            self._merge_fts(skills, results, query, seen)

        results.total_hits = len(results.title_matches) + len(results.content_matches)
        results.duration = time.monotonic() - started

        self._logger.info(
            f"Search: {results.total_hits} hits "
            f"({len(results.title_matches)} title, {len(results.content_matches)} content) "
            f"for '{query[:50]}'"
        )
        return results

    def _merge_semantic(
        self, hits: list[SearchHit], results: SearchResults, query: str, seen: set[str]
    ) -> None:
        for hit in hits:
            if hit.skill_id in seen:
                continue
            seen.add(hit.skill_id)

            try:
                skill = self._repository.get_skill(hit.skill_id)
            except Exception as e:
                self._logger.debug(f"Skipping hit {hit.skill_id}: {e}")
                continue
            if skill is None:
                continue

            self._add_match(skill, hit.score, results, query)

    def _merge_fts(
        self, skills: list[Skill], results: SearchResults, query: str, seen: set[str]
    ) -> None:
        for skill in skills:
            if skill.id in seen:
                continue
            seen.add(skill.id)
            self._add_match(skill, FTS_SCORE, results, query)

    def _add_match(self, skill: Skill, score: float, results: SearchResults, query: str) -> None:
        if is_title_or_tag_match(skill, query.lower()):
            results.title_matches.append(
                SkillMatch(skill=skill, score=score, match_type=MatchType.TITLE)
            )
            return

        snippets = extract_snippets(build_searchable_content(skill), query, self._max_snippets)
        results.content_matches.append(
            SkillMatch(skill=skill, score=score, match_type=MatchType.CONTENT, snippets=snippets)
        )

    def index_skill(self, skill: Skill) -> None:
        """Embed a single skill and persist its new content hash."""
        if self._vector_store is None:
            return

        digest = self._vector_store.add_skill(skill)
        if skill.embedding_id != digest:
            skill.embedding_id = digest
            self._repository.update_skill(skill)

    def index_skill_batch(self, skills: list[Skill]) -> tuple[int, list[Exception]]:
        """Embed skills as one batch and persist changed content hashes.

        Returns:
            Number of skills added and the errors reported by the store.
        """
        if self._vector_store is None:
            return 0, []

        added, errors = self._vector_store.add_skill_batch(skills)
        if errors:
            return added, errors

        for skill in skills:
            digest = skill_content_hash(skill)
            if skill.embedding_id != digest:
                skill.embedding_id = digest
                try:
                    self._repository.update_skill(skill)
                except Exception as e:
                    errors.append(e)
        return added, errors

    def delete_skill(self, skill_id: str) -> None:
        """Remove a skill's embedding from the vector store."""
        if self._vector_store is not None:
            self._vector_store.delete(skill_id)

    def stats(self) -> IndexStats:
        """Aggregate repository and vector store counters."""
        repo_stats = self._repository.get_stats()
        stats = IndexStats(
            total_skills=repo_stats.total_skills,
            last_indexed_at=repo_stats.last_updated,
        )

        if self._vector_store is not None:
            stats.vector_store_ready = True
            try:
                stats.indexed_skills = self._vector_store.count()
            except Exception as e:
                self._logger.warning(f"Vector store count failed: {e}")

        try:
            stats.pending_skills = self._repository.count_pending_embeddings()
        except Exception as e:
            self._logger.warning(f"Pending count failed: {e}")

        return stats


def is_title_or_tag_match(skill: Skill, query_lower: str) -> bool:
    """Check whether the query matches the skill title or any tag."""
    title = skill.title.lower()
    if query_lower in title or _contains_any_term(title, query_lower):
        return True

    for tag in skill.tags:
        for value in (tag.name.lower(), tag.slug.lower()):
            if query_lower in value or _contains_any_term(value, query_lower):
                return True

    return False


def build_searchable_content(skill: Skill) -> str:
    """Text used for snippet extraction."""
    parts = [p for p in (skill.description, skill.summary, skill.content) if p]
    return " ".join(parts)


def _contains_any_term(text: str, query_lower: str) -> bool:
    return any(
        len(term) >= MIN_TERM_LENGTH and term in text for term in query_lower.split()
    )
