"""Indexer service - batch embedding of skills with retry."""

import logging
import queue
import time
from dataclasses import dataclass
from typing import Optional

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from ..cancellation import CancelToken
from ..content import skill_content_hash
from ..exceptions import StoreNotConfiguredError
from ..models.search import IndexProgress
from ..models.skill import Skill
from ..protocols.repository import SkillRepositoryProtocol
from ..protocols.vector_store import VectorStoreProtocol
from .progress import publish

DEFAULT_BATCH_SIZE = 50
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 1.0

# index_pending fetches at most this many batches per run.
PENDING_BATCHES_PER_RUN = 10

# Upper bound for index_all.
MAX_SKILLS = 100_000


@dataclass
class IndexerConfig:
    """Indexer settings."""
    batch_size: int = DEFAULT_BATCH_SIZE
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY  # seconds, doubled per retry


@dataclass
class _BatchOutcome:
    completed: int = 0
    failed: int = 0
    skipped: int = 0


class _BackoffCancelled(Exception):
    """Raised from a backoff sleep when the run is cancelled."""


def _has_errors(result: tuple[int, list[Exception]]) -> bool:
    return bool(result[1])


def _attempt_error(attempt) -> Exception:
    """Error of a finished attempt, raised or reported by the store."""
    if attempt.failed:
        return attempt.exception()
    return attempt.result()[1][0]


def _backoff_sleep(cancel: Optional[CancelToken]):
    """Sleep used between attempts; wakes up and aborts on cancellation."""
    def sleep(delay: float) -> None:
        if cancel is None:
            time.sleep(delay)
        elif cancel.wait(delay):
            raise _BackoffCancelled()
    return sleep


class Indexer:
    """Embeds skills in batches and records their content hash."""

    def __init__(
        self,
        repository: Optional[SkillRepositoryProtocol],
        vector_store: VectorStoreProtocol,
        config: Optional[IndexerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize indexer.

        Args:
            repository: Skill repository.
            vector_store: Vector store that embeds and stores skills.
            config: Indexer settings; non-positive values use defaults.
            logger: Logger (defaults to module logger).
        """
        config = config or IndexerConfig()
        self._config = IndexerConfig(
            batch_size=config.batch_size if config.batch_size > 0 else DEFAULT_BATCH_SIZE,
            retry_attempts=(
                config.retry_attempts if config.retry_attempts > 0 else DEFAULT_RETRY_ATTEMPTS
            ),
            retry_base_delay=(
                config.retry_base_delay
                if config.retry_base_delay > 0
                else DEFAULT_RETRY_BASE_DELAY
            ),
        )
        self._repository = repository
        self._vector_store = vector_store
        self._logger = logger or logging.getLogger(__name__)

    @property
    def config(self) -> IndexerConfig:
        return self._config

    def get_pending_count(self) -> int:
        """Number of skills needing an embedding."""
        return self._require_repository().count_pending_embeddings()

    def index_pending(
        self,
        progress: Optional[queue.Queue] = None,
        cancel: Optional[CancelToken] = None,
    ) -> IndexProgress:
        """Index skills that have no embedding yet.

        Args:
            progress: Queue receiving cumulative progress after each batch.
            cancel: Checked between batches.

        Returns:
            Final progress summary.
        """
        repository = self._require_repository()
        skills = repository.get_pending_embeddings(
            self._config.batch_size * PENDING_BATCHES_PER_RUN
        )
        return self._index(skills, progress, cancel)

    def index_all(
        self,
        progress: Optional[queue.Queue] = None,
        cancel: Optional[CancelToken] = None,
    ) -> IndexProgress:
        """Index every skill, skipping those whose embedding is current."""
        repository = self._require_repository()
        skills = repository.list_skills(MAX_SKILLS, 0)
        return self._index(skills, progress, cancel)

    def _require_repository(self) -> SkillRepositoryProtocol:
        if self._repository is None:
            raise StoreNotConfiguredError("Indexer has no skill repository configured")
        return self._repository

    def _index(
        self,
        skills: list[Skill],
        progress: Optional[queue.Queue],
        cancel: Optional[CancelToken],
    ) -> IndexProgress:
        started = time.monotonic()
        summary = IndexProgress(total=len(skills))

        if not skills:
            self._logger.info("No skills to index")
            publish(progress, summary, cancel, logger=self._logger)
            return summary

        batch_size = self._config.batch_size
        for i in range(0, len(skills), batch_size):
            if cancel is not None and cancel.cancelled:
                self._logger.info(
                    f"Indexing cancelled after {summary.completed}/{summary.total} skills"
                )
                break

            outcome = self._index_batch_with_retry(skills[i : i + batch_size], cancel)
            summary.completed += outcome.completed
            summary.failed += outcome.failed
            summary.skipped += outcome.skipped
            summary.duration = time.monotonic() - started

            self._logger.info(
                f"Indexed batch: {summary.completed}/{summary.total} "
                f"(failed={summary.failed}, skipped={summary.skipped})"
            )
            publish(
                progress,
                IndexProgress(
                    running=True,
                    total=summary.total,
                    completed=summary.completed,
                    failed=summary.failed,
                    skipped=summary.skipped,
                    duration=summary.duration,
                ),
                cancel,
                logger=self._logger,
            )

        summary.duration = time.monotonic() - started
        return summary

    def _index_batch_with_retry(
        self, skills: list[Skill], cancel: Optional[CancelToken]
    ) -> _BatchOutcome:
        """Index one batch, retrying with exponential backoff."""
        outcome = _BatchOutcome()

        to_index: list[tuple[Skill, str]] = []
        for skill in skills:
            digest = skill_content_hash(skill)
            if skill.embedding_id == digest:
                outcome.skipped += 1
                continue
            to_index.append((skill, digest))

        if not to_index:
            return outcome

        batch = [skill for skill, _ in to_index]
        retrying = Retrying(
            stop=stop_after_attempt(self._config.retry_attempts),
            wait=wait_exponential(multiplier=self._config.retry_base_delay),
            retry=retry_if_exception_type() | retry_if_result(_has_errors),
            sleep=_backoff_sleep(cancel),
            before_sleep=self._log_retry,
        )

        try:
            retrying(self._vector_store.add_skill_batch, batch)
        except _BackoffCancelled:
            self._logger.info(f"Batch of {len(batch)} abandoned: cancelled during backoff")
            outcome.failed += len(to_index)
            return outcome
        except RetryError as e:
            self._logger.error(
                f"Batch of {len(batch)} skills failed after all retries: "
                f"{_attempt_error(e.last_attempt)}"
            )
            outcome.failed += len(to_index)
            return outcome

        self._record_embeddings(to_index, outcome)
        return outcome

    def _log_retry(self, retry_state: RetryCallState) -> None:
        self._logger.warning(
            f"Batch failed (attempt {retry_state.attempt_number}/"
            f"{self._config.retry_attempts}): {_attempt_error(retry_state.outcome)}; "
            f"retrying in {retry_state.next_action.sleep:.2f}s"
        )

    def _record_embeddings(self, indexed: list[tuple[Skill, str]], outcome: _BatchOutcome) -> None:
        for skill, digest in indexed:
            skill.embedding_id = digest
            try:
                self._repository.update_skill(skill)
            except Exception as e:
                self._logger.error(f"Failed to update embedding ID for skill {skill.id}: {e}")
                outcome.failed += 1
            else:
                outcome.completed += 1
