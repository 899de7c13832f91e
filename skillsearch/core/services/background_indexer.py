"""Background indexer - non-blocking embedding generation on startup."""

import logging
import queue
import threading
from enum import Enum
from typing import Optional

from ..cancellation import CancelToken
from ..models.search import IndexProgress
from ..protocols.repository import SkillRepositoryProtocol
from ..protocols.vector_store import VectorStoreProtocol
from .indexer import Indexer, IndexerConfig
from .progress import END_OF_PROGRESS, publish

# Capacity of the queue between the indexer and the forwarding thread.
_RELAY_QUEUE_SIZE = 10


class IndexerState(Enum):
    """Lifecycle state of a background indexer."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"


class IndexOutcome(Enum):
    """How the last background run ended."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class BackgroundIndexer:
    """Runs the indexer on a worker thread, at most one run at a time.

    Progress is pushed as IndexProgress events onto a queue owned by the
    caller. The final event of every run has running=False.
    """

    def __init__(
        self,
        repository: Optional[SkillRepositoryProtocol],
        vector_store: VectorStoreProtocol,
        config: Optional[IndexerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize background indexer.

        Args:
            repository: Skill repository (None disables indexing).
            vector_store: Vector store shared with the search service.
            config: Indexer settings.
            logger: Logger (defaults to module logger).
        """
        self._repository = repository
        self._vector_store = vector_store
        self._logger = logger or logging.getLogger(__name__)
        self._indexer = Indexer(repository, vector_store, config, logger=self._logger)

        self._lock = threading.Lock()
        self._state = IndexerState.IDLE
        self._last_outcome: Optional[IndexOutcome] = None
        self._cancel: Optional[CancelToken] = None
        self._done = threading.Event()
        self._done.set()

    @property
    def vector_store(self) -> VectorStoreProtocol:
        return self._vector_store

    @property
    def state(self) -> IndexerState:
        with self._lock:
            return self._state

    @property
    def last_outcome(self) -> Optional[IndexOutcome]:
        with self._lock:
            return self._last_outcome

    def get_pending_count(self) -> int:
        """Number of skills needing an embedding."""
        return self._indexer.get_pending_count()

    def is_running(self) -> bool:
        with self._lock:
            return self._state is not IndexerState.IDLE

    def start(
        self,
        progress: Optional[queue.Queue] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        """Start indexing pending skills on a background thread.

        Returns immediately. Does nothing if a run is already in progress.

        Args:
            progress: Queue receiving IndexProgress events; owned by the caller.
            cancel: Parent token; cancelling it also stops the run.
        """
        with self._lock:
            if self._state is not IndexerState.IDLE:
                return
            self._state = IndexerState.STARTING
            token = cancel.child() if cancel is not None else CancelToken()
            self._cancel = token
            self._done.clear()

            worker = threading.Thread(
                target=self._run,
                args=(token, progress),
                name="background-indexer",
                daemon=True,
            )
            worker.start()

    def stop(self) -> None:
        """Request cancellation of the current run. Does not wait."""
        with self._lock:
            if self._cancel is not None:
                self._cancel.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the current run has finished.

        Returns:
            False if the timeout expired first.
        """
        return self._done.wait(timeout)

    def close(self) -> None:
        """Stop indexing, wait for the worker, then close the vector store."""
        self.stop()
        self.wait()

        if self._vector_store is not None:
            try:
                self._vector_store.close()
            except Exception as e:
                self._logger.error(f"Error closing vector store: {e}")
                raise

    def _run(self, cancel: CancelToken, progress: Optional[queue.Queue]) -> None:
        outcome = IndexOutcome.FAILED
        try:
            outcome = self._index(cancel, progress)
        finally:
            with self._lock:
                self._state = IndexerState.IDLE
                self._last_outcome = outcome
                # Set under the lock so a start() racing this exit is never marked done.
                self._done.set()

    def _index(self, cancel: CancelToken, progress: Optional[queue.Queue]) -> IndexOutcome:
        if self._repository is None:
            self._publish(progress, IndexProgress(message="No database configured"), cancel)
            return IndexOutcome.COMPLETED

        try:
            pending = self._repository.count_pending_embeddings()
        except Exception as e:
            self._logger.warning(f"Could not count pending skills: {e}")
            pending = 0

        if pending == 0:
            self._publish(progress, IndexProgress(message="No skills to index"), cancel)
            return IndexOutcome.COMPLETED

        with self._lock:
            self._state = IndexerState.RUNNING

        self._logger.info(f"Background indexing started: {pending} pending skills")
        self._publish(
            progress,
            IndexProgress(running=True, total=pending, message="Starting embedding generation..."),
            cancel,
        )

        relay: queue.Queue = queue.Queue(maxsize=_RELAY_QUEUE_SIZE)
        forwarder = threading.Thread(
            target=self._forward,
            args=(relay, progress, cancel),
            name="background-indexer-progress",
            daemon=True,
        )
        forwarder.start()

        try:
            summary = self._indexer.index_pending(relay, cancel)
        except Exception as e:
            self._logger.error(f"Background indexing error: {e}")
            self._close_relay(relay, forwarder)
            self._publish(progress, IndexProgress(message=f"Indexing failed: {e}"), cancel)
            return IndexOutcome.FAILED

        self._close_relay(relay, forwarder)

        cancelled = cancel.cancelled
        message = "Indexing cancelled" if cancelled else "Indexing complete"
        self._logger.info(
            f"{message}: {summary.completed} indexed, {summary.failed} failed "
            f"in {summary.duration:.1f}s"
        )
        self._publish(
            progress,
            IndexProgress(
                total=summary.total,
                completed=summary.completed,
                failed=summary.failed,
                skipped=summary.skipped,
                duration=summary.duration,
                message=message,
            ),
            cancel,
        )
        return IndexOutcome.CANCELLED if cancelled else IndexOutcome.COMPLETED

    def _publish(
        self, progress: Optional[queue.Queue], event: IndexProgress, cancel: CancelToken
    ) -> bool:
        return publish(progress, event, cancel, self._logger)

    @staticmethod
    def _close_relay(relay: queue.Queue, forwarder: threading.Thread) -> None:
        relay.put(END_OF_PROGRESS)
        forwarder.join()

    def _forward(
        self,
        relay: queue.Queue,
        progress: Optional[queue.Queue],
        cancel: CancelToken,
    ) -> None:
        """Relay indexer progress to the caller until the relay is closed."""
        while True:
            update = relay.get()
            if update is END_OF_PROGRESS:
                return
            self._publish(
                progress,
                IndexProgress(
                    running=True,
                    total=update.total,
                    completed=update.completed,
                    failed=update.failed,
                    skipped=update.skipped,
                    duration=update.duration,
                    message="Indexing skills for semantic search...",
                ),
                cancel,
            )
