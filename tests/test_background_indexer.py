"""Tests for the background indexer lifecycle."""

import queue
import threading
import time

from skillsearch.core.cancellation import CancelToken
from skillsearch.core.services.background_indexer import (
    BackgroundIndexer,
    IndexerState,
    IndexOutcome,
)
from skillsearch.core.services.indexer import IndexerConfig

from conftest import InMemoryRepository, ScriptedVectorStore, make_skill


class GatedVectorStore(ScriptedVectorStore):
    """Blocks inside add_skill_batch until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = threading.Event()
        self.gate = threading.Event()

    def add_skill_batch(self, skills):
        self.entered.set()
        self.gate.wait(5)
        return super().add_skill_batch(skills)


class SlowSetEvent(threading.Event):
    """Event whose set() lingers, widening the window at the end of a run."""

    def __init__(self):
        super().__init__()
        self.setting = threading.Event()

    def set(self):
        self.setting.set()
        time.sleep(0.2)
        super().set()


def drain(q: queue.Queue) -> list:
    items = []
    while not q.empty():
        items.append(q.get_nowait())
    return items


CONFIG = IndexerConfig(batch_size=10, retry_attempts=2, retry_base_delay=0.001)


class TestStart:

    def test_start_returns_immediately_and_is_idempotent(self, repository):
        store = GatedVectorStore()
        indexer = BackgroundIndexer(repository, store, CONFIG)

        started = time.monotonic()
        indexer.start()
        assert time.monotonic() - started < 0.05
        assert indexer.is_running()

        assert store.entered.wait(5)
        assert indexer.state is IndexerState.RUNNING

        indexer.start()
        assert indexer.is_running()

        store.gate.set()
        assert indexer.wait(5)
        assert len(store.batch_calls) == 1

    def test_can_run_again_after_completion(self, vector_store):
        repo = InMemoryRepository()
        indexer = BackgroundIndexer(repo, vector_store, CONFIG)

        indexer.start()
        assert indexer.wait(5)
        indexer.start()
        assert indexer.wait(5)
        assert indexer.last_outcome is IndexOutcome.COMPLETED

    def test_wait_when_idle_returns_immediately(self, repository, vector_store):
        indexer = BackgroundIndexer(repository, vector_store, CONFIG)
        assert indexer.wait(0)
        assert indexer.state is IndexerState.IDLE
        assert indexer.last_outcome is None


class TestProgress:

    def test_completed_run_reports_final_progress(self, repository, vector_store):
        indexer = BackgroundIndexer(repository, vector_store, CONFIG)
        updates: queue.Queue = queue.Queue()

        indexer.start(updates)
        assert indexer.wait(5)

        assert not indexer.is_running()
        events = drain(updates)
        assert events[0].message == "Starting embedding generation..."
        assert events[0].running is True
        assert events[0].total == 3
        assert any(e.message == "Indexing skills for semantic search..." for e in events)

        final = events[-1]
        assert final.running is False
        assert final.message == "Indexing complete"
        assert final.completed == 3
        assert final.failed == 0
        assert all(e.running for e in events[:-1])
        assert indexer.last_outcome is IndexOutcome.COMPLETED
        assert repository.count_pending_embeddings() == 0

    def test_no_repository(self, vector_store):
        indexer = BackgroundIndexer(None, vector_store, CONFIG)
        updates: queue.Queue = queue.Queue()

        indexer.start(updates)
        assert indexer.wait(5)

        events = drain(updates)
        assert len(events) == 1
        assert events[0].message == "No database configured"
        assert events[0].running is False

    def test_no_pending_skills(self, vector_store):
        indexer = BackgroundIndexer(InMemoryRepository(), vector_store, CONFIG)
        updates: queue.Queue = queue.Queue()

        indexer.start(updates)
        assert indexer.wait(5)

        events = drain(updates)
        assert [e.message for e in events] == ["No skills to index"]
        assert vector_store.batch_calls == []

    def test_failure_is_reported_in_final_message(self, vector_store):
        class BrokenRepository(InMemoryRepository):
            def count_pending_embeddings(self):
                return 2

            def get_pending_embeddings(self, limit):
                raise RuntimeError("database is locked")

        indexer = BackgroundIndexer(BrokenRepository(), vector_store, CONFIG)
        updates: queue.Queue = queue.Queue()

        indexer.start(updates)
        assert indexer.wait(5)

        final = drain(updates)[-1]
        assert final.running is False
        assert final.message == "Indexing failed: database is locked"
        assert indexer.last_outcome is IndexOutcome.FAILED
        assert not indexer.is_running()

    def test_full_progress_queue_does_not_block_cancelled_run(self, repository, vector_store):
        indexer = BackgroundIndexer(repository, vector_store, CONFIG)
        updates: queue.Queue = queue.Queue(maxsize=1)

        indexer.start(updates)
        indexer.stop()

        assert indexer.wait(5)
        assert not indexer.is_running()
        assert updates.qsize() == 1


class TestStop:

    def test_stop_cancels_run(self, repository):
        store = GatedVectorStore()
        indexer = BackgroundIndexer(repository, store, CONFIG)
        updates: queue.Queue = queue.Queue()

        indexer.start(updates)
        assert store.entered.wait(5)
        indexer.stop()
        store.gate.set()

        assert indexer.wait(5)
        final = drain(updates)[-1]
        assert final.running is False
        assert final.message == "Indexing cancelled"
        assert indexer.last_outcome is IndexOutcome.CANCELLED

    def test_parent_token_cancels_run(self, repository):
        store = GatedVectorStore()
        indexer = BackgroundIndexer(repository, store, CONFIG)
        parent = CancelToken()

        indexer.start(cancel=parent)
        assert store.entered.wait(5)
        parent.cancel()
        store.gate.set()

        assert indexer.wait(5)
        assert indexer.last_outcome is IndexOutcome.CANCELLED

    def test_close_waits_and_closes_store(self, repository):
        store = GatedVectorStore()
        indexer = BackgroundIndexer(repository, store, CONFIG)

        indexer.start()
        assert store.entered.wait(5)
        store.gate.set()
        indexer.close()

        assert not indexer.is_running()
        assert store.close_calls == 1

    def test_pending_count_and_store_accessor(self, repository, vector_store):
        indexer = BackgroundIndexer(repository, vector_store, CONFIG)
        assert indexer.get_pending_count() == 3
        assert indexer.vector_store is vector_store


class TestRunBoundaries:

    def test_restart_during_previous_exit_is_not_reported_done(self):
        repo = InMemoryRepository()
        store = GatedVectorStore()
        indexer = BackgroundIndexer(repo, store, CONFIG)
        done = SlowSetEvent()
        threading.Event.set(done)
        indexer._done = done

        indexer.start()
        assert done.setting.wait(5)

        repo.save_skill(make_skill("late", content="arrived after the first run"))
        indexer.start()
        assert store.entered.wait(5)

        assert indexer.wait(0.3) is False
        assert indexer.is_running()

        store.gate.set()
        assert indexer.wait(5)
        assert not indexer.is_running()
        assert store.batch_calls == [["late"]]
