import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from .config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Container:
    _factories: dict[type, Callable[[], Any]] = field(default_factory=dict)
    _singletons: dict[type, Any] = field(default_factory=dict)
    _singleton_flags: set[type] = field(default_factory=set)

    def register(
        self, interface: type[T], factory: Callable[[], T], singleton: bool = False
    ) -> None:
        """Register factory for interface.

        Args:
            interface: Interface type.
            factory: Factory function.
            singleton: Whether to cache instance.
        """
        self._factories[interface] = factory
        if singleton:
            self._singleton_flags.add(interface)

    def resolve(self, interface: type[T]) -> T:
        if interface in self._singletons:
            return self._singletons[interface]

        if interface not in self._factories:
            raise KeyError(f"No factory registered for {interface}")

        instance = self._factories[interface]()

        if interface in self._singleton_flags:
            self._singletons[interface] = instance

        return instance

    def shutdown(self) -> None:
        """Stop background work and close the shared vector store once."""
        from .core.protocols.vector_store import VectorStoreProtocol
        from .core.services.background_indexer import BackgroundIndexer

        indexer = self._singletons.get(BackgroundIndexer)
        if indexer is not None:
            indexer.stop()
            indexer.wait()

        store = self._singletons.get(VectorStoreProtocol)
        if store is not None:
            store.close()

        self.reset()

    def reset(self) -> None:
        """Reset singletons (for testing)."""
        self._singletons.clear()


container = Container()


def build_vector_store(settings: Settings, embedder):
    """Create the configured vector store backend.

    Raises:
        ValueError: Unknown backend name.
    """
    from .infrastructure.vector_stores.chroma_store import ChromaVectorStore
    from .infrastructure.vector_stores.local_store import LocalVectorStore

    backend = settings.vector_backend.lower()
    if backend == "local":
        return LocalVectorStore(embedder=embedder, data_dir=settings.vector_data_dir)
    if backend == "chroma":
        return ChromaVectorStore(
            embedder=embedder,
            host=settings.chroma_host,
            port=settings.chroma_port,
            collection_name=settings.chroma_collection,
        )
    raise ValueError(f"Unknown vector backend: {settings.vector_backend}")


def configure_container(settings: Settings) -> Container:
    """Configure container with all dependencies.

    Args:
        settings: Application settings.

    Returns:
        Configured container.
    """
    from .core.protocols.embedder import EmbedderProtocol
    from .core.protocols.repository import SkillRepositoryProtocol
    from .core.protocols.vector_store import VectorStoreProtocol
    from .core.services.background_indexer import BackgroundIndexer
    from .core.services.indexer import Indexer, IndexerConfig
    from .core.services.search_service import SearchConfig, SearchService
    from .infrastructure.embeddings.sentence_transformer import (
        SentenceTransformerEmbedder,
    )
    from .infrastructure.repositories.sqlite_repository import SQLiteSkillRepository

    indexer_config = IndexerConfig(
        batch_size=settings.index_batch_size,
        retry_attempts=settings.index_retry_attempts,
        retry_base_delay=settings.index_retry_base_delay,
    )

    container.register(
        SkillRepositoryProtocol,
        lambda: SQLiteSkillRepository(settings.db_path),
        singleton=True,
    )

    container.register(
        EmbedderProtocol,
        lambda: SentenceTransformerEmbedder(
            settings.embedding_model, batch_size=settings.embedding_batch_size
        ),
        singleton=True,
    )

    container.register(
        VectorStoreProtocol,
        lambda: build_vector_store(settings, container.resolve(EmbedderProtocol)),
        singleton=True,
    )

    container.register(
        Indexer,
        lambda: Indexer(
            repository=container.resolve(SkillRepositoryProtocol),
            vector_store=container.resolve(VectorStoreProtocol),
            config=indexer_config,
        ),
        singleton=True,
    )

    container.register(
        BackgroundIndexer,
        lambda: BackgroundIndexer(
            repository=container.resolve(SkillRepositoryProtocol),
            vector_store=container.resolve(VectorStoreProtocol),
            config=indexer_config,
        ),
        singleton=True,
    )

    container.register(
        SearchService,
        lambda: SearchService(
            repository=container.resolve(SkillRepositoryProtocol),
            vector_store=container.resolve(VectorStoreProtocol),
            config=SearchConfig(
                min_similarity=settings.search_min_similarity,
                max_results=settings.search_max_results,
                max_snippets=settings.search_max_snippets,
            ),
        ),
        singleton=True,
    )

    logger.info("Container configured")
    return container
