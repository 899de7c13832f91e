"""Protocol interfaces for dependency injection."""
from .embedder import EmbedderProtocol
from .repository import SkillRepositoryProtocol
from .vector_store import VectorStoreProtocol

__all__ = [
    "EmbedderProtocol",
    "SkillRepositoryProtocol",
    "VectorStoreProtocol",
]
