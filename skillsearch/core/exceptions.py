"""Domain exceptions."""


class SkillSearchError(Exception):
    """Base error for the search and indexing core."""


class StoreNotConfiguredError(SkillSearchError):
    """Raised when a component is used without its skill repository."""


class VectorStoreError(SkillSearchError):
    """Raised by vector store adapters when the backend rejects an operation."""
