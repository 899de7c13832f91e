"""Vector store implementations."""
from .chroma_store import ChromaVectorStore
from .local_store import LocalVectorStore

__all__ = ["ChromaVectorStore", "LocalVectorStore"]
