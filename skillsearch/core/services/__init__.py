"""Core business services."""
from .background_indexer import BackgroundIndexer, IndexerState, IndexOutcome
from .indexer import Indexer, IndexerConfig
from .search_service import SearchConfig, SearchService
from .snippets import extract_snippets, highlight_text

__all__ = [
    "BackgroundIndexer",
    "IndexerState",
    "IndexOutcome",
    "Indexer",
    "IndexerConfig",
    "SearchConfig",
    "SearchService",
    "extract_snippets",
    "highlight_text",
]
