"""Snippet extraction and highlighting for content matches."""

import re
from dataclasses import dataclass

from ..models.search import Highlight, Snippet

DEFAULT_SNIPPET_LENGTH = 150
DEFAULT_CONTEXT_WINDOW = 50
MAX_SNIPPETS = 3

# Fallback snippets may back off this far to end on whitespace.
_MAX_BACKOFF = 30
_ELLIPSIS = "..."


@dataclass
class _MatchPosition:
    start: int
    end: int
    term: str


def extract_snippets(content: str, query: str, max_snippets: int = MAX_SNIPPETS) -> list[Snippet]:
    """Extract excerpts of content around query term occurrences.

    Args:
        content: Text to search.
        query: Search query.
        max_snippets: Maximum number of snippets (non-positive uses default).

    Returns:
        Snippets with highlight offsets, a single unhighlighted fallback
        snippet when no term occurs, or an empty list for empty input.
    """
    if not content or not query:
        return []

    if max_snippets <= 0:
        max_snippets = MAX_SNIPPETS

    terms = extract_query_terms(query)
    if not terms:
        return []

    matches = _find_matches(content, terms)
    if not matches:
        return [_fallback_snippet(content)]

    return _cluster_matches(content, matches, max_snippets)


def extract_query_terms(query: str) -> list[str]:
    """Split a query into lowercase terms of at least two characters."""
    terms = []
    for word in query.lower().split():
        cleaned = _strip_non_alnum(word)
        if len(cleaned) >= 2:
            terms.append(cleaned)
    return terms


def _strip_non_alnum(word: str) -> str:
    start, end = 0, len(word)
    while start < end and not word[start].isalnum():
        start += 1
    while end > start and not word[end - 1].isalnum():
        end -= 1
    return word[start:end]


def _find_matches(content: str, terms: list[str]) -> list[_MatchPosition]:
    """Find every occurrence of every term, one per start offset."""
    matches: list[_MatchPosition] = []
    seen: set[int] = set()

    for term in terms:
        # Lookahead so overlapping occurrences are all reported.
        pattern = re.compile(f"(?=({re.escape(term)}))", re.IGNORECASE)
        for m in pattern.finditer(content):
            start, end = m.start(1), m.end(1)
            if start in seen:
                continue
            seen.add(start)
            matches.append(_MatchPosition(start=start, end=end, term=term))

    matches.sort(key=lambda m: m.start)
    return matches


def _cluster_matches(
    content: str, matches: list[_MatchPosition], max_snippets: int
) -> list[Snippet]:
    """Group nearby matches into word-aligned snippets."""
    snippets: list[Snippet] = []
    used: set[int] = set()

    for match in matches:
        if len(snippets) >= max_snippets:
            break
        if match.start in used:
            continue

        start = max(match.start - DEFAULT_CONTEXT_WINDOW, 0)
        end = min(match.end + DEFAULT_CONTEXT_WINDOW, len(content))
        start = _expand_to_word_boundary(content, start, backward=True)
        end = _expand_to_word_boundary(content, end, backward=False)

        highlights = []
        for m in matches:
            if m.start >= start and m.end <= end:
                highlights.append(Highlight(start=m.start - start, end=m.end - start))
                used.add(m.start)

        text = content[start:end]
        if start > 0:
            text = _ELLIPSIS + text
            shift = len(_ELLIPSIS)
            highlights = [Highlight(h.start + shift, h.end + shift) for h in highlights]
        if end < len(content):
            text = text + _ELLIPSIS

        snippets.append(Snippet(text=text, highlights=highlights))

    return snippets


def _expand_to_word_boundary(content: str, pos: int, backward: bool) -> int:
    if backward:
        while pos > 0 and not content[pos - 1].isspace():
            pos -= 1
    else:
        while pos < len(content) and not content[pos].isspace():
            pos += 1
    return pos


def _fallback_snippet(content: str) -> Snippet:
    """Leading excerpt used when no query term occurs in content."""
    if len(content) <= DEFAULT_SNIPPET_LENGTH:
        return Snippet(text=content)

    end = DEFAULT_SNIPPET_LENGTH
    while end > DEFAULT_SNIPPET_LENGTH - _MAX_BACKOFF and not content[end].isspace():
        end -= 1

    return Snippet(text=content[:end] + _ELLIPSIS)


def highlight_text(snippet: Snippet) -> str:
    """Render a snippet with **bold** markers around its highlights.

    Highlights outside the text or with start >= end are ignored.
    """
    text = snippet.text
    valid = sorted(
        (h for h in snippet.highlights if 0 <= h.start < h.end <= len(text)),
        key=lambda h: h.start,
    )
    if not valid:
        return text

    parts = []
    last_end = 0
    for h in valid:
        if h.start > last_end:
            parts.append(text[last_end:h.start])
        parts.append(f"**{text[h.start:h.end]}**")
        last_end = max(last_end, h.end)

    if last_end < len(text):
        parts.append(text[last_end:])

    return "".join(parts)
