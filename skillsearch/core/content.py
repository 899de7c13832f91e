"""Embeddable text preparation and content hashing."""

import hashlib

from .models.skill import Skill

# Rough token budget of the embedding model input.
MAX_EMBEDDING_TOKENS = 8000


def prepare_content(skill: Skill) -> str:
    """Concatenate skill fields into a single embeddable text.

    The title is repeated to give it more weight in the embedding.
    Tag names are sorted so the text depends on the tag set, not its
    order. Empty fields are omitted.

    Args:
        skill: Skill to prepare.

    Returns:
        Fields joined by blank lines.
    """
    parts: list[str] = []

    if skill.title:
        parts.extend([skill.title, skill.title])
    if skill.description:
        parts.append(skill.description)
    if skill.summary:
        parts.append(skill.summary)
    if skill.content:
        parts.append(skill.content)
    parts.extend(sorted(tag.name for tag in skill.tags))

    return "\n\n".join(parts)


def content_hash(text: str) -> str:
    """SHA-256 hex digest of text, used to detect stale embeddings."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Truncate text to an approximate token budget (~4 chars per token)."""
    max_chars = max(max_tokens, 0) * 4
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


def embedding_text(skill: Skill, max_tokens: int = MAX_EMBEDDING_TOKENS) -> str:
    """Text that is actually sent to the embedder for a skill."""
    return truncate_to_tokens(prepare_content(skill), max_tokens)


def skill_content_hash(skill: Skill) -> str:
    """Hash of the embedded text; stored as the skill's embedding_id."""
    return content_hash(embedding_text(skill))
