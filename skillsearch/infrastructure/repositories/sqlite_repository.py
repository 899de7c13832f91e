"""
SQLite skill repository with FTS5 ranked search.

Skills, tags and their links live in plain tables; an external-content
FTS5 table mirrors the searchable columns through triggers. Connections
are opened per operation and the database runs in WAL mode, so the
background indexer can write while searches read.
"""

import logging
import re
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from skillsearch.core.content import skill_content_hash
from skillsearch.core.models.skill import RepositoryStats, Skill, Tag

logger = logging.getLogger(__name__)


SCHEMA = '''
CREATE TABLE IF NOT EXISTS skills (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    summary TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    author TEXT NOT NULL DEFAULT '',
    embedding_id TEXT NOT NULL DEFAULT '',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    slug TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS skill_tags (
    skill_id TEXT NOT NULL REFERENCES skills(id) ON DELETE CASCADE,
    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (skill_id, tag_id)
);

CREATE VIRTUAL TABLE IF NOT EXISTS skills_fts USING fts5(
    title,
    description,
    content,
    summary,
    author,
    content='skills',
    content_rowid='rowid',
    tokenize='porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS skills_ai AFTER INSERT ON skills BEGIN
    INSERT INTO skills_fts(rowid, title, description, content, summary, author)
    VALUES (NEW.rowid, NEW.title, NEW.description, NEW.content, NEW.summary, NEW.author);
END;

CREATE TRIGGER IF NOT EXISTS skills_ad AFTER DELETE ON skills BEGIN
    INSERT INTO skills_fts(skills_fts, rowid, title, description, content, summary, author)
    VALUES ('delete', OLD.rowid, OLD.title, OLD.description, OLD.content, OLD.summary, OLD.author);
END;

CREATE TRIGGER IF NOT EXISTS skills_au AFTER UPDATE ON skills BEGIN
    INSERT INTO skills_fts(skills_fts, rowid, title, description, content, summary, author)
    VALUES ('delete', OLD.rowid, OLD.title, OLD.description, OLD.content, OLD.summary, OLD.author);
    INSERT INTO skills_fts(rowid, title, description, content, summary, author)
    VALUES (NEW.rowid, NEW.title, NEW.description, NEW.content, NEW.summary, NEW.author);
END;

CREATE INDEX IF NOT EXISTS idx_skills_embedding ON skills(embedding_id);
CREATE INDEX IF NOT EXISTS idx_skills_updated ON skills(updated_at);
CREATE INDEX IF NOT EXISTS idx_skill_tags_skill ON skill_tags(skill_id);
'''

# bm25 column weights: title, description, content, summary, author.
BM25_WEIGHTS = (10.0, 5.0, 1.0, 2.0, 3.0)

_PENDING_CLAUSE = "(embedding_id IS NULL OR embedding_id = '')"
_WORD_RE = re.compile(r"\w+", re.UNICODE)


class SQLiteSkillRepository:
    """
    Skill storage and retrieval.

    Implements SkillRepositoryProtocol.
    """

    def __init__(self, db_path: str, busy_timeout: float = 5.0):
        """
        Initialize the repository.

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = busy_timeout

        self._init_db()

    def _init_db(self):
        """Initialize the database schema."""
        with self._connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(str(self.db_path), timeout=self._busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def save_skill(self, skill: Skill) -> None:
        """
        Insert or update a skill together with its tags.

        The embedding_id is kept only while it matches the skill's content
        hash; otherwise it is cleared, which makes the skill pending again.
        """
        digest = skill_content_hash(skill)
        skill.updated_at = datetime.now()

        with self._connection() as conn:
            if not skill.embedding_id:
                row = conn.execute(
                    'SELECT embedding_id FROM skills WHERE id = ?', (skill.id,)
                ).fetchone()
                if row is not None and row['embedding_id'] == digest:
                    skill.embedding_id = digest
            elif skill.embedding_id != digest:
                logger.debug(f"Content of skill {skill.id} changed, embedding invalidated")
                skill.embedding_id = ""

            conn.execute(
                '''
                INSERT INTO skills (id, title, description, summary, content, author,
                                    embedding_id, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    summary = excluded.summary,
                    content = excluded.content,
                    author = excluded.author,
                    embedding_id = excluded.embedding_id,
                    updated_at = excluded.updated_at
                ''',
                self._skill_values(skill),
            )

            conn.execute('DELETE FROM skill_tags WHERE skill_id = ?', (skill.id,))
            for tag in skill.tags:
                conn.execute(
                    '''
                    INSERT INTO tags (id, name, slug) VALUES (?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET name = excluded.name, slug = excluded.slug
                    ''',
                    (tag.id, tag.name, tag.slug),
                )
                conn.execute(
                    'INSERT OR IGNORE INTO skill_tags (skill_id, tag_id) VALUES (?, ?)',
                    (skill.id, tag.id),
                )

    def update_skill(self, skill: Skill) -> None:
        """
        Update a skill's fields, including embedding_id.

        Tags are left unchanged. Raises KeyError if the skill does not exist.
        """
        skill.updated_at = datetime.now()
        title, description, summary, content, author, embedding_id, updated_at = (
            self._skill_values(skill)[1:]
        )

        with self._connection() as conn:
            cursor = conn.execute(
                '''
                UPDATE skills
                SET title = ?, description = ?, summary = ?, content = ?, author = ?,
                    embedding_id = ?, updated_at = ?
                WHERE id = ?
                ''',
                (title, description, summary, content, author, embedding_id, updated_at, skill.id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Skill not found: {skill.id}")

    def get_skill(self, skill_id: str) -> Optional[Skill]:
        """
        Get a skill by ID.

        Returns:
            Skill with tags, or None
        """
        with self._connection() as conn:
            row = conn.execute('SELECT * FROM skills WHERE id = ?', (skill_id,)).fetchone()
            if row is None:
                return None
            return self._load_tags(conn, [self._row_to_skill(row)])[0]

    def delete_skill(self, skill_id: str) -> bool:
        """
        Delete a skill.

        Returns:
            True if deleted
        """
        with self._connection() as conn:
            cursor = conn.execute('DELETE FROM skills WHERE id = ?', (skill_id,))
            return cursor.rowcount > 0

    def list_skills(self, limit: int, offset: int = 0) -> list[Skill]:
        """List skills, most recently updated first."""
        with self._connection() as conn:
            rows = conn.execute(
                'SELECT * FROM skills ORDER BY updated_at DESC LIMIT ? OFFSET ?',
                (limit, offset),
            ).fetchall()
            return self._load_tags(conn, [self._row_to_skill(r) for r in rows])

    # =========================================================================
    # Embedding tracking
    # =========================================================================

    def count_pending_embeddings(self) -> int:
        """Count skills that need an embedding."""
        with self._connection() as conn:
            row = conn.execute(f'SELECT COUNT(*) FROM skills WHERE {_PENDING_CLAUSE}').fetchone()
            return row[0]

    def get_pending_embeddings(self, limit: int) -> list[Skill]:
        """Get skills that need an embedding, most recently updated first."""
        with self._connection() as conn:
            rows = conn.execute(
                f'''
                SELECT * FROM skills
                WHERE {_PENDING_CLAUSE}
                ORDER BY updated_at DESC
                LIMIT ?
                ''',
                (limit,),
            ).fetchall()
            return self._load_tags(conn, [self._row_to_skill(r) for r in rows])

    # =========================================================================
    # Search
    # =========================================================================

    def search_ranked(self, query: str, limit: int = 20) -> list[Skill]:
        """
        Full-text search with BM25 ranking.

        Args:
            query: Search query; every word must match (prefix match)
            limit: Maximum results

        Returns:
            Skills with tags, best match first
        """
        fts_query = prepare_fts_query(query)
        if not fts_query:
            return []
        if limit <= 0:
            limit = 20

        weights = ", ".join(str(w) for w in BM25_WEIGHTS)
        with self._connection() as conn:
            rows = conn.execute(
                f'''
                SELECT s.*, bm25(skills_fts, {weights}) AS score
                FROM skills_fts
                JOIN skills s ON s.rowid = skills_fts.rowid
                WHERE skills_fts MATCH ?
                ORDER BY score
                LIMIT ?
                ''',
                (fts_query, limit),
            ).fetchall()
            return self._load_tags(conn, [self._row_to_skill(r) for r in rows])

    def get_stats(self) -> RepositoryStats:
        """Aggregate statistics about stored skills."""
        with self._connection() as conn:
            total_skills, last_updated = conn.execute(
                'SELECT COUNT(*), MAX(updated_at) FROM skills'
            ).fetchone()
            total_tags = conn.execute('SELECT COUNT(*) FROM tags').fetchone()[0]

        return RepositoryStats(
            total_skills=total_skills,
            total_tags=total_tags,
            last_updated=_parse_timestamp(last_updated) or datetime.now(),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _skill_values(skill: Skill) -> tuple:
        return (
            skill.id,
            skill.title,
            skill.description,
            skill.summary,
            skill.content,
            skill.author,
            skill.embedding_id or "",
            (skill.updated_at or datetime.now()).isoformat(),
        )

    @staticmethod
    def _row_to_skill(row: sqlite3.Row) -> Skill:
        return Skill(
            id=row['id'],
            title=row['title'],
            description=row['description'],
            summary=row['summary'],
            content=row['content'],
            author=row['author'],
            embedding_id=row['embedding_id'] or "",
            updated_at=_parse_timestamp(row['updated_at']),
        )

    @staticmethod
    def _load_tags(conn: sqlite3.Connection, skills: list[Skill]) -> list[Skill]:
        """Attach tags to skills in a single query."""
        if not skills:
            return skills

        by_id = {s.id: s for s in skills}
        placeholders = ", ".join("?" for _ in by_id)
        rows = conn.execute(
            f'''
            SELECT st.skill_id, t.id, t.name, t.slug
            FROM skill_tags st
            JOIN tags t ON t.id = st.tag_id
            WHERE st.skill_id IN ({placeholders})
            ORDER BY t.name
            ''',
            list(by_id),
        ).fetchall()

        for row in rows:
            by_id[row['skill_id']].tags.append(
                Tag(id=row['id'], name=row['name'], slug=row['slug'])
            )
        return skills


def prepare_fts_query(query: str) -> str:
    """Turn free text into an FTS5 query of quoted prefix terms."""
    words = _WORD_RE.findall(query)
    return " ".join(f'"{w}"*' for w in words)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None
