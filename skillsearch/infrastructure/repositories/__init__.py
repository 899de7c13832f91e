"""Skill repository implementations."""
from .sqlite_repository import SQLiteSkillRepository

__all__ = ["SQLiteSkillRepository"]
