"""Tests for CLI helpers."""

import json

from skillsearch.container import container
from skillsearch.core.protocols.repository import SkillRepositoryProtocol
from skillsearch.core.services.indexer import Indexer, IndexerConfig
from skillsearch.presentation.cli import _skill_from_dict, cmd_index_all, cmd_load

from conftest import ScriptedVectorStore


class TestSkillFromDict:

    def test_string_tags_get_slugs(self):
        skill = _skill_from_dict({"id": "s1", "title": "T", "tags": ["Unit Testing"]})

        assert skill.title == "T"
        assert skill.tags[0].name == "Unit Testing"
        assert skill.tags[0].slug == "unit-testing"
        assert skill.tags[0].id == "unit-testing"
        assert skill.is_pending

    def test_dict_tags_keep_ids(self):
        skill = _skill_from_dict({"id": "s1", "tags": [{"id": "t9", "name": "Go", "slug": "golang"}]})
        assert (skill.tags[0].id, skill.tags[0].slug) == ("t9", "golang")


class TestLoad:

    def test_load_saves_skills(self, tmp_path, repository):
        path = tmp_path / "skills.json"
        path.write_text(json.dumps([
            {"id": "new-1", "title": "New skill", "content": "body"},
            {"id": "new-2", "title": "Another", "tags": ["x"]},
        ]))

        container.register(SkillRepositoryProtocol, lambda: repository, singleton=True)
        try:
            cmd_load(str(path))
        finally:
            container.reset()

        assert repository.get_skill("new-1").content == "body"
        assert [t.name for t in repository.get_skill("new-2").tags] == ["x"]


class TestIndexAll:

    def test_index_all_embeds_changed_skills_only(self, repository):
        store = ScriptedVectorStore()
        indexer = Indexer(repository, store, IndexerConfig(retry_base_delay=0.001))
        indexer.index_pending()

        skill = repository.get_skill("pandas-cleaning")
        skill.content = "Drop duplicates before merging"
        repository.save_skill(skill)

        container.register(Indexer, lambda: indexer, singleton=True)
        try:
            cmd_index_all()
        finally:
            container.reset()

        assert store.batch_calls[-1] == ["pandas-cleaning"]
        assert repository.count_pending_embeddings() == 0
