
import json
import logging
import queue
import sys
from pathlib import Path

from skillsearch.config.settings import settings
from skillsearch.container import configure_container, container
from skillsearch.core.models.search import IndexProgress, SearchOptions
from skillsearch.core.models.skill import Skill, Tag
from skillsearch.core.protocols.repository import SkillRepositoryProtocol
from skillsearch.core.services.background_indexer import BackgroundIndexer
from skillsearch.core.services.indexer import Indexer
from skillsearch.core.services.search_service import SearchService
from skillsearch.core.services.snippets import highlight_text

logger = logging.getLogger(__name__)

USAGE = """Usage: skillsearch <command> [args]
Commands:
  load <file.json>   save skills from a JSON list
  index              embed pending skills
  index --all        re-embed every skill whose content changed
  search <query>     hybrid search
  stats              index statistics"""


def _skill_from_dict(data: dict) -> Skill:
    tags = []
    for tag in data.get("tags", []):
        if isinstance(tag, str):
            tag = {"name": tag}
        name = tag["name"]
        slug = tag.get("slug") or name.lower().replace(" ", "-")
        tags.append(Tag(id=tag.get("id") or slug, name=name, slug=slug))

    return Skill(
        id=data["id"],
        title=data.get("title", ""),
        description=data.get("description", ""),
        summary=data.get("summary", ""),
        content=data.get("content", ""),
        author=data.get("author", ""),
        tags=tags,
    )


def cmd_load(path: str) -> None:
    """Load command - save skills from a JSON file."""
    repository = container.resolve(SkillRepositoryProtocol)

    with open(Path(path), "r", encoding="utf-8") as f:
        records = json.load(f)

    for record in records:
        repository.save_skill(_skill_from_dict(record))

    logger.info(f"Saved {len(records)} skills, {repository.count_pending_embeddings()} pending")


def cmd_index() -> None:
    """Index command - embed pending skills, reporting progress."""
    indexer = container.resolve(BackgroundIndexer)
    updates: queue.Queue[IndexProgress] = queue.Queue(maxsize=100)

    indexer.start(updates)
    try:
        while True:
            update = updates.get()
            if update.message:
                logger.info(
                    f"{update.message} [{update.completed}/{update.total}, failed={update.failed}]"
                )
            if not update.running:
                break
    except KeyboardInterrupt:
        logger.info("Stopping indexer...")
        indexer.stop()
    finally:
        indexer.wait()


def cmd_index_all() -> None:
    """Index --all command - walk every skill, skipping current embeddings."""
    summary = container.resolve(Indexer).index_all()
    logger.info(
        f"Indexed {summary.completed}/{summary.total} skills "
        f"(failed={summary.failed}, skipped={summary.skipped}) in {summary.duration:.1f}s"
    )


def cmd_search(query: str) -> None:
    """Search command - print title and content matches."""
    service = container.resolve(SearchService)
    results = service.search(query, SearchOptions())

    print(f"{results.total_hits} results for '{query}' in {results.duration * 1000:.0f}ms")

    if results.title_matches:
        print("\nTitle / tag matches:")
        for match in results.title_matches:
            tags = ", ".join(t.name for t in match.skill.tags)
            print(f"  [{match.score:.2f}] {match.skill.title}" + (f"  ({tags})" if tags else ""))

    if results.content_matches:
        print("\nContent matches:")
        for match in results.content_matches:
            print(f"  [{match.score:.2f}] {match.skill.title}")
            for snippet in match.snippets:
                print(f"      {highlight_text(snippet)}")


def cmd_stats() -> None:
    """Stats command - print index statistics."""
    stats = container.resolve(SearchService).stats()
    print(f"Skills:       {stats.total_skills}")
    print(f"Indexed:      {stats.indexed_skills}")
    print(f"Pending:      {stats.pending_skills}")
    print(f"Vector store: {'ready' if stats.vector_store_ready else 'disabled'}")


def main():
    """CLI entry point."""
    logging.basicConfig(level=settings.log_level.upper(), format="%(message)s")

    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    command, args = sys.argv[1], sys.argv[2:]

    if command == "load" and len(args) == 1:
        handler = lambda: cmd_load(args[0])
    elif command == "index" and not args:
        handler = cmd_index
    elif command == "index" and args == ["--all"]:
        handler = cmd_index_all
    elif command == "search" and args:
        handler = lambda: cmd_search(" ".join(args))
    elif command == "stats":
        handler = cmd_stats
    else:
        print(f"Unknown command: {' '.join(sys.argv[1:])}")
        print(USAGE)
        sys.exit(1)

    configure_container(settings)
    try:
        handler()
    finally:
        container.shutdown()


if __name__ == "__main__":
    main()
