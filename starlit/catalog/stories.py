"""
Story Catalog

Named serialized stories, each an ordered list of chapters, loaded from
stories.yaml.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from starlit.config import STORIES_PATH
from starlit.engagement.errors import CatalogError
from starlit.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Chapter:
    title: str
    content: str


@dataclass(frozen=True)
class Story:
    name: str
    character: str
    image: str | None
    chapters: tuple[Chapter, ...]

    @property
    def number_of_chapters(self) -> int:
        return len(self.chapters)

    def chapter(self, number: int) -> Chapter | None:
        """1-based chapter lookup; None when out of range."""
        if number < 1 or number > len(self.chapters):
            return None
        return self.chapters[number - 1]


def _parse_story(raw: Any, index: int) -> Story:
    if not isinstance(raw, dict) or not raw.get("name"):
        raise CatalogError(f"Story #{index} must be a mapping with a name")

    chapters_raw = raw.get("chapters") or []
    if not isinstance(chapters_raw, list):
        raise CatalogError(f"Story {raw['name']!r} chapters must be a list")

    chapters = []
    for i, chapter in enumerate(chapters_raw, start=1):
        if not isinstance(chapter, dict) or "content" not in chapter:
            raise CatalogError(f"Story {raw['name']!r} chapter {i} is malformed")
        title = str(chapter.get("title", f"Part {i}"))
        chapters.append(Chapter(title=title, content=str(chapter["content"])))

    return Story(
        name=str(raw["name"]),
        character=str(raw.get("character") or "Starlit Journals Team"),
        image=raw.get("image"),
        chapters=tuple(chapters),
    )


class StoryCatalog:
    """Immutable lookup of stories by name."""

    def __init__(self, stories: list[Story]):
        self._stories = {story.name: story for story in stories}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoryCatalog:
        if not isinstance(data, dict):
            raise CatalogError("Story catalog root must be a mapping")
        raw_stories = data.get("stories") or []
        if not isinstance(raw_stories, list):
            raise CatalogError("stories must be a list")
        return cls([_parse_story(raw, i) for i, raw in enumerate(raw_stories)])

    @classmethod
    def from_yaml(cls, path: Path | str) -> StoryCatalog:
        """
        Load stories from a YAML file

        Raises:
            CatalogError: If the file is missing or malformed
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise CatalogError(f"Story catalog not found: {path}") from e
        except yaml.YAMLError as e:
            raise CatalogError(f"Story catalog is not valid YAML: {path}: {e}") from e

        catalog = cls.from_dict(data or {})
        logger.info("Loaded %d stories from %s", len(catalog._stories), path)
        return catalog

    @classmethod
    def load_default(cls) -> StoryCatalog:
        return cls.from_yaml(STORIES_PATH)

    def get(self, name: str | None) -> Story | None:
        if not name:
            return None
        return self._stories.get(name)

    def names(self) -> list[str]:
        return list(self._stories)
