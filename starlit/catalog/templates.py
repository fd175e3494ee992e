"""
Template Catalog

Read-only lookup of mail copy by category and key, loaded from
mail_templates.yaml. Pools are addressed by a path of keys, e.g.
("moodBased", "sad") or ("streakMilestone", "7day"). A missing path is a
normal outcome (empty pool), never an error.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from starlit.config import MAIL_TEMPLATES_PATH
from starlit.engagement.errors import CatalogError
from starlit.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SENDER = "Starlit Journals Team"

# Top-level sections that are not template pools
_STRING_LISTS = ("writingPrompts",)
_THEME_SECTION = "mailThemes"


@dataclass(frozen=True)
class MailTemplate:
    """One piece of mail copy. Content may contain {placeholder} tokens."""

    title: str
    content: str
    sender: str = DEFAULT_SENDER
    reward_amount: int = 0
    mail_type: str | None = None


@dataclass(frozen=True)
class MailTheme:
    """Presentation skin applied to mail bodies for users who own it."""

    theme_id: str
    styles: dict[str, str] = field(default_factory=dict)
    content_prefixes: tuple[str, ...] = ()
    content_suffixes: tuple[str, ...] = ()
    sender: str | None = None
    prompt_titles: tuple[str, ...] = ()


def _parse_template(raw: Any, where: str) -> MailTemplate:
    if not isinstance(raw, dict):
        raise CatalogError(f"Template at {where} must be a mapping, got {type(raw).__name__}")
    if "content" not in raw:
        raise CatalogError(f"Template at {where} has no content")

    try:
        reward = int(raw.get("rewardAmount") or 0)
    except (TypeError, ValueError) as e:
        raise CatalogError(f"Template at {where} has invalid rewardAmount") from e

    return MailTemplate(
        title=str(raw.get("title", "")),
        content=str(raw["content"]),
        sender=str(raw.get("sender") or DEFAULT_SENDER),
        reward_amount=reward,
        mail_type=raw.get("mailType"),
    )


def _parse_theme(theme_id: str, raw: Any) -> MailTheme:
    if not isinstance(raw, dict):
        raise CatalogError(f"Mail theme {theme_id!r} must be a mapping")

    styles = raw.get("styles") or {}
    if not isinstance(styles, dict):
        raise CatalogError(f"Mail theme {theme_id!r} styles must be a mapping")

    return MailTheme(
        theme_id=theme_id,
        styles={str(k): str(v) for k, v in styles.items()},
        content_prefixes=tuple(str(p) for p in raw.get("contentPrefixes") or ()),
        content_suffixes=tuple(str(s) for s in raw.get("contentSuffixes") or ()),
        sender=raw.get("sender"),
        prompt_titles=tuple(str(t) for t in raw.get("promptTitles") or ()),
    )


class TemplateCatalog:
    """
    Immutable mail copy catalog.

    Construct from an already-parsed mapping (tests) or with from_yaml().
    """

    def __init__(self, data: dict[str, Any]):
        if not isinstance(data, dict):
            raise CatalogError("Template catalog root must be a mapping")

        self._pools: dict[tuple[str, ...], tuple[MailTemplate, ...]] = {}
        self._strings: dict[str, tuple[str, ...]] = {}
        self._themes: dict[str, MailTheme] = {}

        for section, value in data.items():
            if section in _STRING_LISTS:
                if not isinstance(value, list):
                    raise CatalogError(f"{section} must be a list of strings")
                self._strings[section] = tuple(str(v) for v in value)
            elif section == _THEME_SECTION:
                if not isinstance(value, dict):
                    raise CatalogError(f"{section} must be a mapping")
                for theme_id, raw in value.items():
                    self._themes[theme_id] = _parse_theme(theme_id, raw)
            else:
                self._load_section((str(section),), value)

    def _load_section(self, path: tuple[str, ...], value: Any) -> None:
        where = ".".join(path)
        if isinstance(value, list):
            self._pools[path] = tuple(
                _parse_template(item, f"{where}[{i}]") for i, item in enumerate(value)
            )
        elif isinstance(value, dict) and "content" in value:
            self._pools[path] = (_parse_template(value, where),)
        elif isinstance(value, dict):
            for key, child in value.items():
                self._load_section((*path, str(key)), child)
        else:
            raise CatalogError(f"Unexpected value at {where}: {type(value).__name__}")

    @classmethod
    def from_yaml(cls, path: Path | str) -> TemplateCatalog:
        """
        Load catalog from a YAML file

        Raises:
            CatalogError: If the file is missing or malformed
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise CatalogError(f"Template catalog not found: {path}") from e
        except yaml.YAMLError as e:
            raise CatalogError(f"Template catalog is not valid YAML: {path}: {e}") from e

        catalog = cls(data or {})
        logger.info(
            "Loaded template catalog from %s (%d pools, %d themes)",
            path,
            len(catalog._pools),
            len(catalog._themes),
        )
        return catalog

    @classmethod
    def load_default(cls) -> TemplateCatalog:
        return cls.from_yaml(MAIL_TEMPLATES_PATH)

    def pool(self, *path: str) -> tuple[MailTemplate, ...]:
        """Templates at a key path, or an empty tuple on a miss."""
        return self._pools.get(tuple(path), ())

    def has(self, *path: str) -> bool:
        return bool(self.pool(*path))

    def pick(self, rng: random.Random, *path: str) -> MailTemplate | None:
        """Random template from a pool, or None when the pool is absent."""
        templates = self.pool(*path)
        if not templates:
            return None
        return rng.choice(templates)

    def writing_prompts(self) -> tuple[str, ...]:
        return self._strings.get("writingPrompts", ())

    def random_prompt(self, rng: random.Random) -> str | None:
        prompts = self.writing_prompts()
        return rng.choice(prompts) if prompts else None

    def theme(self, theme_id: str | None) -> MailTheme | None:
        if not theme_id:
            return None
        return self._themes.get(theme_id)
