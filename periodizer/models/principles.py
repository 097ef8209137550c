"""Principles-of-play catalogue and focus-principle resolution."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

import yaml

from periodizer.config import DATA_DIR
from periodizer.models.schemas import FocusPrinciples

logger = logging.getLogger(__name__)

CATEGORIES = ("attacking", "defending", "transition")
MAX_FOCUS_PRINCIPLES = 6
DEFAULT_PER_CATEGORY = 2


@dataclass(frozen=True)
class Principle:
    name: str
    category: str
    description: str = ""


@dataclass
class PrinciplesCatalog:
    """Named coaching concepts grouped by attacking/defending/transition."""

    principles: dict[str, list[Principle]] = field(default_factory=dict)

    @classmethod
    def load(cls, path: str | Path | None = None) -> "PrinciplesCatalog":
        path = Path(path) if path else DATA_DIR / "principles.yaml"
        with path.open("r", encoding="utf-8") as fh:
            payload = yaml.safe_load(fh) or {}
        return cls.from_mapping(payload.get("principles_of_play", {}))

    @classmethod
    def from_mapping(cls, mapping: dict[str, Iterable[dict]]) -> "PrinciplesCatalog":
        principles: dict[str, list[Principle]] = {}
        for category in CATEGORIES:
            principles[category] = [
                Principle(name=item["name"], category=category, description=item.get("description", ""))
                for item in mapping.get(category, []) or []
            ]
        return cls(principles=principles)

    def names(self, category: str | None = None) -> list[str]:
        if category:
            return [p.name for p in self.principles.get(category, [])]
        return [p.name for items in self.principles.values() for p in items]

    def category_of(self, name: str) -> str | None:
        for category, items in self.principles.items():
            if any(p.name == name for p in items):
                return category
        return None

    def find(self, category: str, prefix: str) -> str:
        """Return the first catalogue name starting with ``prefix`` (or the prefix itself)."""
        for principle in self.principles.get(category, []):
            if principle.name.startswith(prefix):
                return principle.name
        return prefix

    def resolve_focus(self, selected: Iterable[str] | None = None) -> FocusPrinciples:
        """Validate a user selection against the catalogue, or pick the defaults.

        Unknown names are dropped and at most six principles are kept. Without a
        (valid) selection the first two principles of each category are used.
        """
        selected = list(selected or [])
        chosen = [name for name in selected if self.category_of(name)]
        if len(chosen) != len(selected):
            logger.info("Dropped unknown focus principles from selection: %s", selected)
        chosen = list(dict.fromkeys(chosen))[:MAX_FOCUS_PRINCIPLES]

        focus = FocusPrinciples()
        if not chosen:
            for category in CATEGORIES:
                getattr(focus, category).extend(self.names(category)[:DEFAULT_PER_CATEGORY])
            return focus

        for name in chosen:
            getattr(focus, self.category_of(name)).append(name)
        return focus
