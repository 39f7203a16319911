"""Labeling/task vocabulary loaded from ``evidence.yaml``."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping

from ...config import ConfigManager
from ...errors import MatchingError

CATEGORIES: tuple[str, ...] = ("tasks", "labelTypes", "modalities", "tools", "llmTraining")
MODAL_CATEGORIES = frozenset({"modalities"})


@dataclass(frozen=True)
class LabelingVocabulary:
    """Category -> terms, in file order."""

    categories: Mapping[str, tuple[str, ...]]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "LabelingVocabulary":
        section = raw.get("labeling", raw)
        if not isinstance(section, Mapping):
            raise MatchingError("CONFIG_ERROR", "labeling vocabulary must be a mapping")
        categories: dict[str, tuple[str, ...]] = {}
        for name in CATEGORIES:
            terms = section.get(name) or ()
            categories[name] = tuple(str(term).strip().lower() for term in terms if str(term).strip())
        return cls(categories=MappingProxyType(categories))

    def terms(self, category: str) -> tuple[str, ...]:
        return self.categories.get(category, ())

    def all_terms(self) -> list[str]:
        seen: list[str] = []
        for terms in self.categories.values():
            seen.extend(term for term in terms if term not in seen)
        return seen


def load_vocabulary(manager: ConfigManager | None = None) -> LabelingVocabulary:
    if manager is None:
        return default_vocabulary()
    return LabelingVocabulary.from_mapping(manager.load("evidence"))


@lru_cache(maxsize=1)
def default_vocabulary() -> LabelingVocabulary:
    return LabelingVocabulary.from_mapping(ConfigManager().load("evidence"))


__all__ = ["CATEGORIES", "LabelingVocabulary", "MODAL_CATEGORIES", "default_vocabulary", "load_vocabulary"]
