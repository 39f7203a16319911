"""Labeling/task evidence: AI-training task signals from résumé and job text."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from ...schemas import EVIDENCE_CAP, EvidenceSet
from ._text import is_phrase_term, term_pattern
from .vocabulary import MODAL_CATEGORIES, LabelingVocabulary, default_vocabulary

logger = structlog.get_logger(__name__)


@dataclass
class LabelingEvidenceConfig:
    """Configuration for labeling evidence extraction."""

    max_items: int = EVIDENCE_CAP
    require_non_modal: bool = True


class LabelingEvidenceExtractor:
    """Match task, tool and model-training vocabulary against free text.

    Modalities alone ("image", "text") are not evidence of labeling work, so
    a source that only mentions modalities yields an empty set.
    """

    method = "labeling_evidence"

    def __init__(
        self,
        *,
        vocabulary: LabelingVocabulary | None = None,
        config: LabelingEvidenceConfig | None = None,
    ) -> None:
        self._vocabulary = vocabulary or default_vocabulary()
        self._config = config or LabelingEvidenceConfig()
        self._compiled = tuple(
            (category, term, is_phrase_term(term), term_pattern(term))
            for category, terms in self._vocabulary.categories.items()
            for term in terms
        )

    def extract(self, text: str | None) -> EvidenceSet:
        try:
            return self._extract(text or "")
        except Exception as exc:  # noqa: BLE001
            logger.warning("labeling_evidence.extract_failure", error=str(exc))
            return EvidenceSet.empty()

    def _extract(self, text: str) -> EvidenceSet:
        if not text.strip():
            return EvidenceSet.empty()
        rendered = EvidenceSet.from_text(text)
        if rendered is not None:
            return rendered
        source = text.lower()
        tokens: list[str] = []
        phrases: list[str] = []
        matched_categories: set[str] = set()
        for category, term, phrase, pattern in self._compiled:
            if not pattern.search(source):
                continue
            target = phrases if phrase else tokens
            if term not in target:
                target.append(term)
            matched_categories.add(category)

        if self._config.require_non_modal and not (matched_categories - MODAL_CATEGORIES):
            return EvidenceSet.empty()
        cap = self._config.max_items
        return EvidenceSet(tokens=tokens[:cap], phrases=phrases[:cap])


def extract_labeling_evidence(text: str | None) -> EvidenceSet:
    return LabelingEvidenceExtractor().extract(text)


__all__ = ["LabelingEvidenceConfig", "LabelingEvidenceExtractor", "extract_labeling_evidence"]
