"""Task capsule validation against labeling evidence."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

import structlog
from rapidfuzz.distance import Levenshtein

from ...schemas import CapsuleValidation, EvidenceSet
from ..evidence._text import contains_term
from ._capsule_text import parse_capsule, split_sentences

logger = structlog.get_logger(__name__)

FIXED_SENTENCE = "No AI/LLM data-labeling, model training, or evaluation experience documented."
NO_EVIDENCE_TASK_CAPSULE = f"{FIXED_SENTENCE}\nKeywords: none"

BLOCKLIST_TERMS: tuple[str, ...] = (
    "data entry",
    "data capture",
    "documentation",
    "ehr",
    "ehr workflow",
    "clinical data review",
    "research study",
    "cohort study",
    "excel",
    "spreadsheet",
    "powerpoint",
    "meeting",
    "meetings",
    "meeting notes",
    "case management",
    "qa",
    "analysis",
    "analytics",
    "reporting",
    "paperwork",
    "administrative",
    "admin",
    "data cleaning",
    "copywriting",
    "content writing",
    "customer service",
)

_LABEL_CONTEXT = re.compile(
    r"\b(annotation|annotations|annotator|annotators|labeling|labelling|labelers?|labelled|labeled|label)\b",
    re.IGNORECASE,
)
_WRITING_CONTEXT = re.compile(r"\b(prompt writing|response evaluation|response rating)\b", re.IGNORECASE)
_MODEL_TRAINING_CLEANING = re.compile(r"data cleaning for model training", re.IGNORECASE)
_WORDS = re.compile(r"[A-Za-z0-9][A-Za-z0-9+/'&.-]*")


@dataclass
class TaskCapsuleConfig:
    """Configuration for task capsule validation."""

    require_keywords_in_body: bool = True
    fuzzy_max_distance: int = 1
    fuzzy_min_length: int = 4


def _blocked_in_sentences(body: str, term: str, allowance: re.Pattern[str]) -> bool:
    for sentence in split_sentences(body):
        if contains_term(sentence, term) and not allowance.search(sentence):
            return True
    return False


def find_blocklisted_term(body: str) -> str | None:
    """Return the first blocklisted phrase in ``body`` that has no allowance."""
    for term in BLOCKLIST_TERMS:
        if not re.search(rf"\b{re.escape(term)}\b", body, re.IGNORECASE):
            continue
        if term == "qa":
            if _blocked_in_sentences(body, term, _LABEL_CONTEXT):
                return term
            continue
        if term == "data cleaning":
            if _MODEL_TRAINING_CLEANING.search(body):
                continue
            return term
        if term in ("copywriting", "content writing"):
            if _blocked_in_sentences(body, term, _WRITING_CONTEXT):
                return term
            continue
        return term
    return None


class TaskCapsuleValidator:
    """Keep generated task capsules grounded in labeling evidence.

    Any violation replaces the capsule with the canonical no-experience text;
    the violations are returned for logging and never raised.
    """

    method = "task_capsule"

    def __init__(self, *, config: TaskCapsuleConfig | None = None) -> None:
        self._config = config or TaskCapsuleConfig()

    def validate(self, text: str, evidence: EvidenceSet | Iterable[str]) -> CapsuleValidation:
        evidence_terms = _lowered_terms(evidence)
        trimmed = (text or "").strip()

        if not evidence_terms:
            if trimmed == NO_EVIDENCE_TASK_CAPSULE:
                return CapsuleValidation(text=NO_EVIDENCE_TASK_CAPSULE)
            return self._reject(("NO_EVIDENCE_EXPECTED_FIXED_SENTENCE",))

        violation = self._first_violation(trimmed, evidence_terms)
        if violation:
            return self._reject((violation,))
        return CapsuleValidation(text=trimmed)

    def _first_violation(self, trimmed: str, evidence_terms: frozenset[str]) -> str | None:
        parts = parse_capsule(trimmed)
        if not parts.keywords:
            return "MISSING_KEYWORDS"
        for keyword in parts.keywords:
            if keyword.lower() not in evidence_terms:
                return f"KEYWORD_NOT_IN_EVIDENCE:{keyword}"
        if self._config.require_keywords_in_body:
            for keyword in parts.keywords:
                if not self.keyword_in_body(keyword, parts.body):
                    return f"KEYWORD_NOT_IN_BODY:{keyword}"
        blocked = find_blocklisted_term(parts.body)
        if blocked:
            return f"BLOCKLIST_TERM:{blocked}"
        return None

    def keyword_in_body(self, keyword: str, body: str) -> bool:
        """Exact term match, else a per-word Levenshtein match over body n-grams."""
        if contains_term(body, keyword):
            return True
        wanted = keyword.lower().split()
        if not wanted:
            return False
        words = [word.lower() for word in _WORDS.findall(body)]
        size = len(wanted)
        for start in range(len(words) - size + 1):
            window = words[start : start + size]
            if all(self._fuzzy_equal(a, b) for a, b in zip(wanted, window)):
                return True
        return False

    def _fuzzy_equal(self, expected: str, actual: str) -> bool:
        if expected == actual:
            return True
        if len(expected) < self._config.fuzzy_min_length:
            return False
        limit = self._config.fuzzy_max_distance
        return Levenshtein.distance(expected, actual, score_cutoff=limit) <= limit

    @staticmethod
    def _reject(violations: tuple[str, ...]) -> CapsuleValidation:
        logger.warning("capsules.validation", section="task", violations=list(violations))
        return CapsuleValidation(text=NO_EVIDENCE_TASK_CAPSULE, violations=violations)


def _lowered_terms(evidence: EvidenceSet | Iterable[str]) -> frozenset[str]:
    if isinstance(evidence, EvidenceSet):
        return evidence.lowered()
    return frozenset(str(term).strip().lower() for term in evidence if str(term).strip())


def validate_task_capsule(text: str, evidence: EvidenceSet | Iterable[str]) -> CapsuleValidation:
    return TaskCapsuleValidator().validate(text, evidence)


__all__ = [
    "BLOCKLIST_TERMS",
    "FIXED_SENTENCE",
    "NO_EVIDENCE_TASK_CAPSULE",
    "TaskCapsuleConfig",
    "TaskCapsuleValidator",
    "find_blocklisted_term",
    "validate_task_capsule",
]
