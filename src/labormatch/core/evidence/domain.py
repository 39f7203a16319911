"""Domain evidence: subject-matter signals pulled from job text."""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from ...schemas import EVIDENCE_CAP, EvidenceSet
from ._text import format_token, normalize_token

logger = structlog.get_logger(__name__)

SOFT_BLOCKLIST = frozenset(
    {
        "accuracy", "accurate", "audience", "availability", "available", "communication",
        "communicate", "compassion", "compassionate", "empathy", "empathetic", "feedback",
        "flexibility", "flexible", "inclusivity", "inclusive", "logistics", "logistical",
        "pay", "payment", "schedule", "scheduling", "timeline", "timeframe", "deadline",
        "deadlines", "turnaround", "auditing", "audit", "quality", "reliability", "accessible",
        "accessibility", "refine", "refinement", "review", "reviews", "validate", "validation",
        "validator", "validators", "resources", "resource", "experience", "experienced",
        "budget", "budgets", "cost", "costs", "pricing", "price",
    }
)

GENERIC_STOPWORDS = frozenset(
    {
        "and", "the", "for", "with", "into", "from", "that", "this", "will", "including",
        "include", "ensures", "ensure", "ensuring", "support", "supports", "supporting",
        "provide", "providing", "provides", "across", "such", "other", "various", "ability",
        "must", "should", "strong", "team", "teams", "global", "detail", "detailed", "details",
        "detail-oriented", "orientation", "knowledge", "background", "skill", "skills",
        "capability", "capabilities", "work", "working", "role", "roles", "responsible",
        "responsibility", "responsibilities", "manage", "managing", "management", "lead",
        "leading", "leadership", "teamwork", "collaboration", "collaborative", "title",
        "instruction", "instructions", "reviewer", "description", "descriptions", "guidance",
        "requirement", "requirements", "additional", "content", "focusing", "focus", "focused",
        "hold", "holds", "holding", "have", "has", "completed", "complete", "completes",
        "maintain", "maintains", "maintaining", "board", "certification", "certifications",
        "project", "projects", "data", "dataset", "datasets", "job", "jobs",
    }
)

CREDENTIAL_TERMS: tuple[str, ...] = (
    "MD", "DO", "RN", "NP", "PA", "JD", "LLM", "LLB", "DDS", "DMD", "DVM", "PhD", "Ph.D",
    "MBA", "MPH", "MSN", "MS", "BSN", "BS", "BA", "CPA", "CFA", "CFP", "CMA", "CISA", "CISM",
    "CISSP", "PMP", "PMI-ACP", "CSM", "CSPO", "SAFe", "FRM", "PE", "MRCOG", "FACS", "FACC", "ABOG",
)

STANDARD_TERMS: tuple[str, ...] = (
    "HIPAA", "GDPR", "CCPA", "IFRS", "GAAP", "SOX", "ISO 13485", "ISO 27001", "SOC 2", "SOC2",
    "SOC-2", "IEC 62304", "FDA", "EMA", "Board certification", "Board-certified",
)

STACK_TERMS: tuple[str, ...] = (
    "HTML", "CSS", "JavaScript", "TypeScript", "Python", "Java", "C#", "C++", "Go", "Rust",
    "Ruby", "PHP", "SQL", "PostgreSQL", "MySQL", "MongoDB", "React", "Vue", "Angular", "Node.js",
    "Django", "Flask", "Spring", "Laravel", "Swift", "Kotlin", "Objective-C",
)

HUMAN_LANGUAGES: tuple[str, ...] = (
    "english", "spanish", "german", "french", "portuguese", "italian", "arabic", "mandarin",
    "cantonese", "japanese", "korean", "hindi", "bengali", "urdu", "russian", "ukrainian",
    "polish", "turkish", "swahili", "amharic", "yoruba", "hausa", "tagalog", "thai",
    "vietnamese", "malay", "indonesian", "farsi", "persian", "hebrew", "swedish", "norwegian",
    "danish", "finnish", "dutch", "romanian", "greek", "czech", "slovak", "hungarian", "serbian",
    "croatian", "bulgarian", "catalan", "quechua", "gujarati", "punjabi", "marathi", "telugu",
    "tamil", "malayalam", "kannada", "lao", "khmer", "burmese", "somali", "zulu", "xhosa",
    "afrikaans", "nepali", "sinhala", "icelandic", "maori", "samoan", "tongan",
)

SUBJECT_MATTER_CUES = re.compile(
    r"content|corpus|dataset|data|subject matter|material|documents|linguistic|linguistics|terminology|translation|transcription"
)

_WORD = r"[A-Za-z][A-Za-z0-9+/'&.-]*"
_WORD_PATTERN = re.compile(_WORD)
_PHRASE_PATTERN = re.compile(rf"{_WORD}(?:\s+{_WORD}){{1,4}}")
_FALLBACK_SPLIT = re.compile(r"[^A-Za-z0-9+/'&.-]+")
_HUMAN_LANGUAGE_PATTERN = re.compile(r"\b(" + "|".join(HUMAN_LANGUAGES) + r")\b", re.IGNORECASE)
_STARTS_WITH_DIGIT = re.compile(r"^\d")
_ALL_CAPS = re.compile(r"^[A-Z0-9]+$")


def _vocabulary_pattern(terms: tuple[str, ...], *, case_sensitive_max: int) -> re.Pattern[str]:
    # Very short terms ("DO", "PA", "Go") only count in their written case.
    alternatives = []
    for term in sorted(terms, key=len, reverse=True):
        escaped = re.escape(term)
        alternatives.append(escaped if len(term) <= case_sensitive_max else f"(?i:{escaped})")
    return re.compile(r"\b(" + "|".join(alternatives) + r")\b")


@dataclass
class DomainEvidenceConfig:
    """Configuration for domain evidence extraction."""

    max_items: int = EVIDENCE_CAP
    language_window: int = 80
    case_sensitive_max_length: int = 2


class DomainEvidenceExtractor:
    """Extract subject-matter tokens and phrases from job text.

    Exact vocabulary passes (credentials, standards, tech stack) run first,
    followed by a general token scan and a phrase scan. Human-language names
    survive only near a subject-matter cue word.
    """

    method = "domain_evidence"

    def __init__(self, *, config: DomainEvidenceConfig | None = None) -> None:
        self._config = config or DomainEvidenceConfig()
        limit = self._config.case_sensitive_max_length
        self._exact_patterns = tuple(
            _vocabulary_pattern(terms, case_sensitive_max=limit)
            for terms in (CREDENTIAL_TERMS, STANDARD_TERMS, STACK_TERMS)
        )

    def extract(self, text: str | None) -> EvidenceSet:
        try:
            source = text or ""
            rendered = EvidenceSet.from_text(source)
            if rendered is not None:
                return rendered
            tokens, phrases = self._collect(source)
            tokens = [token for token in tokens if self._keep_language(token, source)]
            phrases = [phrase for phrase in phrases if self._keep_language(phrase, source)]
            return EvidenceSet(tokens=tokens, phrases=phrases)
        except Exception as exc:  # noqa: BLE001
            logger.warning("domain_evidence.extract_failure", error=str(exc))
            return EvidenceSet.empty()

    def _collect(self, text: str) -> tuple[list[str], list[str]]:
        tokens: list[str] = []
        phrases: list[str] = []
        if not text.strip():
            return tokens, phrases
        token_seen: set[str] = set()
        phrase_seen: set[str] = set()
        cap = self._config.max_items

        for pattern in self._exact_patterns:
            for match in pattern.finditer(text):
                _add(normalize_token(match.group(1)), token_seen, tokens, formatter=format_token)

        for match in _WORD_PATTERN.finditer(text):
            raw = match.group(0)
            if self._keep_token(raw):
                _add(normalize_token(raw), token_seen, tokens, formatter=format_token)

        for match in _PHRASE_PATTERN.finditer(text):
            words = [normalize_token(word) for word in match.group(0).split()]
            words = [word for word in words if word]
            if not words or any(_is_filtered(word) for word in words):
                continue
            if not any(len(word) > 3 or "-" in word or "/" in word for word in words):
                continue
            _add(" ".join(format_token(word) for word in words), phrase_seen, phrases)

        if not phrases:
            # Pair adjacent kept words when no clean multi-word run exists.
            kept = [word for word in _FALLBACK_SPLIT.split(text) if self._keep_token(word)]
            for first_raw, second_raw in zip(kept, kept[1:]):
                if len(phrases) >= cap:
                    break
                first = format_token(normalize_token(first_raw))
                second = format_token(normalize_token(second_raw))
                if first == second:
                    continue
                _add(f"{first} {second}", phrase_seen, phrases)

        return tokens[:cap], phrases[:cap]

    @staticmethod
    def _keep_token(raw: str) -> bool:
        token = normalize_token(raw)
        if not token:
            return False
        lower = token.lower()
        if lower in SOFT_BLOCKLIST:
            return False
        if _STARTS_WITH_DIGIT.match(token):
            return False
        if len(token) <= 2 and not _ALL_CAPS.match(token):
            return False
        return lower not in GENERIC_STOPWORDS

    def _keep_language(self, term: str, source: str) -> bool:
        if not _HUMAN_LANGUAGE_PATTERN.search(term):
            return True
        width = self._config.language_window
        window = re.search(rf"(.{{0,{width}}}{re.escape(term)}.{{0,{width}}})", source, re.IGNORECASE)
        if window is None:
            return False
        return bool(SUBJECT_MATTER_CUES.search(window.group(1).lower()))


def _is_filtered(word: str) -> bool:
    lower = word.lower()
    return lower in SOFT_BLOCKLIST or lower in GENERIC_STOPWORDS


def _add(value: str, seen: set[str], output: list[str], *, formatter=None) -> None:
    if not value:
        return
    key = value.lower()
    if key in seen:
        return
    seen.add(key)
    output.append(formatter(value) if formatter else value)


def extract_domain_evidence(text: str | None) -> EvidenceSet:
    return DomainEvidenceExtractor().extract(text)


__all__ = [
    "DomainEvidenceConfig",
    "DomainEvidenceExtractor",
    "GENERIC_STOPWORDS",
    "SOFT_BLOCKLIST",
    "extract_domain_evidence",
]
