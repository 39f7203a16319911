"""User domain capsule normalization.

Domain capsules must read as subject-matter noun phrases: no roles, employers,
action verbs or dates. Cleanup is heuristic first; when the body still needs
work an optional text generator compresses it, and the heuristic runs again on
whatever comes back.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from ...retry import with_retry
from ...schemas import CapsuleValidation
from ..protocols import TextGenerator
from ._capsule_text import parse_capsule

logger = structlog.get_logger(__name__)

DOMAIN_BANNED_TERMS: tuple[str, ...] = (
    "instructor",
    "teacher",
    "manager",
    "director",
    "writer",
    "worked",
    "served",
    "role",
    "responsible",
    "taught",
    "organized",
    "designed",
    "facilitated",
    "supervised",
    "led",
    "company",
    "corporation",
    "method",
    "berlitz",
)

DOMAIN_KEYWORD_STOPWORDS = frozenset(
    {
        "the", "and", "or", "of", "in", "for", "with", "to", "on", "by", "a", "an", "as",
        "using", "across", "including", "focused", "focus", "candidate", "profile", "capsule",
        "subject", "matter", "expertise", "experience", "skills", "background", "knowledge",
        "strengths", "capabilities", "competencies", "specialization", "specializations",
        "specialties", "specialty", "industry", "industries", "verticals", "domains", "domain",
        "practice", "practices", "areas", "area", "support", "solutions", "services", "global",
        "international", "regional", "local", "advanced", "comprehensive", "extensive",
        "highly", "deep", "expert", "proficiency", "strength", "core", "primary", "keywords",
        "line", "phrases", "sentence", "nouns", "noun", "telegraphic", "summary",
    }
)

REWRITE_SYSTEM_PROMPT = (
    "You compress domain capsules to noun phrases only. Use only the provided text, keep it "
    "under 110 words, and end with a Keywords line containing nouns from the rewrite."
)
REWRITE_USER_PROMPT = (
    "Rewrite the following to a single compact line of domain/subject-matter nouns and noun "
    "phrases ONLY (no verbs, no roles or titles, no employers, no dates). Preserve only nouns "
    'drawn from the original text. End with "Keywords: ..." using nouns from the rewrite.\n'
    "TEXT:\n{text}"
)

_MONTHS = re.compile(
    r"\b(january|february|march|april|may|june|july|august|september|october|november|december)\b",
    re.IGNORECASE,
)
_YEARS = re.compile(r"\b(19|20)\d{2}\b")
_THE_CANDIDATE = re.compile(r"\bthe candidate\b", re.IGNORECASE)
_BANNED_PATTERNS = tuple(re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE) for term in DOMAIN_BANNED_TERMS)
_EDGE_PUNCT = re.compile(r"^[^A-Za-z0-9]+|[^A-Za-z0-9]+$")
_FALLBACK_WORDS = re.compile(r"\b[A-Za-z0-9][A-Za-z0-9+/'&.-]*\b")


@dataclass
class DomainCapsuleConfig:
    """Configuration for domain capsule normalization."""

    max_words: int = 120
    max_keywords: int = 20
    min_keywords: int = 10
    max_rewrite_attempts: int = 2
    rewrite_temperature: float = 0.1


def sanitize_domain_whitespace(body: str) -> str:
    text = re.sub(r"\s+", " ", body)
    text = re.sub(r"\s+,", ",", text)
    text = re.sub(r"\s+;", ";", text)
    text = re.sub(r";\s+", "; ", text)
    text = re.sub(r",\s+", ", ", text)
    return text.strip()


def remove_banned_terms(body: str) -> str:
    updated = _THE_CANDIDATE.sub("", body)
    for pattern in _BANNED_PATTERNS:
        updated = re.sub(r"\s{2,}", " ", pattern.sub("", updated))
    updated = _MONTHS.sub("", updated)
    updated = _YEARS.sub("", updated)
    return sanitize_domain_whitespace(updated)


class DomainCapsuleValidator:
    """Normalize user domain capsules, optionally asking a generator to rewrite them."""

    method = "domain_capsule"

    def __init__(
        self,
        *,
        generator: TextGenerator | None = None,
        config: DomainCapsuleConfig | None = None,
    ) -> None:
        self._generator = generator
        self._config = config or DomainCapsuleConfig()

    def needs_rewrite(self, body: str) -> bool:
        if not body:
            return False
        if _MONTHS.search(body) or _YEARS.search(body):
            return True
        if any(pattern.search(body) for pattern in _BANNED_PATTERNS):
            return True
        return len(body.split()) > self._config.max_words

    def normalize(self, text: str) -> str:
        """Strip banned terms and dates, then rebuild the Keywords line."""
        body = parse_capsule(text or "").body
        return self.build_capsule(remove_banned_terms(body))

    def build_capsule(self, body: str) -> str:
        cleaned = sanitize_domain_whitespace(body) or body.strip()
        if not cleaned:
            return "Keywords: none"
        keywords = self.generate_keywords(cleaned)
        if not keywords:
            return f"{cleaned}\nKeywords: none"
        return f"{cleaned}\nKeywords: {', '.join(keywords[: self._config.max_keywords])}"

    def generate_keywords(self, body: str) -> list[str]:
        limit = self._config.max_keywords
        candidates: list[str] = []
        seen: set[str] = set()
        for segment in re.split(r"[;\n]+", body):
            for part in segment.split(","):
                cleaned = _clean_keyword_candidate(part)
                if not cleaned or cleaned.lower() in seen:
                    continue
                seen.add(cleaned.lower())
                candidates.append(cleaned)
                if len(candidates) >= limit:
                    return candidates

        if len(candidates) < self._config.min_keywords:
            for match in _FALLBACK_WORDS.finditer(body):
                word = match.group(0)
                lower = word.lower()
                if lower in seen or lower in DOMAIN_KEYWORD_STOPWORDS or len(word) <= 2:
                    continue
                seen.add(lower)
                candidates.append(word)
                if len(candidates) >= limit:
                    break
        return candidates

    async def validate(self, text: str) -> CapsuleValidation:
        """Return the normalized capsule; never raises."""
        current = self.normalize((text or "").strip())
        attempts = 0
        while attempts < self._config.max_rewrite_attempts:
            body = parse_capsule(current).body
            if not self.needs_rewrite(body):
                return CapsuleValidation(text=current)
            rewritten = await self._rewrite(current)
            if not rewritten:
                break
            logger.info("capsules.domain_rewrite", attempt=attempts + 1)
            current = self.normalize(rewritten)
            attempts += 1

        body = parse_capsule(current).body
        if self.needs_rewrite(body):
            current = self.build_capsule(remove_banned_terms(body))
        return CapsuleValidation(text=current)

    async def _rewrite(self, text: str) -> str | None:
        if self._generator is None:
            return None
        generator = self._generator
        try:
            rewritten = await with_retry(
                lambda: generator.generate(
                    REWRITE_SYSTEM_PROMPT,
                    REWRITE_USER_PROMPT.format(text=text),
                    temperature=self._config.rewrite_temperature,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("domain.rewrite_failure", error=str(exc))
            return None
        return rewritten.strip() or None


def _clean_keyword_candidate(candidate: str) -> str | None:
    stripped = _EDGE_PUNCT.sub("", candidate.strip())
    if not stripped or len(stripped) <= 2:
        return None
    if stripped.lower() in DOMAIN_KEYWORD_STOPWORDS:
        return None
    return stripped


def normalize_domain_capsule(text: str) -> str:
    return DomainCapsuleValidator().normalize(text)


__all__ = [
    "DOMAIN_BANNED_TERMS",
    "DomainCapsuleConfig",
    "DomainCapsuleValidator",
    "normalize_domain_capsule",
    "remove_banned_terms",
]
