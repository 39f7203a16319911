"""Job capsule checks: grounding, formatting and cross-section leakage."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Literal, Sequence

import structlog

from ...errors import LLMFailure
from ...retry import with_retry
from ...schemas import EvidenceSet, JobCapsuleValidation
from ..evidence._text import contains_term
from ..protocols import TextGenerator
from ._capsule_text import parse_capsule, sanitize_whitespace

logger = structlog.get_logger(__name__)

Section = Literal["domain", "task"]
RewriteFn = Callable[[str, str, Sequence[str]], Awaitable[str]]

DOMAIN_AI_TERMS: tuple[str, ...] = (
    "annotation", "annotating", "label", "labeling", "labelling", "labels", "llm", "ai",
    "artificial intelligence", "machine learning", "model training", "modeling", "prompt",
    "rlhf", "sft", "dpo", "reward modeling", "fine-tuning", "finetuning", "fine tuning", "ner",
    "ocr", "bbox", "bounding box", "segmentation", "dataset labeling", "quality assurance", "qa",
    "evaluation", "training data", "synthetic data", "dataset curation", "prompt engineering",
    "chatbot",
)

DOMAIN_SOFT_TERMS: tuple[str, ...] = (
    "accuracy", "accurate", "audience", "communication", "communicate", "communication skills",
    "empathy", "empathetic", "resource", "resources", "reliability", "accessible",
    "accessibility", "quality", "quality review", "quality assurance", "review", "reviews",
    "refine", "refinement", "validation", "validate", "availability", "schedule", "scheduling",
    "timeline", "deadline", "deadlines", "turnaround", "budget", "budgets", "cost", "costs",
)

TASK_LOGISTICS_TERMS: tuple[str, ...] = (
    "freelance labelers", "freelance annotators", "number of labelers", "labels per file",
    "total labels", "availability", "available hours", "schedule", "scheduling",
    "time requirement", "weekly hours", "hourly rate", "rate per hour", "payment", "pay rate",
    "budget", "budgeted", "countries", "country restrictions", "english level",
    "language requirement", "open availability", "start date", "end date", "employment",
    "hiring", "compensation", "salary", "benefits",
)

TASK_NON_AI_PHRASES: tuple[str, ...] = (
    "patient care", "direct patient", "clinical visits", "clinic visits", "clinic operations",
    "surgical procedures", "perform surgeries", "medical treatment", "treatment planning",
    "treatment plans", "deliver babies", "labor and delivery", "prenatal care", "postnatal care",
    "appointment scheduling", "office administration", "administrative duties",
    "office management", "patient scheduling", "customer service", "sales outreach",
    "sales calls", "business development", "marketing campaigns", "project management",
    "team management", "staff supervision", "human resources", "hr management",
    "people management", "inventory management", "supply management", "medical billing",
    "insurance claims", "financial analysis", "market research", "general research",
    "clinical research duties", "patient education", "therapy sessions", "case management",
    "content writing", "copywriting",
)

REWRITE_SYSTEM_PROMPT = (
    "You rewrite job capsule paragraphs. Use only the provided evidence tokens. "
    "Output 1-2 sentences, no lists or brackets."
)

_ANGLE_BRACKETS = re.compile(r"[<>]")
_BULLETS = re.compile(r"(^|\n)\s*[-•]")
_WORDS = re.compile(r"[A-Za-z0-9][A-Za-z0-9+/'&.-]*")

_DIRECTIVES = {
    "ANGLE_BRACKETS": "Remove angle brackets and keep plain sentences.",
    "BULLETS": "Remove bullet formatting; output sentences only.",
    "AI_TERM": "Remove AI/LLM terms; keep domain subject-matter nouns from DOMAIN_EVIDENCE only.",
    "SOFT_TERM": "Remove soft/logistics/meta terms; keep only domain nouns from DOMAIN_EVIDENCE.",
    "LOGISTICS_TERM": (
        "Remove logistics/hiring/budget/schedule references; keep AI/LLM "
        "labeling/training/evaluation content from TASK_EVIDENCE."
    ),
    "NON_AI_DUTY": "Remove clinical or operational duties; describe only the AI/LLM data work from TASK_EVIDENCE.",
}


@dataclass
class JobCapsuleConfig:
    """Configuration for job capsule validation."""

    keyword_min: int = 10
    keyword_max: int = 20
    domain_word_cap: int = 200
    task_word_cap: int = 220
    max_rewrite_attempts: int = 3
    rewrite_temperature: float = 0.1


def find_blocked_term(text: str, terms: Sequence[str]) -> str | None:
    """Multi-word terms match as substrings, single words on word boundaries."""
    lower = text.lower()
    for term in terms:
        normalized = term.lower()
        if " " in normalized:
            if normalized in lower:
                return term
        elif re.search(rf"\b{re.escape(normalized)}\b", lower):
            return term
    return None


def count_words(text: str) -> int:
    return len(_WORDS.findall(text or ""))


def evidence_keywords(text: str, evidence_terms: Sequence[str], limit: int) -> list[str]:
    """Evidence terms (phrases first) that occur in ``text``, up to ``limit``."""
    matches: list[str] = []
    seen: set[str] = set()
    for term in evidence_terms:
        cleaned = term.strip()
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        if contains_term(text, cleaned):
            matches.append(cleaned)
            seen.add(key)
            if len(matches) >= limit:
                break
    return matches


class JobCapsuleValidator:
    """Check job capsules and report whether they need another generation pass.

    Job capsules have no safe canonical fallback, so problems are surfaced as a
    ``needs_reprompt`` flag plus violation codes instead of replaced text.
    """

    method = "job_capsule"

    def __init__(
        self,
        *,
        generator: TextGenerator | None = None,
        config: JobCapsuleConfig | None = None,
    ) -> None:
        self._generator = generator
        self._config = config or JobCapsuleConfig()

    def check_domain(self, text: str, evidence: EvidenceSet) -> JobCapsuleValidation:
        return self._check("domain", text, evidence)

    def check_task(self, text: str, evidence: EvidenceSet) -> JobCapsuleValidation:
        return self._check("task", text, evidence)

    async def enforce_domain(
        self, text: str, evidence: EvidenceSet, *, rewrite: RewriteFn | None = None
    ) -> JobCapsuleValidation:
        return await self._enforce("domain", text, evidence, rewrite)

    async def enforce_task(
        self, text: str, evidence: EvidenceSet, *, rewrite: RewriteFn | None = None
    ) -> JobCapsuleValidation:
        return await self._enforce("task", text, evidence, rewrite)

    def _check(self, section: Section, text: str, evidence: EvidenceSet) -> JobCapsuleValidation:
        body = parse_capsule(text or "").body
        return self._check_body(section, body, evidence.terms())

    def _check_body(self, section: Section, body: str, evidence_terms: list[str]) -> JobCapsuleValidation:
        if not body:
            return JobCapsuleValidation(text="", needs_reprompt=True, violations=("EMPTY_BODY",))
        violations = self._violations(section, body)
        keywords = evidence_keywords(body, evidence_terms, self._config.keyword_max)
        target = min(self._config.keyword_min, len(evidence_terms))
        if target and len(keywords) < target:
            violations.append("TOO_FEW_KEYWORDS")
        formatted = f"{sanitize_whitespace(body)}\n{_keywords_line(keywords)}"
        return JobCapsuleValidation(
            text=formatted,
            keywords=tuple(keywords),
            needs_reprompt=bool(violations),
            violations=tuple(violations),
        )

    def _violations(self, section: Section, body: str) -> list[str]:
        violations: list[str] = []
        if _ANGLE_BRACKETS.search(body):
            violations.append("ANGLE_BRACKETS")
        if _BULLETS.search(body):
            violations.append("BULLETS")
        if section == "domain":
            checks = (("AI_TERM", DOMAIN_AI_TERMS), ("SOFT_TERM", DOMAIN_SOFT_TERMS))
            cap = self._config.domain_word_cap
        else:
            checks = (("LOGISTICS_TERM", TASK_LOGISTICS_TERMS), ("NON_AI_DUTY", TASK_NON_AI_PHRASES))
            cap = self._config.task_word_cap
        for code, terms in checks:
            term = find_blocked_term(body, terms)
            if term:
                violations.append(f"{code}:{term}")
        if count_words(body) > cap:
            violations.append(f"WORD_LIMIT:{cap}")
        return violations

    async def _enforce(
        self,
        section: Section,
        text: str,
        evidence: EvidenceSet,
        rewrite: RewriteFn | None,
    ) -> JobCapsuleValidation:
        body = parse_capsule(text or "").body
        if not body:
            raise LLMFailure(f"{section.capitalize()} capsule text is empty")
        rewrite_fn = rewrite or self._default_rewrite
        terms = evidence.terms()
        result = self._check_body(section, body, terms)
        for attempt in range(self._config.max_rewrite_attempts):
            if not result.needs_reprompt or not terms:
                break
            directive = self._directive(section, result.violations)
            logger.info("job_capsule.rewrite", section=section, attempt=attempt + 1, violations=list(result.violations))
            rewritten = await rewrite_fn(parse_capsule(result.text).body, directive, terms)
            body = parse_capsule(rewritten).body
            result = self._check_body(section, body, terms)
        if result.needs_reprompt:
            logger.warning("capsules.validation", section=f"job_{section}", violations=list(result.violations))
        return result

    def _directive(self, section: Section, violations: Sequence[str]) -> str:
        directives: list[str] = []
        for violation in violations:
            code = violation.split(":", 1)[0]
            if code in _DIRECTIVES:
                directives.append(_DIRECTIVES[code])
            elif code == "WORD_LIMIT":
                cap = self._config.domain_word_cap if section == "domain" else self._config.task_word_cap
                directives.append(f"Keep the paragraph under {cap} words.")
            elif code == "TOO_FEW_KEYWORDS":
                label = "domain tokens from DOMAIN_EVIDENCE" if section == "domain" else "AI/LLM task terms from TASK_EVIDENCE"
                directives.append(f"Include additional distinct {label} so at least ten appear.")
        return " ".join(dict.fromkeys(directives))

    async def _default_rewrite(self, body: str, directive: str, evidence_terms: Sequence[str]) -> str:
        if self._generator is None or not directive.strip() or not evidence_terms:
            return body
        generator = self._generator
        prompt = (
            f"Original paragraph:\n{body}\n\nAllowed evidence tokens:\n{', '.join(evidence_terms)}\n\n"
            f"Rewrite as 1-2 sentences, no bullets or brackets. {directive} "
            "Keep only tokens that appear in the evidence list."
        )
        rewritten = await with_retry(
            lambda: generator.generate(
                REWRITE_SYSTEM_PROMPT, prompt, temperature=self._config.rewrite_temperature
            )
        )
        if not rewritten.strip():
            raise LLMFailure("Rewrite attempt returned empty text")
        return rewritten.strip()


def _keywords_line(keywords: Sequence[str]) -> str:
    if not keywords:
        return "Keywords: none"
    return f"Keywords: {', '.join(keywords)}"


__all__ = [
    "DOMAIN_AI_TERMS",
    "DOMAIN_SOFT_TERMS",
    "JobCapsuleConfig",
    "JobCapsuleValidator",
    "TASK_LOGISTICS_TERMS",
    "TASK_NON_AI_PHRASES",
    "count_words",
    "evidence_keywords",
    "find_blocked_term",
]
