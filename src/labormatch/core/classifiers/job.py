"""Job classification: LLM primary path and deterministic heuristic."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import structlog

from ...errors import LLMFailure
from ...retry import with_retry
from ...schemas import (
    EXPERTISE_TIERS,
    JobClass,
    JobClassification,
    NormalizedJobPosting,
    Requirements,
    Strictness,
)
from ..protocols import TextGenerator
from ..taxonomy import Taxonomy, default_taxonomy
from ._json import coerce_json, coerce_years
from .requirements import RequirementsExtractor

JOB_CLASSIFICATION_SYSTEM_PROMPT = """You are a job classification system for an AI training marketplace. Your task is to analyze job postings and classify them.

CLASSIFICATION RULES:
1. "specialized" jobs require specific domain expertise, professional credentials, or advanced degrees (e.g., MD, PhD, JD, PE). Examples: medical doctors reviewing health content, attorneys reviewing legal documents, engineers evaluating technical solutions.

2. "generic" jobs are basic data labeling tasks that anyone with basic skills can do. Examples: bounding box annotation, simple transcription, image tagging, basic classification.

IMPORTANT: If a job requires professional credentials (MD, PhD, JD, PE, CPA, etc.) or years of specialized experience, it is ALWAYS "specialized".

Return ONLY valid JSON in this exact format:
{
  "job_class": "specialized" | "generic",
  "confidence": 0.0-1.0,
  "credentials": ["MD", "PhD", etc] or [],
  "minimum_experience_years": number or 0,
  "subject_matter_codes": ["medical:obgyn", "legal:corporate", "engineering:civil", etc] or [],
  "expertise_tier": "entry" | "intermediate" | "expert" | "specialist",
  "countries": ["US", "UK", etc] or [],
  "languages": ["en", "es", etc] or [],
  "reasoning": "brief explanation"
}

Subject matter code format: "domain:specialty" where domain is one of: medical, legal, finance, engineering, science, education, technology. If no specific specialty, use "domain:general"."""

_LICENSED_TITLES: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\blicensed\s+(?:physician|attorney|nurse|doctor|pharmacist|engineer|dentist)",
        r"\bcompleted?\s+(?:a\s+)?residency\b",
        r"\bpracticing\s+(?:attorney|lawyer|physician|clinician)",
        r"\bboard[\s-]?certified\b.{0,60}\brequired\b",
        r"\bbar\s+(?:admission|membership)\b",
    )
)
_SOFT_CONTEXT = re.compile(
    r"\b(?:clinical|medical|physician|doctor|healthcare|legal|attorney|lawyer|board[\s-]?certified)\b",
    re.IGNORECASE,
)
_ENTRY_WORDING = re.compile(r"\b(?:entry|beginner|no\s+experience|any\s+level)\b", re.IGNORECASE)
_STRICT_DOMAINS = frozenset({"medical", "legal"})


@dataclass
class JobClassifierConfig:
    """Tuning for the LLM job classifier."""

    temperature: float = 0.1
    max_tokens: int = 800
    default_confidence: float = 0.8


def build_job_text(job: NormalizedJobPosting) -> str:
    parts: list[str] = []
    if job.title:
        parts.append(f"Title: {job.title}")
    if job.data_subject_matter:
        parts.append(f"Subject Matter: {job.data_subject_matter}")
    if job.expertise_level:
        parts.append(f"Expertise Level: {job.expertise_level}")
    if job.requirements_additional:
        parts.append(f"Requirements: {job.requirements_additional}")
    if job.instructions:
        parts.append(f"Instructions: {job.instructions}")
    if job.label_types:
        parts.append(f"Label Types: {', '.join(job.label_types)}")
    if job.available_countries:
        parts.append(f"Countries: {', '.join(job.available_countries)}")
    if job.available_languages:
        parts.append(f"Languages: {', '.join(job.available_languages)}")
    if job.dataset_description:
        parts.append(f"Dataset: {job.dataset_description}")
    return "\n\n".join(parts)


def subject_matter_strictness(job_class: JobClass, codes: tuple[str, ...] | list[str]) -> Strictness:
    """Strict for medical and legal specialized work, lenient for generic jobs."""
    if job_class == "generic":
        return "lenient"
    if any(code.split(":", 1)[0] in _STRICT_DOMAINS for code in codes):
        return "strict"
    return "moderate"


class HeuristicJobClassifier:
    """Deterministic job classifier over the posting text.

    Precedence: a hard credential or licensed-title mention forces ``specialized``;
    soft specialized context only counts when no generic signal is present.
    """

    method = "heuristic"

    def __init__(self, *, taxonomy: Taxonomy | None = None, extractor: RequirementsExtractor | None = None) -> None:
        self._taxonomy = taxonomy or default_taxonomy()
        self._extractor = extractor or RequirementsExtractor(self._taxonomy)

    def classify_sync(self, job: NormalizedJobPosting) -> JobClassification:
        text = job.requirement_text()
        label_text = " ".join(job.label_types)
        requirements = self._extractor.extract_job_requirements(job)
        signals: list[str] = []

        hard_credentials = [
            credential
            for credential in requirements.credentials
            if credential == "PHD"
            or self._taxonomy.is_advanced_credential(credential)
            or self._taxonomy.is_mid_credential(credential)
        ]
        signals.extend(f"credential:{credential}" for credential in hard_credentials)
        licensed = [pattern.pattern for pattern in _LICENSED_TITLES if pattern.search(text)]
        if licensed:
            signals.append("licensed_title")

        generic_hits = self._generic_signals(text, label_text)
        signals.extend(f"generic:{hit}" for hit in generic_hits)

        soft_context = bool(_SOFT_CONTEXT.search(text)) or any(
            self._taxonomy.is_specialized_domain(code) for code in requirements.subject_matter_codes
        )
        if soft_context:
            signals.append("specialized_context")

        job_class: JobClass
        if hard_credentials or licensed:
            job_class = "specialized"
            confidence = 0.9 if len(hard_credentials) > 1 else 0.85
            reasoning = "Hard credential or licensed-title requirement"
        elif soft_context and not generic_hits:
            job_class = "specialized"
            confidence = 0.7
            reasoning = "Specialized domain context without generic labeling signals"
        else:
            job_class = "generic"
            confidence = 0.75 if generic_hits else 0.5
            reasoning = "Generic labeling signals" if generic_hits else "No specialized signals found"

        return JobClassification(
            job_class=job_class,
            confidence=confidence,
            requirements=requirements,
            reasoning=reasoning,
            signals=tuple(signals),
            source="heuristic",
            subject_matter_strictness=subject_matter_strictness(job_class, requirements.subject_matter_codes),
        )

    async def classify(self, job: NormalizedJobPosting) -> JobClassification:
        return self.classify_sync(job)

    def _generic_signals(self, text: str, label_text: str) -> list[str]:
        haystack = f"{text}\n{label_text}".lower()
        hits = [
            task
            for task in self._taxonomy.generic_task_types
            if re.search(r"(?<![a-z0-9])" + re.escape(task) + r"(?![a-z0-9])", haystack)
        ]
        if _ENTRY_WORDING.search(haystack):
            hits.append("entry_level")
        return hits


class LLMJobClassifier:
    """Classify postings through the text-generation collaborator in JSON mode."""

    method = "llm"

    def __init__(
        self,
        generator: TextGenerator,
        *,
        taxonomy: Taxonomy | None = None,
        config: JobClassifierConfig | None = None,
    ) -> None:
        self._generator = generator
        self._taxonomy = taxonomy or default_taxonomy()
        self._config = config or JobClassifierConfig()
        self._logger = structlog.get_logger(__name__)

    async def classify(self, job: NormalizedJobPosting) -> JobClassification:
        user_prompt = f"Classify this job posting:\n\n{build_job_text(job)}"
        response = await with_retry(
            lambda: self._generator.generate(
                JOB_CLASSIFICATION_SYSTEM_PROMPT,
                user_prompt,
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
                json_mode=True,
            )
        )
        try:
            payload = coerce_json(response)
        except (json.JSONDecodeError, ValueError) as exc:
            raise LLMFailure("Unparsable job classification", details={"job_id": job.job_id}) from exc
        result = self.parse(payload)
        self._logger.info(
            "job.classified",
            job_id=job.job_id,
            job_class=result.job_class,
            confidence=result.confidence,
            expertise_tier=result.requirements.expertise_tier,
            credentials=list(result.requirements.credentials),
        )
        return result

    def parse(self, payload: dict[str, Any]) -> JobClassification:
        job_class: JobClass = "specialized" if payload.get("job_class") == "specialized" else "generic"
        confidence = payload.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = self._config.default_confidence
        tier = payload.get("expertise_tier")
        years = payload.get("minimum_experience_years")
        codes = tuple(code for code in _as_list(payload.get("subject_matter_codes")) if isinstance(code, str))
        requirements = Requirements(
            credentials=tuple(str(credential).upper() for credential in _as_list(payload.get("credentials"))),
            min_experience_years=coerce_years(years),
            subject_matter_codes=codes,
            expertise_tier=tier if tier in EXPERTISE_TIERS else "entry",
            countries=tuple(str(country).upper() for country in _as_list(payload.get("countries"))),
            languages=tuple(str(language).lower() for language in _as_list(payload.get("languages"))),
        )
        reasoning = payload.get("reasoning")
        return JobClassification(
            job_class=job_class,
            confidence=confidence,
            requirements=requirements,
            reasoning=reasoning if isinstance(reasoning, str) else "",
            source="llm",
            subject_matter_strictness=subject_matter_strictness(job_class, codes),
        )


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def classify_job_sync(job: NormalizedJobPosting, *, taxonomy: Taxonomy | None = None) -> JobClassification:
    """Heuristic-only classification, usable without any collaborator."""
    return HeuristicJobClassifier(taxonomy=taxonomy).classify_sync(job)


__all__ = [
    "HeuristicJobClassifier",
    "JOB_CLASSIFICATION_SYSTEM_PROMPT",
    "JobClassifierConfig",
    "LLMJobClassifier",
    "build_job_text",
    "classify_job_sync",
    "subject_matter_strictness",
]
