"""User classification: domain expert, general labeler, or mixed."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import structlog

from ...errors import LLMFailure
from ...retry import with_retry
from ...schemas import EXPERTISE_TIERS, NormalizedUserProfile, Requirements, UserClass, UserClassification
from ..protocols import TextGenerator
from ..taxonomy import Taxonomy, default_taxonomy
from ._json import coerce_json, coerce_years
from .requirements import RequirementsExtractor

USER_CLASSIFICATION_SYSTEM_PROMPT = """You are a user classification system for an AI training marketplace. Your task is to analyze freelancer profiles/resumes and extract structured data for job matching.

CONTEXT: This marketplace connects freelancers to AI data labeling jobs. Jobs are classified as:
- "specialized" (requiring domain expertise like MD, PhD, senior developers)
- "generic" (basic data labeling anyone can do)

Your job is to classify USERS so we can match them appropriately.

CLASSIFICATION RULES:

1. EXPERTISE TIER (based on credentials and experience):
   - "specialist": Has advanced professional credentials (MD, PhD, JD, PE) or 10+ years specialized experience
   - "expert": Has professional certification or 5+ years domain experience
   - "intermediate": Has relevant degree or 2-5 years experience
   - "entry": New to field, no specific credentials, <2 years experience

2. CREDENTIALS: Extract any professional credentials mentioned (MD, PhD, JD, PE, CPA, RN, etc.)

3. SUBJECT MATTER CODES: Extract domains of expertise using format "domain:specialty"
   - Domains: medical, legal, finance, engineering, science, education, technology, language, creative
   - Examples: "medical:obgyn", "technology:angular", "language:slovak", "legal:corporate"

4. YEARS EXPERIENCE: Estimate total years of professional experience

5. LABELING EXPERIENCE: Does user have AI/ML data labeling experience? Look for:
   - Annotation, labeling, tagging work
   - RLHF, SFT, DPO experience
   - Work with labeling platforms (Scale AI, Labelbox, etc.)
   - AI model training or evaluation

Return ONLY valid JSON in this exact format:
{
  "expertise_tier": "entry" | "intermediate" | "expert" | "specialist",
  "credentials": ["MD", "PhD", etc] or [],
  "subject_matter_codes": ["medical:obgyn", "technology:angular", etc] or [],
  "years_experience": number or 0,
  "has_labeling_experience": true | false,
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation"
}"""

LABELING_PLATFORMS: tuple[str, ...] = (
    "scale ai",
    "appen",
    "labelbox",
    "remotasks",
    "toloka",
    "mturk",
    "mechanical turk",
    "outlier",
    "surge ai",
    "dataannotation",
    "clickworker",
    "telus international",
    "label studio",
    "prolific",
    "lionbridge",
)
LABELER_TITLES: tuple[str, ...] = (
    "data annotator",
    "data labeler",
    "ai trainer",
    "transcriptionist",
    "annotator",
    "labeler",
    "tagger",
    "rater",
)
PROFESSIONAL_ROLES: tuple[str, ...] = (
    "research scientist",
    "software engineer",
    "physician",
    "surgeon",
    "cardiologist",
    "obstetrician",
    "gynecologist",
    "radiologist",
    "oncologist",
    "psychiatrist",
    "dentist",
    "pharmacist",
    "nurse",
    "attorney",
    "lawyer",
    "paralegal",
    "scientist",
    "engineer",
    "professor",
    "resident",
    "accountant",
    "economist",
    "architect",
)
TASK_CAPABILITIES: dict[str, tuple[str, ...]] = {
    "bounding_box": ("bounding box", "bounding boxes", "bbox"),
    "transcription": ("transcription", "transcribe", "transcribing"),
    "ner": ("named entity", "ner"),
    "image_classification": ("image classification", "image tagging"),
    "segmentation": ("segmentation", "polygon"),
    "sentiment": ("sentiment",),
    "rlhf": ("rlhf", "preference ranking", "sft", "dpo"),
    "code_review": ("code review", "code evaluation"),
    "evaluation": ("response evaluation", "model evaluation", "rating"),
    "tagging": ("tagging",),
    "annotation": ("annotation", "annotating", "labeling", "labelling"),
}
_SENIORITY = re.compile(r"\b(?:senior|principal|staff|lead)\b", re.IGNORECASE)


def _word_regex(term: str) -> re.Pattern[str]:
    parts = [re.escape(part) for part in term.split()]
    return re.compile(r"(?<![a-z0-9])" + r"\s+".join(parts) + r"(?![a-z0-9])", re.IGNORECASE)


_PLATFORM_PATTERNS = tuple((name, _word_regex(name)) for name in LABELING_PLATFORMS)
_TITLE_PATTERNS = tuple((name, _word_regex(name)) for name in LABELER_TITLES)
_ROLE_PATTERNS = tuple((name, _word_regex(name)) for name in PROFESSIONAL_ROLES)
_CAPABILITY_PATTERNS = tuple(
    (capability, tuple(_word_regex(term) for term in terms)) for capability, terms in TASK_CAPABILITIES.items()
)


@dataclass
class UserClassifierConfig:
    """Score thresholds and LLM tuning for user classification."""

    mixed_min_expert: int = 3
    mixed_min_labeler: int = 3
    temperature: float = 0.1
    max_tokens: int = 800
    default_confidence: float = 0.8


def build_user_text(profile: NormalizedUserProfile) -> str:
    parts: list[str] = []
    if profile.resume_text:
        parts.append(f"Resume/Profile:\n{profile.resume_text}")
    if profile.work_experience:
        parts.append("Work Experience:\n" + "\n".join(profile.work_experience))
    if profile.education:
        parts.append("Education:\n" + "\n".join(profile.education))
    if profile.labeling_experience:
        parts.append("Data Labeling Experience:\n" + "\n".join(profile.labeling_experience))
    if profile.languages:
        parts.append(f"Languages: {', '.join(profile.languages)}")
    if profile.country:
        parts.append(f"Country: {profile.country}")
    return "\n\n".join(parts)


def resolve_user_class(expert_score: int, labeler_score: int, config: UserClassifierConfig) -> UserClass:
    if expert_score >= config.mixed_min_expert and labeler_score >= config.mixed_min_labeler:
        return "mixed"
    if expert_score > labeler_score:
        return "domain_expert"
    return "general_labeler"


def detect_task_capabilities(text: str) -> list[str]:
    return [
        capability
        for capability, patterns in _CAPABILITY_PATTERNS
        if any(pattern.search(text) for pattern in patterns)
    ]


class HeuristicUserClassifier:
    """Score expert signals against labeler signals over the profile text."""

    method = "heuristic"

    def __init__(
        self,
        *,
        taxonomy: Taxonomy | None = None,
        extractor: RequirementsExtractor | None = None,
        config: UserClassifierConfig | None = None,
    ) -> None:
        self._taxonomy = taxonomy or default_taxonomy()
        self._extractor = extractor or RequirementsExtractor(self._taxonomy)
        self._config = config or UserClassifierConfig()

    def classify_sync(self, profile: NormalizedUserProfile) -> UserClassification:
        text = profile.combined_text()
        credentials, years, codes = self._extractor.extract_user_credentials(profile)
        signals: list[str] = []

        expert_score = self._expert_score(text, credentials, years, codes, signals)
        labeler_score, capabilities = self._labeler_score(profile, text, signals)

        user_class = resolve_user_class(expert_score, labeler_score, self._config)
        if not text.strip():
            confidence = 0.3
        elif user_class == "mixed":
            confidence = 0.7
        else:
            confidence = 0.5 + min(0.4, abs(expert_score - labeler_score) * 0.05)

        requirements = Requirements(
            credentials=tuple(credentials),
            min_experience_years=years,
            subject_matter_codes=tuple(codes),
            expertise_tier=self._extractor.determine_expertise_tier(None, years, credentials),
            countries=tuple(self._taxonomy.normalize_countries([profile.country] if profile.country else [])),
            languages=tuple(self._taxonomy.normalize_languages(profile.languages)),
        )
        return UserClassification(
            user_class=user_class,
            has_labeling_experience=labeler_score > 0,
            task_capabilities=tuple(capabilities),
            confidence=confidence,
            requirements=requirements,
            reasoning=f"expert_score={expert_score} labeler_score={labeler_score}",
            signals=tuple(signals),
            source="heuristic",
        )

    async def classify(self, profile: NormalizedUserProfile) -> UserClassification:
        return self.classify_sync(profile)

    def _expert_score(
        self,
        text: str,
        credentials: list[str],
        years: int,
        codes: list[str],
        signals: list[str],
    ) -> int:
        score = 0
        advanced = [c for c in credentials if c == "PHD" or self._taxonomy.is_advanced_credential(c)]
        mid = [c for c in credentials if self._taxonomy.is_mid_credential(c)]
        if advanced:
            score += 3
            signals.extend(f"advanced_credential:{c}" for c in advanced)
        if mid:
            score += 1 if advanced else 2
            signals.extend(f"mid_credential:{c}" for c in mid)

        roles = [name for name, pattern in _ROLE_PATTERNS if pattern.search(text)]
        if roles:
            score += 3 if len(roles) >= 2 else 2
            signals.extend(f"professional_role:{role}" for role in roles)
        if _SENIORITY.search(text):
            score += 1
            signals.append("seniority")
        if codes:
            score += 1
            signals.append("domain_codes")
        if years >= 10:
            score += 2
        elif years >= 5:
            score += 1
        return score

    def _labeler_score(
        self,
        profile: NormalizedUserProfile,
        text: str,
        signals: list[str],
    ) -> tuple[int, list[str]]:
        score = 0
        # Word boundaries keep "surge" in "surgeon" from counting as a platform.
        platforms = [name for name, pattern in _PLATFORM_PATTERNS if pattern.search(text)]
        if platforms:
            score += min(4, 2 * len(platforms))
            signals.extend(f"labeling_platform:{name}" for name in platforms)
        titles = [name for name, pattern in _TITLE_PATTERNS if pattern.search(text)]
        if titles:
            score += 2
            signals.extend(f"labeler_title:{name}" for name in titles)
        if profile.labeling_experience:
            score += 2
            signals.append("labeling_experience_field")
        capabilities = detect_task_capabilities(text)
        if capabilities:
            score += min(3, len(capabilities))
            signals.extend(f"capability:{name}" for name in capabilities)
        return score, capabilities


class LLMUserClassifier:
    """Classify profiles through the text-generation collaborator in JSON mode."""

    method = "llm"

    def __init__(
        self,
        generator: TextGenerator,
        *,
        taxonomy: Taxonomy | None = None,
        config: UserClassifierConfig | None = None,
    ) -> None:
        self._generator = generator
        self._taxonomy = taxonomy or default_taxonomy()
        self._config = config or UserClassifierConfig()
        self._logger = structlog.get_logger(__name__)

    async def classify(self, profile: NormalizedUserProfile) -> UserClassification:
        user_prompt = f"Classify this freelancer profile:\n\n{build_user_text(profile)}"
        response = await with_retry(
            lambda: self._generator.generate(
                USER_CLASSIFICATION_SYSTEM_PROMPT,
                user_prompt,
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
                json_mode=True,
            )
        )
        try:
            payload = coerce_json(response)
        except (json.JSONDecodeError, ValueError) as exc:
            raise LLMFailure("Unparsable user classification", details={"user_id": profile.user_id}) from exc
        result = self.parse(payload, profile)
        self._logger.info(
            "user.classified",
            user_id=profile.user_id,
            user_class=result.user_class,
            expertise_tier=result.expertise_tier,
            credentials=list(result.credentials),
            has_labeling_experience=result.has_labeling_experience,
        )
        return result

    def parse(self, payload: dict[str, Any], profile: NormalizedUserProfile) -> UserClassification:
        tier = payload.get("expertise_tier")
        tier = tier if tier in EXPERTISE_TIERS else "entry"
        confidence = payload.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = self._config.default_confidence
        credentials = tuple(str(c).upper() for c in _as_list(payload.get("credentials")))
        codes = tuple(code for code in _as_list(payload.get("subject_matter_codes")) if isinstance(code, str))
        years = payload.get("years_experience")
        has_labeling = payload.get("has_labeling_experience") is True

        expert_signal = tier in ("expert", "specialist") or any(
            c == "PHD" or self._taxonomy.is_advanced_credential(c) or self._taxonomy.is_mid_credential(c)
            for c in credentials
        )
        user_class: UserClass
        if expert_signal and has_labeling:
            user_class = "mixed"
        elif expert_signal:
            user_class = "domain_expert"
        else:
            user_class = "general_labeler"

        reasoning = payload.get("reasoning")
        return UserClassification(
            user_class=user_class,
            has_labeling_experience=has_labeling,
            task_capabilities=tuple(detect_task_capabilities(profile.combined_text())),
            confidence=confidence,
            requirements=Requirements(
                credentials=credentials,
                min_experience_years=coerce_years(years),
                subject_matter_codes=codes,
                expertise_tier=tier,
                countries=tuple(self._taxonomy.normalize_countries([profile.country] if profile.country else [])),
                languages=tuple(self._taxonomy.normalize_languages(profile.languages)),
            ),
            reasoning=reasoning if isinstance(reasoning, str) else "",
            source="llm",
        )


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def classify_user_sync(profile: NormalizedUserProfile, *, taxonomy: Taxonomy | None = None) -> UserClassification:
    """Heuristic-only classification, usable without any collaborator."""
    return HeuristicUserClassifier(taxonomy=taxonomy).classify_sync(profile)


__all__ = [
    "HeuristicUserClassifier",
    "LABELING_PLATFORMS",
    "LLMUserClassifier",
    "USER_CLASSIFICATION_SYSTEM_PROMPT",
    "UserClassifierConfig",
    "build_user_text",
    "classify_user_sync",
    "detect_task_capabilities",
    "resolve_user_class",
]
