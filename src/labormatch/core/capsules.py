"""Capsule authoring: prompt the text generator, parse, and validate."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

import structlog

from ..errors import LLMFailure, MatchingError
from ..retry import with_retry
from ..schemas import Capsule, CapsulePair, EvidenceSet, NormalizedJobPosting, NormalizedUserProfile
from .classifiers._json import coerce_json
from .evidence import DomainEvidenceExtractor, LabelingEvidenceExtractor
from .protocols import TextGenerator
from .validation import DomainCapsuleValidator, JobCapsuleValidator, TaskCapsuleValidator

USER_CAPSULE_SYSTEM_PROMPT = (
    "You create profile summaries for freelancer matching using vector similarity. "
    "The capsules you output will be embedded and compared against job posting embeddings. "
    "Output text that would be semantically similar to job postings seeking this candidate. "
    "Be PII-safe: do not include names or contact details."
)

USER_CAPSULE_PROMPT = """Write TWO capsules that will be embedded and matched against job posting embeddings.

## DOMAIN CAPSULE (who is this person? 5-20 words)
Stop at the first rule that applies:
1. A specific profession (doctor, lawyer, engineer, accountant, nurse): "[Profession title]. [Specialty/domain]."
2. Specific language expertise (native speaker, translator, linguist): "[Language] native speaker. [Relevant skills]."
3. Specific technical skills: "[Role]. [Technologies/skills]."
4. Otherwise: "General workforce. No specialized expertise documented."
Use only facts stated in SOURCE. No AI/LLM terms, dates, employers, years of experience or soft skills.
End with: Keywords: <3-8 key domain nouns>

## SKILLS CAPSULE (what can this person do? 10-30 words)
Summarize task experience: work types, tools and platforms, deliverables.
Output format: "[Primary skill type]. [Specific skills and experience details]."
End with: Keywords: <5-10 skill-related nouns>

SOURCE (verbatim):
- Resume Text:
{resume_text}
- Work Experience:
{work_experience}
- Education:
{education}
- Labeling/AI Experience:
{labeling_experience}
- Languages/Country:
{languages}, {country}

OUTPUT FORMAT:
<Domain Capsule text here>
Keywords: ...

<Skills Capsule text here>
Keywords: ..."""

JOB_CAPSULE_SYSTEM_PROMPT = (
    "You create search queries for freelancer matching. Output what would appear in an ideal "
    'candidate\'s profile. Default to "General population" unless a specific profession, language, '
    "or technical skill is required. Return valid JSON only."
)

JOB_CAPSULE_PROMPT = """Write TWO search capsules that will be embedded and compared against freelancer profiles.

## DOMAIN CAPSULE (who should do this job? 5-20 words)
Stop at the first rule that applies:
1. A specific profession is required: output the profession and domain.
2. Professional translation or localization is required: output the language and translation expertise.
3. Specific technical skills are required: output those skills.
4. Otherwise: "General population. No specialized expertise required."
Do not invent expertise. Language filtering happens separately.

## TASK CAPSULE (what work will they do? 10-25 words)
Describe modality, work type, technique and AI workflow (SFT, RLHF, DPO) where applicable.
Output the task type, not procedural instructions.

Return JSON:
{{
  "job_id": "<string>",
  "domain_capsule": {{"text": "<domain capsule>", "keywords": ["<5-10 nouns>"]}},
  "task_capsule": {{"text": "<task capsule>", "keywords": ["<5-10 nouns>"]}}
}}

JOB_TITLE: {title}
JOB_TEXT:
{job_text}

job_id for output: {job_id}"""

_SEGMENT = re.compile(r"([\s\S]+?Keywords:[^\n]*)(?:\n{2,}|$)")
_HAS_KEYWORDS = re.compile(r"Keywords:\s*.+", re.IGNORECASE)


@dataclass
class CapsuleAuthorConfig:
    temperature: float = 0.2
    max_tokens: int = 1600


def extract_capsule_texts(raw: str) -> CapsulePair:
    """Split free-text output into the domain and task ``...Keywords:`` segments."""
    trimmed = raw.strip()
    segments: list[str] = []
    for match in _SEGMENT.finditer(trimmed):
        segment = match.group(1).strip()
        if segment:
            segments.append(segment)
        if len(segments) == 2:
            break
    if len(segments) != 2:
        raise LLMFailure(
            "Unable to parse capsule response from language model",
            details={"snippet": trimmed[:200]},
        )
    for segment in segments:
        if not _HAS_KEYWORDS.search(segment):
            raise LLMFailure("Capsule is missing a Keywords line", details={"capsule": segment})
    return CapsulePair(domain=Capsule(text=segments[0]), task=Capsule(text=segments[1]))


def _job_section(payload: dict[str, Any], field_name: str) -> str:
    section = payload.get(field_name)
    if not isinstance(section, dict):
        raise LLMFailure(f"{field_name} field is missing or invalid", retryable=True)
    text = section.get("text")
    if not isinstance(text, str) or not text.strip():
        raise LLMFailure(f"{field_name} text is missing or empty", retryable=True)
    keywords = [str(keyword).strip() for keyword in section.get("keywords") or [] if str(keyword).strip()]
    line = ", ".join(keywords) if keywords else "none"
    return f"{text.strip()}\nKeywords: {line}"


class CapsuleAuthor:
    """Generate validated capsule pairs for users and jobs."""

    method = "capsule_author"

    def __init__(
        self,
        generator: TextGenerator,
        *,
        domain_evidence: DomainEvidenceExtractor | None = None,
        labeling_evidence: LabelingEvidenceExtractor | None = None,
        task_validator: TaskCapsuleValidator | None = None,
        domain_validator: DomainCapsuleValidator | None = None,
        job_validator: JobCapsuleValidator | None = None,
        config: CapsuleAuthorConfig | None = None,
    ) -> None:
        self._generator = generator
        self._domain_evidence = domain_evidence or DomainEvidenceExtractor()
        self._labeling_evidence = labeling_evidence or LabelingEvidenceExtractor()
        self._task_validator = task_validator or TaskCapsuleValidator()
        self._domain_validator = domain_validator or DomainCapsuleValidator(generator=generator)
        self._job_validator = job_validator or JobCapsuleValidator(generator=generator)
        self._config = config or CapsuleAuthorConfig()
        self._logger = structlog.get_logger(__name__)

    async def _generate(self, system_prompt: str, user_prompt: str, *, json_mode: bool = False) -> str:
        try:
            text = await with_retry(
                lambda: self._generator.generate(
                    system_prompt,
                    user_prompt,
                    temperature=self._config.temperature,
                    max_tokens=self._config.max_tokens,
                    json_mode=json_mode,
                )
            )
        except MatchingError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise LLMFailure("Failed to generate capsules", details={"message": str(exc)}) from exc
        if not text or not text.strip():
            raise LLMFailure("Received empty response from language model")
        return text

    def user_evidence(self, profile: NormalizedUserProfile) -> EvidenceSet:
        return self._labeling_evidence.extract(profile.combined_text())

    async def author_user_capsules(self, profile: NormalizedUserProfile) -> CapsulePair:
        prompt = USER_CAPSULE_PROMPT.format(
            resume_text=profile.resume_text,
            work_experience="\n".join(profile.work_experience),
            education="\n".join(profile.education),
            labeling_experience="\n".join(profile.labeling_experience),
            languages="\n".join(profile.languages),
            country=profile.country or "Unknown",
        )
        raw = await self._generate(USER_CAPSULE_SYSTEM_PROMPT, prompt)
        capsules = extract_capsule_texts(raw)

        domain = await self._domain_validator.validate(capsules.domain.text)
        task = self._task_validator.validate(capsules.task.text, self.user_evidence(profile))
        if not task.accepted:
            self._logger.info("capsules.task_replaced", user_id=profile.user_id, violations=list(task.violations))
        return CapsulePair(domain=Capsule(text=domain.text), task=Capsule(text=task.text))

    async def author_job_capsules(self, job: NormalizedJobPosting) -> CapsulePair:
        prompt = JOB_CAPSULE_PROMPT.format(title=job.title, job_text=job.source_text(), job_id=job.job_id)
        payload: dict[str, Any] | None = None
        last_error: Exception | None = None
        for _ in range(2):
            raw = await self._generate(JOB_CAPSULE_SYSTEM_PROMPT, prompt, json_mode=True)
            try:
                payload = coerce_json(raw)
                if payload.get("job_id") != job.job_id:
                    raise LLMFailure("Returned job_id does not match request job_id", retryable=True)
                domain_text = _job_section(payload, "domain_capsule")
                task_text = _job_section(payload, "task_capsule")
                break
            except (json.JSONDecodeError, ValueError, LLMFailure) as exc:
                last_error = exc
                payload = None
        if payload is None:
            raise LLMFailure(
                "Failed to parse job capsule response from language model",
                details={"job_id": job.job_id, "error": str(last_error)},
            )

        source = job.source_text()
        domain = await self._job_validator.enforce_domain(domain_text, self._domain_evidence.extract(source))
        task = await self._job_validator.enforce_task(task_text, self._labeling_evidence.extract(source))
        return CapsulePair(domain=Capsule(text=domain.text), task=Capsule(text=task.text))


__all__ = ["CapsuleAuthor", "CapsuleAuthorConfig", "extract_capsule_texts"]
