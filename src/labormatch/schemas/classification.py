"""Classification results for jobs and users."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

JobClass = Literal["specialized", "generic"]
UserClass = Literal["domain_expert", "general_labeler", "mixed"]
ExpertiseTier = Literal["entry", "intermediate", "expert", "specialist"]
ClassificationSource = Literal["llm", "heuristic"]
Strictness = Literal["strict", "moderate", "lenient"]

EXPERTISE_TIERS: tuple[ExpertiseTier, ...] = ("entry", "intermediate", "expert", "specialist")
JOB_CLASSES: tuple[JobClass, ...] = ("generic", "specialized")
USER_CLASSES: tuple[UserClass, ...] = ("domain_expert", "general_labeler", "mixed")


class Requirements(BaseModel):
    credentials: tuple[str, ...] = ()
    min_experience_years: int | None = None
    subject_matter_codes: tuple[str, ...] = ()
    expertise_tier: ExpertiseTier = "entry"
    countries: tuple[str, ...] = ()
    languages: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


class ClassificationResult(BaseModel):
    """Fields shared by job and user classifications."""

    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    requirements: Requirements = Field(default_factory=Requirements)
    reasoning: str = ""
    signals: tuple[str, ...] = ()
    source: ClassificationSource = "heuristic"

    model_config = ConfigDict(frozen=True)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: object) -> float:
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.5
        return min(max(number, 0.0), 1.0)


class JobClassification(ClassificationResult):
    job_class: JobClass = "generic"
    subject_matter_strictness: Strictness = "moderate"


class UserClassification(ClassificationResult):
    user_class: UserClass = "general_labeler"
    has_labeling_experience: bool = False
    task_capabilities: tuple[str, ...] = ()

    @property
    def expertise_tier(self) -> ExpertiseTier:
        return self.requirements.expertise_tier

    @property
    def credentials(self) -> tuple[str, ...]:
        return self.requirements.credentials

    @property
    def domain_codes(self) -> tuple[str, ...]:
        return self.requirements.subject_matter_codes

    @property
    def estimated_experience_years(self) -> int:
        return self.requirements.min_experience_years or 0


__all__ = [
    "ClassificationResult",
    "ClassificationSource",
    "EXPERTISE_TIERS",
    "ExpertiseTier",
    "JOB_CLASSES",
    "JobClass",
    "JobClassification",
    "Requirements",
    "Strictness",
    "USER_CLASSES",
    "UserClass",
    "UserClassification",
]
