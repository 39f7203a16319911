"""Normalized user and job records built at the upstream boundary."""

from __future__ import annotations

import re
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

from ..errors import ProfileValidationError

MAX_FIELD_CHARS = 12_000

_EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_PHONE_PATTERN = re.compile(
    r"(?:\+\d{1,3}[\s.-]?)?(?<!\d)\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)"
)


def strip_basic_pii(value: str) -> str:
    """Redact email addresses and phone numbers."""
    redacted = _EMAIL_PATTERN.sub("[email]", value)
    return _PHONE_PATTERN.sub("[phone]", redacted)


def sanitize_text(value: Any, *, limit: int = MAX_FIELD_CHARS) -> str:
    if value is None:
        return ""
    text = strip_basic_pii(str(value)).strip()
    return text[:limit]


def sanitize_optional(value: Any) -> str | None:
    text = sanitize_text(value)
    return text or None


def sanitize_list(values: Any) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]
    cleaned: list[str] = []
    for item in values:
        text = sanitize_text(item)
        if text:
            cleaned.append(text)
    return tuple(cleaned)


class NormalizedUserProfile(BaseModel):
    """Freelancer profile after boundary normalization."""

    user_id: str
    resume_text: str = ""
    work_experience: tuple[str, ...] = ()
    education: tuple[str, ...] = ()
    labeling_experience: tuple[str, ...] = ()
    languages: tuple[str, ...] = ()
    country: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> "NormalizedUserProfile":
        """Normalize a loosely-typed upstream record, resolving field aliases."""
        if not isinstance(raw, dict):
            raise ProfileValidationError("User record must be a mapping")
        user_id = str(raw.get("user_id") or raw.get("userId") or "").strip()
        if not user_id:
            raise ProfileValidationError("user_id is required", details={"keys": sorted(raw)})

        labeling = raw.get("labeling_experience")
        if labeling is None:
            labeling = raw.get("label_experience")
        languages = raw.get("languages")
        if languages is None:
            languages = raw.get("language")

        return cls(
            user_id=user_id,
            resume_text=sanitize_text(raw.get("resume_text")),
            work_experience=sanitize_list(raw.get("work_experience")),
            education=sanitize_list(raw.get("education")),
            labeling_experience=sanitize_list(labeling),
            languages=sanitize_list(languages),
            country=sanitize_optional(raw.get("country")),
        )

    def combined_text(self) -> str:
        parts: list[str] = [self.resume_text, *self.work_experience, *self.education, *self.labeling_experience]
        return "\n".join(part for part in parts if part)


# Upstream job "fields" keys mapped to attribute names.
JOB_FIELD_ALIASES: dict[str, str] = {
    "Instructions": "instructions",
    "Workload_Desc": "workload_desc",
    "Dataset_Description": "dataset_description",
    "Data_SubjectMatter": "data_subject_matter",
    "Data_Type": "data_type",
    "LabelTypes": "label_types",
    "Requirements_Additional": "requirements_additional",
    "AvailableLanguages": "available_languages",
    "AvailableCountries": "available_countries",
    "ExpertiseLevel": "expertise_level",
    "TimeRequirement": "time_requirement",
    "ProjectType": "project_type",
    "LabelSoftware": "label_software",
    "AdditionalSkills": "additional_skills",
}

_JOB_LIST_FIELDS = frozenset({"label_types", "available_languages", "available_countries", "additional_skills"})


class NormalizedJobPosting(BaseModel):
    """Job posting after boundary normalization."""

    job_id: str
    title: str | None = None
    instructions: str | None = None
    workload_desc: str | None = None
    dataset_description: str | None = None
    data_subject_matter: str | None = None
    data_type: str | None = None
    label_types: tuple[str, ...] = ()
    requirements_additional: str | None = None
    available_languages: tuple[str, ...] = ()
    available_countries: tuple[str, ...] = ()
    expertise_level: str | None = None
    time_requirement: str | None = None
    project_type: str | None = None
    label_software: str | None = None
    additional_skills: tuple[str, ...] = ()

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> "NormalizedJobPosting":
        """Normalize an upstream job upsert payload (``job_id``, ``title``, ``fields``)."""
        if not isinstance(raw, dict):
            raise ProfileValidationError("Job record must be a mapping")
        job_id = str(raw.get("job_id") or raw.get("jobId") or "").strip()
        if not job_id:
            raise ProfileValidationError("job_id is required", details={"keys": sorted(raw)})
        fields = raw.get("fields") or {}
        if not isinstance(fields, dict):
            raise ProfileValidationError("fields must be a mapping", details={"job_id": job_id})

        values: dict[str, Any] = {"job_id": job_id, "title": sanitize_optional(raw.get("title"))}
        for key, value in fields.items():
            attribute = JOB_FIELD_ALIASES.get(key, key if key in cls.model_fields else None)
            if attribute is None or attribute in ("job_id", "title"):
                continue
            if attribute in _JOB_LIST_FIELDS:
                values[attribute] = sanitize_list(value)
            else:
                values[attribute] = sanitize_optional(value)
        return cls(**values)

    def source_text(self) -> str:
        """Labelled job text used for evidence extraction and keyword checks."""
        parts: list[str] = []
        for label, value in self._labelled_fields():
            if value:
                parts.append(f"{label}: {value}")
        return "\n".join(parts)

    def requirement_text(self) -> str:
        """Text scanned for credentials and experience requirements."""
        parts: Iterable[str | None] = (
            self.title,
            self.requirements_additional,
            self.expertise_level,
            self.instructions,
            self.dataset_description,
            self.workload_desc,
        )
        return "\n".join(part for part in parts if part)

    def _labelled_fields(self) -> list[tuple[str, str | None]]:
        return [
            ("Title", self.title),
            ("Instructions", self.instructions),
            ("Workload_Desc", self.workload_desc),
            ("Dataset_Description", self.dataset_description),
            ("Data_SubjectMatter", self.data_subject_matter),
            ("Data_Type", self.data_type),
            ("LabelTypes", ", ".join(self.label_types) or None),
            ("Requirements_Additional", self.requirements_additional),
            ("ExpertiseLevel", self.expertise_level),
            ("LabelSoftware", self.label_software),
            ("AdditionalSkills", ", ".join(self.additional_skills) or None),
        ]


__all__ = [
    "JOB_FIELD_ALIASES",
    "MAX_FIELD_CHARS",
    "NormalizedJobPosting",
    "NormalizedUserProfile",
    "sanitize_list",
    "sanitize_text",
    "strip_basic_pii",
]
