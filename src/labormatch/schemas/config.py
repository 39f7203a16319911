"""Pydantic configuration schema for CLI YAML input."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class CoreConfig(BaseModel):
    openai_api_key: str | None = None


class ComponentsConfig(BaseModel):
    """Per-component overrides, each passed to that component's config dataclass."""

    scoring: dict[str, Any] | None = None
    thresholds: dict[str, Any] | None = None
    subject_matter: dict[str, Any] | None = None
    domain_evidence: dict[str, Any] | None = None
    labeling_evidence: dict[str, Any] | None = None
    task_capsule: dict[str, Any] | None = None
    domain_capsule: dict[str, Any] | None = None
    job_capsule: dict[str, Any] | None = None
    capsule_author: dict[str, Any] | None = None
    job_classifier: dict[str, Any] | None = None
    user_classifier: dict[str, Any] | None = None
    tracker: dict[str, Any] | None = None

    model_config = ConfigDict(extra="forbid")


class PipelineSection(BaseModel):
    top_k: int | None = Field(default=None, ge=1)
    max_notifications: int | None = Field(default=None, ge=0)
    chunk_size: int | None = Field(default=None, ge=1, le=1000)
    embedding_model: str | None = None
    exclude_experts_from_generic: bool | None = None


class LLMSection(BaseModel):
    model: str | None = None
    embedding_model: str | None = None
    base_url: str | None = None
    timeout: float | None = None


class DatabaseSection(BaseModel):
    url: str | None = None
    echo: bool | None = None


class AppConfig(BaseModel):
    core: CoreConfig = Field(default_factory=CoreConfig)
    components: ComponentsConfig = Field(default_factory=ComponentsConfig)
    pipeline: PipelineSection = Field(default_factory=PipelineSection)
    llm: LLMSection = Field(default_factory=LLMSection)
    database: DatabaseSection = Field(default_factory=DatabaseSection)

    model_config = ConfigDict(extra="forbid")

    def to_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        for section in ("core", "components", "pipeline", "llm", "database"):
            dumped = getattr(self, section).model_dump(exclude_none=True)
            if dumped:
                settings[section] = dumped
        return settings


def load_config(raw: Any) -> AppConfig:
    if not isinstance(raw, dict):
        raise ValidationError.from_exception_data(
            "AppConfig",
            [{"type": "dict_type", "loc": ("config",), "input": raw}],
        )
    return AppConfig.model_validate(raw)


__all__ = ["AppConfig", "load_config"]
