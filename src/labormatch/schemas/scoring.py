"""Scoring value objects."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WeightProfile(BaseModel):
    """Blend of domain and task similarity; the two weights sum to 1."""

    w_domain: float = Field(ge=0.0, le=1.0)
    w_task: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_sum(self) -> "WeightProfile":
        if not math.isclose(self.w_domain + self.w_task, 1.0, abs_tol=1e-9):
            raise ValueError(f"weights must sum to 1 (got {self.w_domain} + {self.w_task})")
        return self


class ScoredResult(BaseModel):
    user_id: str
    job_id: str | None = None
    domain_score: float
    task_score: float
    final_score: float
    rank: int | None = None
    threshold_used: float | None = None
    above_threshold: bool = False
    filter_reason: str | None = None

    model_config = ConfigDict(frozen=True)


class MatchReport(BaseModel):
    """Ranked results of scoring one job against a candidate pool."""

    job_id: str | None = None
    job_class: str
    weights: WeightProfile
    threshold: float
    count_gte_threshold: int
    results: tuple[ScoredResult, ...] = ()

    model_config = ConfigDict(frozen=True)


__all__ = ["MatchReport", "ScoredResult", "WeightProfile"]
