"""Weighted similarity scoring and acceptance thresholds."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

import numpy as np
import structlog

from ..errors import MatchingError
from ..schemas import EXPERTISE_TIERS, JobClass, MatchReport, ScoredResult, WeightProfile

SCORE_DECIMALS = 5


def cosine_similarity(vec1: Sequence[float] | np.ndarray, vec2: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity of two vectors, 0.0 when either has zero norm."""
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)
    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)
    if norm_v1 == 0 or norm_v2 == 0:
        return 0.0
    return float(np.dot(v1, v2) / (norm_v1 * norm_v2))


def format_percent(value: float) -> str:
    """Display helper; never compare the string form."""
    return f"{value * 100:.0f}%"


@dataclass
class ScoringConfig:
    """Domain/task weights per job class."""

    specialized: tuple[float, float] = (0.85, 0.15)
    generic: tuple[float, float] = (0.30, 0.70)
    decimals: int = SCORE_DECIMALS


class ScoringEngine:
    """Blend domain and task cosine similarity with job-class weights."""

    method = "weighted_similarity"

    def __init__(self, *, config: ScoringConfig | None = None) -> None:
        self._config = config or ScoringConfig()
        self._profiles = {
            "specialized": WeightProfile(w_domain=self._config.specialized[0], w_task=self._config.specialized[1]),
            "generic": WeightProfile(w_domain=self._config.generic[0], w_task=self._config.generic[1]),
        }
        if self._profiles["specialized"].w_domain <= self._profiles["generic"].w_domain:
            raise MatchingError("CONFIG_ERROR", "specialized jobs must weight domain above generic jobs")

    def get_weight_profile(self, job_class: JobClass) -> WeightProfile:
        return self._profiles["specialized" if job_class == "specialized" else "generic"]

    def final_score(self, domain_score: float, task_score: float, job_class: JobClass) -> float:
        weights = self.get_weight_profile(job_class)
        return weights.w_domain * domain_score + weights.w_task * task_score

    def score(
        self,
        user_id: str,
        domain_score: float,
        task_score: float,
        job_class: JobClass,
        *,
        threshold: float,
        job_id: str | None = None,
    ) -> ScoredResult:
        final = self.final_score(domain_score, task_score, job_class)
        return ScoredResult(
            user_id=user_id,
            job_id=job_id,
            domain_score=domain_score,
            task_score=task_score,
            final_score=final,
            threshold_used=threshold,
            above_threshold=final >= threshold,
        )

    def score_matches(
        self,
        job_class: JobClass,
        candidates: Iterable[tuple[str, float, float]],
        *,
        threshold: float,
        job_id: str | None = None,
        user_thresholds: Mapping[str, float] | None = None,
    ) -> MatchReport:
        """Score ``(user_id, domain_score, task_score)`` triples, rank them, and count hits.

        ``user_thresholds`` replaces ``threshold`` for the users it names.
        """
        decimals = self._config.decimals
        per_user = user_thresholds or {}
        scored = [
            self.score(
                user_id,
                domain,
                task,
                job_class,
                threshold=per_user.get(user_id, threshold),
                job_id=job_id,
            )
            for user_id, domain, task in candidates
        ]
        scored.sort(key=lambda result: result.final_score, reverse=True)
        ranked = tuple(
            result.model_copy(
                update={
                    "rank": index,
                    "domain_score": round(result.domain_score, decimals),
                    "task_score": round(result.task_score, decimals),
                    "final_score": round(result.final_score, decimals),
                }
            )
            for index, result in enumerate(scored, start=1)
        )
        return MatchReport(
            job_id=job_id,
            job_class=job_class,
            weights=self.get_weight_profile(job_class),
            threshold=threshold,
            count_gte_threshold=sum(1 for result in scored if result.above_threshold),
            results=ranked,
        )


@dataclass
class ThresholdConfig:
    """Base thresholds per job class, optional per-tier overrides and small-pool leniency."""

    specialized: float = 0.50
    generic: float = 0.35
    overrides: dict[str, dict[str, float]] = field(default_factory=dict)
    small_pool_leniency: bool = True
    tiny_pool_size: int = 30
    small_pool_size: int = 100
    tiny_pool_multiplier: float = 0.6
    small_pool_multiplier: float = 0.8


class ThresholdPolicy:
    """Resolve the acceptance threshold for a (job class, user tier) pair.

    The table is validated on construction: for every tier the specialized
    threshold must be at least the generic one.
    """

    def __init__(self, *, config: ThresholdConfig | None = None) -> None:
        self._config = config or ThresholdConfig()
        self._logger = structlog.get_logger(__name__)
        self._table = self._build_table(self._config)

    @staticmethod
    def _build_table(config: ThresholdConfig) -> Mapping[tuple[str, str], float]:
        if config.specialized < config.generic:
            raise MatchingError(
                "CONFIG_ERROR",
                "Specialized base threshold must not be below the generic one",
                details={"specialized": config.specialized, "generic": config.generic},
            )
        table: dict[tuple[str, str], float] = {}
        for job_class, base in (("specialized", config.specialized), ("generic", config.generic)):
            overrides = config.overrides.get(job_class, {}) or {}
            unknown = set(overrides) - set(EXPERTISE_TIERS)
            if unknown:
                raise MatchingError("CONFIG_ERROR", f"Unknown expertise tiers in thresholds: {sorted(unknown)}")
            for tier in EXPERTISE_TIERS:
                value = float(overrides.get(tier, base))
                if not 0.0 <= value <= 1.0:
                    raise MatchingError("CONFIG_ERROR", f"Threshold for {job_class}/{tier} out of range: {value}")
                table[(job_class, tier)] = value
        for tier in EXPERTISE_TIERS:
            if table[("specialized", tier)] < table[("generic", tier)]:
                raise MatchingError(
                    "CONFIG_ERROR",
                    f"Threshold table is not monotonic for tier {tier!r}",
                    details={
                        "specialized": table[("specialized", tier)],
                        "generic": table[("generic", tier)],
                    },
                )
        return table

    def threshold_for(self, job_class: JobClass, tier: str | None = None) -> float:
        """Tier override when the tier is known, otherwise the job-class base threshold."""
        key_class = "specialized" if job_class == "specialized" else "generic"
        if tier not in EXPERTISE_TIERS:
            return self._config.specialized if key_class == "specialized" else self._config.generic
        return self._table[(key_class, tier)]

    def pool_multiplier(self, pool_size: int) -> float:
        config = self._config
        if not config.small_pool_leniency or pool_size <= 0:
            return 1.0
        if pool_size < config.tiny_pool_size:
            return config.tiny_pool_multiplier
        if pool_size < config.small_pool_size:
            return config.small_pool_multiplier
        return 1.0

    def resolve(self, job_class: JobClass, tier: str | None = None, *, pool_size: int | None = None) -> float:
        threshold = self.threshold_for(job_class, tier)
        if pool_size is None:
            return threshold
        multiplier = self.pool_multiplier(pool_size)
        if multiplier != 1.0:
            self._logger.info("thresholds.pool_leniency", pool_size=pool_size, multiplier=multiplier)
        return threshold * multiplier


__all__ = [
    "SCORE_DECIMALS",
    "ScoringConfig",
    "ScoringEngine",
    "ThresholdConfig",
    "ThresholdPolicy",
    "cosine_similarity",
    "format_percent",
]
