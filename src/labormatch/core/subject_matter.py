"""Subject-matter filtering for specialized jobs.

Codes are compared exactly first, then through the ``domain:general`` /
``domain:*`` parent wildcard, and finally by embedding similarity of the
specialty names against a strictness-dependent threshold.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Sequence

import structlog

from ..errors import MatchingError
from ..schemas import Strictness
from .classifiers.eligibility import codes_match, is_wildcard
from .protocols import Embedder
from .scoring import cosine_similarity
from .taxonomy import specialty_name

STRICTNESS_THRESHOLDS: dict[str, float] = {"strict": 0.80, "moderate": 0.70, "lenient": 0.60}


def threshold_for_strictness(strictness: str | None, table: dict[str, float] | None = None) -> float:
    thresholds = table or STRICTNESS_THRESHOLDS
    if strictness not in thresholds:
        return thresholds["moderate"]
    return thresholds[strictness]


@dataclass(frozen=True)
class SubjectMatterMatch:
    has_match: bool
    best_similarity: float
    best_pair: tuple[str, str] | None
    user_codes: tuple[str, ...]
    matched_by: str | None = None


@dataclass
class SubjectMatterConfig:
    thresholds: dict[str, float] = field(default_factory=lambda: dict(STRICTNESS_THRESHOLDS))
    embed_prefix: str = "subject matter expertise: "


class SubjectMatterMatcher:
    """Decide whether a user's domain codes cover a job's required codes."""

    method = "subject_matter"

    def __init__(self, embedder: Embedder | None = None, *, config: SubjectMatterConfig | None = None) -> None:
        self._embedder = embedder
        self._config = config or SubjectMatterConfig()
        self._cache: dict[str, list[float]] = {}
        self._logger = structlog.get_logger(__name__)

    async def specialty_embedding(self, code: str) -> list[float]:
        specialty = specialty_name(code).lower()
        cached = self._cache.get(specialty)
        if cached is not None:
            return cached
        if self._embedder is None:
            raise MatchingError("CONFIG_ERROR", "Subject-matter matcher has no embedder configured")
        embedding = await self._embedder.embed(f"{self._config.embed_prefix}{specialty}")
        self._cache[specialty] = embedding
        return embedding

    async def match(
        self,
        user_codes: Sequence[str],
        job_codes: Sequence[str],
        strictness: Strictness | str | None = "moderate",
    ) -> SubjectMatterMatch:
        users = tuple(user_codes)
        if not users:
            return SubjectMatterMatch(False, 0.0, None, ())
        if not job_codes:
            return SubjectMatterMatch(True, 1.0, None, users)

        for user_code in users:
            for job_code in job_codes:
                if user_code == job_code:
                    return SubjectMatterMatch(True, 1.0, (user_code, job_code), users, "exact")
        for user_code in users:
            for job_code in job_codes:
                if codes_match(user_code, job_code):
                    return SubjectMatterMatch(True, 1.0, (user_code, job_code), users, "parent")

        # Wildcards were settled above; "general" on both sides of different domains is not a match.
        user_specific = [code for code in users if not is_wildcard(code)]
        job_specific = [code for code in job_codes if not is_wildcard(code)]
        if self._embedder is None or not user_specific or not job_specific:
            return SubjectMatterMatch(False, 0.0, None, users)

        threshold = threshold_for_strictness(strictness, self._config.thresholds)
        user_embeddings, job_embeddings = await asyncio.gather(
            asyncio.gather(*(self.specialty_embedding(code) for code in user_specific)),
            asyncio.gather(*(self.specialty_embedding(code) for code in job_specific)),
        )
        best_similarity = 0.0
        best_pair: tuple[str, str] | None = None
        for user_code, user_embedding in zip(user_specific, user_embeddings):
            for job_code, job_embedding in zip(job_specific, job_embeddings):
                similarity = cosine_similarity(user_embedding, job_embedding)
                if similarity > best_similarity:
                    best_similarity = similarity
                    best_pair = (user_code, job_code)
        has_match = best_similarity >= threshold
        self._logger.debug(
            "subject_matter.semantic_match",
            best_similarity=best_similarity,
            threshold=threshold,
            best_pair=best_pair,
            has_match=has_match,
        )
        return SubjectMatterMatch(has_match, best_similarity, best_pair, users, "semantic" if has_match else None)


__all__ = [
    "STRICTNESS_THRESHOLDS",
    "SubjectMatterConfig",
    "SubjectMatterMatch",
    "SubjectMatterMatcher",
    "threshold_for_strictness",
]
