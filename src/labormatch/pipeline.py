"""Matching pipeline assembly and execution."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Sequence

import structlog

from .core.capsules import CapsuleAuthor
from .core.classifiers import should_exclude_from_generic_job
from .core.languages import matches_job_languages, work_languages
from .core.protocols import Classifier, Embedder, VectorStore
from .core.scoring import ScoringEngine, ThresholdPolicy, cosine_similarity, format_percent
from .core.subject_matter import SubjectMatterMatch, SubjectMatterMatcher
from .errors import MatchingError
from .schemas import (
    CapsulePair,
    JobClassification,
    JobQualificationResult,
    MatchReport,
    NormalizedJobPosting,
    NormalizedUserProfile,
    QualificationResult,
    ScoredResult,
    StoreOptions,
    UserClassification,
)
from .storage.tracker import QualificationTracker
from .vectors import job_metadata, job_vector_id, user_metadata, user_vector_id, with_section


@dataclass
class PipelineConfig:
    """Candidate pool size, notification cap and query chunking."""

    top_k: int = 1000
    max_notifications: int = 100
    chunk_size: int = 100
    embedding_model: str | None = None
    exclude_experts_from_generic: bool = True


@dataclass
class UserUpsertOutcome:
    user_id: str
    classification: UserClassification
    capsules: CapsulePair
    vector_ids: tuple[str, str]


@dataclass
class JobUpsertOutcome:
    job_id: str
    classification: JobClassification
    capsules: CapsulePair
    vector_ids: tuple[str, str]
    domain_embedding: list[float] = field(repr=False, default_factory=list)
    task_embedding: list[float] = field(repr=False, default_factory=list)


@dataclass
class NotifyOutcome:
    job_id: str
    job_class: str
    notify_user_ids: list[str]
    results: list[ScoredResult]
    total_candidates: int
    total_above_threshold: int
    threshold_used: float
    subject_matter_filtered: int = 0
    newly_qualified_user_ids: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_class": self.job_class,
            "notify_user_ids": self.notify_user_ids,
            "newly_qualified_user_ids": self.newly_qualified_user_ids,
            "total_candidates": self.total_candidates,
            "total_above_threshold": self.total_above_threshold,
            "threshold_used": self.threshold_used,
            "subject_matter_filtered": self.subject_matter_filtered,
            "results": [result.model_dump() for result in self.results],
        }


def _chunks(items: Sequence[str], size: int) -> list[Sequence[str]]:
    return [items[start : start + size] for start in range(0, len(items), size)]


class MatchingPipeline:
    """End-to-end matching orchestrator."""

    def __init__(
        self,
        *,
        capsule_author: CapsuleAuthor,
        job_classifier: Classifier,
        user_classifier: Classifier,
        scoring: ScoringEngine,
        thresholds: ThresholdPolicy,
        subject_matter: SubjectMatterMatcher,
        embedder: Embedder,
        vector_store: VectorStore,
        tracker: QualificationTracker | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._capsule_author = capsule_author
        self._job_classifier = job_classifier
        self._user_classifier = user_classifier
        self._scoring = scoring
        self._thresholds = thresholds
        self._subject_matter = subject_matter
        self._embedder = embedder
        self._vector_store = vector_store
        self._tracker = tracker
        self._config = config or PipelineConfig()
        self._logger = structlog.get_logger(__name__)

    async def upsert_user(self, raw: dict[str, Any] | NormalizedUserProfile) -> UserUpsertOutcome:
        profile = raw if isinstance(raw, NormalizedUserProfile) else NormalizedUserProfile.from_record(raw)
        classification, capsules = await asyncio.gather(
            self._user_classifier.classify(profile),
            self._capsule_author.author_user_capsules(profile),
        )
        domain_embedding, task_embedding = await self._embedder.embed_many(
            [capsules.domain.text, capsules.task.text]
        )
        metadata = user_metadata(profile, classification, model=self._config.embedding_model)
        ids = (user_vector_id(profile.user_id, "domain"), user_vector_id(profile.user_id, "task"))
        await asyncio.gather(
            self._vector_store.upsert(ids[0], domain_embedding, with_section(metadata, "domain")),
            self._vector_store.upsert(ids[1], task_embedding, with_section(metadata, "task")),
        )
        self._logger.info(
            "upsert.complete",
            user_id=profile.user_id,
            user_class=classification.user_class,
            expertise_tier=classification.expertise_tier,
        )
        return UserUpsertOutcome(profile.user_id, classification, capsules, ids)

    async def upsert_job(self, raw: dict[str, Any] | NormalizedJobPosting) -> JobUpsertOutcome:
        job = raw if isinstance(raw, NormalizedJobPosting) else NormalizedJobPosting.from_record(raw)
        classification, capsules = await asyncio.gather(
            self._job_classifier.classify(job),
            self._capsule_author.author_job_capsules(job),
        )
        domain_embedding, task_embedding = await self._embedder.embed_many(
            [capsules.domain.text, capsules.task.text]
        )
        metadata = job_metadata(job.job_id, classification, model=self._config.embedding_model)
        ids = (job_vector_id(job.job_id, "domain"), job_vector_id(job.job_id, "task"))
        await asyncio.gather(
            self._vector_store.upsert(ids[0], domain_embedding, with_section(metadata, "domain")),
            self._vector_store.upsert(ids[1], task_embedding, with_section(metadata, "task")),
        )
        if self._tracker is not None:
            await self._tracker.ensure_job_exists(job.job_id, title=job.title, job_class=classification.job_class)
        self._logger.info("job.upsert_complete", job_id=job.job_id, job_class=classification.job_class)
        return JobUpsertOutcome(job.job_id, classification, capsules, ids, domain_embedding, task_embedding)

    async def notify(
        self,
        raw: dict[str, Any] | NormalizedJobPosting,
        *,
        max_notifications: int | None = None,
        mark_notified: bool = False,
        notified_via: str = "job_post",
    ) -> NotifyOutcome:
        """Upsert the job, score the candidate pool, and decide who hears about it."""
        job_outcome = await self.upsert_job(raw)
        job_id = job_outcome.job_id
        classification = job_outcome.classification
        job_class = classification.job_class
        cap = self._config.max_notifications if max_notifications is None else max_notifications

        job_languages = work_languages(classification.requirements.languages)
        user_filter: dict[str, Any] = {"type": "user", "section": "domain"}
        if classification.requirements.countries:
            user_filter["country"] = {"$in": list(classification.requirements.countries)}
        if job_languages:
            user_filter["languages"] = {"$in": job_languages}
        domain_matches = await self._vector_store.query(
            job_outcome.domain_embedding, top_k=self._config.top_k, filter=user_filter
        )
        domain_matches = [
            match
            for match in domain_matches
            if match.metadata.get("user_id")
            and matches_job_languages(match.metadata.get("languages") or (), job_languages)
        ]
        pool_size = len(domain_matches)
        threshold = self._thresholds.resolve(job_class, pool_size=pool_size)
        self._logger.info("notify.users_queried", job_id=job_id, match_count=pool_size, threshold=threshold)

        metadata_by_user = {match.metadata["user_id"]: match.metadata for match in domain_matches}
        user_ids = list(metadata_by_user)
        user_thresholds = {
            user_id: self._thresholds.resolve(
                job_class, metadata.get("expertise_tier"), pool_size=pool_size
            )
            for user_id, metadata in metadata_by_user.items()
        }
        task_scores = await self._task_scores(job_outcome.task_embedding, user_ids)

        scored = sorted(
            (
                self._scoring.score(
                    user_id,
                    match.score,
                    task_scores.get(user_id, 0.0),
                    job_class,
                    threshold=user_thresholds[user_id],
                    job_id=job_id,
                )
                for user_id, match in zip(user_ids, domain_matches)
            ),
            key=lambda result: result.final_score,
            reverse=True,
        )

        qualified = [result for result in scored if result.above_threshold]
        filter_reasons: dict[str, str] = {}
        subject_filtered = 0
        job_codes = list(classification.requirements.subject_matter_codes)
        if job_class == "specialized" and job_codes and qualified:
            details = await asyncio.gather(
                *(
                    self._subject_matter.match(
                        metadata_by_user[result.user_id].get("domain_codes") or [],
                        job_codes,
                        classification.subject_matter_strictness,
                    )
                    for result in qualified
                )
            )
            kept = []
            for result, detail in zip(qualified, details):
                if detail.has_match:
                    kept.append(result)
                else:
                    filter_reasons[result.user_id] = _subject_matter_reason(detail, job_codes)
            subject_filtered = len(qualified) - len(kept)
            self._logger.info(
                "notify.subject_matter_filter_complete",
                job_id=job_id,
                before=len(qualified),
                after=len(kept),
            )
            qualified = kept
        elif job_class == "generic" and self._config.exclude_experts_from_generic:
            kept = []
            for result in qualified:
                if should_exclude_from_generic_job(_classification_from_metadata(metadata_by_user[result.user_id])):
                    filter_reasons[result.user_id] = "expert_without_labeling"
                else:
                    kept.append(result)
            qualified = kept

        notify_ids = [result.user_id for result in qualified[:cap]]
        notified = set(notify_ids)
        results: list[ScoredResult] = []
        for index, result in enumerate(scored):
            if not result.above_threshold:
                reason: str | None = f"below_threshold ({format_percent(result.threshold_used or threshold)})"
            elif result.user_id in filter_reasons:
                reason = filter_reasons[result.user_id]
            elif result.user_id not in notified:
                reason = "max_cap"
            else:
                reason = None
            results.append(
                result.model_copy(
                    update={"filter_reason": reason, "rank": index + 1 if result.user_id in notified else None}
                )
            )

        newly: list[str] | None = None
        if self._tracker is not None:
            qualification_results = [
                QualificationResult(
                    user_id=result.user_id,
                    qualifies=result.user_id in notified,
                    domain_score=result.domain_score,
                    task_score=result.task_score,
                    final_score=result.final_score,
                    threshold_used=result.threshold_used,
                    filter_reason=result.filter_reason,
                )
                for result in results
            ]
            found = await self._tracker.find_newly_qualifying(job_id, qualification_results)
            newly = list(found.newly_qualified_user_ids)
            await self._tracker.store_results(
                job_id,
                qualification_results,
                StoreOptions(mark_notified=mark_notified, notified_via=notified_via),
            )

        above = sum(1 for result in scored if result.above_threshold)
        self._logger.info(
            "notify.complete",
            job_id=job_id,
            job_class=job_class,
            total_candidates=len(scored),
            total_above_threshold=above,
            subject_matter_filtered=subject_filtered,
            notify_count=len(notify_ids),
            max_notifications=cap,
        )
        return NotifyOutcome(
            job_id=job_id,
            job_class=job_class,
            notify_user_ids=notify_ids,
            results=results,
            total_candidates=len(scored),
            total_above_threshold=above,
            threshold_used=threshold,
            subject_matter_filtered=subject_filtered,
            newly_qualified_user_ids=newly,
        )

    async def _task_scores(self, task_embedding: Sequence[float], user_ids: Sequence[str]) -> dict[str, float]:
        scores: dict[str, float] = {}
        for chunk in _chunks(user_ids, self._config.chunk_size):
            matches = await self._vector_store.query(
                task_embedding,
                top_k=len(chunk),
                filter={"type": "user", "section": "task", "user_id": {"$in": list(chunk)}},
            )
            for match in matches:
                user_id = match.metadata.get("user_id")
                if user_id:
                    scores[user_id] = match.score
        return scores

    async def score(self, job_id: str, user_ids: Sequence[str]) -> MatchReport:
        """Score stored user vectors against a stored job, ranked by final score."""
        job_domain, job_task = await asyncio.gather(
            self._vector_store.fetch(job_vector_id(job_id, "domain")),
            self._vector_store.fetch(job_vector_id(job_id, "task")),
        )
        if job_domain is None or job_task is None:
            raise MatchingError("VALIDATION_ERROR", f"No vectors stored for job {job_id}", status_code=404)
        job_class = "specialized" if job_domain.metadata.get("job_class") == "specialized" else "generic"
        candidates: list[tuple[str, float, float]] = []
        user_thresholds: dict[str, float] = {}
        for user_id in user_ids:
            user_domain, user_task = await asyncio.gather(
                self._vector_store.fetch(user_vector_id(user_id, "domain")),
                self._vector_store.fetch(user_vector_id(user_id, "task")),
            )
            if user_domain is None or user_task is None:
                self._logger.warning("score.missing_user_vectors", job_id=job_id, user_id=user_id)
                continue
            user_thresholds[user_id] = self._thresholds.resolve(job_class, user_domain.metadata.get("expertise_tier"))
            candidates.append(
                (
                    user_id,
                    cosine_similarity(job_domain.values, user_domain.values),
                    cosine_similarity(job_task.values, user_task.values),
                )
            )
        threshold = self._thresholds.resolve(job_class)
        return self._scoring.score_matches(
            job_class, candidates, threshold=threshold, job_id=job_id, user_thresholds=user_thresholds
        )

    async def evaluate_user(self, user_id: str, job_ids: Sequence[str]) -> list[JobQualificationResult]:
        """Score one user against several jobs and record the outcome without notifying."""
        results: list[JobQualificationResult] = []
        for job_id in job_ids:
            try:
                report = await self.score(job_id, [user_id])
            except MatchingError as exc:
                self._logger.warning("evaluate_user.job_skipped", user_id=user_id, job_id=job_id, error=exc.message)
                continue
            if not report.results:
                continue
            result = report.results[0]
            results.append(
                JobQualificationResult(
                    job_id=job_id,
                    qualifies=result.above_threshold,
                    domain_score=result.domain_score,
                    task_score=result.task_score,
                    final_score=result.final_score,
                    threshold_used=result.threshold_used,
                    filter_reason=None
                    if result.above_threshold
                    else f"below_threshold ({format_percent(result.threshold_used or report.threshold)})",
                )
            )
        if self._tracker is not None and results:
            await self._tracker.store_user_qualifications_for_jobs(user_id, results)
        return results


def _subject_matter_reason(detail: SubjectMatterMatch, job_codes: Sequence[str]) -> str:
    if not detail.user_codes:
        return "no_subject_matter_codes"
    if detail.best_similarity > 0:
        return f"low_similarity ({round(detail.best_similarity * 100)}%)"
    return f"missing_subject_matter ({', '.join(job_codes)})"


def _classification_from_metadata(metadata: dict[str, Any]) -> UserClassification:
    user_class = metadata.get("user_class")
    return UserClassification(
        user_class=user_class if user_class in ("domain_expert", "general_labeler", "mixed") else "general_labeler",
        has_labeling_experience=bool(metadata.get("has_labeling_experience")),
    )


__all__ = [
    "JobUpsertOutcome",
    "MatchingPipeline",
    "NotifyOutcome",
    "PipelineConfig",
    "UserUpsertOutcome",
]
