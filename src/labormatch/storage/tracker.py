"""Qualification tracking and notification state per (job, user) pair.

States: unseen -> evaluated -> notified. Re-evaluation rewrites scores but
never clears ``notified_at``; only :meth:`QualificationTracker.mark_users_notified`
and :meth:`QualificationTracker.renotify_users` stamp it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Sequence, TypeVar

import pendulum
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..schemas import (
    JobQualificationResult,
    JobRecord,
    NewlyQualifying,
    NotifyUpdate,
    Page,
    PendingNotification,
    QualificationQuery,
    QualificationRecord,
    QualificationResult,
    QualificationSummary,
    StoreOptions,
    StoreSummary,
    SyncSummary,
    UserStoreSummary,
)
from . import qualification_repo as repo

T = TypeVar("T")


@dataclass
class TrackerConfig:
    batch_size: int = 50


def _utc_naive(moment: pendulum.DateTime | datetime) -> datetime:
    if isinstance(moment, pendulum.DateTime):
        return moment.in_timezone("UTC").naive()
    if moment.tzinfo is not None:
        return pendulum.instance(moment).in_timezone("UTC").naive()
    return moment


def _chunks(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class QualificationTracker:
    """Persist evaluation outcomes and answer "who still needs to hear about this job"."""

    method = "qualification_tracker"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        config: TrackerConfig | None = None,
        now_provider: Callable[[], pendulum.DateTime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or TrackerConfig()
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def _now(self) -> datetime:
        return _utc_naive(self._now_provider())

    async def _in_session(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self._session_factory() as session:
            async with session.begin():
                return await work(session)

    async def _fan_out(
        self,
        items: Sequence[T],
        handler: Callable[[T], Awaitable[bool]],
    ) -> tuple[int, int, int]:
        """Run ``handler`` over ``items`` in concurrent batches; returns (done, skipped, errors)."""
        done = skipped = errors = 0
        for batch in _chunks(items, self._config.batch_size):
            outcomes = await asyncio.gather(*(handler(item) for item in batch), return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    errors += 1
                elif outcome:
                    done += 1
                else:
                    skipped += 1
        return done, skipped, errors

    # jobs

    async def ensure_job_exists(
        self,
        job_id: str,
        *,
        title: str | None = None,
        is_active: bool | None = None,
        job_class: str | None = None,
    ) -> JobRecord | None:
        try:
            job = await self._in_session(
                lambda session: repo.upsert_job(session, job_id, title=title, is_active=is_active, job_class=job_class)
            )
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.ensure_job_failed", job_id=job_id, error=str(exc))
            return None
        return JobRecord.model_validate(job)

    async def set_job_active_status(self, job_id: str, is_active: bool, *, title: str | None = None) -> JobRecord | None:
        async def work(session: AsyncSession):
            job = await repo.upsert_job(session, job_id, title=title, is_active=is_active)
            await repo.cascade_job_active(session, job_id, is_active)
            return job

        try:
            job = await self._in_session(work)
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.job_status_failed", job_id=job_id, is_active=is_active, error=str(exc))
            return None
        self._logger.info("qualifications.job_status_updated", job_id=job_id, is_active=is_active)
        return JobRecord.model_validate(job)

    async def get_job(self, job_id: str) -> JobRecord | None:
        try:
            job = await self._in_session(lambda session: repo.get_job(session, job_id))
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.get_job_failed", job_id=job_id, error=str(exc))
            return None
        return JobRecord.model_validate(job) if job is not None else None

    async def get_active_jobs(self) -> list[JobRecord]:
        try:
            jobs = await self._in_session(repo.list_active_jobs)
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.get_active_jobs_failed", error=str(exc))
            return []
        return [JobRecord.model_validate(job) for job in jobs]

    async def delete_job_qualifications(self, job_id: str) -> int:
        try:
            deleted = await self._in_session(lambda session: repo.delete_job(session, job_id))
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.delete_job_failed", job_id=job_id, error=str(exc))
            return 0
        self._logger.info("qualifications.job_deleted", job_id=job_id, deleted=deleted)
        return deleted

    async def sync_active_jobs(self, active_job_ids: Iterable[str]) -> SyncSummary:
        """Reconcile ``is_active`` with an external list and cascade into ``job_active``."""
        active = list(dict.fromkeys(active_job_ids))
        active_set = set(active)
        counts = {"activated": 0, "deactivated": 0, "created": 0, "unchanged": 0}

        async def work(session: AsyncSession) -> None:
            existing = await repo.list_jobs(session)
            known = set()
            for job in existing:
                known.add(job.job_id)
                should_be_active = job.job_id in active_set
                if job.is_active == should_be_active:
                    counts["unchanged"] += 1
                    continue
                job.is_active = should_be_active
                await repo.cascade_job_active(session, job.job_id, should_be_active)
                counts["activated" if should_be_active else "deactivated"] += 1
            for job_id in active:
                if job_id not in known:
                    await repo.upsert_job(session, job_id, is_active=True)
                    counts["created"] += 1

        try:
            await self._in_session(work)
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.sync_active_jobs_failed", error=str(exc))
            return SyncSummary(success=False, errors=1)
        self._logger.info("qualifications.sync_active_jobs_complete", total_active=len(active), **counts)
        return SyncSummary(**counts)

    # qualifications

    async def store_results(
        self,
        job_id: str,
        results: Sequence[QualificationResult],
        options: StoreOptions | None = None,
        *,
        job_title: str | None = None,
        is_active: bool | None = None,
    ) -> StoreSummary:
        """Upsert one row per user. Per-item failures are counted, never raised."""
        options = options or StoreOptions()
        job = await self.ensure_job_exists(job_id, title=job_title, is_active=is_active)
        if job is None:
            return StoreSummary(stored=0, errors=len(results))
        now = self._now()

        async def store_one(result: QualificationResult) -> bool:
            notify = options.mark_notified and result.qualifies
            try:
                await self._in_session(
                    lambda session: repo.upsert_qualification(
                        session,
                        job_id=job_id,
                        user_id=result.user_id,
                        values=result.model_dump(),
                        evaluated_at=now,
                        job_active=job.is_active,
                        notified_at=now if notify else None,
                        notified_via=options.notified_via if notify else None,
                    )
                )
            except SQLAlchemyError as exc:
                self._logger.error("qualifications.store_failed", job_id=job_id, user_id=result.user_id, error=str(exc))
                raise
            return True

        stored, _, errors = await self._fan_out(list(results), store_one)
        self._logger.info("qualifications.stored", job_id=job_id, stored=stored, errors=errors, total=len(results))
        return StoreSummary(stored=stored, errors=errors)

    async def store_user_qualifications_for_jobs(
        self, user_id: str, results: Sequence[JobQualificationResult]
    ) -> UserStoreSummary:
        """User-side fan-out: unknown jobs are skipped and ``notified_at`` is never touched."""
        now = self._now()

        async def store_one(result: JobQualificationResult) -> bool:
            async def work(session: AsyncSession) -> bool:
                job = await repo.get_job(session, result.job_id)
                if job is None:
                    return False
                await repo.upsert_qualification(
                    session,
                    job_id=result.job_id,
                    user_id=user_id,
                    values=result.model_dump(),
                    evaluated_at=now,
                    job_active=job.is_active,
                )
                return True

            try:
                return await self._in_session(work)
            except SQLAlchemyError as exc:
                self._logger.error(
                    "qualifications.store_user_failed", user_id=user_id, job_id=result.job_id, error=str(exc)
                )
                raise

        stored, skipped, errors = await self._fan_out(list(results), store_one)
        self._logger.info(
            "qualifications.user_stored", user_id=user_id, stored=stored, skipped=skipped, errors=errors
        )
        return UserStoreSummary(stored=stored, skipped=skipped, errors=errors)

    async def find_newly_qualifying(self, job_id: str, current_results: Sequence[QualificationResult]) -> NewlyQualifying:
        """Qualifying users whose ``notified_at`` is still null.

        On a persistence failure nobody is reported as new, so a user is never
        notified twice because of a read error.
        """
        qualifying = list(dict.fromkeys(result.user_id for result in current_results if result.qualifies))
        if not qualifying:
            return NewlyQualifying()
        try:
            notified = await self._in_session(lambda session: repo.notified_user_ids(session, job_id, qualifying))
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.find_newly_qualifying_failed", job_id=job_id, error=str(exc))
            return NewlyQualifying(total_qualified=len(qualifying))
        newly = tuple(user_id for user_id in qualifying if user_id not in notified)
        self._logger.info(
            "qualifications.find_newly_qualifying",
            job_id=job_id,
            total_qualified=len(qualifying),
            previously_notified=len(notified),
            newly_qualified=len(newly),
        )
        return NewlyQualifying(
            newly_qualified_user_ids=newly,
            total_qualified=len(qualifying),
            previously_notified=len(notified),
        )

    async def mark_users_notified(self, job_id: str, user_ids: Sequence[str], notified_via: str = "manual") -> NotifyUpdate:
        return await self._stamp(job_id, user_ids, notified_via, overwrite=False)

    async def renotify_users(self, job_id: str, user_ids: Sequence[str], notified_via: str = "renotify") -> NotifyUpdate:
        return await self._stamp(job_id, user_ids, notified_via, overwrite=True)

    async def _stamp(self, job_id: str, user_ids: Sequence[str], notified_via: str, *, overwrite: bool) -> NotifyUpdate:
        if not user_ids:
            return NotifyUpdate()
        now = self._now()
        try:
            updated = await self._in_session(
                lambda session: repo.set_notified(
                    session, job_id, list(user_ids), notified_at=now, notified_via=notified_via, overwrite=overwrite
                )
            )
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.mark_notified_failed", job_id=job_id, error=str(exc))
            return NotifyUpdate(errors=1)
        self._logger.info(
            "qualifications.marked_notified",
            job_id=job_id,
            user_count=len(user_ids),
            updated=updated,
            overwrite=overwrite,
        )
        return NotifyUpdate(updated=updated)

    async def get_job_qualifications(self, job_id: str, query: QualificationQuery | None = None) -> Page[QualificationRecord]:
        query = query or QualificationQuery()
        return await self._page(
            "qualifications.get_job_failed",
            job_id=job_id,
            qualifies_only=query.qualifies_only,
            pending_only=query.pending_only,
            limit=query.limit,
            offset=query.offset,
        )

    async def get_pending_notifications(
        self, job_id: str, *, limit: int = 100, offset: int = 0
    ) -> Page[QualificationRecord]:
        return await self._page(
            "qualifications.pending_failed",
            job_id=job_id,
            pending_only=True,
            active_jobs_only=True,
            limit=limit,
            offset=offset,
        )

    async def get_user_qualifications(self, user_id: str, query: QualificationQuery | None = None) -> Page[QualificationRecord]:
        query = query or QualificationQuery()
        return await self._page(
            "qualifications.get_user_failed",
            user_id=user_id,
            qualifies_only=query.qualifies_only,
            pending_only=query.pending_only,
            active_jobs_only=query.active_jobs_only,
            limit=query.limit,
            offset=query.offset,
            order_by="evaluated_at",
        )

    async def _page(self, failure_event: str, **kwargs) -> Page[QualificationRecord]:
        try:
            rows, total = await self._in_session(lambda session: repo.find_qualifications(session, **kwargs))
        except SQLAlchemyError as exc:
            self._logger.error(failure_event, error=str(exc))
            return Page[QualificationRecord]()
        return Page[QualificationRecord](items=tuple(QualificationRecord.model_validate(row) for row in rows), total=total)

    async def get_all_pending_notifications(self, *, limit: int = 100, offset: int = 0) -> Page[PendingNotification]:
        try:
            rows, total = await self._in_session(
                lambda session: repo.find_pending_with_titles(session, limit=limit, offset=offset)
            )
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.all_pending_failed", error=str(exc))
            return Page[PendingNotification]()
        items = tuple(
            PendingNotification.model_validate(
                {**QualificationRecord.model_validate(row).model_dump(), "job_title": title}
            )
            for row, title in rows
        )
        return Page[PendingNotification](items=items, total=total)

    async def get_qualification_summary(self) -> QualificationSummary:
        start_of_day = _utc_naive(self._now_provider().start_of("day"))

        async def work(session: AsyncSession) -> QualificationSummary:
            return QualificationSummary(
                active_jobs=await repo.count_active_jobs(session),
                total_qualifications=await repo.count_qualifications(session, qualifies_only=True, active_jobs_only=True),
                pending_notifications=await repo.count_qualifications(session, pending_only=True, active_jobs_only=True),
                notified_today=await repo.count_qualifications(
                    session, qualifies_only=True, active_jobs_only=True, notified_since=start_of_day
                ),
            )

        try:
            return await self._in_session(work)
        except SQLAlchemyError as exc:
            self._logger.error("qualifications.summary_failed", error=str(exc))
            return QualificationSummary()


__all__ = ["QualificationTracker", "TrackerConfig"]
