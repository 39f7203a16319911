# Data access only for jobs and qualifications. Business rules live in the tracker.
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Job, Qualification

SCORE_FIELDS = ("qualifies", "final_score", "domain_score", "task_score", "threshold_used", "filter_reason")


def _insert_for(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Atomic qualification upsert is not implemented for {dialect!r}")


async def get_job(session: AsyncSession, job_id: str) -> Job | None:
    return await session.get(Job, job_id)


async def upsert_job(
    session: AsyncSession,
    job_id: str,
    *,
    title: str | None = None,
    is_active: bool | None = None,
    job_class: str | None = None,
) -> Job:
    job = await session.get(Job, job_id)
    if job is None:
        job = Job(job_id=job_id, title=title, is_active=True if is_active is None else is_active, job_class=job_class)
        session.add(job)
    else:
        if title is not None:
            job.title = title
        if is_active is not None:
            job.is_active = is_active
        if job_class is not None:
            job.job_class = job_class
    await session.flush()
    return job


async def cascade_job_active(session: AsyncSession, job_id: str, is_active: bool) -> int:
    result = await session.execute(
        update(Qualification).where(Qualification.job_id == job_id).values(job_active=is_active)
    )
    return result.rowcount or 0


async def list_active_jobs(session: AsyncSession) -> Sequence[Job]:
    rows = await session.execute(select(Job).where(Job.is_active.is_(True)).order_by(Job.created_at.desc()))
    return rows.scalars().all()


async def list_jobs(session: AsyncSession) -> Sequence[Job]:
    rows = await session.execute(select(Job))
    return rows.scalars().all()


async def delete_job(session: AsyncSession, job_id: str) -> int:
    await session.execute(delete(Qualification).where(Qualification.job_id == job_id))
    result = await session.execute(delete(Job).where(Job.job_id == job_id))
    return result.rowcount or 0


async def upsert_qualification(
    session: AsyncSession,
    *,
    job_id: str,
    user_id: str,
    values: dict[str, Any],
    evaluated_at: datetime,
    job_active: bool,
    notified_at: datetime | None = None,
    notified_via: str | None = None,
) -> None:
    """Single-statement upsert; an existing ``notified_at`` always wins over the incoming one."""
    insert = _insert_for(session)
    table = Qualification.__table__
    row = {
        "job_id": job_id,
        "user_id": user_id,
        **{name: values.get(name) for name in SCORE_FIELDS},
        "evaluated_at": evaluated_at,
        "job_active": job_active,
        "notified_at": notified_at,
        "notified_via": notified_via,
    }
    stmt = insert(table).values(**row)
    excluded = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.job_id, table.c.user_id],
        set_={
            **{name: getattr(excluded, name) for name in SCORE_FIELDS},
            "evaluated_at": excluded.evaluated_at,
            "job_active": excluded.job_active,
            "notified_at": func.coalesce(table.c.notified_at, excluded.notified_at),
            "notified_via": case(
                (table.c.notified_at.is_(None), excluded.notified_via),
                else_=table.c.notified_via,
            ),
            "updated_at": func.now(),
        },
    )
    await session.execute(stmt)


def _qualification_filter(
    *,
    job_id: str | None = None,
    user_id: str | None = None,
    qualifies_only: bool = False,
    pending_only: bool = False,
    active_jobs_only: bool = False,
) -> list[Any]:
    clauses: list[Any] = []
    if job_id is not None:
        clauses.append(Qualification.job_id == job_id)
    if user_id is not None:
        clauses.append(Qualification.user_id == user_id)
    if qualifies_only or pending_only:
        clauses.append(Qualification.qualifies.is_(True))
    if pending_only:
        clauses.append(Qualification.notified_at.is_(None))
    if active_jobs_only:
        clauses.append(Qualification.job_active.is_(True))
    return clauses


async def find_qualifications(
    session: AsyncSession,
    *,
    limit: int = 100,
    offset: int = 0,
    order_by: str = "final_score",
    **filters: Any,
) -> tuple[Sequence[Qualification], int]:
    clauses = _qualification_filter(**filters)
    ordering = Qualification.final_score.desc() if order_by == "final_score" else Qualification.evaluated_at.desc()
    rows = await session.execute(
        select(Qualification).where(*clauses).order_by(ordering, Qualification.id).limit(limit).offset(offset)
    )
    total = await session.scalar(select(func.count()).select_from(Qualification).where(*clauses))
    return rows.scalars().all(), int(total or 0)


async def find_pending_with_titles(
    session: AsyncSession, *, limit: int = 100, offset: int = 0
) -> tuple[list[tuple[Qualification, str | None]], int]:
    clauses = _qualification_filter(pending_only=True, active_jobs_only=True)
    rows = await session.execute(
        select(Qualification, Job.title)
        .join(Job, Job.job_id == Qualification.job_id)
        .where(*clauses)
        .order_by(Qualification.evaluated_at.desc(), Qualification.id)
        .limit(limit)
        .offset(offset)
    )
    total = await session.scalar(select(func.count()).select_from(Qualification).where(*clauses))
    return [(row[0], row[1]) for row in rows.all()], int(total or 0)


async def notified_user_ids(session: AsyncSession, job_id: str, user_ids: Iterable[str]) -> set[str]:
    ids = list(user_ids)
    if not ids:
        return set()
    rows = await session.execute(
        select(Qualification.user_id).where(
            Qualification.job_id == job_id,
            Qualification.user_id.in_(ids),
            Qualification.notified_at.is_not(None),
        )
    )
    return set(rows.scalars().all())


async def set_notified(
    session: AsyncSession,
    job_id: str,
    user_ids: Sequence[str],
    *,
    notified_at: datetime,
    notified_via: str,
    overwrite: bool = False,
) -> int:
    """Stamp qualifying rows; without ``overwrite`` rows already notified are left alone."""
    clauses = [
        Qualification.job_id == job_id,
        Qualification.user_id.in_(list(user_ids)),
        Qualification.qualifies.is_(True),
    ]
    if not overwrite:
        clauses.append(Qualification.notified_at.is_(None))
    result = await session.execute(
        update(Qualification)
        .where(*clauses)
        .values(notified_at=notified_at, notified_via=notified_via, updated_at=func.now())
    )
    return result.rowcount or 0


async def count_active_jobs(session: AsyncSession) -> int:
    total = await session.scalar(select(func.count()).select_from(Job).where(Job.is_active.is_(True)))
    return int(total or 0)


async def count_qualifications(session: AsyncSession, *, notified_since: datetime | None = None, **filters: Any) -> int:
    clauses = _qualification_filter(**filters)
    if notified_since is not None:
        clauses.append(Qualification.notified_at >= notified_since)
    total = await session.scalar(select(func.count()).select_from(Qualification).where(*clauses))
    return int(total or 0)


__all__ = [
    "cascade_job_active",
    "count_active_jobs",
    "count_qualifications",
    "delete_job",
    "find_pending_with_titles",
    "find_qualifications",
    "get_job",
    "list_active_jobs",
    "list_jobs",
    "notified_user_ids",
    "set_notified",
    "upsert_job",
    "upsert_qualification",
]
