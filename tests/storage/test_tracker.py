from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from labormatch.errors import PersistenceError
from labormatch.schemas import (
    JobQualificationResult,
    QualificationQuery,
    QualificationResult,
    StoreOptions,
    StoreSummary,
)
from labormatch.storage import (
    DatabaseConfig,
    QualificationTracker,
    create_engine,
    create_session_factory,
    init_models,
    qualification_repo,
)
from labormatch.storage.models import Base

FROZEN = datetime(2025, 3, 14, 12, 30)


def _results() -> list[QualificationResult]:
    return [
        QualificationResult(user_id="U-1", qualifies=True, final_score=0.82, domain_score=0.9, task_score=0.4, threshold_used=0.5),
        QualificationResult(
            user_id="U-2",
            qualifies=False,
            final_score=0.21,
            domain_score=0.2,
            task_score=0.3,
            threshold_used=0.5,
            filter_reason="below_threshold (50%)",
        ),
    ]


async def test_store_results_creates_job_and_rows(tracker):
    summary = await tracker.store_results("J-1", _results(), job_title="Cardiology reviewer")

    page = await tracker.get_job_qualifications("J-1")
    job = await tracker.get_job("J-1")

    assert summary.stored == 2
    assert summary.errors == 0
    assert job.title == "Cardiology reviewer"
    assert job.is_active
    assert page.total == 2
    assert [item.user_id for item in page.items] == ["U-1", "U-2"]
    assert page.items[0].evaluated_at == FROZEN
    assert page.items[0].notified_at is None
    assert page.items[1].filter_reason == "below_threshold (50%)"


async def test_qualifies_only_query(tracker):
    await tracker.store_results("J-1", _results())

    page = await tracker.get_job_qualifications("J-1", QualificationQuery(qualifies_only=True))

    assert [item.user_id for item in page.items] == ["U-1"]


async def test_find_newly_qualifying_skips_notified_users(tracker):
    await tracker.store_results("J-1", _results())

    first = await tracker.find_newly_qualifying("J-1", _results())
    update = await tracker.mark_users_notified("J-1", ["U-1", "U-2"], notified_via="email")
    second = await tracker.find_newly_qualifying("J-1", _results())

    assert first.newly_qualified_user_ids == ("U-1",)
    assert update.updated == 1
    assert second.newly_qualified_user_ids == ()
    assert second.total_qualified == 1
    assert second.previously_notified == 1


async def test_notified_at_is_never_overwritten_by_reevaluation(tracker, engine, frozen_now):
    later = QualificationTracker(create_session_factory(engine), now_provider=lambda: frozen_now.add(days=1))
    await tracker.store_results("J-1", _results(), StoreOptions(mark_notified=True, notified_via="job_post"))

    await later.store_results("J-1", _results(), StoreOptions(mark_notified=True, notified_via="digest"))
    again = await later.mark_users_notified("J-1", ["U-1"])
    row = (await later.get_job_qualifications("J-1")).items[0]

    assert again.updated == 0
    assert row.notified_at == FROZEN
    assert row.notified_via == "job_post"
    assert row.evaluated_at == datetime(2025, 3, 15, 12, 30)


async def test_renotify_overwrites_the_stamp(tracker, engine, frozen_now):
    later = QualificationTracker(create_session_factory(engine), now_provider=lambda: frozen_now.add(hours=2))
    await tracker.store_results("J-1", _results(), StoreOptions(mark_notified=True))

    update = await later.renotify_users("J-1", ["U-1"])
    row = (await later.get_job_qualifications("J-1")).items[0]

    assert update.updated == 1
    assert row.notified_at == datetime(2025, 3, 14, 14, 30)
    assert row.notified_via == "renotify"


async def test_mark_notified_without_users_is_a_no_op(tracker):
    update = await tracker.mark_users_notified("J-1", [])

    assert update.updated == 0
    assert update.errors == 0


async def test_sync_active_jobs_reconciles_and_cascades(tracker):
    await tracker.store_results("J-1", _results())
    await tracker.ensure_job_exists("J-2")

    summary = await tracker.sync_active_jobs(["J-2", "J-3", "J-2"])
    pending = await tracker.get_pending_notifications("J-1")
    active = await tracker.get_active_jobs()
    rows = await tracker.get_job_qualifications("J-1")

    assert summary.success
    assert (summary.deactivated, summary.unchanged, summary.created, summary.activated) == (1, 1, 1, 0)
    assert pending.total == 0
    assert sorted(job.job_id for job in active) == ["J-2", "J-3"]
    assert all(not item.job_active for item in rows.items)


async def test_reactivating_a_job_restores_pending_rows(tracker):
    await tracker.store_results("J-1", _results())
    await tracker.set_job_active_status("J-1", False)
    assert (await tracker.get_pending_notifications("J-1")).total == 0

    await tracker.set_job_active_status("J-1", True)
    pending = await tracker.get_pending_notifications("J-1")

    assert [item.user_id for item in pending.items] == ["U-1"]


async def test_user_side_storage_skips_unknown_jobs(tracker):
    await tracker.ensure_job_exists("J-1", title="Known job")
    await tracker.store_results("J-1", _results(), StoreOptions(mark_notified=True))

    summary = await tracker.store_user_qualifications_for_jobs(
        "U-1",
        [
            JobQualificationResult(job_id="J-1", qualifies=True, final_score=0.9),
            JobQualificationResult(job_id="J-unknown", qualifies=True, final_score=0.9),
        ],
    )
    page = await tracker.get_user_qualifications("U-1")

    assert (summary.stored, summary.skipped, summary.errors) == (1, 1, 0)
    assert page.total == 1
    assert page.items[0].final_score == 0.9
    assert page.items[0].notified_at == FROZEN


async def test_all_pending_notifications_include_job_titles(tracker):
    await tracker.store_results("J-1", _results(), job_title="OB/GYN reviewer")
    await tracker.store_results("J-2", _results(), job_title="Bounding boxes")
    await tracker.mark_users_notified("J-2", ["U-1"])

    page = await tracker.get_all_pending_notifications()

    assert page.total == 1
    assert page.items[0].job_id == "J-1"
    assert page.items[0].job_title == "OB/GYN reviewer"


async def test_qualification_summary(tracker):
    await tracker.store_results("J-1", _results(), StoreOptions(mark_notified=True))
    await tracker.store_results("J-2", _results())

    summary = await tracker.get_qualification_summary()

    assert summary.active_jobs == 2
    assert summary.total_qualifications == 2
    assert summary.pending_notifications == 1
    assert summary.notified_today == 1


async def test_delete_job_removes_its_rows(tracker):
    await tracker.store_results("J-1", _results())

    deleted = await tracker.delete_job_qualifications("J-1")

    assert deleted == 1
    assert await tracker.get_job("J-1") is None
    assert (await tracker.get_job_qualifications("J-1")).total == 0


async def test_read_failure_reports_nobody_as_new(tracker, engine):
    await tracker.store_results("J-1", _results())
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)

    outcome = await tracker.find_newly_qualifying("J-1", _results())
    summary = await tracker.store_results("J-1", _results())

    assert outcome.newly_qualified_user_ids == ()
    assert outcome.total_qualified == 1
    assert summary.stored == 0
    assert summary.errors == 2


async def test_one_failing_row_does_not_block_the_batch(tracker, monkeypatch):
    original = qualification_repo.upsert_qualification

    async def flaky_upsert(session, **kwargs):
        if kwargs["user_id"] == "U-2":
            raise OperationalError("INSERT INTO qualifications", {}, Exception("disk I/O error"))
        await original(session, **kwargs)

    monkeypatch.setattr(qualification_repo, "upsert_qualification", flaky_upsert)
    results = _results() + [
        QualificationResult(user_id="U-3", qualifies=True, final_score=0.7, domain_score=0.7, task_score=0.6, threshold_used=0.5)
    ]

    summary = await tracker.store_results("J-1", results)
    page = await tracker.get_job_qualifications("J-1")

    assert summary == StoreSummary(stored=2, errors=1)
    assert [item.user_id for item in page.items] == ["U-1", "U-3"]


async def test_concurrent_notified_stores_keep_a_single_stamp(tracker, engine, frozen_now):
    later = QualificationTracker(create_session_factory(engine), now_provider=lambda: frozen_now.add(hours=1))
    await tracker.ensure_job_exists("J-1")

    await asyncio.gather(
        tracker.store_results("J-1", _results(), StoreOptions(mark_notified=True, notified_via="email")),
        later.store_results("J-1", _results(), StoreOptions(mark_notified=True, notified_via="sms")),
    )
    first = (await tracker.get_job_qualifications("J-1")).items[0]
    await later.store_results("J-1", _results(), StoreOptions(mark_notified=True, notified_via="digest"))
    second = (await tracker.get_job_qualifications("J-1")).items[0]

    assert (first.notified_at, first.notified_via) in {
        (FROZEN, "email"),
        (datetime(2025, 3, 14, 13, 30), "sms"),
    }
    assert (second.notified_at, second.notified_via) == (first.notified_at, first.notified_via)


async def test_init_models_reports_unreachable_database(tmp_path):
    engine = create_engine(DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'qualifications.db'}"))

    with pytest.raises(PersistenceError) as excinfo:
        await init_models(engine)
    await engine.dispose()

    assert excinfo.value.code == "PERSISTENCE_ERROR"
    assert excinfo.value.status_code == 500
    assert excinfo.value.retryable
