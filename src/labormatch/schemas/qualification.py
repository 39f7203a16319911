"""Qualification tracker inputs and outputs."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class QualificationResult(BaseModel):
    """One evaluated (job, user) outcome handed to the tracker."""

    user_id: str
    qualifies: bool
    domain_score: float | None = None
    task_score: float | None = None
    final_score: float | None = None
    threshold_used: float | None = None
    filter_reason: str | None = None

    model_config = ConfigDict(frozen=True)


class JobQualificationResult(BaseModel):
    """One user-side evaluation against a single job."""

    job_id: str
    qualifies: bool
    domain_score: float | None = None
    task_score: float | None = None
    final_score: float | None = None
    threshold_used: float | None = None
    filter_reason: str | None = None

    model_config = ConfigDict(frozen=True)


class StoreOptions(BaseModel):
    mark_notified: bool = False
    notified_via: str = "email"


class StoreSummary(BaseModel):
    stored: int = 0
    errors: int = 0


class NotifyUpdate(BaseModel):
    updated: int = 0
    errors: int = 0


class UserStoreSummary(BaseModel):
    stored: int = 0
    skipped: int = 0
    errors: int = 0


class SyncSummary(BaseModel):
    success: bool = True
    activated: int = 0
    deactivated: int = 0
    created: int = 0
    unchanged: int = 0
    errors: int = 0


class NewlyQualifying(BaseModel):
    """Currently qualifying users split by whether they were already notified."""

    newly_qualified_user_ids: tuple[str, ...] = ()
    total_qualified: int = 0
    previously_notified: int = 0


class QualificationRecord(BaseModel):
    """Persisted qualification row."""

    job_id: str
    user_id: str
    qualifies: bool
    domain_score: float | None = None
    task_score: float | None = None
    final_score: float | None = None
    threshold_used: float | None = None
    filter_reason: str | None = None
    evaluated_at: datetime
    notified_at: datetime | None = None
    notified_via: str | None = None
    job_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class PendingNotification(QualificationRecord):
    job_title: str | None = None


class JobRecord(BaseModel):
    job_id: str
    title: str | None = None
    is_active: bool = True
    job_class: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class Page(BaseModel, Generic[T]):
    items: tuple[T, ...] = ()
    total: int = 0


class QualificationSummary(BaseModel):
    active_jobs: int = 0
    total_qualifications: int = 0
    pending_notifications: int = 0
    notified_today: int = 0


class QualificationQuery(BaseModel):
    qualifies_only: bool = False
    pending_only: bool = False
    active_jobs_only: bool = False
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


__all__ = [
    "JobQualificationResult",
    "JobRecord",
    "NewlyQualifying",
    "NotifyUpdate",
    "Page",
    "PendingNotification",
    "QualificationQuery",
    "QualificationRecord",
    "QualificationResult",
    "QualificationSummary",
    "StoreOptions",
    "StoreSummary",
    "SyncSummary",
    "UserStoreSummary",
]
