"""Relational schema for job activity and per-(job, user) qualifications."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class Job(Base):
    """Active flag for each job; the source of truth for ``job_active``."""

    __tablename__ = "jobs"

    job_id = Column(String(128), primary_key=True)
    title = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    job_class = Column(String(32), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    qualifications = relationship("Qualification", back_populates="job", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (Index("ix_jobs_is_active", "is_active"),)
    __mapper_args__ = {"eager_defaults": True}


class Qualification(Base):
    """One row per (job, user); ``notified_at`` is written once."""

    __tablename__ = "job_user_qualifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(128), ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(128), nullable=False)
    qualifies = Column(Boolean, nullable=False, default=False)
    final_score = Column(Float, nullable=True)
    domain_score = Column(Float, nullable=True)
    task_score = Column(Float, nullable=True)
    threshold_used = Column(Float, nullable=True)
    filter_reason = Column(Text, nullable=True)
    notified_at = Column(DateTime, nullable=True)
    notified_via = Column(String(64), nullable=True)
    evaluated_at = Column(DateTime, nullable=False)
    job_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    job = relationship("Job", back_populates="qualifications")

    __table_args__ = (
        UniqueConstraint("job_id", "user_id", name="uq_job_user_qualification"),
        Index("ix_qualifications_user_id", "user_id"),
        Index("ix_qualifications_job_qualifies_notified", "job_id", "qualifies", "notified_at"),
        Index("ix_qualifications_active_qualifies", "job_active", "qualifies"),
    )
    __mapper_args__ = {"eager_defaults": True}


__all__ = ["Base", "Job", "Qualification"]
