"""Persistence for jobs and qualification tracking."""

from .models import Base, Job, Qualification
from .session import DatabaseConfig, create_engine, create_session_factory, init_models
from .tracker import QualificationTracker, TrackerConfig

__all__ = [
    "Base",
    "DatabaseConfig",
    "Job",
    "Qualification",
    "QualificationTracker",
    "TrackerConfig",
    "create_engine",
    "create_session_factory",
    "init_models",
]
