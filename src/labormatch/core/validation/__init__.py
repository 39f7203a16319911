"""Capsule validation for user and job capsules."""

from .domain_capsule import DomainCapsuleConfig, DomainCapsuleValidator, normalize_domain_capsule
from .job_capsule import JobCapsuleConfig, JobCapsuleValidator
from .task_capsule import (
    FIXED_SENTENCE,
    NO_EVIDENCE_TASK_CAPSULE,
    TaskCapsuleConfig,
    TaskCapsuleValidator,
    validate_task_capsule,
)

__all__ = [
    "DomainCapsuleConfig",
    "DomainCapsuleValidator",
    "FIXED_SENTENCE",
    "JobCapsuleConfig",
    "JobCapsuleValidator",
    "NO_EVIDENCE_TASK_CAPSULE",
    "TaskCapsuleConfig",
    "TaskCapsuleValidator",
    "normalize_domain_capsule",
    "validate_task_capsule",
]
