"""Pydantic schemas shared across the matching pipeline."""

from .capsule import Capsule, CapsulePair, CapsuleValidation, JobCapsuleValidation
from .classification import (
    EXPERTISE_TIERS,
    ClassificationResult,
    ExpertiseTier,
    JobClass,
    JobClassification,
    Requirements,
    Strictness,
    UserClass,
    UserClassification,
)
from .evidence import EVIDENCE_CAP, EvidenceSet
from .profile import NormalizedJobPosting, NormalizedUserProfile
from .qualification import (
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
from .scoring import MatchReport, ScoredResult, WeightProfile
from .vector import VectorMatch, VectorRecord

__all__ = [
    "Capsule",
    "CapsulePair",
    "CapsuleValidation",
    "ClassificationResult",
    "EVIDENCE_CAP",
    "EXPERTISE_TIERS",
    "EvidenceSet",
    "ExpertiseTier",
    "JobCapsuleValidation",
    "JobClass",
    "JobClassification",
    "JobQualificationResult",
    "JobRecord",
    "MatchReport",
    "NormalizedJobPosting",
    "NormalizedUserProfile",
    "NewlyQualifying",
    "NotifyUpdate",
    "Page",
    "PendingNotification",
    "QualificationQuery",
    "QualificationRecord",
    "QualificationResult",
    "QualificationSummary",
    "Requirements",
    "ScoredResult",
    "Strictness",
    "StoreOptions",
    "StoreSummary",
    "SyncSummary",
    "UserClass",
    "UserClassification",
    "UserStoreSummary",
    "VectorMatch",
    "VectorRecord",
    "WeightProfile",
]
