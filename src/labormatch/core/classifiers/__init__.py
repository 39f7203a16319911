"""Job and user classifiers."""

from .eligibility import codes_match, is_eligible_for_specialized_job, should_exclude_from_generic_job
from .fallback import FallbackClassifier
from .job import (
    HeuristicJobClassifier,
    JobClassifierConfig,
    LLMJobClassifier,
    build_job_text,
    classify_job_sync,
    subject_matter_strictness,
)
from .requirements import RequirementsExtractor
from .user import (
    HeuristicUserClassifier,
    LLMUserClassifier,
    UserClassifierConfig,
    build_user_text,
    classify_user_sync,
    detect_task_capabilities,
)

__all__ = [
    "FallbackClassifier",
    "HeuristicJobClassifier",
    "HeuristicUserClassifier",
    "JobClassifierConfig",
    "LLMJobClassifier",
    "LLMUserClassifier",
    "RequirementsExtractor",
    "UserClassifierConfig",
    "build_job_text",
    "build_user_text",
    "classify_job_sync",
    "classify_user_sync",
    "codes_match",
    "detect_task_capabilities",
    "is_eligible_for_specialized_job",
    "should_exclude_from_generic_job",
    "subject_matter_strictness",
]
