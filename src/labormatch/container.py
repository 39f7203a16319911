"""Dependency injection container for the matching pipeline."""

from __future__ import annotations

from dependency_injector import containers, providers

from .core.capsules import CapsuleAuthor, CapsuleAuthorConfig
from .core.classifiers import (
    FallbackClassifier,
    HeuristicJobClassifier,
    HeuristicUserClassifier,
    JobClassifierConfig,
    LLMJobClassifier,
    LLMUserClassifier,
    RequirementsExtractor,
    UserClassifierConfig,
)
from .core.evidence import (
    DomainEvidenceConfig,
    DomainEvidenceExtractor,
    LabelingEvidenceConfig,
    LabelingEvidenceExtractor,
    default_vocabulary,
)
from .core.scoring import ScoringConfig, ScoringEngine, ThresholdConfig, ThresholdPolicy
from .core.subject_matter import SubjectMatterConfig, SubjectMatterMatcher
from .core.taxonomy import default_taxonomy
from .core.validation import (
    DomainCapsuleConfig,
    DomainCapsuleValidator,
    JobCapsuleConfig,
    JobCapsuleValidator,
    TaskCapsuleConfig,
    TaskCapsuleValidator,
)
from .llm import LLMConfig, OpenAIEmbedder, OpenAITextGenerator, build_client
from .pipeline import MatchingPipeline, PipelineConfig
from .storage import DatabaseConfig, QualificationTracker, TrackerConfig, create_engine, create_session_factory
from .vectors import InMemoryVectorStore


class MatchingContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    config = providers.Configuration()

    taxonomy = providers.Singleton(default_taxonomy)
    vocabulary = providers.Singleton(default_vocabulary)
    requirements_extractor = providers.Singleton(RequirementsExtractor, taxonomy)

    llm_config = providers.Singleton(LLMConfig)
    llm_client = providers.Singleton(build_client, api_key=config.openai_api_key.optional(), config=llm_config)
    text_generator = providers.Singleton(OpenAITextGenerator, llm_client, config=llm_config)
    embedder = providers.Singleton(OpenAIEmbedder, llm_client, config=llm_config)

    domain_evidence = providers.Singleton(DomainEvidenceExtractor)
    labeling_evidence = providers.Singleton(LabelingEvidenceExtractor, vocabulary=vocabulary)

    task_validator = providers.Singleton(TaskCapsuleValidator)
    domain_validator = providers.Singleton(DomainCapsuleValidator, generator=text_generator)
    job_validator = providers.Singleton(JobCapsuleValidator, generator=text_generator)

    capsule_author = providers.Singleton(
        CapsuleAuthor,
        text_generator,
        domain_evidence=domain_evidence,
        labeling_evidence=labeling_evidence,
        task_validator=task_validator,
        domain_validator=domain_validator,
        job_validator=job_validator,
    )

    heuristic_job_classifier = providers.Singleton(
        HeuristicJobClassifier, taxonomy=taxonomy, extractor=requirements_extractor
    )
    heuristic_user_classifier = providers.Singleton(
        HeuristicUserClassifier, taxonomy=taxonomy, extractor=requirements_extractor
    )
    llm_job_classifier = providers.Singleton(LLMJobClassifier, text_generator, taxonomy=taxonomy)
    llm_user_classifier = providers.Singleton(LLMUserClassifier, text_generator, taxonomy=taxonomy)

    job_classifier = providers.Singleton(
        FallbackClassifier, llm_job_classifier, heuristic_job_classifier, subject="job"
    )
    user_classifier = providers.Singleton(
        FallbackClassifier, llm_user_classifier, heuristic_user_classifier, subject="user"
    )

    scoring = providers.Singleton(ScoringEngine)
    thresholds = providers.Singleton(ThresholdPolicy)
    subject_matter = providers.Singleton(SubjectMatterMatcher, embedder)

    vector_store = providers.Singleton(InMemoryVectorStore)

    database_config = providers.Singleton(DatabaseConfig)
    engine = providers.Singleton(create_engine, database_config)
    session_factory = providers.Singleton(create_session_factory, engine)
    tracker = providers.Singleton(QualificationTracker, session_factory)

    pipeline_config = providers.Singleton(PipelineConfig)

    pipeline = providers.Factory(
        MatchingPipeline,
        capsule_author=capsule_author,
        job_classifier=job_classifier,
        user_classifier=user_classifier,
        scoring=scoring,
        thresholds=thresholds,
        subject_matter=subject_matter,
        embedder=embedder,
        vector_store=vector_store,
        tracker=tracker,
        config=pipeline_config,
    )


def create_container(*, settings: dict | None = None) -> MatchingContainer:
    """Instantiate container with optional overrides."""

    container = MatchingContainer()

    if not settings:
        return container

    core_settings = settings.get("core", {}) if isinstance(settings, dict) else {}
    if core_settings:
        container.config.override(core_settings)

    if "llm" in settings:
        container.llm_config.override(providers.Singleton(LLMConfig, **settings["llm"]))

    if "database" in settings:
        container.database_config.override(providers.Singleton(DatabaseConfig, **settings["database"]))

    if "pipeline" in settings:
        container.pipeline_config.override(providers.Singleton(PipelineConfig, **settings["pipeline"]))

    component_settings = settings.get("components", {}) if isinstance(settings, dict) else {}

    if "scoring" in component_settings:
        scoring_config = ScoringConfig(**component_settings["scoring"])
        container.scoring.override(providers.Singleton(ScoringEngine, config=scoring_config))

    if "thresholds" in component_settings:
        threshold_config = ThresholdConfig(**component_settings["thresholds"])
        container.thresholds.override(providers.Singleton(ThresholdPolicy, config=threshold_config))

    if "subject_matter" in component_settings:
        subject_config = SubjectMatterConfig(**component_settings["subject_matter"])
        container.subject_matter.override(
            providers.Singleton(SubjectMatterMatcher, container.embedder, config=subject_config)
        )

    if "domain_evidence" in component_settings:
        domain_config = DomainEvidenceConfig(**component_settings["domain_evidence"])
        container.domain_evidence.override(providers.Singleton(DomainEvidenceExtractor, config=domain_config))

    if "labeling_evidence" in component_settings:
        labeling_config = LabelingEvidenceConfig(**component_settings["labeling_evidence"])
        container.labeling_evidence.override(
            providers.Singleton(LabelingEvidenceExtractor, vocabulary=container.vocabulary, config=labeling_config)
        )

    if "task_capsule" in component_settings:
        task_config = TaskCapsuleConfig(**component_settings["task_capsule"])
        container.task_validator.override(providers.Singleton(TaskCapsuleValidator, config=task_config))

    if "domain_capsule" in component_settings:
        domain_capsule_config = DomainCapsuleConfig(**component_settings["domain_capsule"])
        container.domain_validator.override(
            providers.Singleton(DomainCapsuleValidator, generator=container.text_generator, config=domain_capsule_config)
        )

    if "job_capsule" in component_settings:
        job_capsule_config = JobCapsuleConfig(**component_settings["job_capsule"])
        container.job_validator.override(
            providers.Singleton(JobCapsuleValidator, generator=container.text_generator, config=job_capsule_config)
        )

    if "capsule_author" in component_settings:
        author_config = CapsuleAuthorConfig(**component_settings["capsule_author"])
        container.capsule_author.override(
            providers.Singleton(
                CapsuleAuthor,
                container.text_generator,
                domain_evidence=container.domain_evidence,
                labeling_evidence=container.labeling_evidence,
                task_validator=container.task_validator,
                domain_validator=container.domain_validator,
                job_validator=container.job_validator,
                config=author_config,
            )
        )

    if "job_classifier" in component_settings:
        job_config = JobClassifierConfig(**component_settings["job_classifier"])
        container.llm_job_classifier.override(
            providers.Singleton(LLMJobClassifier, container.text_generator, taxonomy=container.taxonomy, config=job_config)
        )

    if "user_classifier" in component_settings:
        user_config = UserClassifierConfig(**component_settings["user_classifier"])
        container.llm_user_classifier.override(
            providers.Singleton(LLMUserClassifier, container.text_generator, taxonomy=container.taxonomy, config=user_config)
        )
        container.heuristic_user_classifier.override(
            providers.Singleton(
                HeuristicUserClassifier,
                taxonomy=container.taxonomy,
                extractor=container.requirements_extractor,
                config=user_config,
            )
        )

    if "tracker" in component_settings:
        tracker_config = TrackerConfig(**component_settings["tracker"])
        container.tracker.override(
            providers.Singleton(QualificationTracker, container.session_factory, config=tracker_config)
        )

    return container
