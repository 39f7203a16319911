from __future__ import annotations

import json
import re

import pytest

from labormatch.core.capsules import CapsuleAuthor
from labormatch.core.classifiers import HeuristicJobClassifier, HeuristicUserClassifier
from labormatch.core.scoring import ScoringEngine, ThresholdConfig, ThresholdPolicy
from labormatch.core.subject_matter import SubjectMatterMatcher
from labormatch.core.validation import NO_EVIDENCE_TASK_CAPSULE
from labormatch.errors import MatchingError
from labormatch.pipeline import MatchingPipeline
from labormatch.vectors import InMemoryVectorStore

OBGYN_JOB = {
    "job_id": "J-OB",
    "title": "OB/GYN Physician Reviewer",
    "fields": {
        "Requirements_Additional": "Must hold an MD and have completed residency in obstetrics; 5+ years of clinical experience",
        "Data_SubjectMatter": "Obstetrics and Gynecology",
        "LabelTypes": ["Text classification"],
        "AvailableCountries": ["United States"],
        "AvailableLanguages": ["English"],
    },
}

BOX_JOB = {
    "job_id": "J-BOX",
    "title": "Vehicle annotation",
    "fields": {
        "Instructions": "Draw bounding boxes around vehicles in street images",
        "LabelTypes": ["Bounding Box"],
    },
}

JOB_CAPSULES = {
    "J-OB": (
        ("Obstetrics and gynecology physician. Prenatal medicine.", []),
        ("Text classification of model answers about obstetrics.", ["text classification"]),
    ),
    "J-BOX": (
        ("General population. No specialized expertise required.", []),
        ("Bounding box annotation of vehicles in street images.", ["bounding box", "annotation"]),
    ),
}

# Resume marker -> (domain capsule, task capsule) the generator answers with.
USER_CAPSULES = (
    ("board-certified obstetrician", "Obstetrician. Obstetrics and gynecology. Prenatal care.", NO_EVIDENCE_TASK_CAPSULE),
    ("pregnancy forums", "Prenatal content reviewer. Obstetric terminology.", NO_EVIDENCE_TASK_CAPSULE),
    ("litigation attorney", "Obstetric malpractice law. Prenatal care litigation.", NO_EVIDENCE_TASK_CAPSULE),
    ("corporate finance", "Corporate finance. Budget forecasting.", NO_EVIDENCE_TASK_CAPSULE),
    (
        "remotasks",
        "General workforce. No specialized expertise documented.",
        "Bounding box annotation of street images.\nKeywords: bounding box, annotation",
    ),
    ("internal medicine physician", "General medicine physician. Internal medicine.", NO_EVIDENCE_TASK_CAPSULE),
)

US_ENGLISH = {"country": "United States", "languages": ["English"]}

SPECIALIZED_POOL = [
    {"user_id": "U-OB", "resume_text": "Board-certified obstetrician (MD) practicing obstetrics and gynecology", **US_ENGLISH},
    {"user_id": "U-LAY", "resume_text": "Freelance reviewer of pregnancy forums", **US_ENGLISH},
    {"user_id": "U-LAW", "resume_text": "Litigation attorney (JD) focused on corporate disputes", **US_ENGLISH},
    {"user_id": "U-FAR", "resume_text": "Senior analyst in corporate finance", **US_ENGLISH},
]

GENERIC_POOL = [
    {
        "user_id": "U-LAB",
        "resume_text": "Data annotator on Remotasks",
        "labeling_experience": "Bounding box annotation of street images on Remotasks",
        **US_ENGLISH,
    },
    {
        "user_id": "U-DOC",
        "resume_text": "Internal medicine physician (MD) with 8 years of clinical experience.",
        **US_ENGLISH,
    },
]


def _capsule_handler(rewrite_echo):
    def handler(system: str, user: str, json_mode: bool) -> str:
        if system.startswith("You create search queries"):
            job_id = re.search(r"job_id for output: (\S+)", user).group(1)
            (domain, domain_keywords), (task, task_keywords) = JOB_CAPSULES[job_id]
            return json.dumps(
                {
                    "job_id": job_id,
                    "domain_capsule": {"text": domain, "keywords": domain_keywords},
                    "task_capsule": {"text": task, "keywords": task_keywords},
                }
            )
        if system.startswith("You create profile summaries"):
            lowered = user.lower()
            for marker, domain, task in USER_CAPSULES:
                if marker in lowered:
                    keywords = ", ".join(word.strip(".").lower() for word in domain.split()[:3])
                    return f"{domain}\nKeywords: {keywords}\n\n{task}"
            raise AssertionError("unexpected profile prompt")
        return rewrite_echo(system, user) or ""

    return handler


@pytest.fixture
def build_pipeline(scripted_generator, rewrite_echo, keyword_embedder, tracker):
    def build(thresholds: ThresholdPolicy | None = None) -> MatchingPipeline:
        generator = scripted_generator(_capsule_handler(rewrite_echo))
        return MatchingPipeline(
            capsule_author=CapsuleAuthor(generator),
            job_classifier=HeuristicJobClassifier(),
            user_classifier=HeuristicUserClassifier(),
            scoring=ScoringEngine(),
            thresholds=thresholds or ThresholdPolicy(),
            subject_matter=SubjectMatterMatcher(keyword_embedder),
            embedder=keyword_embedder,
            vector_store=InMemoryVectorStore(),
            tracker=tracker,
        )

    return build


@pytest.fixture
def pipeline(build_pipeline) -> MatchingPipeline:
    return build_pipeline()


async def _index(pipeline: MatchingPipeline, records: list[dict]) -> None:
    for record in records:
        await pipeline.upsert_user(record)


async def test_specialized_job_notifies_only_subject_matter_experts(pipeline, tracker):
    await _index(pipeline, SPECIALIZED_POOL)

    outcome = await pipeline.notify(OBGYN_JOB, mark_notified=True)

    assert outcome.job_class == "specialized"
    assert outcome.threshold_used == pytest.approx(0.30)
    assert outcome.total_candidates == 4
    assert outcome.total_above_threshold == 3
    assert outcome.subject_matter_filtered == 2
    assert outcome.notify_user_ids == ["U-OB"]
    assert outcome.newly_qualified_user_ids == ["U-OB"]

    by_user = {result.user_id: result for result in outcome.results}
    assert [result.user_id for result in outcome.results] == ["U-OB", "U-LAY", "U-LAW", "U-FAR"]
    assert by_user["U-OB"].final_score == pytest.approx(0.85)
    assert by_user["U-OB"].rank == 1
    assert by_user["U-OB"].filter_reason is None
    assert by_user["U-LAY"].final_score == pytest.approx(0.694, abs=1e-3)
    assert by_user["U-LAY"].filter_reason == "no_subject_matter_codes"
    assert by_user["U-LAY"].rank is None
    assert by_user["U-LAW"].filter_reason == "missing_subject_matter (medical:obgyn, medical:general)"
    assert by_user["U-FAR"].final_score == 0
    assert by_user["U-FAR"].filter_reason == "below_threshold (30%)"

    stored = await tracker.get_job_qualifications("J-OB")
    assert stored.total == 4
    pending = await tracker.get_pending_notifications("J-OB")
    assert pending.total == 0


async def test_repeat_notify_reports_no_new_users(pipeline):
    await _index(pipeline, SPECIALIZED_POOL)
    await pipeline.notify(OBGYN_JOB, mark_notified=True)

    again = await pipeline.notify(OBGYN_JOB, mark_notified=True)

    assert again.notify_user_ids == ["U-OB"]
    assert again.newly_qualified_user_ids == []


async def test_score_ranks_stored_vectors_and_skips_unknown_users(pipeline):
    await _index(pipeline, SPECIALIZED_POOL)
    await pipeline.upsert_job(OBGYN_JOB)

    report = await pipeline.score("J-OB", ["U-LAY", "ghost", "U-OB"])

    assert report.job_class == "specialized"
    assert report.threshold == pytest.approx(0.50)
    assert [result.user_id for result in report.results] == ["U-OB", "U-LAY"]
    assert report.count_gte_threshold == 2


async def test_score_unknown_job_is_not_found(pipeline):
    with pytest.raises(MatchingError) as excinfo:
        await pipeline.score("J-unknown", ["U-OB"])

    assert excinfo.value.status_code == 404


async def test_evaluate_user_stores_results_for_known_jobs(pipeline, tracker):
    await _index(pipeline, SPECIALIZED_POOL[:1])
    await pipeline.upsert_job(OBGYN_JOB)

    results = await pipeline.evaluate_user("U-OB", ["J-OB", "J-unknown"])

    assert [result.job_id for result in results] == ["J-OB"]
    assert results[0].qualifies is True
    page = await tracker.get_user_qualifications("U-OB")
    assert [record.job_id for record in page.items] == ["J-OB"]
    assert page.items[0].notified_at is None


async def test_generic_job_excludes_experts_without_labeling(pipeline):
    await _index(pipeline, GENERIC_POOL)

    outcome = await pipeline.notify(BOX_JOB)

    assert outcome.job_class == "generic"
    assert outcome.threshold_used == pytest.approx(0.21)
    assert outcome.notify_user_ids == ["U-LAB"]
    by_user = {result.user_id: result for result in outcome.results}
    assert by_user["U-LAB"].final_score == pytest.approx(1.0)
    assert by_user["U-LAB"].rank == 1
    assert by_user["U-DOC"].above_threshold is True
    assert by_user["U-DOC"].filter_reason == "expert_without_labeling"


async def test_notification_cap_marks_overflow(pipeline):
    await _index(pipeline, GENERIC_POOL)

    outcome = await pipeline.notify(BOX_JOB, max_notifications=0)

    assert outcome.notify_user_ids == []
    by_user = {result.user_id: result for result in outcome.results}
    assert by_user["U-LAB"].filter_reason == "max_cap"
    assert by_user["U-LAB"].rank is None


async def test_notify_resolves_threshold_per_user_tier(build_pipeline):
    thresholds = ThresholdPolicy(
        config=ThresholdConfig(
            small_pool_leniency=False,
            overrides={"specialized": {"expert": 0.9, "specialist": 0.9}},
        )
    )
    pipeline = build_pipeline(thresholds)
    await _index(pipeline, SPECIALIZED_POOL)

    outcome = await pipeline.notify(OBGYN_JOB)

    by_user = {result.user_id: result for result in outcome.results}
    assert outcome.threshold_used == pytest.approx(0.50)
    assert outcome.notify_user_ids == []
    assert by_user["U-OB"].threshold_used == pytest.approx(0.9)
    assert by_user["U-OB"].filter_reason == "below_threshold (90%)"
    assert by_user["U-LAY"].threshold_used == pytest.approx(0.5)
    assert by_user["U-LAY"].filter_reason == "no_subject_matter_codes"

    report = await pipeline.score("J-OB", ["U-OB", "U-LAY"])
    scored = {result.user_id: result for result in report.results}
    assert report.threshold == pytest.approx(0.50)
    assert scored["U-OB"].threshold_used == pytest.approx(0.9)
    assert not scored["U-OB"].above_threshold
    assert scored["U-LAY"].above_threshold
