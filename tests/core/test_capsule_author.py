from __future__ import annotations

import json

import pytest

from labormatch.core.capsules import CapsuleAuthor, extract_capsule_texts
from labormatch.core.validation import NO_EVIDENCE_TASK_CAPSULE
from labormatch.errors import LLMFailure
from labormatch.schemas import NormalizedJobPosting, NormalizedUserProfile

LABELER_REPLY = (
    "General workforce. No specialized expertise documented.\nKeywords: workforce\n\n"
    "Bounding box annotation of street images.\nKeywords: bounding box, annotation"
)


def test_extract_capsule_texts_splits_two_segments():
    pair = extract_capsule_texts(LABELER_REPLY)

    assert pair.domain.text == "General workforce. No specialized expertise documented.\nKeywords: workforce"
    assert pair.task.text.startswith("Bounding box annotation")


def test_extract_capsule_texts_requires_two_segments():
    with pytest.raises(LLMFailure):
        extract_capsule_texts("Only one capsule here.\nKeywords: one")


async def test_user_capsules_keep_grounded_task_text(scripted_generator):
    generator = scripted_generator(lambda system, user, json_mode: LABELER_REPLY)
    profile = NormalizedUserProfile.from_record(
        {
            "user_id": "U-LAB",
            "resume_text": "Data annotator on Remotasks",
            "labeling_experience": "Bounding box annotation of street images on Remotasks",
            "country": "Philippines",
        }
    )

    pair = await CapsuleAuthor(generator).author_user_capsules(profile)

    assert pair.task.text == "Bounding box annotation of street images.\nKeywords: bounding box, annotation"
    assert pair.domain.text.startswith("General workforce. No specialized expertise documented.\nKeywords:")
    assert len(generator.calls) == 1
    assert "Philippines" in generator.calls[0]["user"]


async def test_user_capsules_without_labeling_evidence_get_fixed_task_text(scripted_generator):
    reply = "Attorney. Corporate law.\nKeywords: corporate law\n\nContract review for clients.\nKeywords: contracts"
    generator = scripted_generator(lambda system, user, json_mode: reply)
    profile = NormalizedUserProfile.from_record({"user_id": "U-LAW", "resume_text": "Corporate attorney (JD)."})

    pair = await CapsuleAuthor(generator).author_user_capsules(profile)

    assert pair.task.text == NO_EVIDENCE_TASK_CAPSULE


async def test_job_capsules_retry_on_mismatched_job_id(scripted_generator, rewrite_echo):
    replies = iter(["other-job", "J-BOX"])

    def handler(system, user, json_mode):
        if not json_mode:
            return rewrite_echo(system, user)
        return json.dumps(
            {
                "job_id": next(replies),
                "domain_capsule": {"text": "General population. No specialized expertise required.", "keywords": []},
                "task_capsule": {
                    "text": "Bounding box annotation of vehicles in street images.",
                    "keywords": ["bounding box", "annotation"],
                },
            }
        )

    generator = scripted_generator(handler)
    job = NormalizedJobPosting.from_record(
        {
            "job_id": "J-BOX",
            "title": "Vehicle annotation",
            "fields": {"Instructions": "Draw bounding boxes around vehicles in street images", "LabelTypes": ["Bounding Box"]},
        }
    )

    pair = await CapsuleAuthor(generator).author_job_capsules(job)

    assert sum(1 for call in generator.calls if call["json_mode"]) == 2
    assert pair.domain.text.startswith("General population. No specialized expertise required.")
    assert pair.task.text.startswith("Bounding box annotation of vehicles in street images.")
    assert "bounding box" in pair.task.text.split("Keywords:")[1]


async def test_job_capsules_fail_after_two_bad_replies(scripted_generator):
    generator = scripted_generator(lambda system, user, json_mode: '{"job_id": "J-BOX"}')
    job = NormalizedJobPosting.from_record({"job_id": "J-BOX", "title": "Vehicle annotation"})

    with pytest.raises(LLMFailure) as excinfo:
        await CapsuleAuthor(generator).author_job_capsules(job)

    assert excinfo.value.details["job_id"] == "J-BOX"
    assert len(generator.calls) == 2
