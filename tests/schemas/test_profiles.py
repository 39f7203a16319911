from __future__ import annotations

import pytest
from pydantic import ValidationError

from labormatch.errors import ProfileValidationError
from labormatch.schemas import EVIDENCE_CAP, EvidenceSet, NormalizedJobPosting, NormalizedUserProfile, WeightProfile


def test_user_profile_resolves_aliases_and_redacts_pii():
    profile = NormalizedUserProfile.from_record(
        {
            "userId": "U-1",
            "resume_text": "Reach me at jane@example.com or 555-123-4567. Pediatric nurse.",
            "label_experience": "Bounding boxes on Remotasks",
            "language": "Spanish",
            "country": "Mexico",
        }
    )

    assert profile.user_id == "U-1"
    assert "[email]" in profile.resume_text
    assert "[phone]" in profile.resume_text
    assert "jane@example.com" not in profile.resume_text
    assert profile.labeling_experience == ("Bounding boxes on Remotasks",)
    assert profile.languages == ("Spanish",)
    assert "Bounding boxes" in profile.combined_text()


def test_user_profile_requires_id():
    with pytest.raises(ProfileValidationError) as excinfo:
        NormalizedUserProfile.from_record({"resume_text": "anything"})
    assert excinfo.value.code == "VALIDATION_ERROR"
    assert excinfo.value.status_code == 400


def test_job_posting_maps_upstream_field_names():
    job = NormalizedJobPosting.from_record(
        {
            "job_id": "J-1",
            "title": "Radiology reviewer",
            "fields": {
                "Data_SubjectMatter": "Radiology",
                "LabelTypes": ["Bounding Box", "Polygon"],
                "AvailableCountries": "United States",
                "Requirements_Additional": "MD required",
                "UnknownField": "ignored",
            },
        }
    )

    assert job.data_subject_matter == "Radiology"
    assert job.label_types == ("Bounding Box", "Polygon")
    assert job.available_countries == ("United States",)
    assert "MD required" in job.requirement_text()
    assert "LabelTypes: Bounding Box, Polygon" in job.source_text()


def test_job_posting_rejects_non_mapping_fields():
    with pytest.raises(ProfileValidationError):
        NormalizedJobPosting.from_record({"job_id": "J-2", "fields": ["not", "a", "mapping"]})


def test_evidence_set_dedupes_case_insensitively_and_caps():
    evidence = EvidenceSet(tokens=["NER", "ner", "Tagging"], phrases=["bounding box", "Bounding Box"])

    assert evidence.tokens == ("NER", "Tagging")
    assert evidence.phrases == ("bounding box",)
    assert "ner" in evidence
    assert evidence.terms() == ["bounding box", "NER", "Tagging"]

    capped = EvidenceSet(tokens=[f"token{i}" for i in range(EVIDENCE_CAP + 20)])
    assert len(capped.tokens) == EVIDENCE_CAP


def test_evidence_set_is_immutable():
    evidence = EvidenceSet(tokens=["annotation"])
    with pytest.raises(ValidationError):
        evidence.tokens = ("other",)


def test_weight_profile_must_sum_to_one():
    assert WeightProfile(w_domain=0.85, w_task=0.15).w_task == pytest.approx(0.15)
    with pytest.raises(ValidationError):
        WeightProfile(w_domain=0.9, w_task=0.2)
