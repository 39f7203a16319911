from __future__ import annotations

import json

import pytest

from labormatch.core.classifiers import (
    FallbackClassifier,
    HeuristicJobClassifier,
    HeuristicUserClassifier,
    LLMJobClassifier,
    LLMUserClassifier,
    RequirementsExtractor,
    classify_job_sync,
    classify_user_sync,
    codes_match,
    is_eligible_for_specialized_job,
    should_exclude_from_generic_job,
)
from labormatch.core.taxonomy import default_taxonomy
from labormatch.errors import LLMFailure
from labormatch.schemas import NormalizedJobPosting, NormalizedUserProfile, Requirements, UserClassification

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


def _job(raw: dict) -> NormalizedJobPosting:
    return NormalizedJobPosting.from_record(raw)


def _user(**raw) -> NormalizedUserProfile:
    return NormalizedUserProfile.from_record({"user_id": "U-1", **raw})


def test_credentialed_job_is_specialized():
    result = classify_job_sync(_job(OBGYN_JOB))

    assert result.job_class == "specialized"
    assert result.source == "heuristic"
    assert result.requirements.credentials == ("MD",)
    assert result.requirements.min_experience_years == 5
    assert result.requirements.subject_matter_codes == ("medical:obgyn", "medical:general")
    assert result.requirements.expertise_tier == "specialist"
    assert result.requirements.countries == ("US",)
    assert result.requirements.languages == ("en",)
    assert result.subject_matter_strictness == "strict"
    assert "licensed_title" in result.signals


def test_hard_credential_wins_over_generic_label_types():
    job = _job(
        {
            "job_id": "J-RAD",
            "title": "Radiology image annotation",
            "fields": {"Requirements_Additional": "Medical doctor required", "LabelTypes": ["Bounding Box"]},
        }
    )

    result = classify_job_sync(job)

    assert result.job_class == "specialized"
    assert result.requirements.credentials == ("MD",)
    assert "generic:bounding box" in result.signals


def test_bounding_box_job_is_generic():
    result = classify_job_sync(_job(BOX_JOB))

    assert result.job_class == "generic"
    assert result.confidence == pytest.approx(0.75)
    assert result.subject_matter_strictness == "lenient"
    assert result.requirements.credentials == ()
    assert result.requirements.expertise_tier == "entry"


def test_credentials_ignore_product_names_and_lowercase_abbreviations():
    extractor = RequirementsExtractor(default_taxonomy())

    assert extractor.extract_credentials("Proficient in MS Office and MS Excel; MS in Biology") == ["MS"]
    assert extractor.extract_credentials("please md me the notes") == []
    assert extractor.extract_credentials("Juris Doctor with a PhD") == ["PHD", "JD"]


def test_experience_years_ignore_implausible_values():
    extractor = RequirementsExtractor(default_taxonomy())

    assert extractor.extract_experience_years("minimum of 3 years; company founded 120 years ago") == 3
    assert extractor.extract_experience_years("60+ years") == 0
    assert extractor.extract_experience_years(None) == 0


def test_physician_without_labeling_is_domain_expert():
    result = classify_user_sync(
        _user(resume_text="Board-certified obstetrician (MD) with 12 years of clinical practice in obstetrics and gynecology.")
    )

    assert result.user_class == "domain_expert"
    assert not result.has_labeling_experience
    assert result.credentials == ("MD", "BOARD_CERTIFIED")
    assert result.expertise_tier == "specialist"
    assert "medical:obgyn" in result.domain_codes


def test_platform_annotator_is_general_labeler():
    result = classify_user_sync(
        _user(
            resume_text="Data annotator on Remotasks",
            labeling_experience="Bounding box annotation of street images on Remotasks",
        )
    )

    assert result.user_class == "general_labeler"
    assert result.has_labeling_experience
    assert "bounding_box" in result.task_capabilities
    assert "labeling_platform:remotasks" in result.signals


def test_credentialed_rater_is_mixed():
    result = classify_user_sync(
        _user(resume_text="Physician (MD) who spent 4 years as an RLHF rater on Scale AI doing response evaluation and annotation.")
    )

    assert result.user_class == "mixed"
    assert result.has_labeling_experience


def test_surgeon_is_not_mistaken_for_platform_work():
    result = HeuristicUserClassifier().classify_sync(_user(resume_text="Cardiac surgeon at a teaching hospital."))

    assert not any(signal.startswith("labeling_platform") for signal in result.signals)
    assert result.user_class == "domain_expert"


async def test_llm_job_classifier_parses_json_reply(scripted_generator):
    reply = {
        "job_class": "specialized",
        "confidence": 0.92,
        "credentials": ["md"],
        "minimum_experience_years": 5,
        "subject_matter_codes": ["medical:obgyn"],
        "expertise_tier": "specialist",
        "countries": ["us"],
        "languages": ["EN"],
        "reasoning": "MD required",
    }
    generator = scripted_generator(lambda system, user, json_mode: f"```json\n{json.dumps(reply)}\n```")

    result = await LLMJobClassifier(generator).classify(_job(OBGYN_JOB))

    assert result.source == "llm"
    assert result.job_class == "specialized"
    assert result.requirements.credentials == ("MD",)
    assert result.requirements.countries == ("US",)
    assert result.requirements.languages == ("en",)
    assert result.subject_matter_strictness == "strict"
    assert generator.calls[0]["json_mode"] is True
    assert "Title: OB/GYN Physician Reviewer" in generator.calls[0]["user"]


def test_llm_job_classifier_defaults_for_malformed_fields(scripted_generator):
    classifier = LLMJobClassifier(scripted_generator(lambda *args: "{}"))

    result = classifier.parse({"job_class": "weird", "confidence": "high", "expertise_tier": "guru"})

    assert result.job_class == "generic"
    assert result.confidence == pytest.approx(0.8)
    assert result.requirements.expertise_tier == "entry"


@pytest.mark.parametrize(
    ("years", "expected"),
    [(99, 50), (-3, 0), (7.9, 7), (float("nan"), 0), (float("inf"), 0), (True, 0), ("ten", 0)],
)
def test_llm_job_classifier_clamps_reported_years(scripted_generator, years, expected):
    classifier = LLMJobClassifier(scripted_generator(lambda *args: "{}"))

    result = classifier.parse({"job_class": "specialized", "minimum_experience_years": years})

    assert result.requirements.min_experience_years == expected


async def test_llm_job_classifier_raises_on_unparsable_reply(scripted_generator):
    classifier = LLMJobClassifier(scripted_generator(lambda *args: "I cannot classify this"))

    with pytest.raises(LLMFailure):
        await classifier.classify(_job(BOX_JOB))


async def test_llm_user_classifier_combines_expertise_and_labeling(scripted_generator):
    reply = {"expertise_tier": "expert", "credentials": ["RN"], "has_labeling_experience": True, "years_experience": 6}
    classifier = LLMUserClassifier(scripted_generator(lambda *args: json.dumps(reply)))

    result = await classifier.classify(_user(resume_text="Registered nurse, tagging clinical notes", country="Canada"))

    assert result.user_class == "mixed"
    assert result.estimated_experience_years == 6
    assert result.requirements.countries == ("CA",)
    assert "tagging" in result.task_capabilities


async def test_llm_user_classifier_clamps_reported_years(scripted_generator):
    replies = iter(['{"expertise_tier": "expert", "years_experience": 120}', '{"years_experience": NaN}'])
    classifier = LLMUserClassifier(scripted_generator(lambda *args: next(replies)))
    profile = _user(resume_text="Veteran obstetrician")

    capped = await classifier.classify(profile)
    not_a_number = await classifier.classify(profile)

    assert capped.estimated_experience_years == 50
    assert not_a_number.estimated_experience_years == 0


async def test_fallback_classifier_uses_heuristic_on_failure(scripted_generator):
    generator = scripted_generator(lambda *args: "not json at all")
    classifier = FallbackClassifier(LLMJobClassifier(generator), HeuristicJobClassifier(), subject="job")

    result = await classifier.classify(_job(BOX_JOB))

    assert result.source == "heuristic"
    assert result.job_class == "generic"
    assert len(generator.calls) == 1


def test_codes_match_uses_domain_wildcards():
    assert codes_match("medical:obgyn", "medical:obgyn")
    assert codes_match("medical:general", "medical:obgyn")
    assert codes_match("medical:obgyn", "medical:*")
    assert not codes_match("legal:general", "medical:general")
    assert not codes_match("medical:cardiology", "medical:obgyn")


def _classification(user_class, *, labeling=False, credentials=(), codes=()):
    return UserClassification(
        user_class=user_class,
        has_labeling_experience=labeling,
        requirements=Requirements(credentials=credentials, subject_matter_codes=codes),
    )


def test_specialized_eligibility_checks_class_credentials_and_codes():
    doctor = _classification("domain_expert", credentials=("MD",), codes=("medical:general",))

    assert is_eligible_for_specialized_job(doctor, ["md"], ["medical:obgyn"])
    assert not is_eligible_for_specialized_job(doctor, ["JD"], [])
    assert not is_eligible_for_specialized_job(doctor, [], ["legal:corporate"])
    assert not is_eligible_for_specialized_job(_classification("general_labeler"), [], [])


def test_generic_exclusion_only_hits_experts_without_labeling():
    assert should_exclude_from_generic_job(_classification("domain_expert"))
    assert not should_exclude_from_generic_job(_classification("domain_expert", labeling=True))
    assert not should_exclude_from_generic_job(_classification("mixed"))
    assert not should_exclude_from_generic_job(_classification("general_labeler"))
