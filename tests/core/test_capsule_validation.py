from __future__ import annotations

import pytest

from labormatch.errors import LLMFailure
from labormatch.core.validation import (
    NO_EVIDENCE_TASK_CAPSULE,
    DomainCapsuleValidator,
    JobCapsuleValidator,
    TaskCapsuleValidator,
    normalize_domain_capsule,
    validate_task_capsule,
)
from labormatch.schemas import EvidenceSet

BOX_EVIDENCE = EvidenceSet(tokens=["annotation"], phrases=["bounding box"])


def test_task_capsule_without_evidence_becomes_fixed_sentence():
    result = validate_task_capsule("Drew boxes around cars.\nKeywords: boxes", EvidenceSet.empty())

    assert result.text == NO_EVIDENCE_TASK_CAPSULE
    assert result.violations == ("NO_EVIDENCE_EXPECTED_FIXED_SENTENCE",)


def test_task_capsule_fixed_sentence_is_accepted_without_evidence():
    result = validate_task_capsule(NO_EVIDENCE_TASK_CAPSULE, [])

    assert result.accepted
    assert result.text == NO_EVIDENCE_TASK_CAPSULE


def test_task_capsule_grounded_in_evidence_is_kept():
    text = "Bounding box annotation of street images.\nKeywords: bounding box, annotation"

    result = validate_task_capsule(text, BOX_EVIDENCE)

    assert result.accepted
    assert result.text == text


def test_task_capsule_keyword_outside_evidence_is_rejected():
    result = validate_task_capsule("Bounding box work and RLHF.\nKeywords: bounding box, rlhf", BOX_EVIDENCE)

    assert result.text == NO_EVIDENCE_TASK_CAPSULE
    assert result.violations == ("KEYWORD_NOT_IN_EVIDENCE:rlhf",)


def test_task_capsule_keywords_without_delimiters_split_on_whitespace():
    evidence = EvidenceSet(tokens=["rlhf", "annotation"])

    result = validate_task_capsule("Performed rlhf ranking and image annotation.\nKeywords: rlhf annotation", evidence)

    assert result.accepted
    assert result.violations == ()


def test_task_capsule_missing_keywords_line_is_rejected():
    result = validate_task_capsule("Bounding box annotation of street images.", BOX_EVIDENCE)

    assert result.violations == ("MISSING_KEYWORDS",)


def test_task_capsule_tolerates_single_typo_in_body():
    validator = TaskCapsuleValidator()

    result = validator.validate("Annotaton of vehicle images.\nKeywords: annotation", BOX_EVIDENCE)

    assert result.accepted


def test_task_capsule_short_keywords_need_exact_match():
    result = validate_task_capsule("Tagging nor entities.\nKeywords: ner", ["ner"])

    assert result.violations == ("KEYWORD_NOT_IN_BODY:ner",)


def test_task_capsule_blocklisted_terms_are_rejected():
    result = validate_task_capsule("Annotation of spreadsheet rows.\nKeywords: annotation", BOX_EVIDENCE)

    assert result.violations == ("BLOCKLIST_TERM:spreadsheet",)


def test_task_capsule_qa_allowed_only_in_labeling_sentences():
    allowed = validate_task_capsule("Annotation QA for label consistency.\nKeywords: annotation", BOX_EVIDENCE)
    blocked = validate_task_capsule(
        "Handled QA for hospital forms. Annotation of images.\nKeywords: annotation", BOX_EVIDENCE
    )

    assert allowed.accepted
    assert blocked.violations == ("BLOCKLIST_TERM:qa",)


def test_domain_capsule_normalize_strips_roles_employers_and_dates():
    text = normalize_domain_capsule(
        "Worked as obstetrics instructor at Berlitz in March 2015; prenatal care, maternal-fetal medicine"
    )

    body, keywords = text.split("\nKeywords: ")
    assert "Worked" not in body
    assert "instructor" not in body
    assert "Berlitz" not in body
    assert "March" not in body
    assert "2015" not in body
    assert "prenatal care" in keywords


def test_domain_capsule_empty_text():
    assert normalize_domain_capsule("") == "Keywords: none"


async def test_domain_capsule_rewrites_long_bodies(scripted_generator):
    generator = scripted_generator(lambda system, user, json_mode: "Obstetrics, prenatal care")
    validator = DomainCapsuleValidator(generator=generator)
    long_text = ", ".join(["obstetrics ultrasound"] * 70)

    result = await validator.validate(long_text)

    assert len(generator.calls) == 1
    assert result.text.startswith("Obstetrics, prenatal care\nKeywords: Obstetrics, prenatal care")


async def test_domain_capsule_keeps_heuristic_text_when_generator_crashes(scripted_generator):
    generator = scripted_generator(lambda system, user, json_mode: RuntimeError("unexpected payload"))
    validator = DomainCapsuleValidator(generator=generator)
    long_text = ", ".join(["obstetrics ultrasound"] * 70)

    result = await validator.validate(long_text)

    assert len(generator.calls) == 1
    assert result.text.startswith("obstetrics ultrasound, obstetrics ultrasound")
    assert "\nKeywords: obstetrics ultrasound" in result.text


async def test_domain_capsule_without_generator_is_normalized_offline():
    result = await DomainCapsuleValidator().validate("Cardiology, echocardiography")

    assert result.text.startswith("Cardiology, echocardiography\nKeywords: Cardiology, echocardiography")


def test_job_domain_capsule_flags_ai_terms():
    evidence = EvidenceSet(tokens=["obstetrics", "gynecology"])
    validator = JobCapsuleValidator()

    result = validator.check_domain("Annotation of obstetrics and gynecology answers.", evidence)

    assert result.needs_reprompt
    assert "AI_TERM:annotation" in result.violations


def test_job_domain_capsule_clean_text_collects_keywords():
    evidence = EvidenceSet(tokens=["obstetrics", "gynecology", "prenatal"])

    result = JobCapsuleValidator().check_domain("Obstetrics and gynecology. Prenatal medicine.", evidence)

    assert not result.needs_reprompt
    assert result.keywords == ("obstetrics", "gynecology", "prenatal")
    assert result.text.endswith("Keywords: obstetrics, gynecology, prenatal")


async def test_job_task_capsule_rewrites_until_clean():
    evidence = EvidenceSet(phrases=["text classification"])
    directives: list[str] = []

    async def rewrite(body, directive, terms):
        directives.append(directive)
        return "Text classification of model answers."

    result = await JobCapsuleValidator().enforce_task(
        "Text classification of answers. Includes patient scheduling.", evidence, rewrite=rewrite
    )

    assert not result.needs_reprompt
    assert result.keywords == ("text classification",)
    assert len(directives) == 1
    assert "clinical or operational duties" in directives[0]


async def test_job_capsule_enforce_rejects_empty_text():
    with pytest.raises(LLMFailure):
        await JobCapsuleValidator().enforce_domain("", EvidenceSet(tokens=["law"]))
