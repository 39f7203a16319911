"""Credential, experience and domain-code extraction from free text."""

from __future__ import annotations

import re
from typing import Iterable

from ...schemas import ExpertiseTier, NormalizedJobPosting, NormalizedUserProfile, Requirements
from ..taxonomy import Taxonomy

BOARD_CERTIFIED = "BOARD_CERTIFIED"

_WRITTEN_FORMS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bmedical\s+doctor\b", re.IGNORECASE), "MD"),
    (re.compile(r"\bdoctor\s+of\s+medicine\b", re.IGNORECASE), "MD"),
    (re.compile(r"\bdoctor\s+of\s+osteopathic", re.IGNORECASE), "DO"),
    (re.compile(r"\bjuris\s+doctor\b", re.IGNORECASE), "JD"),
    (re.compile(r"\blaw\s+degree\b", re.IGNORECASE), "JD"),
    (re.compile(r"\bdoctor\s+of\s+philosophy\b", re.IGNORECASE), "PHD"),
    (re.compile(r"\bdoctorate\b", re.IGNORECASE), "PHD"),
    (re.compile(r"\bregistered\s+nurse\b", re.IGNORECASE), "RN"),
    (re.compile(r"\bnurse\s+practitioner\b", re.IGNORECASE), "NP"),
    (re.compile(r"\bphysician\s+assistant\b", re.IGNORECASE), "PA"),
    (re.compile(r"\bcertified\s+public\s+accountant\b", re.IGNORECASE), "CPA"),
    (re.compile(r"\bprofessional\s+engineer\b", re.IGNORECASE), "PE"),
    (re.compile(r"\bboard[\s-]?certif", re.IGNORECASE), BOARD_CERTIFIED),
)

_EXPERIENCE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"minimum\s+(?:of\s+)?(\d+)\s*(?:\+)?\s*years?",
        r"at\s+least\s+(\d+)\s*(?:\+)?\s*years?",
        r"(\d+)\s*\+?\s*years?\s+(?:of\s+)?(?:\w+\s+)?(?:experience|practicing|clinical)",
        r"(\d+)\s*\+?\s*years?\s+of\s+(?:professional|industry|work)\s+experience",
        r"(\d+)\s*years?\s+(?:of\s+)?experience\s+required",
        r"require[sd]?\s+(\d+)\s*(?:\+)?\s*years?",
        r"over\s+(\d+)\s*years?",
        r"(\d+)\s*[-–]\s*\d+\s*years?",
        r"(\d+)\s*\+?\s*years?\s+post[\s-]?(?:phd|doc|doctoral)",
        r"\b(\d+)\s*\+\s*years?\b",
    )
)
MAX_EXPERIENCE_YEARS = 50

_HARD_REQUIREMENT_INDICATORS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"must\s+(?:have|hold|possess|be)",
        r"required?:\s*\w+",
        r"\w+\s+(?:degree|certification|license)\s+required",
        r"require[sd]?\s+(?:a|an)?\s*(?:valid\s+)?(?:md|jd|phd|rn|cpa|pe)\b",
        r"board[\s-]?certif(?:ied|ication)\s+required",
        r"licensed?\s+(?:physician|attorney|nurse|doctor)",
        r"completed?\s+residency",
    )
)

_TIER_KEYWORDS: tuple[tuple[re.Pattern[str], ExpertiseTier], ...] = (
    (re.compile(r"specialist|senior|advanced"), "specialist"),
    (re.compile(r"expert|experienced|professional"), "expert"),
    (re.compile(r"intermediate|some\s+experience|junior|mid[\s-]?level"), "intermediate"),
    (re.compile(r"entry|beginner|no\s+experience|any\s+level|less\s+than\s+1"), "entry"),
)
_PHD_REQUIRED = re.compile(r"phd\s+required|requires?\s+(?:a\s+)?phd|phd\s+or\s+master", re.IGNORECASE)
_NOT_PRODUCT_NAME = r"(?!\s+(?:Office|Excel|Word|Teams|PowerPoint|Access|Project)\b)"
_PHD = frozenset({"PHD", "PH.D"})


class RequirementsExtractor:
    """Parse credentials, experience and domain codes using the injected taxonomy."""

    def __init__(self, taxonomy: Taxonomy, *, case_sensitive_max_length: int = 2) -> None:
        self._taxonomy = taxonomy
        alternatives = []
        for term in sorted(taxonomy.credential_terms, key=len, reverse=True):
            escaped = re.escape(term)
            # "DO", "PA", "MS" only count when written in capitals.
            alternatives.append(escaped if len(term) <= case_sensitive_max_length else f"(?i:{escaped})")
        self._credential_pattern = re.compile(r"\b(" + "|".join(alternatives) + r")\b" + _NOT_PRODUCT_NAME)

    @property
    def taxonomy(self) -> Taxonomy:
        return self._taxonomy

    def extract_credentials(self, text: str | None) -> list[str]:
        if not text:
            return []
        found: list[str] = []
        for match in self._credential_pattern.finditer(text):
            credential = match.group(1).upper()
            if credential == "PH.D":
                credential = "PHD"
            if credential not in found:
                found.append(credential)
        for pattern, credential in _WRITTEN_FORMS:
            if credential not in found and pattern.search(text):
                found.append(credential)
        return found

    def extract_experience_years(self, text: str | None) -> int:
        """Largest year count any pattern yields, ignoring values above 50."""
        if not text:
            return 0
        best = 0
        for pattern in _EXPERIENCE_PATTERNS:
            for match in pattern.finditer(text):
                years = int(match.group(1))
                if best < years <= MAX_EXPERIENCE_YEARS:
                    best = years
        return best

    def determine_expertise_tier(
        self,
        expertise_level: str | None,
        experience_years: int | None,
        credentials: Iterable[str] = (),
    ) -> ExpertiseTier:
        level = (expertise_level or "").lower()
        for pattern, tier in _TIER_KEYWORDS:
            if pattern.search(level):
                return tier
        if _PHD_REQUIRED.search(level):
            return "specialist"

        held = [credential.upper() for credential in credentials]
        years = experience_years or 0
        if any(credential in _PHD for credential in held):
            return "specialist"
        if any(self._taxonomy.is_advanced_credential(credential) for credential in held):
            return "specialist" if years >= 5 else "expert"
        if any(self._taxonomy.is_mid_credential(credential) for credential in held):
            return "intermediate"

        if years >= 10:
            return "specialist"
        if years >= 5:
            return "expert"
        if years >= 2:
            return "intermediate"
        return "entry"

    @staticmethod
    def has_hard_credential_requirement(text: str | None) -> bool:
        if not text:
            return False
        return any(pattern.search(text) for pattern in _HARD_REQUIREMENT_INDICATORS)

    def extract_job_requirements(self, job: NormalizedJobPosting) -> Requirements:
        text = job.requirement_text()
        credentials = self.extract_credentials(text)
        years = self.extract_experience_years(text)
        codes = self._taxonomy.map_to_subject_matter_codes(job.data_subject_matter)
        for code in self._taxonomy.domains_for_credentials(credentials):
            if code not in codes:
                codes.append(code)
        return Requirements(
            credentials=tuple(credentials),
            min_experience_years=years,
            subject_matter_codes=tuple(codes),
            expertise_tier=self.determine_expertise_tier(job.expertise_level, years, credentials),
            countries=tuple(self._taxonomy.normalize_countries(job.available_countries)),
            languages=tuple(self._taxonomy.normalize_languages(job.available_languages)),
        )

    def extract_user_credentials(self, profile: NormalizedUserProfile) -> tuple[list[str], int, list[str]]:
        """Credentials, experience years and domain codes for a user profile."""
        text = profile.combined_text()
        credentials = self.extract_credentials(text)
        years = self.extract_experience_years(text)
        codes = self._taxonomy.map_to_subject_matter_codes(text)
        for code in self._taxonomy.domains_for_credentials(credentials):
            if code not in codes:
                codes.append(code)
        return credentials, years, codes


__all__ = ["BOARD_CERTIFIED", "MAX_EXPERIENCE_YEARS", "RequirementsExtractor"]
