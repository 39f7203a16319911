"""Subject-matter taxonomy and credential vocabularies."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from ..config import ConfigManager
from ..errors import MatchingError

_ISO_CODE = re.compile(r"^[A-Za-z]{2}$")


def _word_pattern(term: str) -> str:
    """Whole-word pattern tolerant of whitespace runs inside multi-word terms."""
    parts = [re.escape(part) for part in term.split()]
    return r"(?<![A-Za-z0-9])" + r"\s+".join(parts) + r"(?![A-Za-z0-9])"


@dataclass(frozen=True)
class Taxonomy:
    """Immutable vocabularies loaded once and injected into the components that need them."""

    specialties: Mapping[str, str]
    credential_domains: Mapping[str, tuple[str, ...]]
    advanced_credentials: frozenset[str]
    mid_credentials: frozenset[str]
    credential_terms: tuple[str, ...]
    specialized_domains: frozenset[str]
    generic_task_types: tuple[str, ...]
    countries: Mapping[str, str]
    languages: Mapping[str, str]
    _specialty_patterns: tuple[tuple[re.Pattern[str], str], ...] = field(repr=False, compare=False, default=())

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Taxonomy":
        try:
            specialties: dict[str, str] = {}
            for group in (raw.get("specialties") or {}).values():
                for keyword, code in group.items():
                    specialties[str(keyword).lower()] = str(code)
            credential_domains = {
                str(key).upper(): tuple(str(code) for code in codes)
                for key, codes in (raw.get("credential_domains") or {}).items()
            }
            # Longest keywords first so "internal medicine" wins over "medicine".
            ordered = sorted(specialties.items(), key=lambda item: len(item[0]), reverse=True)
            patterns = tuple((re.compile(_word_pattern(keyword), re.IGNORECASE), code) for keyword, code in ordered)
            return cls(
                specialties=MappingProxyType(specialties),
                credential_domains=MappingProxyType(credential_domains),
                advanced_credentials=frozenset(str(c).upper() for c in raw.get("advanced_credentials") or ()),
                mid_credentials=frozenset(str(c).upper() for c in raw.get("mid_credentials") or ()),
                credential_terms=tuple(str(c) for c in raw.get("credential_terms") or ()),
                specialized_domains=frozenset(str(c) for c in raw.get("specialized_domains") or ()),
                generic_task_types=tuple(str(t).lower() for t in raw.get("generic_task_types") or ()),
                countries=MappingProxyType({str(k).lower(): str(v).upper() for k, v in (raw.get("countries") or {}).items()}),
                languages=MappingProxyType({str(k).lower(): str(v).lower() for k, v in (raw.get("languages") or {}).items()}),
                _specialty_patterns=patterns,
            )
        except (AttributeError, TypeError, re.error) as exc:
            raise MatchingError("CONFIG_ERROR", f"Invalid taxonomy: {exc}") from exc

    def map_to_subject_matter_codes(self, text: str | None) -> list[str]:
        """Map free text to subject-matter codes plus their ``<domain>:general`` parents."""
        if not text:
            return []
        codes: list[str] = []
        for pattern, code in self._specialty_patterns:
            if code not in codes and pattern.search(text):
                codes.append(code)
        for code in list(codes):
            parent = f"{code.split(':', 1)[0]}:general"
            if parent not in codes:
                codes.append(parent)
        return codes

    def domains_for_credential(self, credential: str) -> tuple[str, ...]:
        return self.credential_domains.get(credential.upper().replace(".", ""), ())

    def domains_for_credentials(self, credentials: Iterable[str]) -> list[str]:
        codes: list[str] = []
        for credential in credentials:
            for code in self.domains_for_credential(credential):
                if code not in codes:
                    codes.append(code)
        return codes

    def is_specialized_domain(self, code: str) -> bool:
        return code in self.specialized_domains

    def is_advanced_credential(self, credential: str) -> bool:
        return credential.upper() in self.advanced_credentials

    def is_mid_credential(self, credential: str) -> bool:
        return credential.upper() in self.mid_credentials

    def normalize_country(self, value: str) -> str | None:
        key = value.strip().lower()
        if key in self.countries:
            return self.countries[key]
        if _ISO_CODE.match(key):
            return key.upper()
        return None

    def normalize_language(self, value: str) -> str | None:
        key = value.strip().lower()
        if key in self.languages:
            return self.languages[key]
        if _ISO_CODE.match(key):
            return key
        return None

    def normalize_countries(self, values: Iterable[str]) -> list[str]:
        return _unique(self.normalize_country(value) for value in values)

    def normalize_languages(self, values: Iterable[str]) -> list[str]:
        return _unique(self.normalize_language(value) for value in values)


def _unique(values: Iterable[str | None]) -> list[str]:
    result: list[str] = []
    for value in values:
        if value and value not in result:
            result.append(value)
    return result


def specialty_name(code: str) -> str:
    """``"medical:obgyn"`` -> ``"obgyn"``."""
    return code.split(":", 1)[1] if ":" in code else code


def load_taxonomy(manager: ConfigManager | None = None) -> Taxonomy:
    if manager is None:
        return default_taxonomy()
    return Taxonomy.from_mapping(manager.load("taxonomy"))


@lru_cache(maxsize=1)
def default_taxonomy() -> Taxonomy:
    return Taxonomy.from_mapping(ConfigManager().load("taxonomy"))


__all__ = ["Taxonomy", "default_taxonomy", "load_taxonomy", "specialty_name"]
