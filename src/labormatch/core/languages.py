"""Work-language helpers."""

from __future__ import annotations

from typing import Iterable

ENGLISH_CODES = frozenset({"en", "english"})


def work_languages(languages: Iterable[str]) -> list[str]:
    """Languages other than English, lower-cased, in first-seen order."""
    result: list[str] = []
    for language in languages:
        value = language.strip().lower()
        if value and value not in ENGLISH_CODES and value not in result:
            result.append(value)
    return result


def matches_job_languages(user_languages: Iterable[str], job_languages: Iterable[str]) -> bool:
    """True when the job lists no work languages or the user speaks at least one of them."""
    required = set(work_languages(job_languages))
    if not required:
        return True
    return any(language.strip().lower() in required for language in user_languages)


__all__ = ["ENGLISH_CODES", "matches_job_languages", "work_languages"]
