"""Token helpers shared by the evidence extractors and validators."""

from __future__ import annotations

import re
from functools import lru_cache

_EDGE_PUNCT = re.compile(r"^[^A-Za-z0-9]+|[^A-Za-z0-9]+$")
_UPPER_TOKEN = re.compile(r"^[A-Z0-9\-]+$")
_PHRASE_MARKERS = re.compile(r"[\s/-]")


def normalize_token(token: str) -> str:
    """Strip leading and trailing punctuation."""
    return _EDGE_PUNCT.sub("", token)


def format_token(token: str) -> str:
    """Upper-case all-caps/numeric tokens (credentials), lower-case the rest."""
    if _UPPER_TOKEN.match(token):
        return token.upper()
    return token.lower()


def is_phrase_term(term: str) -> bool:
    return bool(_PHRASE_MARKERS.search(term))


@lru_cache(maxsize=4096)
def term_pattern(term: str) -> re.Pattern[str]:
    """Case-insensitive matcher for a vocabulary term.

    Phrases tolerate any whitespace run between words and treat hyphens as
    interchangeable with spaces; single tokens match on word boundaries.
    """
    if is_phrase_term(term):
        words = [re.escape(word) for word in term.split()]
        body = r"\s+".join(words).replace(r"\-", r"[-\s]+")
        return re.compile(body, re.IGNORECASE)
    return re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE)


def contains_term(text: str, term: str) -> bool:
    return bool(term_pattern(term).search(text))
