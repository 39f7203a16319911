"""Evidence sets extracted from free text."""

from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel, ConfigDict, field_validator

EVIDENCE_CAP = 80
TERM_SEPARATOR = "; "
_TOKENS_LABEL = "Evidence tokens:"
_PHRASES_LABEL = "Evidence phrases:"


def _dedupe(values: Iterable[str], cap: int = EVIDENCE_CAP) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        text = str(value).strip()
        key = text.lower()
        if not text or key in seen:
            continue
        seen.add(key)
        ordered.append(text)
        if len(ordered) >= cap:
            break
    return tuple(ordered)


class EvidenceSet(BaseModel):
    """Deduplicated tokens and phrases in discovery order.

    Membership checks are case-insensitive; both collections are capped at
    ``EVIDENCE_CAP`` items.
    """

    tokens: tuple[str, ...] = ()
    phrases: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @field_validator("tokens", "phrases", mode="before")
    @classmethod
    def _normalize(cls, value: Iterable[str] | None) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        return _dedupe(value)

    @classmethod
    def empty(cls) -> "EvidenceSet":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.tokens and not self.phrases

    def terms(self) -> list[str]:
        """Phrases first, then tokens, deduplicated case-insensitively."""
        return list(_dedupe([*self.phrases, *self.tokens], cap=2 * EVIDENCE_CAP))

    def lowered(self) -> frozenset[str]:
        return frozenset(term.lower() for term in (*self.tokens, *self.phrases))

    def contains(self, term: str) -> bool:
        return term.strip().lower() in self.lowered()

    def __contains__(self, term: object) -> bool:
        return isinstance(term, str) and self.contains(term)

    def __len__(self) -> int:
        return len(self.tokens) + len(self.phrases)

    def to_text(self) -> str:
        """Two-line rendering that the evidence extractors read back unchanged."""
        return (
            f"{_TOKENS_LABEL} {TERM_SEPARATOR.join(self.tokens)}".rstrip()
            + "\n"
            + f"{_PHRASES_LABEL} {TERM_SEPARATOR.join(self.phrases)}".rstrip()
        )

    @classmethod
    def from_text(cls, text: str) -> "EvidenceSet | None":
        """Parse :meth:`to_text` output; ``None`` for any other text."""
        lines = text.strip().splitlines()
        if len(lines) != 2:
            return None
        tokens_line, phrases_line = (line.strip() for line in lines)
        if not tokens_line.startswith(_TOKENS_LABEL) or not phrases_line.startswith(_PHRASES_LABEL):
            return None
        return cls(
            tokens=_split_terms(tokens_line[len(_TOKENS_LABEL) :]),
            phrases=_split_terms(phrases_line[len(_PHRASES_LABEL) :]),
        )


def _split_terms(value: str) -> list[str]:
    return [term.strip() for term in value.split(TERM_SEPARATOR.strip()) if term.strip()]


__all__ = ["EVIDENCE_CAP", "EvidenceSet"]
