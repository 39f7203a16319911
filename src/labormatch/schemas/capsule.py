"""Capsule texts and validation outcomes."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Capsule(BaseModel):
    """A short summary paragraph followed by a ``Keywords:`` line."""

    text: str

    model_config = ConfigDict(frozen=True)


class CapsulePair(BaseModel):
    domain: Capsule
    task: Capsule

    model_config = ConfigDict(frozen=True)


class CapsuleValidation(BaseModel):
    """Validated text plus the violations that forced a replacement (if any)."""

    text: str
    violations: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def accepted(self) -> bool:
        return not self.violations


class JobCapsuleValidation(BaseModel):
    """Outcome of checking a job capsule; the caller decides whether to reprompt."""

    text: str
    keywords: tuple[str, ...] = ()
    needs_reprompt: bool = False
    violations: tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


__all__ = ["Capsule", "CapsulePair", "CapsuleValidation", "JobCapsuleValidation"]
