"""Compose a primary classifier with a deterministic fallback."""

from __future__ import annotations

from typing import Any

import structlog

from ..protocols import Classifier


class FallbackClassifier:
    """Try ``primary``; on any failure log and return ``fallback``'s answer."""

    method = "fallback"

    def __init__(self, primary: Classifier, fallback: Classifier, *, subject: str = "job") -> None:
        self._primary = primary
        self._fallback = fallback
        self._subject = subject
        self._logger = structlog.get_logger(__name__)

    async def classify(self, profile: Any) -> Any:
        try:
            return await self._primary.classify(profile)
        except Exception as exc:  # noqa: BLE001
            self._logger.error(
                f"{self._subject}.classification_failed",
                profile_id=getattr(profile, "job_id", None) or getattr(profile, "user_id", None),
                error=str(exc),
            )
            return await self._fallback.classify(profile)


__all__ = ["FallbackClassifier"]
