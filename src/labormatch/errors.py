"""Error taxonomy shared across the matching pipeline."""

from __future__ import annotations

from typing import Any, Literal

ErrorCode = Literal[
    "LLM_FAILURE",
    "VALIDATION_VIOLATION",
    "PERSISTENCE_ERROR",
    "VALIDATION_ERROR",
    "CONFIG_ERROR",
]


class MatchingError(Exception):
    """Base error carrying a machine-readable code and optional details."""

    status_code: int = 500

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        self.retryable = retryable

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.code}: {self.message}"


class LLMFailure(MatchingError):
    """Text generation failed or returned output that could not be parsed."""

    status_code = 502

    def __init__(self, message: str, *, details: dict[str, Any] | None = None, retryable: bool = False) -> None:
        super().__init__("LLM_FAILURE", message, details=details, retryable=retryable)


class PersistenceError(MatchingError):
    """A persistence collaborator call failed."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None, retryable: bool = False) -> None:
        super().__init__("PERSISTENCE_ERROR", message, details=details, retryable=retryable)


class ProfileValidationError(MatchingError):
    """An inbound upstream record could not be normalized."""

    status_code = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__("VALIDATION_ERROR", message, details=details)


def to_error_response(error: MatchingError) -> dict[str, Any]:
    """Render an error as the JSON body used by CLI output and callers."""
    body: dict[str, Any] = {"code": error.code, "message": error.message}
    if error.details:
        body["details"] = error.details
    return {"status": "error", "error": body}


__all__ = [
    "ErrorCode",
    "LLMFailure",
    "MatchingError",
    "PersistenceError",
    "ProfileValidationError",
    "to_error_response",
]
