"""Who may be notified about which job class."""

from __future__ import annotations

from typing import Iterable

from ...schemas import UserClassification


def _domain(code: str) -> str:
    return code.split(":", 1)[0]


def is_wildcard(code: str) -> bool:
    return code.endswith(":general") or code.endswith(":*")


def codes_match(user_code: str, required_code: str) -> bool:
    """Exact match, or a ``domain:general`` / ``domain:*`` code on either side of the same domain."""
    if user_code == required_code:
        return True
    if _domain(user_code) != _domain(required_code):
        return False
    return is_wildcard(user_code) or is_wildcard(required_code)


def is_eligible_for_specialized_job(
    classification: UserClassification,
    required_credentials: Iterable[str] = (),
    required_codes: Iterable[str] = (),
) -> bool:
    if classification.user_class not in ("domain_expert", "mixed"):
        return False
    credentials = {credential.upper() for credential in required_credentials}
    if credentials and not credentials.intersection(c.upper() for c in classification.credentials):
        return False
    codes = list(required_codes)
    if codes and not any(codes_match(user_code, code) for user_code in classification.domain_codes for code in codes):
        return False
    return True


def should_exclude_from_generic_job(classification: UserClassification) -> bool:
    """Pure domain experts without labeling history are not sent basic annotation work."""
    return classification.user_class == "domain_expert" and not classification.has_labeling_experience


__all__ = ["codes_match", "is_eligible_for_specialized_job", "is_wildcard", "should_exclude_from_generic_job"]
