"""Typed failures surfaced by the trust, confirmation and release services."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from models.confirmation import DeceasedConfirmation
    from models.release import ReleaseReport


class TrustError(Exception):
    """Base class for every domain error raised to callers."""

    code = "trust_error"

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TrustError):
    code = "validation_error"


class NotFoundError(TrustError):
    code = "not_found"


class AuthorizationError(TrustError):
    """Caller has no usable trust relationship with the target."""

    code = "no_relationship"


class ForbiddenActionError(TrustError):
    """A relationship exists but its role does not permit the action."""

    code = "role_not_permitted"


class AlreadyConfirmedError(TrustError):
    """The target was already declared deceased; carries the effective confirmation."""

    code = "already_confirmed"

    def __init__(self, confirmation: Optional["DeceasedConfirmation"], message: str = "Person is already marked as deceased") -> None:
        details = confirmation.model_dump() if confirmation is not None else {}
        super().__init__(message, **details)
        self.confirmation = confirmation


class PartialFailureError(TrustError):
    """Release fan-out completed but some pairs failed; re-run to retry them."""

    code = "partial_failure"

    def __init__(self, report: "ReleaseReport") -> None:
        super().__init__(
            f"{report.failed} of {report.pairs_total} release pairs failed",
            target_person_id=report.target_person_id,
            failed=report.failed,
            created=report.created,
        )
        self.report = report
