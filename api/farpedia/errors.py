"""Domain error taxonomy.

Services raise these; the single exception handler registered in
farpedia.main turns them into JSON responses of the form
{"error": <code>, "detail": <reason>, ...extra}.
"""

from typing import Any


class FarpediaError(Exception):
    """Base class for all errors that map to an HTTP response."""

    status_code: int = 500
    code: str = "internal"

    def __init__(self, detail: str, **extra: Any) -> None:
        self.detail = detail
        self.extra = extra
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.detail, **self.extra}


class InvalidToken(FarpediaError):
    status_code = 401
    code = "invalid_token"


class Forbidden(FarpediaError):
    status_code = 403
    code = "forbidden"


class QualityTooLow(Forbidden):
    """Admission gate rejection. Carries the computed score for transparency."""

    code = "quality_too_low"

    def __init__(self, score: float, threshold: float) -> None:
        self.score = score
        self.threshold = threshold
        super().__init__(
            f"Reputation score {score:.2f} must be above {threshold:.2f} to create articles",
        )
        self.extra = {"score": score, "threshold": threshold}


class NotFound(FarpediaError):
    status_code = 404
    code = "not_found"


class Conflict(FarpediaError):
    status_code = 409
    code = "conflict"


class AlreadyApproved(Conflict):
    code = "already_approved"


class EditExpired(FarpediaError):
    status_code = 410
    code = "edit_expired"


class Unavailable(FarpediaError):
    """Upstream store or provider failure.

    retryable=True means a transient condition (timeout, network, 5xx) and
    maps to 503; retryable=False points at a misconfigured deployment or a
    rejected upstream request and maps to 502.
    """

    code = "unavailable"

    def __init__(self, detail: str, *, retryable: bool = True) -> None:
        super().__init__(detail, retryable=retryable)
        self.retryable = retryable
        self.status_code = 503 if retryable else 502


class Internal(FarpediaError):
    status_code = 500
    code = "internal"
