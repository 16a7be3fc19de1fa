"""Error taxonomy shared by the API, moderation, discovery and search layers.

Every error carries the HTTP status it maps to. The API renders them as
``{"error": message, "issues": [...]}`` bodies.
"""

from typing import Any, Optional


class MagpieError(Exception):
    """Base class for errors with an HTTP-style status."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        issues: Optional[list[dict[str, Any]]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.issues = issues
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.issues:
            body["issues"] = self.issues
        return body


class Unauthorized(MagpieError):
    """No identity was presented, or it could not be verified."""

    status_code = 401
    default_message = "Unauthorized"


class Forbidden(MagpieError):
    """The identity is known but lacks the privilege."""

    status_code = 403
    default_message = "Forbidden"


class ValidationFailed(MagpieError):
    """Malformed caller input."""

    status_code = 400
    default_message = "Validation failed"


class NotFound(MagpieError):
    status_code = 404
    default_message = "Not found"


class ScholarshipSearchError(MagpieError):
    """Typed failure from the search path.

    4xx statuses describe bad caller input (filters, cursor); 5xx statuses
    describe backend failures.
    """

    default_message = "Search failed"

    def __init__(self, status_code: int, message: str):
        super().__init__(message, status_code=status_code)


class UpstreamUnavailable(MagpieError):
    """The discovery or ranking collaborator failed.

    Callers recover from this (partial batch results, deterministic
    ordering); it is never the final answer to an end user.
    """

    status_code = 503
    default_message = "Upstream service unavailable"
