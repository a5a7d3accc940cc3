"""Exception hierarchy for Tramontane."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tramontane.taxonomy import ErrorKind, policy_for

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tramontane.interpret import Failure


class TramontaneError(Exception):
    """Base exception for all Tramontane errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(TramontaneError):
    """Configuration validation or resolution failed."""


class RequestValidationError(TramontaneError):
    """A request was rejected locally before any network call."""

    def __init__(self, violations: Sequence[str], *, hint: str | None = None) -> None:
        self.violations: tuple[str, ...] = tuple(violations)
        super().__init__(
            f"Request validation failed: {'; '.join(self.violations)}", hint=hint
        )

    @property
    def kind(self) -> ErrorKind:
        return ErrorKind.VALIDATION


class RequestCancelledError(TramontaneError):
    """The caller cancelled an in-flight request or stream.

    Never retried and never reported as a vendor failure.
    """

    @property
    def kind(self) -> ErrorKind:
        return ErrorKind.CANCELLED


class APIError(TramontaneError):
    """API call failed.

    Carries the full taxonomy metadata so callers can implement retry without
    brittle substring matching on messages.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        error_type: str | None = None,
        error_code: str | None = None,
        raw_body: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.kind = kind
        self.retryable = policy_for(kind).retryable if retryable is None else retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.error_type = error_type
        self.error_code = error_code
        self.raw_body = raw_body


class AuthenticationError(APIError):
    """Credentials were rejected (HTTP 401/403)."""


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class NotFoundError(APIError):
    """Model or route not found (HTTP 404)."""


class RequestTimeoutError(APIError):
    """The request timed out before a response arrived."""


_KIND_TO_ERROR: dict[ErrorKind, type[APIError]] = {
    ErrorKind.AUTHENTICATION: AuthenticationError,
    ErrorKind.RATE_LIMITED: RateLimitError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.TIMEOUT: RequestTimeoutError,
}

_KIND_HINTS: dict[ErrorKind, str] = {
    ErrorKind.AUTHENTICATION: (
        "Check credentials (try setting MISTRAL_API_KEY or Config.api_key)."
    ),
    ErrorKind.NOT_FOUND: "Check the model id and base URL.",
    ErrorKind.RATE_LIMITED: "Rate limit exceeded; wait and retry.",
}


def error_from_failure(failure: Failure) -> TramontaneError:
    """Convert an interpreted ``Failure`` into the matching exception.

    All taxonomy fields are preserved; cancellation maps to
    ``RequestCancelledError`` rather than an ``APIError``.
    """
    if failure.kind is ErrorKind.CANCELLED:
        return RequestCancelledError(failure.message)

    err_cls = _KIND_TO_ERROR.get(failure.kind, APIError)
    return err_cls(
        failure.message,
        kind=failure.kind,
        hint=_KIND_HINTS.get(failure.kind),
        retryable=failure.retryable,
        status_code=failure.status_code,
        retry_after_s=failure.retry_after_s,
        error_type=failure.error_type,
        error_code=failure.error_code,
        raw_body=failure.raw_body,
    )
