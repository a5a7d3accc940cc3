"""Error taxonomy: a closed set of failure kinds with fixed retry metadata.

Every failed call is classified into exactly one ``ErrorKind``. Each kind
carries a retryability flag and, where it makes sense, a default backoff
suggestion so callers can retry without re-deriving policy from status codes.
A ``Retry-After`` header, when the server sends one, always wins over the
table defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from tramontane._http import TRANSIENT_SERVER_STATUS_CODES

if TYPE_CHECKING:
    from collections.abc import Mapping


class ErrorKind(StrEnum):
    """Closed classification of a failed request."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    SERVER_TRANSIENT = "server_transient"
    SERVER_FATAL = "server_fatal"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class KindPolicy:
    """Retry metadata attached to an ``ErrorKind``."""

    retryable: bool
    default_delay_s: float | None = None


_POLICIES: dict[ErrorKind, KindPolicy] = {
    ErrorKind.VALIDATION: KindPolicy(retryable=False),
    ErrorKind.AUTHENTICATION: KindPolicy(retryable=False),
    ErrorKind.RATE_LIMITED: KindPolicy(retryable=True, default_delay_s=60.0),
    ErrorKind.NOT_FOUND: KindPolicy(retryable=False),
    ErrorKind.SERVER_TRANSIENT: KindPolicy(retryable=True, default_delay_s=5.0),
    ErrorKind.SERVER_FATAL: KindPolicy(retryable=False),
    ErrorKind.TIMEOUT: KindPolicy(retryable=True, default_delay_s=10.0),
    ErrorKind.CANCELLED: KindPolicy(retryable=False),
    ErrorKind.UNKNOWN: KindPolicy(retryable=False),
}

# Per-status refinements of the transient backoff.
_STATUS_DELAYS_S: dict[int, float] = {
    429: 60.0,
    500: 5.0,
    502: 10.0,
    503: 30.0,
    504: 10.0,
}

# Vendor ``type`` strings seen in model/API error bodies.
_ERROR_TYPE_DELAYS_S: dict[str, float] = {
    "rate_limit_error": 60.0,
    "server_error": 5.0,
    "timeout": 10.0,
}


def policy_for(kind: ErrorKind) -> KindPolicy:
    """Return the fixed retry policy for *kind*."""
    return _POLICIES[kind]


def classify_status(status_code: int | None) -> ErrorKind:
    """Map an HTTP status code to an ``ErrorKind``.

    401/403 are credential problems, 404 is a missing model or route, 408 is a
    server-side timeout, 429 is rate limiting, 500/502/503/504 are transient.
    Remaining 4xx codes are treated as rejected input and remaining 5xx codes
    as fatal server errors.
    """
    if status_code is None:
        return ErrorKind.UNKNOWN
    if status_code in (401, 403):
        return ErrorKind.AUTHENTICATION
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code == 408:
        return ErrorKind.TIMEOUT
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in TRANSIENT_SERVER_STATUS_CODES:
        return ErrorKind.SERVER_TRANSIENT
    if 400 <= status_code < 500:
        return ErrorKind.VALIDATION
    if 500 <= status_code < 600:
        return ErrorKind.SERVER_FATAL
    return ErrorKind.UNKNOWN


def suggested_delay_s(
    kind: ErrorKind,
    *,
    status_code: int | None = None,
    error_type: str | None = None,
    retry_after_s: float | None = None,
) -> float | None:
    """Return the backoff hint for a failure, or None when not retryable.

    Precedence: ``Retry-After`` header, then the vendor error type, then the
    exact status code, then the kind default.
    """
    policy = policy_for(kind)
    if not policy.retryable:
        return None
    if retry_after_s is not None:
        return retry_after_s
    if error_type and error_type in _ERROR_TYPE_DELAYS_S:
        return _ERROR_TYPE_DELAYS_S[error_type]
    if status_code is not None and status_code in _STATUS_DELAYS_S:
        return _STATUS_DELAYS_S[status_code]
    return policy.default_delay_s


def parse_retry_after(
    headers: Mapping[str, str] | Any | None,
    *,
    now: datetime | None = None,
) -> float | None:
    """Extract a ``Retry-After`` delay in seconds from response headers.

    Accepts both delta-seconds (``"2"``) and HTTP-date forms. Returns None when
    the header is absent or malformed. Header lookup is case-insensitive for
    plain dicts; ``httpx.Headers`` already is.
    """
    if headers is None:
        return None

    raw: Any = None
    try:
        raw = headers.get("Retry-After")
        if raw is None:
            raw = headers.get("retry-after")
    except AttributeError:
        return None
    if not isinstance(raw, str) or not raw.strip():
        return None

    value = raw.strip()
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        return seconds if seconds >= 0 else None

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    current = now or datetime.now(UTC)
    return max(0.0, (when - current).total_seconds())
