"""Response interpretation: raw status + body into a typed result.

The vendor's error payloads are not uniform, so interpretation is an explicit
ordered chain of steps. Each step either recognises the body and returns a
result, or returns None to fall through to the next one. The last step always
matches, so ``interpret`` never raises, whatever the body contains.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import dataclasses
import json
import logging
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from tramontane._http import is_success_status
from tramontane.schemas import ChatCompletion, ModelErrorBody, ValidationErrorBody
from tramontane.taxonomy import (
    ErrorKind,
    classify_status,
    parse_retry_after,
    policy_for,
    suggested_delay_s,
)

log = logging.getLogger(__name__)

_MAX_RAW_BODY_CHARS = 2000

T = TypeVar("T")


@dataclasses.dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """A successfully parsed response payload."""

    value: T
    status_code: int = 200


@dataclasses.dataclass(frozen=True, slots=True)
class Failure:
    """A classified failure with everything needed to decide on a retry."""

    kind: ErrorKind
    message: str
    status_code: int | None = None
    retryable: bool = False
    retry_after_s: float | None = None
    error_type: str | None = None
    error_code: str | None = None
    raw_body: str | None = None


InterpretedResponse = Success[Any] | Failure


def make_failure(
    kind: ErrorKind,
    message: str,
    *,
    status_code: int | None = None,
    error_type: str | None = None,
    error_code: str | int | None = None,
    header_retry_after_s: float | None = None,
    raw_body: str | None = None,
) -> Failure:
    """Build a ``Failure`` with retry metadata filled in from the taxonomy."""
    return Failure(
        kind=kind,
        message=message,
        status_code=status_code,
        retryable=policy_for(kind).retryable,
        retry_after_s=suggested_delay_s(
            kind,
            status_code=status_code,
            error_type=error_type,
            retry_after_s=header_retry_after_s,
        ),
        error_type=error_type,
        error_code=None if error_code is None else str(error_code),
        raw_body=raw_body,
    )


@dataclasses.dataclass(frozen=True, slots=True)
class _Body:
    """A response body decoded once and shared by every step."""

    status_code: int
    text: str
    data: Any
    retry_after_s: float | None


def _decode_text(body: bytes | str | None) -> str:
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    return body.decode("utf-8", errors="replace")


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def _kind_for_error(status_code: int, *, default: ErrorKind) -> ErrorKind:
    # 429 always wins: the body shape is irrelevant to rate limiting.
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if is_success_status(status_code):
        return default
    return classify_status(status_code)


# --- Steps ---


Step = Callable[[_Body, type[BaseModel]], InterpretedResponse | None]


def _try_success(body: _Body, schema: type[BaseModel]) -> InterpretedResponse | None:
    if not is_success_status(body.status_code) or not isinstance(body.data, dict):
        return None
    try:
        value = schema.model_validate(body.data)
    except ValidationError:
        log.debug("2xx body does not match %s; trying error shapes", schema.__name__)
        return None
    return Success(value, body.status_code)


def _try_validation_error(
    body: _Body, schema: type[BaseModel]
) -> InterpretedResponse | None:
    _ = schema
    if not isinstance(body.data, dict):
        return None
    try:
        parsed = ValidationErrorBody.parse(body.data)
    except ValidationError:
        return None
    kind = (
        ErrorKind.RATE_LIMITED if body.status_code == 429 else ErrorKind.VALIDATION
    )
    return make_failure(
        kind,
        parsed.first_message,
        status_code=body.status_code,
        error_type=parsed.type,
        error_code=parsed.code,
        header_retry_after_s=body.retry_after_s,
    )


def _try_model_error(
    body: _Body, schema: type[BaseModel]
) -> InterpretedResponse | None:
    _ = schema
    if not isinstance(body.data, dict):
        return None
    try:
        parsed = ModelErrorBody.model_validate(body.data)
    except ValidationError:
        return None
    return make_failure(
        _kind_for_error(body.status_code, default=ErrorKind.UNKNOWN),
        parsed.message or "Unknown model error",
        status_code=body.status_code,
        error_type=parsed.type,
        error_code=parsed.code,
        header_retry_after_s=body.retry_after_s,
    )


def _unparseable(body: _Body, schema: type[BaseModel]) -> InterpretedResponse:
    _ = schema
    raw = body.text
    if len(raw) > _MAX_RAW_BODY_CHARS:
        raw = raw[:_MAX_RAW_BODY_CHARS] + "...[truncated]"
    kind = ErrorKind.UNKNOWN
    if body.status_code == 429:
        kind = ErrorKind.RATE_LIMITED
    return make_failure(
        kind,
        f"Unparseable response body (status={body.status_code}): {raw}",
        status_code=body.status_code,
        header_retry_after_s=body.retry_after_s,
        raw_body=raw,
    )


STEPS: tuple[Step, ...] = (_try_success, _try_validation_error, _try_model_error)


def interpret(
    status_code: int,
    body: bytes | str | None,
    *,
    headers: Mapping[str, str] | Any | None = None,
    schema: type[BaseModel] = ChatCompletion,
) -> InterpretedResponse:
    """Interpret an HTTP response into ``Success`` or a classified ``Failure``.

    Args:
        status_code: HTTP status of the response.
        body: Raw response body (bytes are decoded as UTF-8, lossy).
        headers: Optional response headers; a ``Retry-After`` header overrides
            the taxonomy's default delay.
        schema: Success schema of the calling endpoint.

    Returns:
        ``Success`` holding the parsed schema instance, or ``Failure``.
    """
    text = _decode_text(body)
    decoded = _Body(
        status_code=status_code,
        text=text,
        data=_load_json(text),
        retry_after_s=parse_retry_after(headers),
    )
    for step in STEPS:
        result = step(decoded, schema)
        if result is not None:
            return result
    return _unparseable(decoded, schema)
