"""Error taxonomy: status classification, retry policy, backoff hints."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime

from hypothesis import given
from hypothesis import strategies as st
import httpx
import pytest

from tramontane.taxonomy import (
    ErrorKind,
    classify_status,
    parse_retry_after,
    policy_for,
    suggested_delay_s,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (400, ErrorKind.VALIDATION),
        (401, ErrorKind.AUTHENTICATION),
        (403, ErrorKind.AUTHENTICATION),
        (404, ErrorKind.NOT_FOUND),
        (408, ErrorKind.TIMEOUT),
        (422, ErrorKind.VALIDATION),
        (429, ErrorKind.RATE_LIMITED),
        (500, ErrorKind.SERVER_TRANSIENT),
        (502, ErrorKind.SERVER_TRANSIENT),
        (503, ErrorKind.SERVER_TRANSIENT),
        (504, ErrorKind.SERVER_TRANSIENT),
        (501, ErrorKind.SERVER_FATAL),
        (599, ErrorKind.SERVER_FATAL),
        (302, ErrorKind.UNKNOWN),
        (None, ErrorKind.UNKNOWN),
    ],
)
def test_classify_status(status: int | None, kind: ErrorKind) -> None:
    assert classify_status(status) is kind


@pytest.mark.parametrize(
    "kind",
    [ErrorKind.RATE_LIMITED, ErrorKind.SERVER_TRANSIENT, ErrorKind.TIMEOUT],
)
def test_transient_kinds_are_retryable(kind: ErrorKind) -> None:
    policy = policy_for(kind)
    assert policy.retryable is True
    assert policy.default_delay_s is not None


@pytest.mark.parametrize(
    "kind",
    [
        ErrorKind.VALIDATION,
        ErrorKind.AUTHENTICATION,
        ErrorKind.NOT_FOUND,
        ErrorKind.SERVER_FATAL,
        ErrorKind.CANCELLED,
        ErrorKind.UNKNOWN,
    ],
)
def test_permanent_kinds_are_not_retryable_and_have_no_delay(kind: ErrorKind) -> None:
    assert policy_for(kind).retryable is False
    assert suggested_delay_s(kind, status_code=503, retry_after_s=3.0) is None


def test_every_kind_has_a_policy() -> None:
    for kind in ErrorKind:
        assert policy_for(kind) is not None


def test_rate_limit_default_delay_is_sixty_seconds() -> None:
    assert suggested_delay_s(ErrorKind.RATE_LIMITED, status_code=429) == 60.0


def test_retry_after_header_wins_over_table() -> None:
    delay = suggested_delay_s(
        ErrorKind.RATE_LIMITED,
        status_code=429,
        error_type="rate_limit_error",
        retry_after_s=2.0,
    )
    assert delay == 2.0


def test_error_type_wins_over_status() -> None:
    delay = suggested_delay_s(
        ErrorKind.SERVER_TRANSIENT, status_code=503, error_type="server_error"
    )
    assert delay == 5.0


def test_status_refines_kind_default() -> None:
    assert suggested_delay_s(ErrorKind.SERVER_TRANSIENT, status_code=503) == 30.0
    assert suggested_delay_s(ErrorKind.SERVER_TRANSIENT, status_code=None) == 5.0


def test_parse_retry_after_seconds() -> None:
    assert parse_retry_after({"Retry-After": "2"}) == 2.0
    assert parse_retry_after({"retry-after": "1.5"}) == 1.5


def test_parse_retry_after_with_httpx_headers_is_case_insensitive() -> None:
    assert parse_retry_after(httpx.Headers({"RETRY-AFTER": "7"})) == 7.0


def test_parse_retry_after_http_date() -> None:
    now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
    header = format_datetime(now + timedelta(seconds=30), usegmt=True)

    assert parse_retry_after({"Retry-After": header}, now=now) == pytest.approx(30.0)


def test_parse_retry_after_past_date_clamps_to_zero() -> None:
    now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
    header = format_datetime(now - timedelta(minutes=5), usegmt=True)

    assert parse_retry_after({"Retry-After": header}, now=now) == 0.0


@pytest.mark.parametrize(
    "headers", [None, {}, {"Retry-After": ""}, {"Retry-After": "soon"}, {"Retry-After": "-3"}]
)
def test_parse_retry_after_rejects_missing_or_malformed(headers) -> None:
    assert parse_retry_after(headers) is None


@given(st.integers(min_value=100, max_value=599))
def test_classification_is_total(status: int) -> None:
    kind = classify_status(status)
    assert isinstance(kind, ErrorKind)
    if 200 <= status < 300:
        assert kind is ErrorKind.UNKNOWN
