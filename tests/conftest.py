"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, automatic API test
skipping, and an ``httpx.MockTransport``-backed client for façade tests.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress
import logging
import os

import httpx
import pytest

from tests.helpers import FakeMistral

# =============================================================================
# Test Doubles
# =============================================================================


@pytest.fixture
def fake_mistral() -> FakeMistral:
    return FakeMistral()


@pytest.fixture
def http_client_factory(
    fake_mistral: FakeMistral,
) -> Callable[[], httpx.AsyncClient]:
    """Return a factory for AsyncClients routed to ``fake_mistral``."""

    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(fake_mistral.handler))

    return factory


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_mistral_env(request, monkeypatch):
    """Ensure a clean MISTRAL_* environment for each test.

    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith("MISTRAL_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# API Test Configuration
# =============================================================================

_MISTRAL_TEST_MODEL = "mistral-small-latest"


@pytest.fixture
def mistral_api_key():
    """Return MISTRAL_API_KEY or skip the test if unavailable."""
    key = os.getenv("MISTRAL_API_KEY")
    if not key:
        pytest.skip("MISTRAL_API_KEY not set")
    return key


@pytest.fixture
def mistral_test_model():
    """Return the model to use for live API tests."""
    return _MISTRAL_TEST_MODEL
