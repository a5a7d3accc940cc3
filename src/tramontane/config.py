"""Configuration: frozen Config with explicit, validated client options."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from urllib.parse import urlparse

from dotenv import load_dotenv

from tramontane._http import DEFAULT_BASE_URL
from tramontane.errors import ConfigurationError
from tramontane.retry import RetryPolicy

load_dotenv()

API_KEY_ENV_VAR = "MISTRAL_API_KEY"
BASE_URL_ENV_VAR = "MISTRAL_BASE_URL"


@dataclass(frozen=True)
class Config:
    """Immutable configuration for a Tramontane client.

    The API key is auto-resolved from ``MISTRAL_API_KEY`` when not given.
    Failures are returned as values unless ``throw_on_error`` is set; request
    validation runs before every call unless ``validate_requests`` is False.

    Example:
        config = Config(enable_caching=True, throw_on_error=True)
        # API key is automatically resolved from MISTRAL_API_KEY
    """

    #: Auto-resolved from ``MISTRAL_API_KEY`` when *None*.
    api_key: str | None = None
    #: Auto-resolved from ``MISTRAL_BASE_URL`` when *None*.
    base_url: str | None = None
    timeout_s: float = 30.0
    enable_caching: bool = False
    cache_ttl_s: float = 300.0
    throw_on_error: bool = False
    validate_requests: bool = True
    retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_retries=0))

    def __post_init__(self) -> None:
        """Auto-resolve environment values and validate configuration."""
        if self.api_key is None:
            object.__setattr__(self, "api_key", os.environ.get(API_KEY_ENV_VAR))
        if self.base_url is None:
            object.__setattr__(
                self, "base_url", os.environ.get(BASE_URL_ENV_VAR, DEFAULT_BASE_URL)
            )

        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError(
                "API key required",
                hint=f"Set {API_KEY_ENV_VAR} environment variable or pass api_key=...",
            )

        parsed = urlparse(self.base_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"base_url must be an absolute http(s) URL, got {self.base_url!r}",
                hint=f"The default is {DEFAULT_BASE_URL}.",
            )
        object.__setattr__(self, "base_url", (self.base_url or "").rstrip("/"))

        if self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="This is the per-request HTTP timeout in seconds.",
            )
        if self.cache_ttl_s <= 0:
            raise ConfigurationError(
                f"cache_ttl_s must be > 0, got {self.cache_ttl_s}",
                hint="This controls how long successful responses stay cached.",
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(base_url={self.base_url!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"enable_caching={self.enable_caching}, "
            f"throw_on_error={self.throw_on_error})"
        )

    __repr__ = __str__
