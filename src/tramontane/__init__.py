"""Tramontane: a typed, async client for the Mistral chat API.

Public API:
    - Client: Async façade (validate, chat, chat_stream)
    - ChatRequest / Message: Request models
    - interpret(): Raw HTTP response -> Success | Failure
    - decode_stream() / adecode_stream(): SSE lines -> typed events
    - Config: Configuration dataclass
"""

from __future__ import annotations

import logging

from tramontane.cache import ResponseCache, compute_cache_key
from tramontane.client import Client
from tramontane.config import Config
from tramontane.errors import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    RateLimitError,
    RequestCancelledError,
    RequestTimeoutError,
    RequestValidationError,
    TramontaneError,
)
from tramontane.interpret import Failure, Success, interpret
from tramontane.models import (
    ChatModels,
    ChatRequest,
    JsonSchema,
    Message,
    ResponseFormat,
    Role,
    TextChunk,
    ThinkChunk,
    reasoning_request,
)
from tramontane.retry import RetryPolicy
from tramontane.schemas import ChatCompletion
from tramontane.session import ChatSession
from tramontane.streaming import (
    CancelToken,
    ContentDelta,
    Done,
    MetadataDelta,
    SegmentDelta,
    StreamAccumulator,
    UsageEvent,
    adecode_stream,
    decode_stream,
)
from tramontane.taxonomy import ErrorKind
from tramontane.validation import ValidationResult, validate_request

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("tramontane")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("tramontane").addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Façade
    "Client",
    "ChatSession",
    "Config",
    "RetryPolicy",
    "ResponseCache",
    "compute_cache_key",
    # Requests
    "ChatModels",
    "ChatRequest",
    "JsonSchema",
    "Message",
    "ResponseFormat",
    "Role",
    "TextChunk",
    "ThinkChunk",
    "reasoning_request",
    "ValidationResult",
    "validate_request",
    # Responses
    "ChatCompletion",
    "ErrorKind",
    "Failure",
    "Success",
    "interpret",
    # Streaming
    "CancelToken",
    "ContentDelta",
    "Done",
    "MetadataDelta",
    "SegmentDelta",
    "StreamAccumulator",
    "UsageEvent",
    "adecode_stream",
    "decode_stream",
    # Errors
    "APIError",
    "AuthenticationError",
    "ConfigurationError",
    "NotFoundError",
    "RateLimitError",
    "RequestCancelledError",
    "RequestTimeoutError",
    "RequestValidationError",
    "TramontaneError",
]
