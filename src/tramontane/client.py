"""Async client façade over the chat-completions endpoint.

The façade owns the HTTP transport and the value-to-exception policy. It runs
validate -> cache lookup -> network -> interpret (or stream decode) -> cache
store, and converts failures into exceptions only when the configuration
asks for it.
"""

from __future__ import annotations

from dataclasses import replace
import logging
from typing import TYPE_CHECKING, Any

import httpx

from tramontane._http import CHAT_COMPLETIONS_PATH, is_success_status
from tramontane.cache import ResponseCache, compute_cache_key, is_cacheable
from tramontane.config import Config
from tramontane.errors import RequestValidationError, error_from_failure
from tramontane.interpret import Failure, Success, interpret, make_failure
from tramontane.retry import retry_interpreted
from tramontane.streaming import adecode_stream
from tramontane.taxonomy import ErrorKind
from tramontane.validation import ValidationResult, validate_request

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from tramontane.interpret import InterpretedResponse
    from tramontane.models import ChatRequest
    from tramontane.streaming import CancelToken, EventMapper, StreamEvent

log = logging.getLogger(__name__)

_USER_AGENT = "tramontane-python"


def _transport_failure(exc: httpx.RequestError) -> Failure:
    """Classify a transport-level exception (no HTTP response available)."""
    if isinstance(exc, httpx.TimeoutException):
        return make_failure(ErrorKind.TIMEOUT, f"Request timeout: {exc}")
    return make_failure(ErrorKind.SERVER_TRANSIENT, f"HTTP request failed: {exc}")


class Client:
    """Mistral chat client.

    Example:
        async with Client(Config()) as client:
            result = await client.chat(
                ChatRequest(model=ChatModels.SMALL, messages=[Message.user("Hi")])
            )
            if isinstance(result, Success):
                print(result.value.text)
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        """Initialize with a configuration and optional injected collaborators.

        An injected ``http_client`` is not closed by ``aclose``.
        """
        self.config = config if config is not None else Config()
        self._http: httpx.AsyncClient | None = http_client
        self._owns_http = http_client is None
        self.cache = (
            cache
            if cache is not None
            else ResponseCache(
                self.config.cache_ttl_s, enabled=self.config.enable_caching
            )
        )

    # --- Lifecycle ---

    def _get_http(self) -> httpx.AsyncClient:
        """Lazily initialize and return the HTTP client."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.config.timeout_s)
        return self._http

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        http = self._http
        if http is None or not self._owns_http:
            return
        self._http = None
        await http.aclose()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # --- Helpers ---

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    def _headers(self, *, stream: bool = False) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Accept": "text/event-stream" if stream else "application/json",
            "Content-Type": "application/json",
            "User-Agent": _USER_AGENT,
        }

    def _deliver(self, result: InterpretedResponse) -> InterpretedResponse:
        if isinstance(result, Failure) and self.config.throw_on_error:
            raise error_from_failure(result)
        return result

    def _preflight(self, request: ChatRequest, *, force_raise: bool) -> Failure | None:
        if not self.config.validate_requests:
            return None
        outcome = validate_request(request)
        if outcome.is_valid:
            return None
        if self.config.throw_on_error or force_raise:
            raise RequestValidationError(outcome.violations)
        return make_failure(
            ErrorKind.VALIDATION,
            f"Validation failed: {'; '.join(outcome.violations)}",
        )

    # --- Public API ---

    def validate(self, request: ChatRequest) -> ValidationResult:
        """Validate *request* without sending it."""
        return validate_request(request)

    async def chat(
        self, request: ChatRequest, *, cancel: CancelToken | None = None
    ) -> InterpretedResponse:
        """Send a non-streaming chat completion.

        Returns ``Success[ChatCompletion]`` or ``Failure``; with
        ``throw_on_error`` a failure is raised as the matching exception.

        Raises:
            RequestCancelledError: When *cancel* fires before the call.
        """
        invalid = self._preflight(request, force_raise=False)
        if invalid is not None:
            return invalid

        if request.stream:
            request = replace(request, stream=False)

        key = (
            compute_cache_key(request)
            if self.cache.enabled and is_cacheable(request)
            else None
        )
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                log.debug("Cache hit for chat completion")
                return cached

        result = await retry_interpreted(
            lambda: self._post_chat(request, cancel),
            policy=self.config.retry,
            cancel=cancel,
        )
        if key is not None and isinstance(result, Success):
            self.cache.put(key, result)
        return self._deliver(result)

    async def _post_chat(
        self, request: ChatRequest, cancel: CancelToken | None
    ) -> InterpretedResponse:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            response = await self._get_http().post(
                self._url(CHAT_COMPLETIONS_PATH),
                json=request.to_payload(),
                headers=self._headers(),
            )
        except httpx.RequestError as exc:
            log.warning("Chat completion transport failure: %s", type(exc).__name__)
            return _transport_failure(exc)
        return interpret(response.status_code, response.content, headers=response.headers)

    async def chat_stream(
        self,
        request: ChatRequest,
        *,
        cancel: CancelToken | None = None,
        mapper: EventMapper | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a chat completion as events.

        A stream has no value channel, so every failure is raised: invalid
        requests as ``RequestValidationError``, HTTP errors and transport
        failures as ``APIError`` subclasses, cancellation as
        ``RequestCancelledError``.
        """
        self._preflight(request, force_raise=True)
        payload: dict[str, Any] = replace(request, stream=True).to_payload()

        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            async with self._get_http().stream(
                "POST",
                self._url(CHAT_COMPLETIONS_PATH),
                json=payload,
                headers=self._headers(stream=True),
            ) as response:
                if not is_success_status(response.status_code):
                    body = await response.aread()
                    failure = interpret(
                        response.status_code, body, headers=response.headers
                    )
                    if isinstance(failure, Failure):
                        raise error_from_failure(failure)
                async for event in adecode_stream(
                    response.aiter_lines(), mapper=mapper, cancel=cancel
                ):
                    yield event
        except httpx.RequestError as exc:
            log.warning("Chat stream transport failure: %s", type(exc).__name__)
            raise error_from_failure(_transport_failure(exc)) from exc
