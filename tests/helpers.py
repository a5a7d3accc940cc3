"""Shared test doubles and payload builders."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any

import httpx


@dataclass
class FakeMistral:
    """Scripted stand-in for the chat endpoint.

    Queued responses are served in order and the last one repeats once the
    queue runs dry. Queued transport errors are raised first. Every request is
    recorded for assertions.
    """

    responses: list[httpx.Response] = field(default_factory=list)
    requests: list[httpx.Request] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    def reply(
        self,
        status_code: int = 200,
        *,
        json_body: Any = None,
        content: bytes | str | None = None,
        headers: dict[str, str] | None = None,
    ) -> FakeMistral:
        if json_body is not None:
            content = json.dumps(json_body)
        self.responses.append(
            httpx.Response(status_code, content=content or b"", headers=headers)
        )
        return self

    def fail_with(self, exc: Exception) -> FakeMistral:
        self.errors.append(exc)
        return self

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def last_payload(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.errors:
            raise self.errors.pop(0)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        response = self.responses[0]
        # A Response can only be streamed once; hand out a fresh copy.
        return httpx.Response(
            response.status_code, content=response.content, headers=response.headers
        )


def completion_body(text: str = "Hello!", **overrides: Any) -> dict[str, Any]:
    """Return a minimal successful chat-completion body."""
    body: dict[str, Any] = {
        "id": "cmpl-1",
        "object": "chat.completion",
        "model": "mistral-small-latest",
        "created": 1700000000,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
    }
    body.update(overrides)
    return body


def chunk_payload(
    content: str | None = None,
    *,
    role: str | None = None,
    finish_reason: str | None = None,
    usage: dict[str, int] | None = None,
    index: int = 0,
) -> dict[str, Any]:
    """Return one chat-completion stream chunk."""
    delta: dict[str, Any] = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    payload: dict[str, Any] = {
        "id": "cmpl-1",
        "object": "chat.completion.chunk",
        "model": "mistral-small-latest",
        "choices": [{"index": index, "delta": delta, "finish_reason": finish_reason}],
    }
    if usage is not None:
        payload["usage"] = usage
    return payload


def sse(*payloads: Any, done: bool = True) -> str:
    """Render payloads as a ``data:``-framed event stream.

    Strings are emitted verbatim after the prefix so tests can inject
    malformed lines.
    """
    lines = [
        f"data: {p if isinstance(p, str) else json.dumps(p)}\n\n" for p in payloads
    ]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines)
