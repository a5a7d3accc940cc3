"""Conversation helper that keeps message history between calls."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tramontane.interpret import Failure
from tramontane.models import ChatModels, ChatRequest, Message
from tramontane.streaming import ContentDelta

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from tramontane.client import Client
    from tramontane.interpret import InterpretedResponse
    from tramontane.streaming import CancelToken

log = logging.getLogger(__name__)


class ChatSession:
    """Multi-turn chat on top of a ``Client``.

    ``system_prompt``, when set, is prepended to every request but is not part
    of ``messages``. Replies are appended to the history on success.
    """

    def __init__(
        self,
        client: Client,
        model: str = ChatModels.SMALL,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self._client = client
        self.model = model or ChatModels.SMALL
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_prompt = system_prompt
        self._messages: list[Message] = []
        self.last_result: InterpretedResponse | None = None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def add_user(self, content: str) -> ChatSession:
        if not content or not content.strip():
            raise ValueError("User message content is required")
        self._messages.append(Message.user(content))
        return self

    def add_assistant(self, content: str | None) -> ChatSession:
        self._messages.append(Message.assistant(content or ""))
        return self

    def add_system(self, content: str) -> ChatSession:
        if not content or not content.strip():
            raise ValueError("System message content is required")
        self._messages.append(Message.system(content))
        return self

    def clear(self, *, keep_system_prompt: bool = False) -> None:
        """Drop the history; optionally re-seed it with ``system_prompt``."""
        self._messages.clear()
        if keep_system_prompt and self.system_prompt and self.system_prompt.strip():
            self.add_system(self.system_prompt)

    def build_request(self) -> ChatRequest:
        """Return the request for the current conversation.

        Raises:
            ValueError: When the conversation is empty.
        """
        messages: list[Message] = []
        if self.system_prompt and self.system_prompt.strip():
            messages.append(Message.system(self.system_prompt))
        messages.extend(self._messages)
        if not messages:
            raise ValueError(
                "No messages in the conversation. Add at least one user message first."
            )
        return ChatRequest(
            model=self.model,
            messages=tuple(messages),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    async def complete(
        self, *, add_to_history: bool = True, cancel: CancelToken | None = None
    ) -> str:
        """Send the conversation and return the reply text.

        Returns an empty string on failure; the failure itself is kept in
        ``last_result``. With ``throw_on_error`` the client raises instead.
        """
        result = await self._client.chat(self.build_request(), cancel=cancel)
        self.last_result = result
        if isinstance(result, Failure):
            log.warning("Chat session completion failed: %s", result.kind)
            return ""

        text = result.value.text
        if add_to_history and text:
            self.add_assistant(text)
        return text

    async def complete_stream(
        self, *, cancel: CancelToken | None = None
    ) -> AsyncIterator[str]:
        """Stream the reply as text pieces, then record it in the history."""
        parts: list[str] = []
        async for event in self._client.chat_stream(self.build_request(), cancel=cancel):
            if isinstance(event, ContentDelta) and event.text:
                parts.append(event.text)
                yield event.text
        if parts:
            self.add_assistant("".join(parts))
