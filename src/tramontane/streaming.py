"""Incremental decoding of server-sent event streams.

The transport hands over a line-oriented feed; the decoder reads one line at
a time and yields typed events as soon as each line is understood:

- blank lines and lines without the ``data: `` prefix are skipped,
- ``data: [DONE]`` ends the stream,
- any other ``data: `` payload is parsed as one JSON object and mapped to
  events; a payload that fails to parse is skipped, not fatal.

The same loop serves chat-completion token streams and audio transcription
event streams; only the mapper differs. Decoders are single-use generators:
re-decoding needs a fresh line source.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
import codecs
from dataclasses import dataclass, field
import json
import logging
import threading
from typing import Any, Protocol

from pydantic import TypeAdapter, ValidationError

from tramontane.errors import RequestCancelledError
from tramontane.models import extract_answer_text, extract_thinking_text
from tramontane.schemas import (
    ChatCompletionChunk,
    TranscriptionDone,
    TranscriptionEvent,
    TranscriptionLanguage,
    TranscriptionSegmentDelta,
    TranscriptionTextDelta,
)

log = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


# --- Events ---


@dataclass(frozen=True, slots=True)
class ContentDelta:
    """Incremental text; ``text`` may be empty."""

    text: str
    thinking: str = ""
    index: int = 0


@dataclass(frozen=True, slots=True)
class MetadataDelta:
    """Stream identity, usually carried by the first event."""

    id: str | None = None
    model: str | None = None
    role: str | None = None
    language: str | None = None


@dataclass(frozen=True, slots=True)
class SegmentDelta:
    """A timed transcription segment."""

    text: str
    start: float
    end: float
    speaker_id: str | None = None


@dataclass(frozen=True, slots=True)
class UsageEvent:
    """Token accounting, usually carried by the last event."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True, slots=True)
class Done:
    """Logical completion of one choice."""

    finish_reason: str | None = None
    index: int = 0


StreamEvent = ContentDelta | MetadataDelta | SegmentDelta | UsageEvent | Done


# --- Cancellation ---


class CancelToken:
    """Thread-safe cancellation flag checked by decoders between lines."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelledError("Stream cancelled by caller")


# --- Mappers ---


class EventMapper(Protocol):
    """Turns one parsed ``data:`` payload into zero or more events.

    Mappers may keep per-stream state; use one instance per stream. Raising
    ``pydantic.ValidationError`` marks the payload as malformed.
    """

    def map(self, payload: dict[str, Any]) -> Iterator[StreamEvent]: ...


class ChatEventMapper:
    """Maps chat-completion chunks to events."""

    def __init__(self) -> None:
        self._metadata_sent = False

    def map(self, payload: dict[str, Any]) -> Iterator[StreamEvent]:
        chunk = ChatCompletionChunk.model_validate(payload)

        if not self._metadata_sent:
            role = chunk.choices[0].delta.role if chunk.choices else None
            if chunk.id or chunk.model or role:
                self._metadata_sent = True
                yield MetadataDelta(id=chunk.id, model=chunk.model, role=role)

        for choice in chunk.choices:
            content = choice.delta.content
            if content is None:
                yield ContentDelta("", index=choice.index)
            elif isinstance(content, str):
                yield ContentDelta(content, index=choice.index)
            else:
                yield ContentDelta(
                    extract_answer_text(content),
                    thinking=extract_thinking_text(content),
                    index=choice.index,
                )

        if chunk.usage is not None:
            yield UsageEvent(
                prompt_tokens=chunk.usage.prompt_tokens,
                completion_tokens=chunk.usage.completion_tokens,
                total_tokens=chunk.usage.total_tokens,
            )

        for choice in chunk.choices:
            if choice.finish_reason is not None:
                yield Done(choice.finish_reason, index=choice.index)


_TRANSCRIPTION_ADAPTER: TypeAdapter[TranscriptionEvent] = TypeAdapter(
    TranscriptionEvent
)


class TranscriptionEventMapper:
    """Maps audio transcription stream events to events."""

    def map(self, payload: dict[str, Any]) -> Iterator[StreamEvent]:
        # Some routes wrap the event as {"event": "...", "data": {...}}.
        inner = payload.get("data")
        if "type" not in payload and isinstance(inner, dict):
            payload = inner

        event = _TRANSCRIPTION_ADAPTER.validate_python(payload)
        match event:
            case TranscriptionTextDelta(text=text):
                yield ContentDelta(text)
            case TranscriptionLanguage(audio_language=language):
                yield MetadataDelta(language=language)
            case TranscriptionSegmentDelta():
                yield SegmentDelta(
                    event.text, event.start, event.end, speaker_id=event.speaker_id
                )
            case TranscriptionDone():
                yield MetadataDelta(model=event.model or None, language=event.language)
                if event.usage is not None:
                    yield UsageEvent(
                        prompt_tokens=event.usage.prompt_tokens,
                        completion_tokens=event.usage.completion_tokens,
                        total_tokens=event.usage.total_tokens,
                    )
                yield Done("stop")


# --- Line handling ---


class _Done:
    """Marker returned for the ``[DONE]`` sentinel."""


_DONE = _Done()


def parse_data_line(line: str | bytes) -> dict[str, Any] | _Done | None:
    """Parse one transport line.

    Returns the JSON object of a ``data:`` line, the done marker for the
    sentinel, or None when the line should be skipped.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.rstrip("\r\n")
    if not line.strip() or not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX) :].strip()
    if data == DONE_SENTINEL:
        return _DONE
    try:
        payload = json.loads(data)
    except (ValueError, RecursionError):
        log.debug("Skipping malformed stream line (%d chars)", len(data))
        return None
    if not isinstance(payload, dict):
        log.debug("Skipping non-object stream payload (%s)", type(payload).__name__)
        return None
    return payload


def _map_payload(mapper: EventMapper, payload: dict[str, Any]) -> list[StreamEvent]:
    # A payload yields all of its events or none of them.
    try:
        return list(mapper.map(payload))
    except ValidationError:
        log.debug("Skipping stream payload that matches no known event shape")
        return []


def iter_lines(chunks: Iterable[bytes | str]) -> Iterator[str]:
    """Split raw transport chunks into lines (without terminators).

    Only the trailing partial line is buffered between chunks; a final
    unterminated line is flushed at end of input.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    for chunk in chunks:
        buffer += decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        *complete, buffer = buffer.split("\n")
        for line in complete:
            yield line.rstrip("\r")
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.rstrip("\r")


async def aiter_lines(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[str]:
    """Async counterpart of ``iter_lines``."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        *complete, buffer = buffer.split("\n")
        for line in complete:
            yield line.rstrip("\r")
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.rstrip("\r")


# --- Decoders ---


def decode_stream(
    lines: Iterable[str | bytes],
    *,
    mapper: EventMapper | None = None,
    cancel: CancelToken | None = None,
) -> Iterator[StreamEvent]:
    """Decode a line feed into events, lazily and in transport order.

    Args:
        lines: Transport lines, e.g. ``httpx.Response.iter_lines()``.
        mapper: Payload-to-event mapper; defaults to a fresh ``ChatEventMapper``.
        cancel: Optional token checked before every line read.

    Raises:
        RequestCancelledError: When *cancel* fires.
        Exception: Whatever the line source raises (disconnects, timeouts).
    """
    mapper = mapper if mapper is not None else ChatEventMapper()
    source = iter(lines)
    while True:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            line = next(source)
        except StopIteration:
            return
        parsed = parse_data_line(line)
        if isinstance(parsed, _Done):
            return
        if parsed is None:
            continue
        yield from _map_payload(mapper, parsed)


async def adecode_stream(
    lines: AsyncIterable[str | bytes],
    *,
    mapper: EventMapper | None = None,
    cancel: CancelToken | None = None,
) -> AsyncIterator[StreamEvent]:
    """Async counterpart of ``decode_stream``.

    ``asyncio.CancelledError`` raised while awaiting the next line propagates
    unchanged.
    """
    mapper = mapper if mapper is not None else ChatEventMapper()
    source = aiter(lines)
    while True:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            line = await anext(source)
        except StopAsyncIteration:
            return
        parsed = parse_data_line(line)
        if isinstance(parsed, _Done):
            return
        if parsed is None:
            continue
        for event in _map_payload(mapper, parsed):
            yield event


def decode_bytes(
    data: bytes | str,
    *,
    mapper: EventMapper | None = None,
    cancel: CancelToken | None = None,
) -> Iterator[StreamEvent]:
    """Decode an in-memory event stream payload."""
    return decode_stream(iter_lines([data]), mapper=mapper, cancel=cancel)


# --- Accumulation ---


@dataclass
class StreamResult:
    """Everything a finished chat stream delivered, folded together."""

    id: str | None = None
    model: str | None = None
    finish_reason: str | None = None
    usage: UsageEvent | None = None
    event_count: int = 0
    content_parts: list[str] = field(default_factory=list, repr=False)
    thinking_parts: list[str] = field(default_factory=list, repr=False)

    @property
    def content(self) -> str:
        return "".join(self.content_parts)

    @property
    def thinking(self) -> str:
        return "".join(self.thinking_parts)


class StreamAccumulator:
    """Fold events into a ``StreamResult`` while passing them through."""

    def __init__(self) -> None:
        self.result = StreamResult()

    def add(self, event: StreamEvent) -> StreamEvent:
        r = self.result
        r.event_count += 1
        match event:
            case MetadataDelta(id=id_, model=model):
                r.id = r.id or id_
                r.model = r.model or model
            case ContentDelta(text=text, thinking=thinking):
                r.content_parts.append(text)
                if thinking:
                    r.thinking_parts.append(thinking)
            case SegmentDelta():
                pass
            case UsageEvent():
                r.usage = event
            case Done(finish_reason=reason):
                r.finish_reason = reason
        return event

    def consume(self, events: Iterable[StreamEvent]) -> StreamResult:
        for event in events:
            self.add(event)
        return self.result
