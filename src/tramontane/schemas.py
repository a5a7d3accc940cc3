"""Wire schemas for the JSON shapes the chat API is known to emit.

Each model parses exactly one observed shape. Unknown keys are ignored so
additive server changes do not break parsing; missing *required* keys raise
``pydantic.ValidationError``, which the interpreter treats as "this schema
does not match, try the next one".
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tramontane.models import (
    Chunk,
    chunk_from_wire,
    extract_answer_text,
    extract_thinking_text,
)


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


def _parse_chunks(value: Any) -> Any:
    """Turn a list of typed chunk dicts into chunk dataclasses."""
    if not isinstance(value, list):
        return value
    out: list[Chunk] = []
    for item in value:
        if isinstance(item, dict) and (chunk := chunk_from_wire(item)) is not None:
            out.append(chunk)
    return tuple(out)


# --- Success ---


class UsageInfo(_WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ToolCallFunction(_WireModel):
    name: str = ""
    arguments: str | dict[str, Any] = ""


class ToolCall(_WireModel):
    id: str | None = None
    type: str = "function"
    function: ToolCallFunction = Field(default_factory=ToolCallFunction)
    index: int | None = None


class AssistantMessage(_WireModel):
    """The message of one choice; content is a string or typed segments."""

    role: str = "assistant"
    content: str | tuple[Any, ...] | None = None
    tool_calls: list[ToolCall] | None = None
    prefix: bool = False

    @field_validator("content", mode="before")
    @classmethod
    def _chunks(cls, value: Any) -> Any:
        return _parse_chunks(value)

    @property
    def text(self) -> str:
        """Answer text, excluding thinking segments."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return extract_answer_text(self.content)

    @property
    def thinking(self) -> str:
        """Concatenated reasoning text, empty for plain-string content."""
        if self.content is None or isinstance(self.content, str):
            return ""
        return extract_thinking_text(self.content)


class ChatChoice(_WireModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: str | None = None


class ChatCompletion(_WireModel):
    """Successful (non-streaming) chat completion body."""

    id: str
    object: str = "chat.completion"
    model: str
    created: int | None = None
    choices: list[ChatChoice] = Field(min_length=1)
    usage: UsageInfo | None = None

    @property
    def text(self) -> str:
        """Answer text of the first choice."""
        return self.choices[0].message.text


# --- Errors ---


class ErrorDetail(_WireModel):
    msg: str
    type: str | None = None
    loc: list[Any] | None = None
    input: Any = None


class _DetailList(_WireModel):
    detail: list[ErrorDetail] = Field(min_length=1)


class ValidationErrorBody(_WireModel):
    """Structured validation error.

    Observed as ``{"object": "error", "message": {"detail": [...]}, "type": ...}``
    and, on some routes, as a bare ``{"detail": [...]}`` body. Both normalise
    into ``message.detail``.
    """

    object: str | None = None
    message: _DetailList
    type: str | None = None
    code: str | int | None = None

    @classmethod
    def parse(cls, data: dict[str, Any]) -> ValidationErrorBody:
        if "message" not in data and "detail" in data:
            data = {"message": {"detail": data["detail"]}, **data}
        return cls.model_validate(data)

    @property
    def first_message(self) -> str:
        return self.message.detail[0].msg

    @property
    def all_messages(self) -> str:
        return "; ".join(d.msg for d in self.message.detail)


class ModelErrorBody(_WireModel):
    """Flat ``{"object": "error", "message": "...", "type": ...}`` error."""

    object: str | None = None
    message: str
    type: str | None = None
    param: str | None = None
    code: str | int | None = None


# --- Streaming ---


class DeltaMessage(_WireModel):
    role: str | None = None
    content: str | tuple[Any, ...] | None = None
    tool_calls: list[ToolCall] | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _chunks(cls, value: Any) -> Any:
        return _parse_chunks(value)


class StreamChoice(_WireModel):
    index: int = 0
    delta: DeltaMessage = Field(default_factory=DeltaMessage)
    finish_reason: str | None = None


class ChatCompletionChunk(_WireModel):
    """One ``data:`` payload of a chat-completion stream."""

    id: str | None = None
    object: str | None = None
    model: str | None = None
    created: int | None = None
    choices: list[StreamChoice] = Field(default_factory=list)
    usage: UsageInfo | None = None


class TranscriptionSegment(_WireModel):
    text: str = ""
    start: float = 0.0
    end: float = 0.0
    speaker_id: str | None = None


class TranscriptionUsage(_WireModel):
    prompt_audio_seconds: float | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class TranscriptionTextDelta(_WireModel):
    type: Literal["transcription.text.delta"]
    text: str = ""


class TranscriptionLanguage(_WireModel):
    type: Literal["transcription.language"]
    audio_language: str = ""


class TranscriptionSegmentDelta(_WireModel):
    type: Literal["transcription.segment"]
    text: str = ""
    start: float = 0.0
    end: float = 0.0
    speaker_id: str | None = None


class TranscriptionDone(_WireModel):
    type: Literal["transcription.done"]
    model: str = ""
    text: str = ""
    language: str | None = None
    segments: list[TranscriptionSegment] = Field(default_factory=list)
    usage: TranscriptionUsage | None = None


TranscriptionEvent = Annotated[
    TranscriptionTextDelta
    | TranscriptionLanguage
    | TranscriptionSegmentDelta
    | TranscriptionDone,
    Field(discriminator="type"),
]
