"""Domain models for chat requests.

Requests and messages are frozen values: the library never mutates what the
caller passes in. Builder-style helpers return modified copies.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    """Message roles accepted by the chat endpoint."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ChatModels:
    """Identifiers of well-known chat models."""

    LARGE = "mistral-large-latest"
    MEDIUM = "mistral-medium-latest"
    SMALL = "mistral-small-latest"
    MINISTRAL_3B = "ministral-3b-latest"
    MINISTRAL_8B = "ministral-8b-latest"
    CODESTRAL = "codestral-latest"
    PIXTRAL_LARGE = "pixtral-large-latest"
    NEMO = "open-mistral-nemo"
    MAGISTRAL_SMALL = "magistral-small-latest"
    MAGISTRAL_MEDIUM = "magistral-medium-latest"


# --- Content segments ---


@dataclass(frozen=True, slots=True)
class TextChunk:
    """A plain text segment."""

    text: str = ""


@dataclass(frozen=True, slots=True)
class ThinkChunk:
    """A reasoning segment emitted by (or sent to) reasoning-capable models."""

    thinking: tuple[Chunk, ...] = ()
    closed: bool = True


Chunk = TextChunk | ThinkChunk


def extract_all_text(chunks: Sequence[Chunk]) -> str:
    """Concatenate every text segment, descending into thinking segments."""
    out: list[str] = []
    for chunk in chunks:
        match chunk:
            case TextChunk(text=text):
                out.append(text)
            case ThinkChunk(thinking=inner):
                out.append(extract_all_text(inner))
    return "".join(out)


def extract_answer_text(chunks: Sequence[Chunk]) -> str:
    """Concatenate top-level text segments only (thinking is excluded)."""
    return "".join(c.text for c in chunks if isinstance(c, TextChunk))


def extract_thinking_text(chunks: Sequence[Chunk]) -> str:
    """Concatenate the text found inside thinking segments."""
    return "".join(
        extract_all_text(c.thinking) for c in chunks if isinstance(c, ThinkChunk)
    )


def chunk_to_wire(chunk: Chunk) -> dict[str, Any]:
    match chunk:
        case TextChunk(text=text):
            return {"type": "text", "text": text}
        case ThinkChunk(thinking=inner, closed=closed):
            return {
                "type": "thinking",
                "thinking": [chunk_to_wire(c) for c in inner],
                "closed": closed,
            }


def chunk_from_wire(data: dict[str, Any]) -> Chunk | None:
    """Parse one typed chunk dict; unknown chunk types return None."""
    kind = data.get("type")
    if kind == "text":
        text = data.get("text")
        return TextChunk(text if isinstance(text, str) else "")
    if kind == "thinking":
        raw = data.get("thinking")
        inner: list[Chunk] = []
        if isinstance(raw, list):
            for item in raw:
                if isinstance(item, dict) and (parsed := chunk_from_wire(item)):
                    inner.append(parsed)
        elif isinstance(raw, str):
            inner.append(TextChunk(raw))
        return ThinkChunk(tuple(inner), closed=bool(data.get("closed", True)))
    return None


# --- Message content: tagged union ---


@dataclass(frozen=True, slots=True)
class PlainText:
    """Message content given as a single string."""

    text: str


@dataclass(frozen=True, slots=True)
class Segments:
    """Message content given as an ordered list of typed segments."""

    chunks: tuple[Chunk, ...]


Content = PlainText | Segments


def as_content(value: str | Sequence[Chunk] | Content) -> Content:
    """Lift a string or chunk sequence into the ``Content`` union."""
    if isinstance(value, (PlainText, Segments)):
        return value
    if isinstance(value, str):
        return PlainText(value)
    return Segments(tuple(value))


def content_text(content: Content) -> str:
    """Return the answer text of *content* (thinking segments excluded)."""
    match content:
        case PlainText(text=text):
            return text
        case Segments(chunks=chunks):
            return extract_answer_text(chunks)


def content_is_empty(content: Content) -> bool:
    match content:
        case PlainText(text=text):
            return not text.strip()
        case Segments(chunks=chunks):
            return len(chunks) == 0


def content_to_wire(content: Content) -> str | list[dict[str, Any]]:
    match content:
        case PlainText(text=text):
            return text
        case Segments(chunks=chunks):
            return [chunk_to_wire(c) for c in chunks]


# --- Messages and requests ---


@dataclass(frozen=True)
class Message:
    """A single conversational turn.

    ``role`` is kept as a plain string so that unrecognised roles can be
    reported by the validator instead of failing at construction time.
    """

    role: str
    content: Content = field(default_factory=lambda: PlainText(""))
    tool_call_id: str | None = None
    name: str | None = None
    prefix: bool = False

    @classmethod
    def system(cls, content: str | Sequence[Chunk]) -> Message:
        return cls(Role.SYSTEM, as_content(content))

    @classmethod
    def user(cls, content: str | Sequence[Chunk]) -> Message:
        return cls(Role.USER, as_content(content))

    @classmethod
    def assistant(cls, content: str, *, prefix: bool = False) -> Message:
        return cls(Role.ASSISTANT, as_content(content), prefix=prefix)

    @classmethod
    def tool(cls, tool_call_id: str, content: str, name: str | None = None) -> Message:
        return cls(Role.TOOL, as_content(content), tool_call_id=tool_call_id, name=name)

    @property
    def text(self) -> str:
        """Answer text of the message content."""
        return content_text(self.content)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "role": str(self.role),
            "content": content_to_wire(self.content),
        }
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            payload["name"] = self.name
        if self.prefix:
            payload["prefix"] = True
        return payload


@dataclass(frozen=True, slots=True)
class JsonSchema:
    """A named JSON schema for structured output."""

    name: str
    schema: dict[str, Any]
    description: str | None = None
    strict: bool = True


@dataclass(frozen=True, slots=True)
class ResponseFormat:
    """Response-format directive (``text``, ``json_object`` or ``json_schema``)."""

    type: str = "text"
    json_schema: JsonSchema | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.json_schema is not None:
            schema: dict[str, Any] = {
                "name": self.json_schema.name,
                "schema": self.json_schema.schema,
                "strict": self.json_schema.strict,
            }
            if self.json_schema.description is not None:
                schema["description"] = self.json_schema.description
            payload["json_schema"] = schema
        return payload


@dataclass(frozen=True)
class ChatRequest:
    """A chat-completion request.

    Optional tunables left as None are omitted from the wire payload.
    """

    model: str
    messages: tuple[Message, ...] = ()
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    n: int | None = None
    stop: str | tuple[str, ...] | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    response_format: ResponseFormat | None = None
    safe_prompt: bool = False
    random_seed: int | None = None
    stream: bool = False
    prompt_mode: str | None = None

    def __post_init__(self) -> None:
        # Accept lists for convenience; store tuples so the value stays frozen.
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, "messages", tuple(self.messages))
        if isinstance(self.stop, list):
            object.__setattr__(self, "stop", tuple(self.stop))

    def with_stop(self, *stops: str) -> ChatRequest:
        return replace(self, stop=stops[0] if len(stops) == 1 else tuple(stops))

    def as_json(self) -> ChatRequest:
        return replace(self, response_format=ResponseFormat(type="json_object"))

    def as_json_schema(self, schema: JsonSchema) -> ChatRequest:
        return replace(
            self, response_format=ResponseFormat(type="json_schema", json_schema=schema)
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body for ``POST /chat/completions``."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_payload() for m in self.messages],
        }
        optional: dict[str, Any] = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
            "n": self.n,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
            "random_seed": self.random_seed,
            "prompt_mode": self.prompt_mode,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        if self.stop is not None:
            payload["stop"] = self.stop if isinstance(self.stop, str) else list(self.stop)
        if self.response_format is not None:
            payload["response_format"] = self.response_format.to_payload()
        if self.safe_prompt:
            payload["safe_prompt"] = True
        if self.stream:
            payload["stream"] = True
        return payload


REASONING_PROMPT_MODE = "reasoning"


def default_reasoning_system_prompt() -> tuple[Chunk, ...]:
    """Return the segmented system prompt recommended for reasoning models."""
    return (
        TextChunk(
            "# HOW YOU SHOULD THINK AND ANSWER\n\n"
            "First draft your thinking process (inner monologue) until you arrive "
            "at a response. Format your response using Markdown, and use LaTeX for "
            "any mathematical equations. Write both your thoughts and the response "
            "in the same language as the input.\n\n"
            "Your thinking process must follow the template below:"
        ),
        ThinkChunk(
            (
                TextChunk(
                    "Your thoughts or/and draft, like working through an exercise "
                    "on scratch paper. Be as casual and as long as you want until "
                    "you are confident to generate the response to the user."
                ),
            )
        ),
        TextChunk("Here, provide a self-contained response."),
    )


def reasoning_request(
    model: str, user_message: str, *, use_default_prompt: bool = True
) -> ChatRequest:
    """Build a ``prompt_mode="reasoning"`` request for a reasoning model."""
    if not model or not model.strip():
        raise ValueError("model is required")
    if not user_message or not user_message.strip():
        raise ValueError("user_message is required")

    messages: list[Message] = []
    if use_default_prompt:
        messages.append(Message.system(default_reasoning_system_prompt()))
    messages.append(Message.user(user_message))
    return ChatRequest(
        model=model, messages=tuple(messages), prompt_mode=REASONING_PROMPT_MODE
    )
