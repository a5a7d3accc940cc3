"""Server-sent event decoding: lines in, typed events out, one at a time."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
import json

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from tramontane.errors import RequestCancelledError
from tramontane.streaming import (
    CancelToken,
    ChatEventMapper,
    ContentDelta,
    Done,
    MetadataDelta,
    SegmentDelta,
    StreamAccumulator,
    TranscriptionEventMapper,
    UsageEvent,
    adecode_stream,
    decode_bytes,
    decode_stream,
    iter_lines,
    parse_data_line,
)
from tests.helpers import chunk_payload, sse

pytestmark = pytest.mark.unit


def _lines(text: str) -> list[str]:
    return text.splitlines()


def test_single_token_stream() -> None:
    raw = sse(chunk_payload("Hi", role="assistant", finish_reason="stop"))

    events = list(decode_bytes(raw))

    assert events == [
        MetadataDelta(id="cmpl-1", model="mistral-small-latest", role="assistant"),
        ContentDelta("Hi"),
        Done("stop"),
    ]


def test_bare_content_chunk_yields_exactly_one_delta() -> None:
    raw = b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n\n'

    assert list(decode_bytes(raw)) == [ContentDelta("Hi")]


def test_text_concatenates_across_chunks() -> None:
    raw = sse(
        chunk_payload("Hel", role="assistant"),
        chunk_payload("lo"),
        chunk_payload("!", finish_reason="stop"),
    )

    result = StreamAccumulator().consume(decode_bytes(raw))

    assert result.content == "Hello!"
    assert result.finish_reason == "stop"
    assert result.id == "cmpl-1"
    assert result.model == "mistral-small-latest"


def test_metadata_is_emitted_once() -> None:
    raw = sse(chunk_payload("a", role="assistant"), chunk_payload("b"))

    metadata = [e for e in decode_bytes(raw) if isinstance(e, MetadataDelta)]

    assert len(metadata) == 1


def test_malformed_line_in_the_middle_is_skipped() -> None:
    raw = sse(chunk_payload("A"), "{not json", chunk_payload("B"))

    texts = [e.text for e in decode_bytes(raw) if isinstance(e, ContentDelta)]

    assert texts == ["A", "B"]


def test_payload_with_unknown_shape_is_skipped() -> None:
    raw = sse(chunk_payload("A"), {"choices": "nope"}, [1, 2], chunk_payload("B"))

    texts = [e.text for e in decode_bytes(raw) if isinstance(e, ContentDelta)]

    assert texts == ["A", "B"]


def test_non_data_lines_are_ignored() -> None:
    lines = [
        ": keep-alive",
        "event: message",
        "",
        "id: 7",
        f"data: {json.dumps(chunk_payload('x'))}",
        "data: [DONE]",
    ]

    texts = [e.text for e in decode_stream(lines) if isinstance(e, ContentDelta)]

    assert texts == ["x"]


def test_done_sentinel_stops_decoding() -> None:
    lines = [
        f"data: {json.dumps(chunk_payload('before'))}",
        "data: [DONE]",
        f"data: {json.dumps(chunk_payload('after'))}",
    ]

    texts = [e.text for e in decode_stream(lines) if isinstance(e, ContentDelta)]

    assert texts == ["before"]


def test_usage_after_finish_reason_is_still_delivered() -> None:
    usage = {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}
    raw = sse(
        chunk_payload("Hi", finish_reason="stop"),
        {"id": "cmpl-1", "choices": [], "usage": usage},
    )

    events = list(decode_bytes(raw))

    assert events[-1] == UsageEvent(3, 4, 7)
    assert Done("stop") in events


def test_end_of_input_without_sentinel_ends_cleanly() -> None:
    raw = sse(chunk_payload("partial"), done=False)

    texts = [e.text for e in decode_bytes(raw) if isinstance(e, ContentDelta)]

    assert texts == ["partial"]


def test_null_content_yields_empty_delta() -> None:
    payload = chunk_payload(role="assistant")

    events = list(decode_bytes(sse(payload)))

    assert ContentDelta("") in events


def test_thinking_segments_are_split_from_answer_text() -> None:
    payload = chunk_payload()
    payload["choices"][0]["delta"]["content"] = [
        {"type": "thinking", "thinking": [{"type": "text", "text": "hmm"}]},
        {"type": "text", "text": "yes"},
    ]

    result = StreamAccumulator().consume(decode_bytes(sse(payload)))

    assert result.content == "yes"
    assert result.thinking == "hmm"


def test_decoder_is_lazy() -> None:
    pulled: list[str] = []

    def source() -> Iterator[str]:
        for line in _lines(sse(chunk_payload("one"), chunk_payload("two"))):
            pulled.append(line)
            yield line

    events = decode_stream(source())
    first = next(events)

    assert isinstance(first, MetadataDelta)
    assert len(pulled) == 1


def test_cancellation_before_next_line_raises() -> None:
    token = CancelToken()
    events = decode_stream(
        _lines(sse(chunk_payload("one"), chunk_payload("two"))), cancel=token
    )

    seen = [next(events), next(events)]
    token.cancel()

    assert token.cancelled
    assert isinstance(seen[1], ContentDelta)
    with pytest.raises(RequestCancelledError):
        next(events)


def test_cancelled_token_stops_before_first_line() -> None:
    token = CancelToken()
    token.cancel()

    with pytest.raises(RequestCancelledError):
        list(decode_bytes(sse(chunk_payload("x")), cancel=token))


def test_source_errors_propagate() -> None:
    def broken() -> Iterator[str]:
        yield f"data: {json.dumps(chunk_payload('x'))}"
        raise ConnectionResetError("peer went away")

    with pytest.raises(ConnectionResetError):
        list(decode_stream(broken()))


def test_multiple_choices_yield_indexed_deltas() -> None:
    payload = {
        "id": "c",
        "choices": [
            {"index": 0, "delta": {"content": "a"}},
            {"index": 1, "delta": {"content": "b"}, "finish_reason": "length"},
        ],
    }

    events = list(decode_bytes(sse(payload)))

    assert ContentDelta("a", index=0) in events
    assert ContentDelta("b", index=1) in events
    assert Done("length", index=1) in events


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("", None),
        ("   ", None),
        (": comment", None),
        ("data:[DONE]", None),
        ('data: "just a string"', None),
        ("data: {broken", None),
        ('data: {"a": 1}', {"a": 1}),
        (b'data: {"a": 1}\r\n', {"a": 1}),
    ],
)
def test_parse_data_line(line: str | bytes, expected: object) -> None:
    assert parse_data_line(line) == expected


def test_parse_data_line_recognises_sentinel() -> None:
    parsed = parse_data_line("data: [DONE]")
    assert parsed is not None
    assert not isinstance(parsed, dict)


# --- Line splitting ---


def test_iter_lines_reassembles_split_chunks() -> None:
    chunks = [b"data: {\"a\"", b": 1}\n\nda", b"ta: [DONE]\n"]
    assert list(iter_lines(chunks)) == ['data: {"a": 1}', "", "data: [DONE]"]


def test_iter_lines_handles_crlf_and_trailing_partial() -> None:
    assert list(iter_lines(["a\r\nb\r\n", "c"])) == ["a", "b", "c"]


def test_iter_lines_keeps_multibyte_characters_split_across_chunks() -> None:
    encoded = "data: café\n".encode()
    split = encoded.index(b"\xa9")
    chunks = [encoded[:split], encoded[split:]]

    assert list(iter_lines(chunks)) == ["data: café"]


@settings(max_examples=50)
@given(st.lists(st.integers(min_value=1, max_value=40), min_size=1, max_size=10))
def test_chunk_boundaries_do_not_change_events(cuts: list[int]) -> None:
    raw = sse(
        chunk_payload("Héllo ", role="assistant"),
        chunk_payload("wörld", finish_reason="stop"),
    ).encode()
    pieces: list[bytes] = []
    rest = raw
    for cut in cuts:
        pieces.append(rest[:cut])
        rest = rest[cut:]
    pieces.append(rest)

    expected = list(decode_bytes(raw))
    assert list(decode_stream(iter_lines(pieces))) == expected


# --- Transcription ---


def test_transcription_stream() -> None:
    raw = sse(
        {"type": "transcription.language", "audio_language": "fr"},
        {"type": "transcription.text.delta", "text": "Bonjour"},
        {
            "event": "transcription.segment",
            "data": {
                "type": "transcription.segment",
                "text": "Bonjour",
                "start": 0.0,
                "end": 1.2,
            },
        },
        {
            "type": "transcription.done",
            "model": "voxtral-mini-latest",
            "text": "Bonjour",
            "language": "fr",
            "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3},
        },
        {"type": "transcription.unknown"},
    )

    events = list(decode_bytes(raw, mapper=TranscriptionEventMapper()))

    assert events == [
        MetadataDelta(language="fr"),
        ContentDelta("Bonjour"),
        SegmentDelta("Bonjour", 0.0, 1.2),
        MetadataDelta(model="voxtral-mini-latest", language="fr"),
        UsageEvent(1, 2, 3),
        Done("stop"),
    ]


# --- Accumulation ---


def test_accumulator_passes_events_through() -> None:
    acc = StreamAccumulator()
    event = ContentDelta("x")

    assert acc.add(event) is event
    assert acc.result.event_count == 1


def test_accumulator_records_usage() -> None:
    usage = {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2}
    raw = sse(chunk_payload("x", finish_reason="stop", usage=usage))

    result = StreamAccumulator().consume(decode_bytes(raw, mapper=ChatEventMapper()))

    assert result.usage == UsageEvent(1, 1, 2)
    assert result.event_count == 4


# --- Async ---


async def _aiter(lines: list[str]) -> AsyncIterator[str]:
    for line in lines:
        yield line


@pytest.mark.asyncio
async def test_async_decoder_matches_sync_decoder() -> None:
    lines = _lines(
        sse(
            chunk_payload("Hi", role="assistant"),
            "garbage",
            chunk_payload(" there", finish_reason="stop"),
        )
    )

    events = [e async for e in adecode_stream(_aiter(lines))]

    assert events == list(decode_stream(lines))


@pytest.mark.asyncio
async def test_async_decoder_honours_cancel_token() -> None:
    token = CancelToken()
    lines = _lines(sse(chunk_payload("one"), chunk_payload("two")))
    seen: list[object] = []

    with pytest.raises(RequestCancelledError):
        async for event in adecode_stream(_aiter(lines), cancel=token):
            seen.append(event)
            if isinstance(event, ContentDelta):
                token.cancel()

    assert [e for e in seen if isinstance(e, ContentDelta)] == [ContentDelta("one")]
