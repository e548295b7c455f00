"""Tests for transport message encoding and tolerant payload decoding."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest

from conductor.errors import TransportError
from conductor.transport import (
    WebSocketTransport,
    decode_ai_response,
    decode_chunk,
    decode_event,
    decode_progress,
    decode_synthesis,
    encode_event,
)


class TestEnvelope:
    def test_encode(self):
        raw = encode_event("start_ai_stream", {"prompt": "hi", "models": ["gpt"]})
        assert json.loads(raw) == {"type": "start_ai_stream", "data": {"prompt": "hi", "models": ["gpt"]}}

    def test_decode(self):
        event = decode_event('{"type": "pong", "data": {"ok": true}}')
        assert event.type == "pong"
        assert event.data == {"ok": True}

    def test_decode_bytes_and_flat_payload(self):
        event = decode_event(b'{"type": "synthesis_complete", "synthesis": "done"}')
        assert event.type == "synthesis_complete"
        assert event.data == {"synthesis": "done"}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"data": {}}', '{"type": 5}', b"\xff\xfe"])
    def test_unparsable_dropped(self, raw):
        assert decode_event(raw) is None


class TestDecodeAIResponse:
    def test_full_payload(self):
        response = decode_ai_response({
            "model_name": "claude",
            "content": "Answer",
            "confidence": 0.93,
            "response_time_ms": 1500,
            "timestamp": "2024-05-01T12:00:00",
        })
        assert response.model_name == "claude"
        assert response.content == "Answer"
        assert response.confidence == 0.93
        assert response.response_time == timedelta(milliseconds=1500)
        assert response.timestamp == datetime(2024, 5, 1, 12, 0, 0)

    def test_alias_fields(self):
        response = decode_ai_response({"model": "gpt", "response": "Hi"})
        assert response.model_name == "gpt"
        assert response.content == "Hi"

    def test_defaults(self):
        response = decode_ai_response({"confidence": "high", "response_time_ms": "slow"})
        assert response.model_name == "unknown"
        assert response.content == ""
        assert response.confidence == 0.8
        assert response.response_time == timedelta(milliseconds=1000)

    def test_non_object_dropped(self):
        assert decode_ai_response("claude says hi") is None

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), "-inf", "1e400"])
    def test_non_finite_response_time_defaults(self, bad):
        response = decode_ai_response({"model_name": "claude", "content": "hello", "response_time_ms": bad})
        assert response.content == "hello"
        assert response.response_time == timedelta(milliseconds=1000)

    def test_huge_response_time_is_capped(self):
        response = decode_ai_response({"model_name": "claude", "content": "hello", "response_time_ms": 1e20})
        assert response.content == "hello"
        assert response.response_time == timedelta(days=1)

    def test_json_nan_and_infinity_decode(self):
        event = decode_event('{"type": "individual_response", "data": '
                             '{"model_name": "gpt", "content": "x", "confidence": NaN, "response_time_ms": 1e400}}')
        response = decode_ai_response(event.data)
        assert response.confidence == 0.8
        assert response.response_time == timedelta(milliseconds=1000)


class TestDecodeProgress:
    def test_full(self):
        progress = decode_progress({
            "completed_models": 2,
            "total_models": 4,
            "current_phase": "streaming",
            "overall_progress": 0.5,
        })
        assert (progress.completed_models, progress.total_models) == (2, 4)
        assert progress.current_phase == "streaming"
        assert progress.overall_progress == 0.5

    def test_computes_missing_progress(self):
        progress = decode_progress({"completed_models": 1, "total_models": 4})
        assert progress.overall_progress == 0.25
        assert progress.current_phase == "processing"

    def test_completed_never_exceeds_total(self):
        progress = decode_progress({"completed_models": 9, "total_models": 3, "overall_progress": 3})
        assert progress.completed_models == 3
        assert progress.overall_progress == 1.0

    def test_non_finite_counts_fall_back_per_field(self):
        progress = decode_progress({
            "completed_models": float("nan"),
            "total_models": 4,
            "current_phase": "streaming",
            "overall_progress": float("inf"),
        })
        assert progress.completed_models == 0
        assert progress.total_models == 4
        assert progress.current_phase == "streaming"
        assert progress.overall_progress == 0.0


class TestDecodeSynthesis:
    def test_first_non_empty(self):
        assert decode_synthesis({"synthesis": "", "final_response": "final"}) == "final"
        assert decode_synthesis({"finalResponse": "streamed"}) == "streamed"
        assert decode_synthesis({"synthesis": "s", "final_response": "f"}) == "s"

    def test_missing(self):
        assert decode_synthesis({}) == ""
        assert decode_synthesis(None) == ""


class TestDecodeChunk:
    def test_camel_and_snake_complete_flag(self):
        assert decode_chunk({"model": "gpt", "chunk": "a", "isComplete": True}).is_complete
        assert decode_chunk({"model": "gpt", "chunk": "a", "is_complete": True}).is_complete
        assert not decode_chunk({"model": "gpt", "chunk": "a"}).is_complete

    def test_bad_fields_default(self):
        chunk = decode_chunk({"chunk": 42, "buffer": None})
        assert chunk.model == "unknown"
        assert chunk.chunk == ""
        assert chunk.buffer == ""


class TestWebSocketTransport:
    def test_url(self):
        assert WebSocketTransport().url("localhost", 3001) == "ws://localhost:3001"
        assert WebSocketTransport(path="/ws", secure=True).url("h", 1) == "wss://h:1/ws"

    @pytest.mark.asyncio
    async def test_send_without_connection(self):
        with pytest.raises(TransportError):
            await WebSocketTransport().send("ping", {})

    @pytest.mark.asyncio
    async def test_receive_without_connection_is_empty(self):
        transport = WebSocketTransport()
        assert [event async for event in transport.receive()] == []
