"""Orchestration transport — JSON messages between the coordinator and a remote compute backend.

Every message is a JSON object ``{"type": <event>, "data": <payload>}`` sent
as a WebSocket text frame. Decoding is typed and total: every known field has
an explicit default, and messages that cannot be parsed at all are dropped.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from conductor.errors import TransportError
from conductor.models import AIResponse, OrchestrationProgress, clamp_unit

logger = logging.getLogger("conductor.transport")

# Outbound
START_AI_STREAM = "start_ai_stream"
PING = "ping"

# Inbound
INDIVIDUAL_RESPONSE = "individual_response"
ORCHESTRATION_PROGRESS = "orchestration_progress"
SYNTHESIS_COMPLETE = "synthesis_complete"
STREAM_CHUNK = "stream_chunk"
STREAMING_COMPLETED = "streaming_completed"
ORCHESTRATION_ERROR = "orchestration_error"
PONG = "pong"
DISCONNECT = "disconnect"

DEFAULT_CONFIDENCE = 0.8
DEFAULT_RESPONSE_TIME_MS = 1000
# Upper bound for response_time_ms (one day)
MAX_RESPONSE_TIME_MS = 86_400_000
UNKNOWN_MODEL = "unknown"


@dataclass(frozen=True)
class TransportEvent:
    type: str
    data: Any = None


@dataclass(frozen=True)
class StreamChunk:
    model: str
    chunk: str = ""
    buffer: str = ""
    is_complete: bool = False


class Transport(Protocol):
    """A message-oriented connection to one backend."""

    @property
    def connected(self) -> bool: ...

    async def connect(self, host: str, port: int, timeout: float) -> None:
        """Open the connection. Raises TransportError on failure."""
        ...

    async def send(self, event: str, data: dict[str, Any]) -> None:
        """Send one message. Raises TransportError on failure."""
        ...

    def receive(self) -> AsyncIterator[TransportEvent]:
        """Yield decoded inbound events until the connection ends."""
        ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """Transport over a plain WebSocket using the ``websockets`` client."""

    def __init__(self, path: str = "", secure: bool = False):
        self.path = path
        self.scheme = "wss" if secure else "ws"
        self._conn: Any = None
        self.close_reason: str = ""

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def url(self, host: str, port: int) -> str:
        return f"{self.scheme}://{host}:{port}{self.path}"

    async def connect(self, host: str, port: int, timeout: float) -> None:
        import websockets

        uri = self.url(host, port)
        try:
            self._conn = await websockets.connect(uri, open_timeout=timeout)
        except Exception as e:
            self._conn = None
            raise TransportError(f"Could not connect to {uri}: {e}") from e
        logger.debug(f"WebSocket open: {uri}")

    async def send(self, event: str, data: dict[str, Any]) -> None:
        if self._conn is None:
            raise TransportError("Transport is not connected")
        try:
            await self._conn.send(encode_event(event, data))
        except Exception as e:
            raise TransportError(f"Failed to send {event}: {e}") from e

    async def receive(self) -> AsyncIterator[TransportEvent]:
        from websockets.exceptions import ConnectionClosed

        conn = self._conn
        if conn is None:
            return
        try:
            async for raw in conn:
                event = decode_event(raw)
                if event is not None:
                    yield event
        except ConnectionClosed as e:
            self.close_reason = str(e)
        finally:
            self._conn = None
        yield TransportEvent(DISCONNECT, self.close_reason or "connection closed")

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            try:
                await conn.close()
            except Exception as e:
                logger.debug(f"Error while closing WebSocket: {e}")


# ============================================================
# Encoding / decoding
# ============================================================

def encode_event(event: str, data: dict[str, Any]) -> str:
    return json.dumps({"type": event, "data": data}, default=str)


def decode_event(raw: str | bytes) -> TransportEvent | None:
    """Decode one inbound frame. Returns None (and logs) for anything unparsable."""
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        message = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Dropping unparsable message: {e}")
        return None

    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        logger.warning(f"Dropping message without a type: {str(message)[:120]}")
        return None

    if "data" in message:
        data = message["data"]
    else:
        data = {k: v for k, v in message.items() if k != "type"}
    return TransportEvent(message["type"], data)


def _first_str(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def _as_number(value: Any) -> float | None:
    """Finite float from a number or numeric string; None for anything else (NaN and inf included)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, str)):
        try:
            number = float(value)
        except (ValueError, OverflowError):
            return None
        return number if math.isfinite(number) else None
    return None


def _as_int(value: Any, default: int) -> int:
    number = _as_number(value)
    return int(number) if number is not None else default


def _as_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    number = _as_number(value)
    if number is not None and number > 0:
        try:
            # JavaScript backends send epoch milliseconds
            return datetime.fromtimestamp(number / 1000 if number > 1e11 else number)
        except (OverflowError, OSError, ValueError):
            pass
    return datetime.now()


def decode_ai_response(data: Any) -> AIResponse | None:
    """Map an ``individual_response`` payload. Missing fields get defaults; non-objects are dropped."""
    if not isinstance(data, dict):
        return None
    response_ms = _as_number(data.get("response_time_ms"))
    if response_ms is None:
        response_ms = DEFAULT_RESPONSE_TIME_MS
    return AIResponse(
        model_name=_first_str(data, "model_name", "model") or UNKNOWN_MODEL,
        content=_first_str(data, "content", "response"),
        confidence=clamp_unit(data.get("confidence"), default=DEFAULT_CONFIDENCE),
        response_time=timedelta(milliseconds=min(max(response_ms, 0), MAX_RESPONSE_TIME_MS)),
        timestamp=_as_timestamp(data.get("timestamp")),
    )


def decode_progress(data: Any) -> OrchestrationProgress | None:
    if not isinstance(data, dict):
        return None
    total = max(_as_int(data.get("total_models"), 1), 0)
    completed = _as_int(data.get("completed_models"), 0)
    progress = _as_number(data.get("overall_progress"))
    if progress is None:
        progress = completed / total if total else 0.0
    return OrchestrationProgress(
        completed_models=completed,
        total_models=total,
        current_phase=_first_str(data, "current_phase") or "processing",
        overall_progress=progress,
    )


def decode_synthesis(data: Any) -> str:
    """First non-empty of ``synthesis``, ``final_response`` or ``finalResponse``."""
    if isinstance(data, str):
        return data
    if not isinstance(data, dict):
        return ""
    return _first_str(data, "synthesis", "final_response", "finalResponse")


def decode_chunk(data: Any) -> StreamChunk | None:
    if not isinstance(data, dict):
        return None
    chunk = data.get("chunk")
    buffer = data.get("buffer")
    return StreamChunk(
        model=_first_str(data, "model", "model_name") or UNKNOWN_MODEL,
        chunk=chunk if isinstance(chunk, str) else "",
        buffer=buffer if isinstance(buffer, str) else "",
        is_complete=data.get("isComplete") is True or data.get("is_complete") is True,
    )
