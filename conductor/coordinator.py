"""OrchestrationCoordinator — fans a prompt out to N model backends and aggregates their answers.

Connected: the request goes to the backend as ``start_ai_stream`` and
answers arrive as transport events. Not connected: a local demo simulation
produces staggered per-model answers and a synthesis.

Results are republished on the ``responses`` channel (the full, immutable
list of per-model answers) and on ``synthesis`` and ``progress``. The
``connection`` channel carries connection state changes.

Usage:
    coordinator = OrchestrationCoordinator()
    if not await coordinator.connect():
        ...  # demo mode
    coordinator.synthesis.subscribe(print)
    await coordinator.orchestrate_ai_request("Explain CRDTs", ["claude", "gpt"], Strategy.PARALLEL)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from functools import partial
from typing import Any

from nfo.decorators import log_call

from conductor.channels import BroadcastChannel
from conductor.demo import DemoStep, build_plan, demo_response, demo_synthesis
from conductor.errors import CoordinatorDisposedError
from conductor.models import (
    AIResponse,
    ConnectionState,
    CoordinatorConfig,
    OrchestrationProgress,
    OrchestrationRequest,
    Strategy,
)
from conductor.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler
from conductor.transport import (
    DISCONNECT,
    INDIVIDUAL_RESPONSE,
    ORCHESTRATION_ERROR,
    ORCHESTRATION_PROGRESS,
    PING,
    PONG,
    START_AI_STREAM,
    STREAM_CHUNK,
    STREAMING_COMPLETED,
    SYNTHESIS_COMPLETE,
    Transport,
    WebSocketTransport,
    decode_ai_response,
    decode_chunk,
    decode_progress,
    decode_synthesis,
)

logger = logging.getLogger("conductor.coordinator")


class OrchestrationCoordinator:
    """Owns the backend connection and the per-call aggregation state.

    One orchestration is active at a time: a new request cancels pending
    demo work and resets responses, synthesis and chunk buffers.
    """

    def __init__(
        self,
        config: CoordinatorConfig | None = None,
        transport_factory: Callable[[], Transport] | None = None,
        scheduler: Scheduler | None = None,
    ):
        self.config = config or CoordinatorConfig()
        self._transport_factory = transport_factory or WebSocketTransport
        self.scheduler = scheduler or AsyncioScheduler()

        self.responses: BroadcastChannel[tuple[AIResponse, ...]] = BroadcastChannel("orchestration.responses")
        self.synthesis: BroadcastChannel[str] = BroadcastChannel("orchestration.synthesis")
        self.progress: BroadcastChannel[OrchestrationProgress] = BroadcastChannel("orchestration.progress")
        self.connection: BroadcastChannel[ConnectionState] = BroadcastChannel("orchestration.connection")

        self._transport: Transport | None = None
        self._receive_task: asyncio.Task | None = None
        self._background: set[asyncio.Future] = set()
        self._state = ConnectionState.DISCONNECTED
        self._endpoint: tuple[str, int] | None = None
        self._disposed = False
        self.connection_attempts: list[tuple[str, int]] = []

        self._request: OrchestrationRequest | None = None
        self._responses: list[AIResponse] = []
        self._synthesized: str | None = None
        self._strategy = Strategy.PARALLEL
        self._last_progress: OrchestrationProgress | None = None
        self._chunk_buffers: dict[str, list[str]] = {}
        self._chunk_started: dict[str, datetime] = {}
        self._demo_handles: list[ScheduledHandle] = []

        self._handlers: dict[str, Callable[[Any], None]] = {
            INDIVIDUAL_RESPONSE: self._on_individual_response,
            ORCHESTRATION_PROGRESS: self._on_progress,
            SYNTHESIS_COMPLETE: self._on_synthesis,
            STREAMING_COMPLETED: self._on_synthesis,
            STREAM_CHUNK: self._on_stream_chunk,
            ORCHESTRATION_ERROR: self._on_error,
            PONG: self._on_pong,
            DISCONNECT: self._on_disconnect,
        }

    # ------------------------------------------------------------------
    # read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def endpoint(self) -> tuple[str, int] | None:
        return self._endpoint

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def individual_responses(self) -> tuple[AIResponse, ...]:
        return tuple(self._responses)

    @property
    def synthesized_response(self) -> str | None:
        return self._synthesized

    @property
    def current_strategy(self) -> Strategy:
        return self._strategy

    @property
    def current_request(self) -> OrchestrationRequest | None:
        return self._request

    @property
    def last_progress(self) -> OrchestrationProgress | None:
        return self._last_progress

    # ------------------------------------------------------------------
    # connection
    # ------------------------------------------------------------------

    async def connect(self, host: str | None = None, port: int | None = None) -> bool:
        """Connect to an explicit ``host:port`` or discover one among the default ports.

        Returns False when nothing answers; never raises for a failed discovery.
        """
        self._ensure_usable()
        if self._transport is not None:
            await self.disconnect()

        host = host or self.config.host
        ports = [port] if port is not None else list(self.config.ports)
        self.connection_attempts = []
        self._set_state(ConnectionState.CONNECTING)

        for candidate in ports:
            self.connection_attempts.append((host, candidate))
            transport = self._transport_factory()
            try:
                await transport.connect(host, candidate, self.config.connect_timeout)
            except Exception as e:
                logger.debug(f"No backend at {host}:{candidate}: {e}")
                continue

            if self._disposed:
                await transport.close()
                return False

            self._transport = transport
            self._endpoint = (host, candidate)
            self._set_state(ConnectionState.CONNECTED)
            self._receive_task = asyncio.create_task(self._receive_loop(transport))
            logger.info(f"Connected to orchestration backend at {host}:{candidate}")
            await self._ping(transport)
            return True

        tried = ", ".join(f"{h}:{p}" for h, p in self.connection_attempts)
        logger.warning(f"No orchestration backend reachable ({tried}); using local simulation")
        self._set_state(ConnectionState.DISCONNECTED)
        return False

    async def disconnect(self) -> None:
        """Close the connection. Safe to call repeatedly or when never connected."""
        transport, self._transport = self._transport, None
        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Receive loop ended with {e}")
        if transport is not None:
            await transport.close()
            logger.info("Disconnected from orchestration backend")
        self._endpoint = None
        if self._state != ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # orchestration
    # ------------------------------------------------------------------

    @log_call
    async def orchestrate_ai_request(
        self,
        prompt: str,
        selected_models: list[str],
        strategy: Strategy | str = Strategy.PARALLEL,
        weights: dict[str, float] | None = None,
        conversation_id: str | None = None,
    ) -> OrchestrationRequest:
        """Start one orchestration run, remote when connected, simulated otherwise."""
        self._ensure_usable()
        fields: dict[str, Any] = {
            "prompt": prompt,
            "selected_models": list(dict.fromkeys(selected_models)),
            "strategy": Strategy(strategy),
            "model_weights": dict(weights or {}),
        }
        if conversation_id:
            fields["conversation_id"] = conversation_id
        request = OrchestrationRequest(**fields)
        self._reset(request)

        transport = self._transport
        if self.is_connected and transport is not None:
            try:
                await transport.send(START_AI_STREAM, request.to_payload())
            except Exception as e:
                logger.warning(f"Failed to send orchestration request, switching to simulation: {e}")
                await self.disconnect()
            else:
                logger.info(
                    f"Orchestration request sent: {', '.join(request.selected_models)} "
                    f"({request.strategy.value})"
                )
                return request

        if request is self._request:
            self._start_demo(request)
        return request

    start_ai_stream = orchestrate_ai_request

    def handle_event(self, event_type: str, data: Any) -> None:
        """Route one inbound transport event. Never raises."""
        if self._disposed:
            return
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.debug(f"Ignoring unknown event type: {event_type}")
            return
        if self._is_stale(data):
            logger.debug(f"Dropping {event_type} for a previous conversation")
            return
        try:
            handler(data)
        except Exception as e:
            logger.warning(f"Dropped malformed {event_type} event: {e}")

    async def dispose(self) -> None:
        """Cancel timers, close the connection and all channels. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self._cancel_demo()
        self.scheduler.cancel_all()
        await self.disconnect()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self.responses.close()
        self.synthesis.close()
        self.progress.close()
        self.connection.close()
        logger.debug("Coordinator disposed")

    # ------------------------------------------------------------------
    # demo simulation
    # ------------------------------------------------------------------

    def _start_demo(self, request: OrchestrationRequest) -> None:
        plan = build_plan(
            request.selected_models,
            base_delay=self.config.demo_base_delay,
            stagger=self.config.demo_stagger,
        )
        logger.info(f"Simulating orchestration of {len(plan)} models")
        for step in plan:
            self._demo_handles.append(
                self.scheduler.call_later(step.delay, partial(self._demo_step, request, step, len(plan)))
            )
        finish_at = (plan[-1].delay if plan else 0.0) + self.config.demo_synthesis_delay
        self._demo_handles.append(
            self.scheduler.call_later(finish_at, partial(self._demo_finish, request))
        )

    def _demo_step(self, request: OrchestrationRequest, step: DemoStep, total: int) -> None:
        if self._disposed or request is not self._request:
            return
        self._upsert(demo_response(step, request.prompt))
        self._emit_progress(
            OrchestrationProgress(
                completed_models=step.index + 1,
                total_models=total,
                current_phase=f"Processing {step.model}",
                overall_progress=(step.index + 1) / total,
            )
        )

    def _demo_finish(self, request: OrchestrationRequest) -> None:
        if self._disposed or request is not self._request:
            return
        total = len(request.selected_models)
        self._store_synthesis(demo_synthesis(request.prompt, list(self._responses), self._strategy))
        self._emit_progress(
            OrchestrationProgress(
                completed_models=total,
                total_models=total,
                current_phase="Synthesis complete",
                overall_progress=1.0,
            )
        )
        logger.info("Demo orchestration completed")

    def _cancel_demo(self) -> None:
        for handle in self._demo_handles:
            handle.cancel()
        self._demo_handles.clear()

    # ------------------------------------------------------------------
    # event handlers
    # ------------------------------------------------------------------

    def _on_individual_response(self, data: Any) -> None:
        response = decode_ai_response(data)
        if response is None:
            logger.warning("Dropping individual_response without an object payload")
            return
        self._upsert(response)
        logger.debug(f"Response from {response.model_name}: {len(response.content)} chars")

    def _on_progress(self, data: Any) -> None:
        progress = decode_progress(data)
        if progress is not None:
            self._emit_progress(progress)

    def _on_synthesis(self, data: Any) -> None:
        text = decode_synthesis(data)
        if text:
            self._store_synthesis(text)
            logger.info(f"Synthesis complete: {len(text)} chars")

    def _on_stream_chunk(self, data: Any) -> None:
        chunk = decode_chunk(data)
        if chunk is None:
            return
        buffer = self._chunk_buffers.setdefault(chunk.model, [])
        self._chunk_started.setdefault(chunk.model, datetime.now())
        if chunk.chunk:
            buffer.append(chunk.chunk)
        if not chunk.is_complete:
            return

        content = chunk.buffer or "".join(buffer)
        started = self._chunk_started.pop(chunk.model, datetime.now())
        self._chunk_buffers.pop(chunk.model, None)
        self._upsert(
            AIResponse(
                model_name=chunk.model,
                content=content,
                response_time=datetime.now() - started,
            )
        )

    def _on_error(self, data: Any) -> None:
        message = data.get("message", "Unknown error") if isinstance(data, dict) else str(data)
        code = data.get("code") if isinstance(data, dict) else None
        logger.error(f"Orchestration error [{code}]: {message}")

    def _on_pong(self, data: Any) -> None:
        logger.debug("Pong received from backend")

    def _on_disconnect(self, data: Any) -> None:
        self._transport_lost(self._transport, str(data) if data else "disconnected")

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    async def _receive_loop(self, transport: Transport) -> None:
        try:
            async for event in transport.receive():
                if event.type == DISCONNECT:
                    self._transport_lost(transport, str(event.data))
                    return
                self.handle_event(event.type, event.data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Receive loop failed: {e}")
            self._transport_lost(transport, str(e))
            return
        self._transport_lost(transport, "stream ended")

    def _transport_lost(self, transport: Transport | None, reason: str) -> None:
        if transport is None or transport is not self._transport:
            return
        self._transport = None
        self._endpoint = None
        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        closing = asyncio.ensure_future(transport.close())
        self._background.add(closing)
        closing.add_done_callback(self._background.discard)
        logger.warning(f"Orchestration backend disconnected: {reason}")
        self._set_state(ConnectionState.DISCONNECTED)

    async def _ping(self, transport: Transport) -> None:
        try:
            await transport.send(PING, {"timestamp": datetime.now().isoformat()})
        except Exception as e:
            logger.debug(f"Ping failed: {e}")

    def _reset(self, request: OrchestrationRequest) -> None:
        self._cancel_demo()
        self._request = request
        self._responses = []
        self._synthesized = None
        self._strategy = request.strategy
        self._chunk_buffers.clear()
        self._chunk_started.clear()
        self._last_progress = OrchestrationProgress(
            completed_models=0,
            total_models=len(request.selected_models),
            current_phase="initializing",
            overall_progress=0.0,
        )

    def _is_stale(self, data: Any) -> bool:
        if not isinstance(data, dict) or self._request is None:
            return False
        conversation_id = data.get("conversation_id")
        return isinstance(conversation_id, str) and conversation_id != self._request.conversation_id

    def _upsert(self, response: AIResponse) -> None:
        """Replace the entry for the same model, or append a new one."""
        for i, existing in enumerate(self._responses):
            if existing.model_name == response.model_name:
                self._responses[i] = response
                break
        else:
            self._responses.append(response)
        if not self._disposed:
            self.responses.publish(tuple(self._responses))

    def _emit_progress(self, progress: OrchestrationProgress) -> None:
        self._last_progress = progress
        if not self._disposed:
            self.progress.publish(progress)

    def _store_synthesis(self, text: str) -> None:
        self._synthesized = text
        if not self._disposed:
            self.synthesis.publish(text)

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        if not self._disposed:
            self.connection.publish(state)

    def _ensure_usable(self) -> None:
        if self._disposed:
            raise CoordinatorDisposedError()
