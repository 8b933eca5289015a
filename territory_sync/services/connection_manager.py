"""Connection Manager — push-channel lifecycle: connect, authenticate, subscribe, heartbeat, reconnect, close.

Invariants:
    - State machine: DISCONNECTED → CONNECTING → CONNECTED → {DISCONNECTED (close or
      handshake rejection) | RECONNECTING → CONNECTING (transport drop)}
    - open() is a no-op unless DISCONNECTED; close() is safe anytime and always ends DISCONNECTED
    - A fresh credential is fetched immediately before every handshake attempt
    - Reconnect waits a fixed delay; no backoff, no jitter
    - A silent inbound side for heartbeat_incoming × HEARTBEAT_TOLERANCE forces RECONNECTING
    - Transport/handshake errors are reported (last_error + state listeners + log),
      never raised into caller code
    - An unparseable inbound frame is dropped with exactly one DecodeError report;
      the channel stays up
    - close() bounds the UNSUBSCRIBE/DISCONNECT goodbye, then cancels every timer
    - Inbound MESSAGE bodies go through one bounded FIFO queue with a single consumer;
      the consumer calls the one handler bound by on_event(), in arrival order

Design Decisions:
    - Supervisor task owns the reconnect loop; reader and outbound-heartbeat tasks are
      children, so close() cancels every timer by cancelling one task
    - Queue between reader and consumer: ordering and backpressure explicit, a slow
      handler stalls the reader instead of reordering (ADR: typed channel over callbacks)
    - Handler exceptions are logged and swallowed: one bad event must not stop delivery
"""

import asyncio
import logging
from typing import Awaitable, Callable

from territory_sync.core.domain_types import ConnectionState, RoomId
from territory_sync.core.errors import (
    DecodeError, ErrorContext, HandshakeRejectedError, TransportError,
)
from territory_sync.core.session_context import SessionContext
from territory_sync.infrastructure.stomp_frames import (
    HEARTBEAT, StompFrame, StompFrameError,
    connect_frame, disconnect_frame, negotiate_heartbeat, parse_frames,
    subscribe_frame, unsubscribe_frame,
)
from territory_sync.infrastructure.websocket_transport import Transport, TransportFactory

logger = logging.getLogger(__name__)

EventHandler = Callable[[str], None]
StateListener = Callable[[ConnectionState], None]
DecodeReporter = Callable[[DecodeError], None]
TokenProvider = Callable[[], Awaitable[str | None]]

_PREVIEW_CHARS = 200


class ConnectionManager:
    """Owns the push-channel transport for one room-scoped topic."""

    SUBSCRIPTION_ID = "sub-0"
    HEARTBEAT_TOLERANCE = 2

    def __init__(
        self,
        session: SessionContext,
        transport_factory: TransportFactory,
        token_provider: TokenProvider,
        *,
        host: str = "localhost",
        topic_template: str = "/topic/worlds/{room_id}",
        reconnect_delay_ms: int = 5000,
        heartbeat_incoming_ms: int = 4000,
        heartbeat_outgoing_ms: int = 4000,
        handshake_timeout_seconds: float = 10.0,
        inbox_max_size: int = 256,
        goodbye_timeout_seconds: float = 1.0,
        on_decode_error: DecodeReporter | None = None,
    ):
        self._session = session
        self._transport_factory = transport_factory
        self._token_provider = token_provider
        self._host = host
        self._topic_template = topic_template
        self._reconnect_delay = reconnect_delay_ms / 1000
        self._heartbeat_incoming_ms = heartbeat_incoming_ms
        self._heartbeat_outgoing_ms = heartbeat_outgoing_ms
        self._handshake_timeout = handshake_timeout_seconds
        self._goodbye_timeout = goodbye_timeout_seconds
        self._on_decode_error = on_decode_error

        self._inbox: asyncio.Queue[str] = asyncio.Queue(maxsize=inbox_max_size)
        self._handler: EventHandler | None = None
        self._state_listeners: list[StateListener] = []

        self._state = ConnectionState.DISCONNECTED
        self._room_id: RoomId | None = None
        self._transport: Transport | None = None
        self._supervisor: asyncio.Task | None = None
        self._consumer: asyncio.Task | None = None
        self._last_error: TransportError | None = None
        self._handshake_attempts = 0
        self._dropped_frames = 0

    # --- Public surface ---------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_error(self) -> TransportError | None:
        return self._last_error

    @property
    def handshake_attempts(self) -> int:
        return self._handshake_attempts

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    @property
    def destination(self) -> str | None:
        if self._room_id is None:
            return None
        return self._topic_template.format(room_id=self._room_id)

    def on_event(self, handler: EventHandler) -> None:
        """Bind the single consumer of inbound payloads. Rebinding replaces it."""
        if self._handler is not None and self._handler is not handler:
            logger.warning("Replacing bound event handler")
        self._handler = handler

    def on_state_change(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    async def open(self, room_id: RoomId) -> None:
        """Start the connect/subscribe loop. No-op unless DISCONNECTED."""
        if self._state != ConnectionState.DISCONNECTED:
            return
        self._room_id = room_id
        self._set_state(ConnectionState.CONNECTING)
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume())
        self._supervisor = asyncio.create_task(self._run())

    async def close(self) -> None:
        """Unsubscribe, deactivate the transport, cancel timers. Idempotent."""
        transport = self._transport
        if transport is not None and self._state == ConnectionState.CONNECTED:
            await self._say_goodbye(transport)

        supervisor, self._supervisor = self._supervisor, None
        await _cancel(supervisor)
        await self._teardown_transport()

        consumer, self._consumer = self._consumer, None
        await _cancel(consumer)
        self._discard_inbox()

        self._set_state(ConnectionState.DISCONNECTED)

    async def drain(self) -> None:
        """Wait until every queued payload has been handed to the handler."""
        await self._inbox.join()

    # --- Supervisor -------------------------------------------------------------

    async def _run(self) -> None:
        """Reconnect loop. Ends only on handshake rejection or cancellation."""
        while True:
            try:
                await self._connect_and_listen()
            except HandshakeRejectedError as e:
                self._report(e)
                await self._teardown_transport()
                self._set_state(ConnectionState.DISCONNECTED)
                return
            except TransportError as e:
                self._report(e)
            except Exception as e:
                logger.error("Unexpected push-channel failure: %s", e, exc_info=True)
                self._report(TransportError(f"Unexpected channel failure: {e}"))

            await self._teardown_transport()
            self._set_state(ConnectionState.RECONNECTING)
            await asyncio.sleep(self._reconnect_delay)
            self._set_state(ConnectionState.CONNECTING)

    async def _connect_and_listen(self) -> None:
        self._handshake_attempts += 1
        token = await self._token_provider()
        self._transport = await self._transport_factory()
        transport = self._transport

        await transport.send(connect_frame(
            self._host, token,
            self._heartbeat_outgoing_ms, self._heartbeat_incoming_ms,
        ).encode())
        try:
            connected = await asyncio.wait_for(
                self._await_connected(transport), self._handshake_timeout,
            )
        except asyncio.TimeoutError:
            raise TransportError(
                f"Handshake timed out after {self._handshake_timeout}s",
            )
        try:
            outgoing_ms, incoming_ms = negotiate_heartbeat(
                self._heartbeat_outgoing_ms, self._heartbeat_incoming_ms,
                connected.headers.get("heart-beat"),
            )
        except StompFrameError as e:
            raise TransportError(str(e))

        await transport.send(
            subscribe_frame(self.SUBSCRIPTION_ID, self.destination).encode(),
        )
        self._last_error = None
        self._set_state(ConnectionState.CONNECTED)
        await self._listen(transport, outgoing_ms, incoming_ms)

    async def _await_connected(self, transport: Transport) -> StompFrame:
        while True:
            for frame in _frames_or_raise(await transport.recv()):
                if frame.command == "CONNECTED":
                    return frame
                if frame.command == "ERROR":
                    raise HandshakeRejectedError(
                        frame.headers.get("message") or "Push server refused the handshake",
                    )

    async def _listen(
        self, transport: Transport, outgoing_ms: int, incoming_ms: int,
    ) -> None:
        """Run reader and outbound heartbeat side by side until either fails."""
        tasks = [asyncio.create_task(self._read_loop(transport, incoming_ms))]
        if outgoing_ms:
            tasks.append(asyncio.create_task(
                self._send_heartbeats(transport, outgoing_ms),
            ))
        try:
            done, _ = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_EXCEPTION,
            )
            for task in done:
                task.result()
        finally:
            for task in tasks:
                await _cancel(task)
        raise TransportError("Push channel ended without an error")

    async def _read_loop(self, transport: Transport, incoming_ms: int) -> None:
        silence_limit = (
            incoming_ms * self.HEARTBEAT_TOLERANCE / 1000 if incoming_ms else None
        )
        while True:
            try:
                data = await asyncio.wait_for(transport.recv(), silence_limit)
            except asyncio.TimeoutError:
                raise TransportError(
                    f"Missed heartbeat: no inbound traffic for {silence_limit}s",
                )
            try:
                frames = parse_frames(data)
            except StompFrameError as e:
                self._report_dropped_frame(data, e)
                continue
            for frame in frames:
                if frame.command == "MESSAGE":
                    await self._inbox.put(frame.body)
                elif frame.command == "ERROR":
                    raise TransportError(
                        frame.headers.get("message") or "Push server sent ERROR",
                    )

    async def _send_heartbeats(self, transport: Transport, outgoing_ms: int) -> None:
        while True:
            await asyncio.sleep(outgoing_ms / 1000)
            await transport.send(HEARTBEAT)

    # --- Consumer ---------------------------------------------------------------

    async def _consume(self) -> None:
        while True:
            payload = await self._inbox.get()
            try:
                if self._handler is None:
                    logger.warning("Inbound payload dropped: no handler bound")
                else:
                    self._handler(payload)
            except Exception as e:
                logger.error("Event handler failed: %s", e, exc_info=True)
            finally:
                self._inbox.task_done()

    def _discard_inbox(self) -> None:
        while not self._inbox.empty():
            self._inbox.get_nowait()
            self._inbox.task_done()

    # --- Helpers ----------------------------------------------------------------

    async def _say_goodbye(self, transport: Transport) -> None:
        """Best-effort UNSUBSCRIBE + DISCONNECT, bounded by goodbye_timeout_seconds."""
        async def _send_both():
            await transport.send(unsubscribe_frame(self.SUBSCRIPTION_ID).encode())
            await transport.send(disconnect_frame("close-0").encode())

        try:
            await asyncio.wait_for(_send_both(), self._goodbye_timeout)
        except asyncio.TimeoutError:
            logger.info(
                "Unsubscribe on close timed out after %ss", self._goodbye_timeout,
            )
        except TransportError as e:
            logger.info("Unsubscribe on close failed: %s", e.message)

    async def _teardown_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.info(
            "Push channel %s", state.value,
            extra={
                "room_id": self._room_id,
                "actor_id": self._session.actor_id,
                "connection_state": state.value,
            },
        )
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error("State listener failed: %s", e, exc_info=True)

    def _report(self, error: TransportError) -> None:
        error.context = ErrorContext(
            room_id=self._room_id, actor_id=self._session.actor_id,
        )
        self._last_error = error
        logger.warning(
            "Push channel error: %s", error.message,
            extra={
                "room_id": self._room_id,
                "error_code": error.code,
                "attempt": self._handshake_attempts,
            },
        )

    def _report_dropped_frame(self, data: str, exc: StompFrameError) -> None:
        """Unparseable inbound frame: one DecodeError report, channel stays up."""
        self._dropped_frames += 1
        error = DecodeError(
            f"Dropped unparseable STOMP frame: {exc}",
            ErrorContext(
                room_id=self._room_id,
                debug_info={"preview": data[:_PREVIEW_CHARS]},
            ),
        )
        logger.warning(
            error.message,
            extra={"room_id": self._room_id, "error_code": error.code},
        )
        if self._on_decode_error is not None:
            try:
                self._on_decode_error(error)
            except Exception as e:
                logger.error("Decode reporter failed: %s", e, exc_info=True)


def _frames_or_raise(data: str) -> list[StompFrame]:
    try:
        return parse_frames(data)
    except StompFrameError as e:
        raise TransportError(f"Malformed handshake frame: {e}")


async def _cancel(task: asyncio.Task | None) -> None:
    """Cancel a task and wait for it to finish. Never raises."""
    if task is None:
        return
    if not task.done():
        task.cancel()
    await asyncio.gather(task, return_exceptions=True)
