"""Room Session — wires one room's Store, push channel, dispatcher, and coordinator.

Invariants:
    - join() loads metadata + initial snapshot BEFORE the push channel opens, so every
      broadcast lands on a loaded Store
    - Connectivity indicator in the Store mirrors ConnectionManager state transitions
    - leave() closes the channel, stops the reset watch, clears the Store, and releases
      HTTP clients; safe to call more than once

Design Decisions:
    - from_settings() is the only place that knows concrete infrastructure classes;
      the constructor takes collaborators so tests inject fakes (ADR: DI at the edge)
    - Join failures propagate (ActionApiError): no partial session is left running
"""

import logging

import httpx

from territory_sync.config import Settings
from territory_sync.core.board_store import BoardStore
from territory_sync.core.domain_types import ActorId, ConnectionState, RoomId
from territory_sync.core.session_context import SessionContext
from territory_sync.infrastructure.action_api import ResilientActionApiClient
from territory_sync.infrastructure.auth_tokens import AuthServiceTokenProvider
from territory_sync.infrastructure.websocket_transport import websocket_transport_factory
from territory_sync.services.action_coordinator import ActionCoordinator
from territory_sync.services.connection_manager import ConnectionManager
from territory_sync.services.message_dispatcher import MessageDispatcher

logger = logging.getLogger(__name__)


class RoomSession:
    """One joined room: the object the gateway and the embedding application hold."""

    def __init__(
        self,
        session: SessionContext,
        store: BoardStore,
        api: ResilientActionApiClient,
        manager: ConnectionManager,
        *,
        max_defense_bonus: int = 3,
        reset_confirm_timeout_seconds: float = 10.0,
        token_provider: AuthServiceTokenProvider | None = None,
    ):
        self.session = session
        self.store = store
        self.api = api
        self.manager = manager
        self.dispatcher = MessageDispatcher(session, store)
        self.coordinator = ActionCoordinator(
            session, store, api,
            max_defense_bonus=max_defense_bonus,
            reset_confirm_timeout_seconds=reset_confirm_timeout_seconds,
        )
        self._token_provider = token_provider
        self._joined = False
        manager.on_event(self.dispatcher.dispatch)
        manager.on_state_change(self._mirror_connectivity)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RoomSession":
        if not settings.room_id:
            raise ValueError("room_id is required to build a RoomSession")
        session = SessionContext(
            room_id=RoomId(settings.room_id),
            actor_id=ActorId(settings.actor_id) if settings.actor_id else None,
            base_url=settings.api_base_url,
        )
        store = BoardStore(max_defense_bonus=settings.max_defense_bonus)
        api = ResilientActionApiClient(
            settings.api_base_url,
            session_cookie=settings.session_cookie,
            timeout_seconds=settings.action_timeout_seconds,
        )
        token_provider = AuthServiceTokenProvider(
            settings.resolved_auth_base_url, settings.session_cookie,
        )
        manager = ConnectionManager(
            session,
            websocket_transport_factory(
                settings.realtime_url,
                settings.handshake_timeout_seconds,
                settings.session_cookie,
            ),
            token_provider,
            host=httpx.URL(settings.api_base_url).host or "localhost",
            topic_template=settings.topic_template,
            reconnect_delay_ms=settings.reconnect_delay_ms,
            heartbeat_incoming_ms=settings.heartbeat_incoming_ms,
            heartbeat_outgoing_ms=settings.heartbeat_outgoing_ms,
            handshake_timeout_seconds=settings.handshake_timeout_seconds,
            inbox_max_size=settings.inbox_max_size,
        )
        return cls(
            session, store, api, manager,
            max_defense_bonus=settings.max_defense_bonus,
            reset_confirm_timeout_seconds=settings.reset_confirm_timeout_seconds,
            token_provider=token_provider,
        )

    @property
    def joined(self) -> bool:
        return self._joined

    async def join(self) -> None:
        """Load world + board, then open the push channel."""
        room_id = self.session.room_id
        world = await self.api.get_world(room_id)
        snapshot = await self.api.get_board(room_id)
        self.store.load(world, snapshot)
        self._joined = True
        logger.info(
            "Joined room with %d cells", len(snapshot),
            extra={"room_id": room_id, "actor_id": self.session.actor_id},
        )
        await self.manager.open(room_id)

    async def leave(self) -> None:
        await self.manager.close()
        await self.coordinator.aclose()
        self.store.reset()
        await self.api.aclose()
        if self._token_provider is not None:
            await self._token_provider.aclose()
        if self._joined:
            logger.info("Left room", extra={"room_id": self.session.room_id})
        self._joined = False

    def _mirror_connectivity(self, state: ConnectionState) -> None:
        error = self.manager.last_error
        self.store.set_connectivity(
            state == ConnectionState.CONNECTED,
            None if error is None else error.message,
        )
