import logging
from typing import Any, Dict, Optional

from pmhub.realtime.auth import AuthenticationError, AuthenticationGate
from pmhub.realtime.connection import Connection, Transport
from pmhub.realtime.dispatcher import EventDispatcher
from pmhub.realtime.registry import ConnectionRegistry
from pmhub.realtime.rooms import RoomRouter
from pmhub.schemas.events import OutboundKind, envelope, project_room

logger = logging.getLogger(__name__)

# RFC 6455 policy violation
CLOSE_POLICY_VIOLATION = 1008


class SyncHub:
    """
    Process-wide realtime state, built once by the app factory and handed to
    whoever needs it. Owns the registry, the router and the dispatcher.
    """

    def __init__(
        self,
        auth_gate: AuthenticationGate,
        registry: Optional[ConnectionRegistry] = None,
        router: Optional[RoomRouter] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.auth_gate = auth_gate
        self.registry = registry or ConnectionRegistry()
        self.router = router or RoomRouter(self.registry)
        self.dispatcher = dispatcher or EventDispatcher(self.router)

    async def connect(self, transport: Transport, token: Optional[str]) -> Optional[Connection]:
        """Authenticate and admit. Rejected attempts are closed and never registered."""
        try:
            identity = await self.auth_gate.authenticate(token)
        except AuthenticationError as e:
            logger.warning(f"Connection rejected: {e.reason}")
            try:
                await transport.send_json(envelope(OutboundKind.CONNECT_ERROR, {"message": e.reason}))
                await transport.close(code=CLOSE_POLICY_VIOLATION, reason=e.reason)
            except Exception as close_error:
                logger.info(f"Could not deliver rejection: {close_error}")
            return None

        connection = Connection(transport, identity)
        came_online = self.registry.register(identity, connection)
        connection.send(OutboundKind.CONNECTED, {"connectionId": connection.id, "user": identity.model_dump()})
        if came_online:
            self.router.broadcast_all(
                OutboundKind.USER_ONLINE,
                {"userId": identity.id, "user": identity.model_dump()},
                exclude=connection,
            )
        logger.info(f"User connected: {identity.name} ({connection.id})")
        return connection

    def handle_frame(self, connection: Connection, frame: Any) -> Optional[int]:
        return self.dispatcher.dispatch_frame(connection, frame)

    def disconnect(self, connection: Connection) -> None:
        if connection not in self.registry:
            return
        self.router.leave_all(connection)
        went_offline = self.registry.unregister(connection)
        connection.close()
        if went_offline:
            self.router.broadcast_all(OutboundKind.USER_OFFLINE, {"userId": connection.identity.id})
        logger.info(f"User disconnected: {connection.identity.name} ({connection.id})")

    def broadcast_to_project(
        self,
        project_id: str,
        kind: OutboundKind,
        payload: Dict[str, Any],
        exclude_connection_id: Optional[str] = None,
    ) -> int:
        """Server-originated broadcast, e.g. a recomputed progress after an HTTP mutation."""
        exclude = self.registry.get(exclude_connection_id) if exclude_connection_id else None
        return self.router.broadcast(project_room(project_id), exclude, kind, payload)
