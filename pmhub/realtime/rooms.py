import logging
from typing import Any, Dict, List, Optional

from pmhub.realtime.connection import Connection
from pmhub.realtime.registry import ConnectionRegistry
from pmhub.schemas.events import OutboundKind

logger = logging.getLogger(__name__)


class RoomRouter:
    """
    Room membership and fan-out.

    A room exists only while it has members. Members are kept in join order
    and every broadcast enqueues onto each member synchronously, so frames
    in one room are delivered FIFO.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self._rooms: Dict[str, Dict[str, Connection]] = {}

    def join(self, connection: Connection, room: str) -> bool:
        """Returns False when already joined (no-op)."""
        members = self._rooms.setdefault(room, {})
        if connection.id in members:
            return False
        members[connection.id] = connection
        connection.rooms.add(room)
        logger.info(f"{connection.identity.name} joined {room}")
        return True

    def leave(self, connection: Connection, room: str) -> bool:
        """Returns False when not joined (no-op)."""
        members = self._rooms.get(room)
        if not members or connection.id not in members:
            return False
        del members[connection.id]
        connection.rooms.discard(room)
        if not members:
            del self._rooms[room]
        logger.info(f"{connection.identity.name} left {room}")
        return True

    def leave_all(self, connection: Connection) -> List[str]:
        rooms = sorted(connection.rooms)
        for room in rooms:
            self.leave(connection, room)
        return rooms

    def members(self, room: str) -> List[Connection]:
        return list(self._rooms.get(room, {}).values())

    def rooms(self) -> List[str]:
        return list(self._rooms)

    def broadcast(
        self,
        room: str,
        exclude: Optional[Connection],
        kind: OutboundKind,
        payload: Dict[str, Any],
        ephemeral: bool = False,
    ) -> int:
        delivered = 0
        for connection in self.members(room):
            if exclude is not None and connection.id == exclude.id:
                continue
            if connection.send(kind, payload, ephemeral=ephemeral):
                delivered += 1
        logger.debug(f"{kind.value} -> {room}: {delivered} recipient(s)")
        return delivered

    def broadcast_all(
        self, kind: OutboundKind, payload: Dict[str, Any], exclude: Optional[Connection] = None
    ) -> int:
        delivered = 0
        for connection in self.registry.all_connections():
            if exclude is not None and connection.id == exclude.id:
                continue
            if connection.send(kind, payload):
                delivered += 1
        return delivered
