import logging
from typing import Dict, FrozenSet, List, Optional, Set

from pmhub.realtime.connection import Connection
from pmhub.schemas.user import Identity

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    identity id -> live connections.

    One identity may hold several connections (tabs); they are tracked
    individually. Methods never await, so each call leaves the maps
    consistent before control returns to the event loop.
    """

    def __init__(self):
        self._by_identity: Dict[str, Set[Connection]] = {}
        self._by_id: Dict[str, Connection] = {}

    def register(self, identity: Identity, connection: Connection) -> bool:
        """Add a connection. Returns True when the identity just came online."""
        if connection.id in self._by_id:
            return False
        connections = self._by_identity.setdefault(identity.id, set())
        came_online = not connections
        connections.add(connection)
        self._by_id[connection.id] = connection
        logger.info(f"Registered {connection.id} for {identity.id} ({len(connections)} open)")
        return came_online

    def unregister(self, connection: Connection) -> bool:
        """Remove exactly this connection. Returns True when its identity went offline."""
        if self._by_id.pop(connection.id, None) is None:
            return False
        identity_id = connection.identity.id
        connections = self._by_identity.get(identity_id, set())
        connections.discard(connection)
        if connections:
            return False
        self._by_identity.pop(identity_id, None)
        logger.info(f"{identity_id} is offline")
        return True

    def connections_for(self, identity_id: str) -> FrozenSet[Connection]:
        return frozenset(self._by_identity.get(identity_id, ()))

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._by_id.get(connection_id)

    def all_connections(self) -> List[Connection]:
        return list(self._by_id.values())

    def is_online(self, identity_id: str) -> bool:
        return bool(self._by_identity.get(identity_id))

    def __len__(self):
        return len(self._by_id)

    def __contains__(self, connection: Connection):
        return connection.id in self._by_id
