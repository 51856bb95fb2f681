import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Protocol, Set

from pmhub.schemas.events import OutboundKind, envelope
from pmhub.schemas.user import Identity

logger = logging.getLogger(__name__)

# Ephemeral events (typing, viewing) are dropped once a client falls this far behind
EPHEMERAL_BACKLOG_LIMIT = 100
# Past this many queued frames the peer is considered stalled and is disconnected
OUTBOX_HARD_LIMIT = 1000

# RFC 6455 "try again later"
CLOSE_TRY_AGAIN_LATER = 1013

_CLOSE = object()


class Transport(Protocol):
    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class Connection:
    """
    One live client socket.

    Outbound frames go through ``outbox`` and are written by a single
    ``run_writer`` task, so ``send`` never awaits and frames leave in the
    order they were enqueued. A peer that stops reading is cut off once its
    outbox reaches ``OUTBOX_HARD_LIMIT``.
    """

    def __init__(self, transport: Transport, identity: Identity, connection_id: Optional[str] = None):
        self.id = connection_id or uuid.uuid4().hex
        self.identity = identity
        self.transport = transport
        self.rooms: Set[str] = set()
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.overflowed = False
        self._writer: Optional[asyncio.Task] = None

    def send(self, kind: OutboundKind, data: Dict[str, Any], ephemeral: bool = False) -> bool:
        if self.closed:
            return False
        if ephemeral and self.outbox.qsize() >= EPHEMERAL_BACKLOG_LIMIT:
            logger.debug(f"Dropping ephemeral {kind.value} for slow connection {self.id}")
            return False
        if self.outbox.qsize() >= OUTBOX_HARD_LIMIT:
            logger.warning(f"Connection {self.id} has {self.outbox.qsize()} unsent frames, disconnecting")
            self.abort()
            return False
        self.outbox.put_nowait(envelope(kind, data))
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.outbox.put_nowait(_CLOSE)

    def abort(self) -> None:
        """Drop everything queued and stop the writer, even if it is stuck mid-write."""
        if self.closed:
            return
        self.overflowed = True
        while not self.outbox.empty():
            self.outbox.get_nowait()
        self.close()
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()

    async def run_writer(self) -> None:
        self._writer = asyncio.current_task()
        try:
            while True:
                message = await self.outbox.get()
                if message is _CLOSE:
                    break
                try:
                    await self.transport.send_json(message)
                except Exception as e:
                    # peer is gone; the receive loop will observe the disconnect
                    logger.info(f"Connection {self.id} write failed: {e}")
                    self.closed = True
                    return
        except asyncio.CancelledError:
            if not self.overflowed:
                raise

        if self.overflowed:
            try:
                await self.transport.close(code=CLOSE_TRY_AGAIN_LATER, reason="Too many unsent messages")
            except Exception as e:
                logger.info(f"Could not close stalled connection {self.id}: {e}")

    def __repr__(self):
        return f"<Connection(id={self.id}, user={self.identity.id}, rooms={sorted(self.rooms)})>"
