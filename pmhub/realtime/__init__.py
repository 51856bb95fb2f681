from .auth import AuthenticationError, AuthenticationGate
from .connection import Connection
from .dispatcher import EventDispatcher
from .hub import SyncHub
from .registry import ConnectionRegistry
from .rooms import RoomRouter

__all__ = [
    "AuthenticationError",
    "AuthenticationGate",
    "Connection",
    "ConnectionRegistry",
    "EventDispatcher",
    "RoomRouter",
    "SyncHub",
]
