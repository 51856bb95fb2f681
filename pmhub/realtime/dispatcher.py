"""
Inbound event dispatch.

The wire is a notification of already-committed state: the client has
persisted its change over HTTP before emitting the event, so nothing here
touches the record store. Malformed frames are logged and dropped, never
forwarded.
"""
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from pmhub.realtime.connection import Connection
from pmhub.realtime.rooms import RoomRouter
from pmhub.schemas.events import (
    INBOUND_MESSAGE_TYPES,
    CommentAdded,
    CommentTyping,
    JoinRoom,
    LeaveRoom,
    OutboundKind,
    ProjectMutated,
    TaskCreated,
    TaskDeleted,
    TaskMutated,
    TaskViewing,
    inbound_adapter,
    project_room,
)

logger = logging.getLogger(__name__)


class MalformedMessage(Exception):
    pass


class EventDispatcher:
    def __init__(self, router: RoomRouter):
        self.router = router
        self._handlers: Dict[type, Callable[[Connection, Any], int]] = {
            JoinRoom: self._join_room,
            LeaveRoom: self._leave_room,
            TaskMutated: self._task_mutated,
            TaskCreated: self._task_created,
            TaskDeleted: self._task_deleted,
            ProjectMutated: self._project_mutated,
            CommentAdded: self._comment_added,
            CommentTyping: self._comment_typing,
            TaskViewing: self._task_viewing,
        }
        missing = [t.__name__ for t in INBOUND_MESSAGE_TYPES if t not in self._handlers]
        if missing:
            raise RuntimeError(f"No handler for inbound message types: {missing}")

    @staticmethod
    def parse(kind: Any, payload: Any):
        try:
            return inbound_adapter.validate_python({"type": kind, "data": payload})
        except ValidationError as e:
            raise MalformedMessage(f"{kind!r}: {e.error_count()} validation error(s)") from e

    def dispatch(self, connection: Connection, kind: Any, payload: Any) -> Optional[int]:
        """
        Validate and act on one inbound event.

        Returns the number of connections the resulting broadcast was queued
        for, or None when the event was dropped.
        """
        try:
            message = self.parse(kind, payload)
        except MalformedMessage as e:
            logger.warning(f"Dropped malformed message from {connection.id}: {e}")
            return None
        return self._handlers[type(message)](connection, message)

    def dispatch_frame(self, connection: Connection, frame: Any) -> Optional[int]:
        if not isinstance(frame, dict):
            logger.warning(f"Dropped non-object frame from {connection.id}")
            return None
        return self.dispatch(connection, frame.get("type"), frame.get("data"))

    # =========================================================
    # Handlers
    # =========================================================

    def _actor(self, connection: Connection) -> Dict[str, Any]:
        return connection.identity.model_dump()

    def _join_room(self, connection: Connection, message: JoinRoom) -> int:
        project_id = message.data.project_id
        room = project_room(project_id)
        if not self.router.join(connection, room):
            return 0
        return self.router.broadcast(
            room,
            connection,
            OutboundKind.USER_JOINED_PROJECT,
            {"userId": connection.identity.id, "user": self._actor(connection), "projectId": project_id},
        )

    def _leave_room(self, connection: Connection, message: LeaveRoom) -> int:
        self.router.leave(connection, project_room(message.data.project_id))
        return 0

    def _task_mutated(self, connection: Connection, message: TaskMutated) -> int:
        return self.router.broadcast(
            project_room(message.data.project_id),
            connection,
            OutboundKind.TASK_UPDATED,
            {"task": message.data.task, "updatedBy": self._actor(connection)},
        )

    def _task_created(self, connection: Connection, message: TaskCreated) -> int:
        return self.router.broadcast(
            project_room(message.data.project_id),
            connection,
            OutboundKind.TASK_CREATED,
            {"task": message.data.task, "createdBy": self._actor(connection)},
        )

    def _task_deleted(self, connection: Connection, message: TaskDeleted) -> int:
        return self.router.broadcast(
            project_room(message.data.project_id),
            connection,
            OutboundKind.TASK_DELETED,
            {"taskId": message.data.task_id, "deletedBy": self._actor(connection)},
        )

    def _project_mutated(self, connection: Connection, message: ProjectMutated) -> int:
        return self.router.broadcast(
            project_room(message.data.project_id),
            connection,
            OutboundKind.PROJECT_UPDATED,
            {"project": message.data.project, "updatedBy": self._actor(connection)},
        )

    def _comment_added(self, connection: Connection, message: CommentAdded) -> int:
        return self.router.broadcast(
            project_room(message.data.project_id),
            connection,
            OutboundKind.COMMENT_ADDED,
            {"taskId": message.data.task_id, "comment": message.data.comment, "addedBy": self._actor(connection)},
        )

    def _comment_typing(self, connection: Connection, message: CommentTyping) -> int:
        return self.router.broadcast(
            project_room(message.data.project_id),
            connection,
            OutboundKind.COMMENT_USER_TYPING,
            {"taskId": message.data.task_id, "user": self._actor(connection)},
            ephemeral=True,
        )

    def _task_viewing(self, connection: Connection, message: TaskViewing) -> int:
        return self.router.broadcast(
            project_room(message.data.project_id),
            connection,
            OutboundKind.TASK_USER_VIEWING,
            {"taskId": message.data.task_id, "user": self._actor(connection)},
            ephemeral=True,
        )
