"""
Wire protocol for the realtime channel.

Every frame is ``{"type": <kind>, "data": {...}}``. Inbound kinds form a
closed tagged union (``InboundMessage``) so that the dispatcher can check at
start-up that every kind has exactly one handler.
"""
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


# =========================================================
# Inbound payloads (C -> S)
# =========================================================

class ProjectRef(WireModel):
    project_id: str = Field(alias="projectId", min_length=1)


class TaskRef(ProjectRef):
    task_id: str = Field(alias="taskId", min_length=1)


class TaskPayload(ProjectRef):
    task: Dict[str, Any]

    @field_validator("task")
    @classmethod
    def task_has_id(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if value.get("id") in (None, ""):
            raise ValueError("task must carry an id")
        return value


class ProjectPayload(ProjectRef):
    project: Dict[str, Any]


class CommentPayload(TaskRef):
    comment: Dict[str, Any]


class JoinRoom(BaseModel):
    type: Literal["join-room"]
    data: ProjectRef


class LeaveRoom(BaseModel):
    type: Literal["leave-room"]
    data: ProjectRef


class TaskMutated(BaseModel):
    type: Literal["task-mutated"]
    data: TaskPayload


class TaskCreated(BaseModel):
    type: Literal["task-created"]
    data: TaskPayload


class TaskDeleted(BaseModel):
    type: Literal["task-deleted"]
    data: TaskRef


class ProjectMutated(BaseModel):
    type: Literal["project-mutated"]
    data: ProjectPayload


class CommentAdded(BaseModel):
    type: Literal["comment-added"]
    data: CommentPayload


class CommentTyping(BaseModel):
    type: Literal["comment-typing"]
    data: TaskRef


class TaskViewing(BaseModel):
    type: Literal["task-viewing"]
    data: TaskRef


InboundMessage = Annotated[
    Union[
        JoinRoom,
        LeaveRoom,
        TaskMutated,
        TaskCreated,
        TaskDeleted,
        ProjectMutated,
        CommentAdded,
        CommentTyping,
        TaskViewing,
    ],
    Field(discriminator="type"),
]

INBOUND_MESSAGE_TYPES = (
    JoinRoom,
    LeaveRoom,
    TaskMutated,
    TaskCreated,
    TaskDeleted,
    ProjectMutated,
    CommentAdded,
    CommentTyping,
    TaskViewing,
)

inbound_adapter: TypeAdapter = TypeAdapter(InboundMessage)


# =========================================================
# Outbound kinds (S -> C)
# =========================================================

class OutboundKind(str, Enum):
    TASK_CREATED = "task-created"
    TASK_UPDATED = "task-updated"
    TASK_DELETED = "task-deleted"
    PROJECT_UPDATED = "project-updated"
    COMMENT_ADDED = "comment-added"
    COMMENT_USER_TYPING = "comment-user-typing"
    TASK_USER_VIEWING = "task-user-viewing"
    USER_ONLINE = "user-online"
    USER_OFFLINE = "user-offline"
    USER_JOINED_PROJECT = "user-joined-project"
    CONNECTED = "connected"
    CONNECT_ERROR = "connect_error"


def envelope(kind: OutboundKind, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": kind.value, "data": data}


def project_room(project_id: Any) -> str:
    """Room name for a project: ``project:<projectId>``."""
    return f"project:{project_id}"
