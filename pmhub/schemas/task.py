from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pmhub.models.enums import TaskPriority, TaskStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SubtaskSchema(CamelModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(min_length=1)
    title: str = ""
    completed: bool = False


def _check_unique_subtasks(subtasks: Optional[List[SubtaskSchema]]) -> Optional[List[SubtaskSchema]]:
    if subtasks is None:
        return subtasks
    ids = [s.id for s in subtasks]
    if len(ids) != len(set(ids)):
        raise ValueError("subtask ids must be unique within a task")
    return subtasks


class TaskCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    estimated_hours: int = Field(default=0, ge=0)
    actual_hours: int = Field(default=0, ge=0)
    subtasks: List[SubtaskSchema] = Field(default_factory=list)

    unique_subtasks = field_validator("subtasks")(_check_unique_subtasks)


class TaskUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[int] = Field(default=None, ge=0)
    actual_hours: Optional[int] = Field(default=None, ge=0)
    subtasks: Optional[List[SubtaskSchema]] = None

    unique_subtasks = field_validator("subtasks")(_check_unique_subtasks)


class TaskResponse(CamelModel):
    id: str
    project_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    estimated_hours: int = 0
    actual_hours: int = 0
    subtasks: List[SubtaskSchema] = Field(default_factory=list)
    completion: int = 0
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    owner_id: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    progress: int = 0
    tasks: List[TaskResponse] = Field(default_factory=list)


class ProjectUpdate(CamelModel):
    """Caller-editable project fields. ``progress`` is derived and never accepted."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class TaskMutationResponse(CamelModel):
    """Authoritative state after a committed task mutation."""

    task: Optional[TaskResponse] = None
    task_id: str
    project_id: str
    # None when the recompute failed; the client keeps its last known value
    project_progress: Optional[int] = None


class CommentCreate(CamelModel):
    content: str = Field(min_length=1)


class CommentResponse(CamelModel):
    id: str
    task_id: str
    user_id: str
    content: str
    created_at: Optional[datetime] = None


def dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")
