"""
Task mutations with their derived side effects.

Order for every mutation: persist the task (plus its own derived fields such
as ``completed_date``), then recompute and persist the owning project's
progress. Only the first step can fail the request.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pmhub.core.exceptions import BusinessException, ErrorCode
from pmhub.models.enums import TaskStatus
from pmhub.models.project import Project
from pmhub.models.task import Task, TaskComment
from pmhub.repositories.project_repository import ProjectRepository
from pmhub.repositories.task_repository import TaskRepository
from pmhub.schemas.task import (
    CommentCreate,
    CommentResponse,
    ProjectResponse,
    SubtaskSchema,
    TaskCreate,
    TaskMutationResponse,
    TaskResponse,
    TaskUpdate,
)
from pmhub.schemas.user import Identity
from pmhub.services.progress_service import project_progress, recompute_project_progress, task_completion

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_task_response(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        project_id=task.project_id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        due_date=task.due_date,
        completed_date=task.completed_date,
        estimated_hours=task.estimated_hours or 0,
        actual_hours=task.actual_hours or 0,
        subtasks=[SubtaskSchema(**st) for st in (task.subtasks or [])],
        completion=task_completion(task),
        created_by=task.created_by,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


def to_project_response(project: Project, tasks) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        description=project.description,
        owner_id=project.owner_id,
        start_date=project.start_date,
        end_date=project.end_date,
        progress=project.progress or 0,
        tasks=[to_task_response(t) for t in tasks],
    )


async def _commit_or_fail(session: AsyncSession, action: str, operation):
    try:
        return await operation
    except SQLAlchemyError as e:
        logger.error(f"{action} failed: {e}")
        await session.rollback()
        raise BusinessException(ErrorCode.PERSISTENCE_FAILED)


# =========================================================
# Read
# =========================================================

async def get_project(session: AsyncSession, project_id: str) -> ProjectResponse:
    """Project with tasks; a stale stored progress is repaired on the way out."""
    project = await ProjectRepository(session).get_with_tasks(project_id)
    if not project:
        raise BusinessException(ErrorCode.PROJECT_NOT_FOUND)

    tasks = sorted(project.tasks, key=lambda t: (t.created_at, t.id))
    response = to_project_response(project, tasks)
    calculated = project_progress(tasks)
    if response.progress != calculated:
        logger.warning(f"Project {project_id} stored progress {response.progress} != {calculated}, repairing")
        repaired = await recompute_project_progress(session, project_id)
        if repaired is not None:
            response.progress = repaired
    return response


async def list_tasks(session: AsyncSession, project_id: str) -> list[TaskResponse]:
    if not await ProjectRepository(session).get(project_id):
        raise BusinessException(ErrorCode.PROJECT_NOT_FOUND)
    tasks = await TaskRepository(session).list_by_project(project_id)
    return [to_task_response(t) for t in tasks]


# =========================================================
# Mutations
# =========================================================

async def create_task(
    session: AsyncSession, project_id: str, data: TaskCreate, actor: Identity
) -> TaskMutationResponse:
    if not await ProjectRepository(session).get(project_id):
        raise BusinessException(ErrorCode.PROJECT_NOT_FOUND)

    task = Task(
        id=str(uuid.uuid4()),
        project_id=project_id,
        title=data.title,
        description=data.description,
        status=data.status,
        priority=data.priority,
        due_date=data.due_date,
        estimated_hours=data.estimated_hours,
        actual_hours=data.actual_hours,
        subtasks=[st.model_dump() for st in data.subtasks],
        created_by=actor.id,
    )
    if data.status == TaskStatus.DONE:
        task.completed_date = _now()

    task = await _commit_or_fail(session, "Task create", TaskRepository(session).create(task))
    logger.info(f"Task {task.id} created in project {project_id} by {actor.id}")

    # snapshot before the recompute, whose failure path rolls back and expires the session
    response = to_task_response(task)
    progress = await recompute_project_progress(session, project_id)
    return TaskMutationResponse(
        task=response, task_id=response.id, project_id=project_id, project_progress=progress
    )


async def update_task(session: AsyncSession, task_id: str, data: TaskUpdate) -> TaskMutationResponse:
    repo = TaskRepository(session)
    task = await repo.get(task_id)
    if not task:
        raise BusinessException(ErrorCode.TASK_NOT_FOUND)

    changes = data.model_dump(exclude_unset=True)
    old_status = task.status

    for field, value in changes.items():
        if field == "subtasks":
            # JSON column: assign a fresh list so the change is detected
            value = [SubtaskSchema.model_validate(st).model_dump() for st in (value or [])]
        elif value is None and field in ("title", "status", "priority", "estimated_hours", "actual_hours"):
            continue
        setattr(task, field, value)

    # completed_date is set on each transition into done, never by the caller
    if task.status == TaskStatus.DONE and old_status != TaskStatus.DONE:
        task.completed_date = _now()

    task = await _commit_or_fail(session, "Task update", repo.save(task))
    logger.info(f"Task {task_id} updated: {sorted(changes)}")

    response = to_task_response(task)
    progress = await recompute_project_progress(session, response.project_id)
    return TaskMutationResponse(
        task=response, task_id=response.id, project_id=response.project_id, project_progress=progress
    )


async def delete_task(session: AsyncSession, task_id: str) -> TaskMutationResponse:
    repo = TaskRepository(session)
    task = await repo.get(task_id)
    if not task:
        raise BusinessException(ErrorCode.TASK_NOT_FOUND)

    project_id = task.project_id
    await _commit_or_fail(session, "Task delete", repo.delete(task))
    logger.info(f"Task {task_id} deleted from project {project_id}")

    progress = await recompute_project_progress(session, project_id)
    return TaskMutationResponse(task=None, task_id=task_id, project_id=project_id, project_progress=progress)


async def add_comment(
    session: AsyncSession, task_id: str, data: CommentCreate, actor: Identity
) -> Tuple[CommentResponse, str]:
    """Returns the stored comment and the owning project id."""
    repo = TaskRepository(session)
    task = await repo.get(task_id)
    if not task:
        raise BusinessException(ErrorCode.TASK_NOT_FOUND)

    comment = TaskComment(id=str(uuid.uuid4()), task_id=task_id, user_id=actor.id, content=data.content)
    comment = await _commit_or_fail(session, "Comment create", repo.add_comment(comment))
    return (
        CommentResponse(
            id=comment.id,
            task_id=comment.task_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at,
        ),
        task.project_id,
    )
