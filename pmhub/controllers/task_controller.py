import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pmhub.core.database import get_db
from pmhub.core.deps import get_connection_id, get_current_user, get_sync_hub
from pmhub.realtime.hub import SyncHub
from pmhub.schemas.base import ResponseEnvelope
from pmhub.schemas.events import OutboundKind
from pmhub.schemas.task import CommentCreate, TaskCreate, TaskMutationResponse, TaskUpdate, dump
from pmhub.schemas.user import Identity
from pmhub.services import task_service

router = APIRouter()
logger = logging.getLogger(__name__)


def _announce_progress(
    hub: SyncHub, result: TaskMutationResponse, actor: Identity, connection_id: Optional[str]
) -> None:
    """Push the recomputed project progress to the project's room."""
    if result.project_progress is None:
        return
    hub.broadcast_to_project(
        result.project_id,
        OutboundKind.PROJECT_UPDATED,
        {
            "project": {"id": result.project_id, "progress": result.project_progress},
            "updatedBy": actor.model_dump(),
        },
        exclude_connection_id=connection_id,
    )


@router.post("/projects/{project_id}/tasks", response_model=ResponseEnvelope, status_code=201)
async def create_task(
    project_id: str,
    payload: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
    hub: SyncHub = Depends(get_sync_hub),
    connection_id: Optional[str] = Depends(get_connection_id),
):
    result = await task_service.create_task(db, project_id, payload, current_user)
    _announce_progress(hub, result, current_user, connection_id)
    return ResponseEnvelope(success=True, code="TSK_001", message="Task created", data=dump(result))


@router.put("/tasks/{task_id}", response_model=ResponseEnvelope)
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
    hub: SyncHub = Depends(get_sync_hub),
    connection_id: Optional[str] = Depends(get_connection_id),
):
    result = await task_service.update_task(db, task_id, payload)
    _announce_progress(hub, result, current_user, connection_id)
    return ResponseEnvelope(success=True, code="TSK_002", message="Task updated", data=dump(result))


@router.delete("/tasks/{task_id}", response_model=ResponseEnvelope)
async def delete_task(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
    hub: SyncHub = Depends(get_sync_hub),
    connection_id: Optional[str] = Depends(get_connection_id),
):
    result = await task_service.delete_task(db, task_id)
    _announce_progress(hub, result, current_user, connection_id)
    return ResponseEnvelope(success=True, code="TSK_003", message="Task deleted", data=dump(result))


@router.post("/tasks/{task_id}/comments", response_model=ResponseEnvelope, status_code=201)
async def add_comment(
    task_id: str,
    payload: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
):
    comment, project_id = await task_service.add_comment(db, task_id, payload, current_user)
    data = dump(comment)
    data["projectId"] = project_id
    return ResponseEnvelope(success=True, code="TSK_004", message="Comment added", data=data)
