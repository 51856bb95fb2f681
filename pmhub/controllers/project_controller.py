from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pmhub.core.database import get_db
from pmhub.core.deps import get_current_user
from pmhub.schemas.base import ResponseEnvelope
from pmhub.schemas.task import ProjectUpdate, dump
from pmhub.schemas.user import Identity
from pmhub.services import project_service, task_service

router = APIRouter()


@router.get("/{project_id}", response_model=ResponseEnvelope)
async def get_project(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
):
    """Project with its tasks and derived progress"""
    project = await task_service.get_project(db, project_id)
    return ResponseEnvelope(success=True, code="PRJ_000", message="Project", data=dump(project))


@router.get("/{project_id}/tasks", response_model=ResponseEnvelope)
async def list_project_tasks(
    project_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
):
    tasks = await task_service.list_tasks(db, project_id)
    return ResponseEnvelope(success=True, code="TSK_000", message="Tasks", data=[dump(t) for t in tasks])


@router.put("/{project_id}", response_model=ResponseEnvelope)
async def update_project(
    project_id: str,
    payload: ProjectUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
):
    """Descriptive fields only; a progress value in the body is ignored"""
    project = await project_service.update_project(db, project_id, payload)
    return ResponseEnvelope(success=True, code="PRJ_001", message="Project updated", data=dump(project))
