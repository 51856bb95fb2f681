"""
Project edits. Only descriptive fields change here; ``progress`` stays
derived from tasks (see progress_service).
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pmhub.core.exceptions import BusinessException, ErrorCode
from pmhub.repositories.project_repository import ProjectRepository
from pmhub.schemas.task import ProjectResponse, ProjectUpdate
from pmhub.services.task_service import to_project_response

logger = logging.getLogger(__name__)


async def update_project(session: AsyncSession, project_id: str, data: ProjectUpdate) -> ProjectResponse:
    repo = ProjectRepository(session)
    project = await repo.get_with_tasks(project_id)
    if not project:
        raise BusinessException(ErrorCode.PROJECT_NOT_FOUND)

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field == "name":
            continue
        setattr(project, field, value)

    # snapshot first: a failed commit rolls back and expires the loaded rows
    tasks = sorted(project.tasks, key=lambda t: (t.created_at, t.id))
    response = to_project_response(project, tasks)
    try:
        await repo.save(project)
    except SQLAlchemyError as e:
        logger.error(f"Project update failed: {e}")
        await session.rollback()
        raise BusinessException(ErrorCode.PERSISTENCE_FAILED)

    logger.info(f"Project {project_id} updated: {sorted(changes)}")
    return response
