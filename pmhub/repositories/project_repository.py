from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pmhub.models.project import Project


class ProjectRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, project_id: str) -> Optional[Project]:
        result = await self.session.execute(select(Project).where(Project.id == project_id))
        return result.scalar_one_or_none()

    async def get_with_tasks(self, project_id: str) -> Optional[Project]:
        result = await self.session.execute(
            select(Project)
            .options(selectinload(Project.tasks))
            .where(Project.id == project_id)
        )
        return result.scalar_one_or_none()

    async def create(self, project: Project) -> Project:
        self.session.add(project)
        await self.session.commit()
        await self.session.refresh(project)
        return project

    async def save(self, project: Project) -> Project:
        await self.session.commit()
        return project

    async def update_progress(self, project_id: str, progress: int) -> None:
        await self.session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(progress=progress)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.commit()
