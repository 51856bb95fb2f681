"""Tests for task mutations and their derived side effects."""

import pytest
from sqlalchemy.exc import OperationalError

from pmhub.core.exceptions import BusinessException, ErrorCode
from pmhub.models.enums import TaskStatus
from pmhub.repositories.project_repository import ProjectRepository
from pmhub.repositories.task_repository import TaskRepository
from pmhub.schemas.task import CommentCreate, TaskCreate, TaskUpdate
from pmhub.services import task_service


def subtasks(*flags: bool):
    return [{"id": f"s{i}", "title": f"step {i}", "completed": flag} for i, flag in enumerate(flags)]


async def stored_progress(db, project_id: str = "p1") -> int:
    project = await ProjectRepository(db).get(project_id)
    await db.refresh(project)
    return project.progress


class TestCreateTask:

    @pytest.mark.asyncio
    async def test_create_recomputes_progress(self, db, project, owner) -> None:
        result = await task_service.create_task(db, "p1", TaskCreate(title="Ship it", status="done"), owner)

        assert result.project_id == "p1"
        assert result.task.completion == 100
        assert result.task.created_by == "owner"
        assert result.task.completed_date is not None
        assert result.project_progress == 100
        assert await stored_progress(db) == 100

    @pytest.mark.asyncio
    async def test_create_with_subtasks(self, db, project, owner) -> None:
        data = TaskCreate.model_validate({"title": "Draft", "status": "in-progress", "subtasks": subtasks(True, True, False)})

        result = await task_service.create_task(db, "p1", data, owner)

        assert result.task.completion == 67
        assert result.task.completed_date is None
        assert result.project_progress == 67

    @pytest.mark.asyncio
    async def test_unknown_project(self, db, project, owner) -> None:
        with pytest.raises(BusinessException) as exc_info:
            await task_service.create_task(db, "nope", TaskCreate(title="x"), owner)
        assert exc_info.value.error_code is ErrorCode.PROJECT_NOT_FOUND

    def test_duplicate_subtask_ids_rejected(self) -> None:
        with pytest.raises(ValueError):
            TaskCreate.model_validate({"title": "x", "subtasks": [{"id": "a"}, {"id": "a"}]})


class TestUpdateTask:

    @pytest.mark.asyncio
    async def test_mean_of_two_tasks(self, db, project, owner) -> None:
        await task_service.create_task(db, "p1", TaskCreate(title="a", status="done"), owner)
        created = await task_service.create_task(
            db, "p1", TaskCreate.model_validate({"title": "b", "subtasks": subtasks(False, False)}), owner
        )

        result = await task_service.update_task(
            db, created.task_id, TaskUpdate.model_validate({"subtasks": subtasks(True, False)})
        )

        assert result.task.completion == 50
        assert result.project_progress == 75
        assert await stored_progress(db) == 75

    @pytest.mark.asyncio
    async def test_completed_date_set_on_transition_into_done(self, db, project, owner) -> None:
        created = await task_service.create_task(db, "p1", TaskCreate(title="a"), owner)
        assert created.task.completed_date is None

        done = await task_service.update_task(db, created.task_id, TaskUpdate(status=TaskStatus.DONE))
        assert done.task.completed_date is not None
        assert done.project_progress == 100

        reopened = await task_service.update_task(db, created.task_id, TaskUpdate(status=TaskStatus.REVIEW))
        assert reopened.task.status == TaskStatus.REVIEW
        assert reopened.project_progress == 0

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, db, project, owner) -> None:
        created = await task_service.create_task(
            db, "p1", TaskCreate(title="a", description="keep me", priority="high"), owner
        )

        result = await task_service.update_task(db, created.task_id, TaskUpdate(title="renamed"))

        assert result.task.title == "renamed"
        assert result.task.description == "keep me"
        assert result.task.priority.value == "high"

    @pytest.mark.asyncio
    async def test_unknown_task(self, db, project) -> None:
        with pytest.raises(BusinessException) as exc_info:
            await task_service.update_task(db, "missing", TaskUpdate(title="x"))
        assert exc_info.value.error_code is ErrorCode.TASK_NOT_FOUND

    @pytest.mark.asyncio
    async def test_persistence_failure_is_reported(self, db, project, owner, monkeypatch) -> None:
        created = await task_service.create_task(db, "p1", TaskCreate(title="a"), owner)

        async def broken_save(self, task):
            raise OperationalError("UPDATE tasks", {}, Exception("disk I/O error"))

        monkeypatch.setattr(TaskRepository, "save", broken_save)

        with pytest.raises(BusinessException) as exc_info:
            await task_service.update_task(db, created.task_id, TaskUpdate(title="b"))
        assert exc_info.value.error_code is ErrorCode.PERSISTENCE_FAILED

    @pytest.mark.asyncio
    async def test_recompute_failure_keeps_mutation(self, db, project, owner, monkeypatch) -> None:
        created = await task_service.create_task(db, "p1", TaskCreate(title="a"), owner)

        async def broken(self, project_id, progress):
            raise RuntimeError("db is down")

        monkeypatch.setattr(ProjectRepository, "update_progress", broken)

        result = await task_service.update_task(db, created.task_id, TaskUpdate(status=TaskStatus.DONE))

        assert result.task.status == TaskStatus.DONE
        assert result.project_progress is None


class TestDeleteTask:

    @pytest.mark.asyncio
    async def test_delete_recomputes_progress(self, db, project, owner) -> None:
        done = await task_service.create_task(db, "p1", TaskCreate(title="a", status="done"), owner)
        await task_service.create_task(db, "p1", TaskCreate(title="b"), owner)
        assert await stored_progress(db) == 50

        todo_id = next(t.id for t in await task_service.list_tasks(db, "p1") if t.id != done.task_id)
        result = await task_service.delete_task(db, todo_id)

        assert result.task is None
        assert result.task_id == todo_id
        assert result.project_progress == 100
        assert [t.id for t in await task_service.list_tasks(db, "p1")] == [done.task_id]

    @pytest.mark.asyncio
    async def test_delete_last_task_resets_to_zero(self, db, project, owner) -> None:
        created = await task_service.create_task(db, "p1", TaskCreate(title="a", status="done"), owner)

        result = await task_service.delete_task(db, created.task_id)

        assert result.project_progress == 0
        assert await stored_progress(db) == 0

    @pytest.mark.asyncio
    async def test_project_delete_cascades_to_tasks(self, db, project, owner) -> None:
        created = await task_service.create_task(db, "p1", TaskCreate(title="a"), owner)

        loaded = await ProjectRepository(db).get_with_tasks("p1")
        await db.delete(loaded)
        await db.commit()

        assert await TaskRepository(db).get(created.task_id) is None


class TestReads:

    @pytest.mark.asyncio
    async def test_get_project_repairs_stale_progress(self, db, project, owner) -> None:
        await task_service.create_task(db, "p1", TaskCreate(title="a", status="done"), owner)
        await ProjectRepository(db).update_progress("p1", 3)

        result = await task_service.get_project(db, "p1")

        assert result.progress == 100
        assert len(result.tasks) == 1
        assert await stored_progress(db) == 100

    @pytest.mark.asyncio
    async def test_get_unknown_project(self, db, project) -> None:
        with pytest.raises(BusinessException) as exc_info:
            await task_service.get_project(db, "nope")
        assert exc_info.value.error_code is ErrorCode.PROJECT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_add_comment(self, db, project, owner) -> None:
        created = await task_service.create_task(db, "p1", TaskCreate(title="a"), owner)

        comment, project_id = await task_service.add_comment(
            db, created.task_id, CommentCreate(content="looks good"), owner
        )

        assert project_id == "p1"
        assert comment.task_id == created.task_id
        assert comment.user_id == "owner"
        assert comment.content == "looks good"
