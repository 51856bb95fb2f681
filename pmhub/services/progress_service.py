"""
Progress aggregation.

Task completion comes from subtasks when a task has any (status is then
ignored), otherwise from status alone. Project progress is the unweighted
mean of task completions. Both use round-half-up on exact integer
arithmetic, so 12.5 -> 13 and 2/3 -> 67.
"""
import logging
from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pmhub.models.enums import TaskStatus
from pmhub.repositories.project_repository import ProjectRepository
from pmhub.repositories.task_repository import TaskRepository

logger = logging.getLogger(__name__)


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _round_half_up_ratio(numerator: int, denominator: int) -> int:
    # round(numerator / denominator) with .5 going up, no float error
    return (2 * numerator + denominator) // (2 * denominator)


def is_done(task: Any) -> bool:
    status = _get(task, "status")
    return getattr(status, "value", status) == TaskStatus.DONE.value


def subtask_counts(task: Any) -> tuple[int, int]:
    """(completed, total) for a task's subtasks; absent subtasks count as none."""
    subtasks = _get(task, "subtasks") or []
    completed = sum(1 for st in subtasks if _get(st, "completed", False))
    return completed, len(subtasks)


def task_completion(task: Any) -> int:
    completed, total = subtask_counts(task)
    if total == 0:
        return 100 if is_done(task) else 0
    return _round_half_up_ratio(100 * completed, total)


def project_progress(tasks: Iterable[Any]) -> int:
    completions = [task_completion(t) for t in tasks]
    if not completions:
        return 0
    return _round_half_up_ratio(sum(completions), len(completions))


async def recompute_project_progress(session: AsyncSession, project_id: str) -> Optional[int]:
    """
    Recompute and persist ``Project.progress``.

    Never raises: a failed recompute is logged and reported as None so the
    mutation that triggered it still stands.
    """
    try:
        tasks = await TaskRepository(session).list_by_project(project_id)
        progress = project_progress(tasks)
        await ProjectRepository(session).update_progress(project_id, progress)
    except Exception:
        logger.exception(f"Progress recompute failed for project {project_id}")
        try:
            await session.rollback()
        except Exception:
            logger.exception("Rollback after failed progress recompute also failed")
        return None

    logger.info(f"Project {project_id} progress -> {progress}%")
    return progress
