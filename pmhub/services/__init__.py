from . import progress_service
from . import project_service
from . import task_service

__all__ = [
    "progress_service",
    "project_service",
    "task_service",
]
