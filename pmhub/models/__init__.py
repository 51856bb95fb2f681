from .user import User
from .project import Project
from .task import Task, TaskComment

__all__ = ["User", "Project", "Task", "TaskComment"]
