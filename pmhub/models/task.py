"""
Task model.
Subtasks live inside the task row as a JSON list of {id, title, completed}.
"""
from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from pmhub.core.database import Base
from pmhub.models.enums import TaskPriority, TaskStatus


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class Task(Base):
    """A unit of work owned by a project."""
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(SQLEnum(TaskStatus, values_callable=_enum_values), nullable=False, default=TaskStatus.TODO)
    priority = Column(SQLEnum(TaskPriority, values_callable=_enum_values), nullable=False, default=TaskPriority.MEDIUM)
    due_date = Column(DateTime)
    completed_date = Column(DateTime)
    estimated_hours = Column(Integer, nullable=False, default=0)
    actual_hours = Column(Integer, nullable=False, default=0)
    subtasks = Column(JSON, nullable=False, default=list)
    created_by = Column(String(36), nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="tasks")
    comments = relationship("TaskComment", back_populates="task", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title}', status='{self.status}')>"


class TaskComment(Base):
    __tablename__ = "task_comments"

    id = Column(String(36), primary_key=True)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())

    task = relationship("Task", back_populates="comments")
