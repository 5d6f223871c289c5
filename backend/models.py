# models.py — Row models for HexTask
# Mirrors the hosted store's schema (users, tasks, documents):
# - UUID string ids assigned by the store
# - str enums for task status and priority
# - Derived fields (subtasks, creator, url) are never written back

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class TaskStatus(str, PyEnum):
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, PyEnum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Column order on the board and sort order in the list view
STATUS_ORDER = {status: index for index, status in enumerate(TaskStatus)}
PRIORITY_ORDER = {priority: index for index, priority in enumerate(TaskPriority)}

STATUS_LABELS = {
    TaskStatus.BACKLOG: "Backlog",
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.REVIEW: "Review",
    TaskStatus.DONE: "Done",
}

# Columns the store accepts on insert/update
TASK_WRITABLE_FIELDS = (
    "title", "description", "status", "priority", "assignee_id",
    "parent_id", "due_date", "completed_at", "position",
)


# ============================================================
# ROWS
# ============================================================

class Row(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=False)


class User(Row):
    id: str
    name: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    is_ai: bool = False
    created_at: Optional[datetime] = None


class Task(Row):
    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[str] = None
    parent_id: Optional[str] = None
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    position: int = 0
    # Derived by the tree builder, never stored
    subtasks: List["Task"] = Field(default_factory=list)

    def to_row(self) -> dict:
        """Store payload: writable columns only, JSON-ready."""
        return self.model_dump(mode="json", include=set(TASK_WRITABLE_FIELDS))


class Document(Row):
    id: str
    name: str
    description: Optional[str] = None
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined / derived for display
    creator: Optional[User] = None
    url: Optional[str] = None


Task.model_rebuild()
