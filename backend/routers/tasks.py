# routers/tasks.py — Task list, task form and quick edits
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from auth import get_current_user, CurrentUser
from board_state import BoardState, get_board
from models import Task, TaskStatus, TaskPriority
from task_tree import SORT_FIELDS, filter_tasks, sort_tasks, paginate, subtask_progress

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee_id: Optional[str] = None
    parent_id: Optional[str] = None
    due_date: Optional[datetime] = None
    position: int = 0


class TaskQuickUpdate(BaseModel):
    """Fields editable straight from a card. Only fields sent are changed."""
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None
    position: Optional[int] = None


class TaskSave(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    assignee_id: Optional[str] = None
    parent_id: Optional[str] = None
    due_date: Optional[datetime] = None


def task_out(task: Task) -> dict:
    done, total = subtask_progress(task)
    out = task.model_dump(mode="json")
    out["subtask_progress"] = {"done": done, "total": total}
    return out


def _require_task(board: BoardState, task_id: str) -> Task:
    task = board.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("")
async def list_tasks(
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
    status: Optional[TaskStatus] = None,
    assignee_id: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = Query(default="created_at"),
    direction: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=200),
    refresh: bool = False,
):
    """Root tasks with their subtasks, filtered, sorted and paginated"""
    if sort not in SORT_FIELDS:
        raise HTTPException(status_code=400, detail=f"Invalid sort field: {sort}")
    if refresh:
        await board.refresh(user.access_token)
    else:
        await board.ensure_loaded(user.access_token)

    tasks = filter_tasks(board.tasks, status=status, assignee_id=assignee_id, search=search)
    tasks = sort_tasks(tasks, sort, direction == "desc", board.users)
    result = paginate(tasks, page, page_size)
    result["items"] = [task_out(t) for t in result["items"]]
    result["error"] = board.error
    return result


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    await board.ensure_loaded(user.access_token)
    return task_out(_require_task(board, task_id))


@router.post("", status_code=201)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    """Create a task; with parent_id it is created as a subtask"""
    await board.ensure_loaded(user.access_token)
    task = await board.create_task(data.model_dump(), user.access_token)
    if task is None:
        raise HTTPException(status_code=502, detail="Task was created but could not be read back")
    return task_out(task)


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    data: TaskQuickUpdate,
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    """Quick edit applied to the board before the store confirms it"""
    await board.ensure_loaded(user.access_token)
    _require_task(board, task_id)
    changes = data.model_dump(exclude_unset=True)
    # Only assignee and due date may be cleared
    for field in ("status", "priority", "position"):
        if field in changes and changes[field] is None:
            del changes[field]
    if not changes:
        raise HTTPException(status_code=400, detail="No changes given")
    task = await board.update_task(task_id, changes, user.access_token)
    return task_out(task)


@router.put("/{task_id}")
async def save_task(
    task_id: str,
    data: TaskSave,
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    """Save the full task form"""
    await board.ensure_loaded(user.access_token)
    _require_task(board, task_id)
    task = await board.save_task(task_id, data.model_dump(), user.access_token)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task_out(task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    """Delete a task; its subtasks go with it"""
    await board.ensure_loaded(user.access_token)
    _require_task(board, task_id)
    await board.delete_task(task_id, user.access_token)
    return {"status": "deleted", "task_id": task_id}


@router.post("/{task_id}/duplicate", status_code=201)
async def duplicate_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    await board.ensure_loaded(user.access_token)
    _require_task(board, task_id)
    task = await board.duplicate_task(task_id, user.access_token)
    if task is None:
        raise HTTPException(status_code=502, detail="Task was created but could not be read back")
    return task_out(task)
