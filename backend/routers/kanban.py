# routers/kanban.py — Status-columned board with drag/drop transitions
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from auth import get_current_user, CurrentUser
from board_state import BoardState, get_board
from models import TaskStatus, STATUS_LABELS
from routers.tasks import TaskCreate, task_out

router = APIRouter(prefix="/api/v1/board", tags=["Kanban Board"])

# Cards shown per column before "load more"
INITIAL_LOAD = 10


# ============================================================
# SCHEMAS
# ============================================================

class DropEvent(BaseModel):
    task_id: str
    over_id: Optional[str] = None
    assignee_id: Optional[str] = None
    search: Optional[str] = None


class QuickCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    assignee_id: Optional[str] = None


class ColumnOut(BaseModel):
    status: str
    label: str
    count: int
    hidden: int
    tasks: List[dict]


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("")
async def get_board_view(
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
    assignee_id: Optional[str] = None,
    search: Optional[str] = None,
    expanded: List[TaskStatus] = Query(default=[]),
    refresh: bool = False,
):
    """Board columns in status order"""
    if refresh:
        await board.refresh(user.access_token)
    else:
        await board.ensure_loaded(user.access_token)

    columns = []
    for status, tasks in board.status_groups(assignee_id=assignee_id, search=search).items():
        visible = tasks if status in expanded or len(tasks) <= INITIAL_LOAD else tasks[:INITIAL_LOAD]
        columns.append(ColumnOut(
            status=status.value,
            label=STATUS_LABELS[status],
            count=len(tasks),
            hidden=len(tasks) - len(visible),
            tasks=[task_out(t) for t in visible],
        ))
    return {
        "columns": columns,
        "users": board.users,
        "error": board.error,
        "loaded_at": board.loaded_at,
    }


@router.post("/drop")
async def drop_task(
    event: DropEvent,
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    """Resolve a finished drag into a status change"""
    await board.ensure_loaded(user.access_token)
    intent = await board.handle_drop(
        event.task_id, event.over_id, user.access_token,
        assignee_id=event.assignee_id, search=event.search,
    )
    if intent is None:
        return {"changed": False, "task_id": event.task_id}
    return {
        "changed": True,
        "task_id": intent.task_id,
        "from_status": intent.from_status.value,
        "to_status": intent.to_status.value,
    }


@router.post("/columns/{status}/tasks", status_code=201)
async def quick_create(
    status: TaskStatus,
    data: QuickCreate,
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    """Create a task straight into a column"""
    await board.ensure_loaded(user.access_token)
    fields = TaskCreate(title=data.title, status=status, assignee_id=data.assignee_id)
    task = await board.create_task(fields.model_dump(), user.access_token)
    return task_out(task) if task else {"status": "created"}


@router.delete("/error")
async def dismiss_error(
    user: CurrentUser = Depends(get_current_user),
    board: BoardState = Depends(get_board),
):
    board.dismiss_error()
    return {"error": None}
