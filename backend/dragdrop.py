# dragdrop.py — Map a finished drag on the kanban board to a status change
"""
The board UI reports two ids when a drag ends: the dragged task and whatever
it was dropped over. The drop target is either a column (its id is the
status value) or another task card. Only a column change produces an
intent; dropping inside the same column does not reorder anything.
"""

from dataclasses import dataclass
from typing import Optional, Mapping, Sequence

from models import Task, TaskStatus


@dataclass(frozen=True)
class StatusChangeIntent:
    task_id: str
    from_status: TaskStatus
    to_status: TaskStatus


def _as_status(value: Optional[str]) -> Optional[TaskStatus]:
    try:
        return TaskStatus(value)
    except ValueError:
        return None


def find_dragged_task(
    task_id: str,
    status_groups: Mapping[TaskStatus, Sequence[Task]],
) -> Optional[Task]:
    for tasks in status_groups.values():
        for task in tasks:
            if task.id == task_id:
                return task
    return None


def resolve_drop_status(
    over_id: Optional[str],
    status_groups: Mapping[TaskStatus, Sequence[Task]],
) -> Optional[TaskStatus]:
    """Column a drop target belongs to, or None if it is not on the board"""
    if not over_id:
        return None

    status = _as_status(over_id)
    if status is not None and status in status_groups:
        return status

    for column, tasks in status_groups.items():
        if any(task.id == over_id for task in tasks):
            return column
    return None


def resolve_drop(
    active_task: Optional[Task],
    over_id: Optional[str],
    status_groups: Mapping[TaskStatus, Sequence[Task]],
) -> Optional[StatusChangeIntent]:
    if active_task is None:
        return None
    new_status = resolve_drop_status(over_id, status_groups)
    if new_status is None or new_status == active_task.status:
        return None
    return StatusChangeIntent(
        task_id=active_task.id,
        from_status=TaskStatus(active_task.status),
        to_status=new_status,
    )
