# task_tree.py — Flat task rows → parent/child forest, plus list-view helpers
"""
The store keeps tasks as flat rows with an optional parent_id. The forest
built here is a disposable view: it is rebuilt on every fetch and never
written back.
"""

import math
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable, Tuple

from models import (
    Task, TaskStatus, User, STATUS_ORDER, PRIORITY_ORDER,
)

SORT_FIELDS = ("title", "status", "priority", "assignee", "due_date", "created_at")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def build_task_tree(rows: Iterable[Any]) -> List[Task]:
    """Build the root forest from flat rows (dicts or Task models).

    A task whose parent is not in the set is treated as a root. Input order
    is kept both for roots and inside each subtasks list. No cycle detection.
    """
    task_map: Dict[str, Task] = {}
    for row in rows:
        task = Task.model_validate(row) if isinstance(row, dict) else row.model_copy(deep=False)
        task.subtasks = []
        task_map[task.id] = task

    roots: List[Task] = []
    for task in task_map.values():
        if task.parent_id and task.parent_id in task_map and task.parent_id != task.id:
            task_map[task.parent_id].subtasks.append(task)
        else:
            roots.append(task)
    return roots


def flatten_tasks(forest: Iterable[Task]) -> List[Task]:
    flat: List[Task] = []
    for task in forest:
        flat.append(task)
        flat.extend(flatten_tasks(task.subtasks))
    return flat


def find_task(forest: Iterable[Task], task_id: str) -> Optional[Task]:
    """Look a task up at root level or one level of subtasks"""
    for task in forest:
        if task.id == task_id:
            return task
        for subtask in task.subtasks:
            if subtask.id == task_id:
                return subtask
    return None


def filter_tasks(
    forest: Iterable[Task],
    status: Optional[TaskStatus] = None,
    assignee_id: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Task]:
    """Filter root tasks the way the board toolbar does"""
    needle = search.lower() if search else None
    result = []
    for task in forest:
        if status is not None and task.status != status:
            continue
        if assignee_id is not None and task.assignee_id != assignee_id:
            continue
        if needle and needle not in task.title.lower():
            continue
        result.append(task)
    return result


def group_by_status(tasks: Iterable[Task]) -> Dict[TaskStatus, List[Task]]:
    groups: Dict[TaskStatus, List[Task]] = {status: [] for status in TaskStatus}
    for task in tasks:
        groups[TaskStatus(task.status)].append(task)
    return groups


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def sort_tasks(
    tasks: Iterable[Task],
    field: str = "created_at",
    descending: bool = True,
    users: Optional[Iterable[User]] = None,
) -> List[Task]:
    if field not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field: {field}")
    names = {user.id: user.name for user in (users or [])}
    items = list(tasks)

    if field == "due_date":
        # Tasks without a due date stay at the end in either direction
        dated = [t for t in items if t.due_date is not None]
        undated = [t for t in items if t.due_date is None]
        dated.sort(key=lambda t: _aware(t.due_date), reverse=descending)
        return dated + undated

    if field == "title":
        key = lambda t: t.title.lower()
    elif field == "status":
        key = lambda t: STATUS_ORDER[TaskStatus(t.status)]
    elif field == "priority":
        key = lambda t: PRIORITY_ORDER[t.priority]
    elif field == "assignee":
        key = lambda t: names.get(t.assignee_id, "zzz").lower()
    else:
        key = lambda t: _aware(t.created_at) or _EPOCH
    return sorted(items, key=key, reverse=descending)


def paginate(items: List[Any], page: int = 1, page_size: int = 20) -> Dict[str, Any]:
    page_size = max(1, page_size)
    total = len(items)
    total_pages = max(1, math.ceil(total / page_size))
    page = min(max(1, page), total_pages)
    start = (page - 1) * page_size
    return {
        "items": items[start:start + page_size],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
    }


def subtask_progress(task: Task) -> Tuple[int, int]:
    """(done, total) over a task's direct subtasks"""
    done = sum(1 for st in task.subtasks if st.status == TaskStatus.DONE)
    return done, len(task.subtasks)
