# board_state.py — Optimistic board cache over the hosted task table
"""
BoardState keeps the transient, possibly stale copy of users and the task
forest that every HexTask view reads from.

Quick edits (status, priority, assignee, due date, position) are applied to
the cached forest first and sent to the store second. If the store rejects
the write, the cache is rebuilt from a full re-fetch instead of patched back
by hand, so the store stays the only source of truth. There is no retry:
the error is reported once and the caller must repeat the action.
"""

import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Callable, Awaitable

from database import DataService, BackendError, get_data_service
from dragdrop import find_dragged_task, resolve_drop, StatusChangeIntent
from models import Task, TaskStatus, User, TASK_WRITABLE_FIELDS, utcnow
from task_tree import build_task_tree, filter_tasks, find_task, group_by_status

logger = logging.getLogger("hextask.board")

PLACEHOLDER_PREFIX = "temp-"

Listener = Callable[[str, Dict[str, Any]], Awaitable[None]]


class BoardMutationError(Exception):
    """A board write failed; the cache has already been resynchronised."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ============================================================
# PURE STATE PROJECTIONS
# ============================================================

def completion_changes(task: Optional[Task], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Keep completed_at in step with a status change"""
    if "status" not in changes:
        return changes
    new_status = TaskStatus(changes["status"])
    old_status = TaskStatus(task.status) if task else None
    result = dict(changes)
    if new_status == TaskStatus.DONE and old_status != TaskStatus.DONE:
        result.setdefault("completed_at", utcnow())
    elif new_status != TaskStatus.DONE and old_status == TaskStatus.DONE:
        result.setdefault("completed_at", None)
    return result


def apply_task_patch(forest: List[Task], task_id: str, changes: Dict[str, Any]) -> List[Task]:
    """Return a new forest with `changes` applied to one task.

    Searches root tasks and one level of subtasks. Unknown ids leave the
    forest unchanged.
    """
    def patch(task: Task) -> Task:
        return Task.model_validate({**task.model_dump(), **changes, "subtasks": task.subtasks})

    result = []
    for task in forest:
        if task.id == task_id:
            result.append(patch(task))
        elif any(st.id == task_id for st in task.subtasks):
            subtasks = [patch(st) if st.id == task_id else st for st in task.subtasks]
            result.append(task.model_copy(update={"subtasks": subtasks}))
        else:
            result.append(task)
    return result


def insert_subtask(forest: List[Task], parent_id: str, subtask: Task) -> List[Task]:
    result = []
    for task in forest:
        if task.id == parent_id:
            result.append(task.model_copy(update={"subtasks": [*task.subtasks, subtask]}))
        elif any(st.id == parent_id for st in task.subtasks):
            subtasks = [
                st.model_copy(update={"subtasks": [*st.subtasks, subtask]}) if st.id == parent_id else st
                for st in task.subtasks
            ]
            result.append(task.model_copy(update={"subtasks": subtasks}))
        else:
            result.append(task)
    return result


def replace_task(forest: List[Task], old_id: str, new_task: Task) -> List[Task]:
    """Swap a task (typically a placeholder) for its confirmed row"""
    def swap(tasks: List[Task]) -> List[Task]:
        swapped = []
        for task in tasks:
            if task.id == old_id:
                swapped.append(new_task.model_copy(update={"subtasks": task.subtasks}))
            else:
                swapped.append(task.model_copy(update={"subtasks": swap(task.subtasks)}) if task.subtasks else task)
        return swapped
    return swap(forest)


def is_placeholder(task_id: str) -> bool:
    return task_id.startswith(PLACEHOLDER_PREFIX)


def _store_payload(changes: Dict[str, Any]) -> Dict[str, Any]:
    payload = {}
    for key, value in changes.items():
        if key not in TASK_WRITABLE_FIELDS:
            continue
        if isinstance(value, datetime):
            value = value.isoformat()
        elif hasattr(value, "value"):
            value = value.value
        payload[key] = value
    return payload


# ============================================================
# BOARD STATE
# ============================================================

class BoardState:
    """Shared optimistic cache of the task board"""

    def __init__(self, data: DataService):
        self.data = data
        self.tasks: List[Task] = []
        self.users: List[User] = []
        self.error: Optional[str] = None
        self.loaded_at: Optional[datetime] = None
        # True while the cached forest could not be re-fetched from the store
        self.stale = False
        self._listeners: List[Listener] = []

    # --- listeners ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    async def _notify(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        # A failing listener must not interrupt a write already applied locally
        for listener in list(self._listeners):
            try:
                await listener(event, payload or {})
            except Exception as e:
                logger.error(f"Board listener failed on {event}: {e}", exc_info=True)

    async def _fail(
        self,
        message: str,
        access_token: Optional[str],
        previous: Optional[List[Task]] = None,
    ) -> BoardMutationError:
        """Report a failed write and discard speculative state.

        If the corrective re-fetch fails too, the forest from before the
        write is restored and the next load re-fetches.
        """
        logger.warning(message)
        await self.refresh(access_token)
        if self.stale:
            if previous is not None:
                self.tasks = previous
            self.loaded_at = None
        self.error = message
        await self._notify("board.error", {"error": message})
        return BoardMutationError(message)

    # --- reads ---

    async def refresh(self, access_token: Optional[str] = None) -> List[Task]:
        """Re-fetch users and tasks. Failed fetches keep the previous state."""
        try:
            rows = await self.data.select("users", access_token=access_token)
            self.users = [User.model_validate(r) for r in rows]
        except BackendError as e:
            logger.error(f"Error fetching users: {e}")
            self.error = "Failed to load users"

        try:
            rows = await self.data.select(
                "tasks",
                order=[("position", True), ("created_at", False)],
                access_token=access_token,
            )
        except BackendError as e:
            logger.error(f"Error fetching tasks: {e}")
            self.error = "Failed to load tasks"
            self.stale = True
        else:
            self.tasks = build_task_tree(rows)
            self.loaded_at = datetime.now(timezone.utc)
            self.stale = False

        await self._notify("board.refreshed", {"error": self.error})
        return self.tasks

    async def ensure_loaded(self, access_token: Optional[str] = None) -> List[Task]:
        if self.loaded_at is None:
            await self.refresh(access_token)
        return self.tasks

    def get_task(self, task_id: str) -> Optional[Task]:
        return find_task(self.tasks, task_id)

    def status_groups(
        self,
        assignee_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[TaskStatus, List[Task]]:
        return group_by_status(filter_tasks(self.tasks, assignee_id=assignee_id, search=search))

    def dismiss_error(self) -> None:
        self.error = None

    # --- optimistic writes ---

    async def update_task(
        self,
        task_id: str,
        changes: Dict[str, Any],
        access_token: Optional[str] = None,
    ) -> Optional[Task]:
        """Apply a quick edit locally, then persist it"""
        changes = completion_changes(self.get_task(task_id), changes)
        previous = self.tasks
        self.tasks = apply_task_patch(self.tasks, task_id, changes)
        await self._notify("board.patched", {"task_id": task_id, "changes": _store_payload(changes)})

        try:
            await self.data.update("tasks", _store_payload(changes), {"id": task_id}, access_token=access_token)
        except BackendError as e:
            logger.error(f"Error updating task {task_id}: {e}")
            raise await self._fail(f"Failed to update task: {e.message}", access_token, previous) from e
        except Exception as e:
            logger.error(f"Unexpected error updating task {task_id}: {e}", exc_info=True)
            raise await self._fail("An unexpected error occurred", access_token, previous) from e
        return self.get_task(task_id)

    async def create_subtask(
        self,
        parent_id: str,
        fields: Dict[str, Any],
        access_token: Optional[str] = None,
    ) -> Task:
        """Show a placeholder subtask at once, swap in the real row on confirm"""
        placeholder = Task.model_validate({
            **fields,
            "id": f"{PLACEHOLDER_PREFIX}{uuid.uuid4().hex}",
            "parent_id": parent_id,
            "created_at": utcnow(),
            "updated_at": utcnow(),
        })
        previous = self.tasks
        self.tasks = insert_subtask(self.tasks, parent_id, placeholder)
        await self._notify("board.patched", {"task_id": placeholder.id, "placeholder": True})

        payload = _store_payload({**completion_changes(None, fields), "parent_id": parent_id})
        try:
            rows = await self.data.insert("tasks", payload, access_token=access_token)
            if not rows:
                raise BackendError("Insert returned no row")
        except BackendError as e:
            logger.error(f"Error creating subtask under {parent_id}: {e}")
            raise await self._fail(f"Failed to create task: {e.message}", access_token, previous) from e
        except Exception as e:
            logger.error(f"Unexpected error creating subtask under {parent_id}: {e}", exc_info=True)
            raise await self._fail("An unexpected error occurred", access_token, previous) from e

        created = Task.model_validate(rows[0])
        self.tasks = replace_task(self.tasks, placeholder.id, created)
        await self._notify("board.patched", {"task_id": created.id, "replaces": placeholder.id})
        return created

    async def handle_drop(
        self,
        task_id: str,
        over_id: Optional[str],
        access_token: Optional[str] = None,
        assignee_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Optional[StatusChangeIntent]:
        """Turn a finished drag into at most one status update"""
        groups = self.status_groups(assignee_id=assignee_id, search=search)
        active = find_dragged_task(task_id, groups) or self.get_task(task_id)
        intent = resolve_drop(active, over_id, groups)
        if intent is None:
            return None
        await self.update_task(intent.task_id, {"status": intent.to_status}, access_token)
        return intent

    # --- confirmed writes (network first, then re-fetch) ---

    async def create_task(self, fields: Dict[str, Any], access_token: Optional[str] = None) -> Optional[Task]:
        if fields.get("parent_id"):
            return await self.create_subtask(fields["parent_id"], fields, access_token)
        payload = _store_payload(completion_changes(None, fields))
        try:
            rows = await self.data.insert("tasks", payload, access_token=access_token)
        except BackendError as e:
            logger.error(f"Error creating task: {e}")
            raise await self._fail(f"Failed to create task: {e.message}", access_token) from e
        await self.refresh(access_token)
        created_id = rows[0]["id"] if rows else None
        return self.get_task(created_id) if created_id else None

    async def save_task(
        self,
        task_id: str,
        fields: Dict[str, Any],
        access_token: Optional[str] = None,
    ) -> Optional[Task]:
        """Full edit from the task form"""
        payload = _store_payload(completion_changes(self.get_task(task_id), fields))
        try:
            await self.data.update("tasks", payload, {"id": task_id}, access_token=access_token)
        except BackendError as e:
            logger.error(f"Error updating task {task_id}: {e}")
            raise await self._fail(f"Failed to update task: {e.message}", access_token) from e
        except Exception as e:
            logger.error(f"Unexpected error saving task {task_id}: {e}", exc_info=True)
            raise await self._fail("An unexpected error occurred", access_token) from e
        await self.refresh(access_token)
        return self.get_task(task_id)

    async def delete_task(self, task_id: str, access_token: Optional[str] = None) -> None:
        try:
            await self.data.delete("tasks", {"id": task_id}, access_token=access_token)
        except BackendError as e:
            logger.error(f"Error deleting task {task_id}: {e}")
            raise await self._fail(f"Failed to delete task: {e.message}", access_token) from e
        await self.refresh(access_token)

    async def duplicate_task(self, task_id: str, access_token: Optional[str] = None) -> Optional[Task]:
        source = self.get_task(task_id)
        if source is None:
            return None
        fields = source.model_dump(include={"description", "status", "priority", "assignee_id", "parent_id", "due_date", "position"})
        fields["title"] = f"{source.title} (copy)"
        if not fields.get("parent_id"):
            fields.pop("parent_id", None)
        return await self.create_task(fields, access_token)


_board: Optional[BoardState] = None


def get_board() -> BoardState:
    """Dependency for the process-wide board cache (FastAPI Depends)"""
    global _board
    if _board is None:
        _board = BoardState(get_data_service())
    return _board


def reset_board() -> None:
    global _board
    _board = None
