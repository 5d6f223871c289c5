# tests/test_kanban.py — Kanban board router tests
import pytest
from httpx import AsyncClient

from database import BackendError
from tests.conftest import get_auth_headers, make_task


@pytest.mark.asyncio
async def test_board_has_five_columns_in_order(client: AsyncClient, test_user, seed_tasks):
    seed_tasks(make_task("a", id="a", status="review"))
    resp = await client.get("/api/v1/board", headers=get_auth_headers(test_user))
    assert resp.status_code == 200
    columns = resp.json()["columns"]
    assert [c["status"] for c in columns] == ["backlog", "todo", "in_progress", "review", "done"]
    assert [c["label"] for c in columns] == ["Backlog", "To Do", "In Progress", "Review", "Done"]
    assert columns[3]["count"] == 1
    assert columns[3]["tasks"][0]["id"] == "a"


@pytest.mark.asyncio
async def test_board_shows_first_ten_cards_per_column(client: AsyncClient, test_user, seed_tasks):
    seed_tasks(*[make_task(f"t{i}", id=f"t{i}", status="todo", position=i) for i in range(13)])
    headers = get_auth_headers(test_user)

    resp = await client.get("/api/v1/board", headers=headers)
    todo = resp.json()["columns"][1]
    assert todo["count"] == 13
    assert len(todo["tasks"]) == 10
    assert todo["hidden"] == 3

    resp = await client.get("/api/v1/board?expanded=todo", headers=headers)
    todo = resp.json()["columns"][1]
    assert len(todo["tasks"]) == 13
    assert todo["hidden"] == 0


@pytest.mark.asyncio
async def test_board_filters_by_assignee(client: AsyncClient, test_user, ai_user, seed_tasks):
    seed_tasks(
        make_task("mine", id="m", status="todo", assignee_id=test_user["id"]),
        make_task("agent's", id="g", status="todo", assignee_id=ai_user["id"]),
    )
    resp = await client.get(
        f"/api/v1/board?assignee_id={ai_user['id']}", headers=get_auth_headers(test_user),
    )
    data = resp.json()
    assert [t["id"] for t in data["columns"][1]["tasks"]] == ["g"]
    assert {u["id"] for u in data["users"]} == {test_user["id"], ai_user["id"]}


@pytest.mark.asyncio
async def test_drop_on_other_column_changes_status(client: AsyncClient, test_user, seed_tasks, fake_data):
    seed_tasks(make_task("a", id="a", status="todo"))
    resp = await client.post(
        "/api/v1/board/drop",
        json={"task_id": "a", "over_id": "done"},
        headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 200
    assert resp.json() == {"changed": True, "task_id": "a", "from_status": "todo", "to_status": "done"}
    assert [c[0] for c in fake_data.calls] == ["update"]
    assert fake_data.tables["tasks"][0]["status"] == "done"


@pytest.mark.asyncio
async def test_drop_in_same_column_is_a_no_op(client: AsyncClient, test_user, seed_tasks, fake_data):
    seed_tasks(make_task("a", id="a", status="todo"), make_task("b", id="b", status="todo"))
    resp = await client.post(
        "/api/v1/board/drop",
        json={"task_id": "a", "over_id": "b"},
        headers=get_auth_headers(test_user),
    )
    assert resp.json() == {"changed": False, "task_id": "a"}
    assert fake_data.calls == []


@pytest.mark.asyncio
async def test_failed_drop_reverts_and_reports(client: AsyncClient, test_user, seed_tasks, fake_data):
    seed_tasks(make_task("a", id="a", status="todo"))
    headers = get_auth_headers(test_user)
    fake_data.failures[("update", "tasks")] = BackendError("offline")

    resp = await client.post("/api/v1/board/drop", json={"task_id": "a", "over_id": "done"}, headers=headers)
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Failed to update task: offline"

    board = (await client.get("/api/v1/board", headers=headers)).json()
    assert board["error"] == "Failed to update task: offline"
    assert [t["id"] for t in board["columns"][1]["tasks"]] == ["a"]

    resp = await client.delete("/api/v1/board/error", headers=headers)
    assert resp.json() == {"error": None}
    assert (await client.get("/api/v1/board", headers=headers)).json()["error"] is None


@pytest.mark.asyncio
async def test_quick_create_into_column(client: AsyncClient, test_user):
    resp = await client.post(
        "/api/v1/board/columns/review/tasks",
        json={"title": "Check numbers"},
        headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 201
    assert resp.json()["status"] == "review"


@pytest.mark.asyncio
async def test_quick_create_rejects_unknown_column(client: AsyncClient, test_user):
    resp = await client.post(
        "/api/v1/board/columns/archived/tasks",
        json={"title": "x"},
        headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 422
