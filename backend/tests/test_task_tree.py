# tests/test_task_tree.py — Task forest construction and list-view helpers
import pytest

from models import Task, TaskStatus, User
from task_tree import (
    build_task_tree, flatten_tasks, find_task, filter_tasks,
    group_by_status, sort_tasks, paginate, subtask_progress,
)
from tests.conftest import make_task


def test_build_tree_nests_subtasks_under_parent():
    rows = [
        make_task("one", id="1", status="todo"),
        make_task("two", id="2", status="todo", parent_id="1"),
        make_task("three", id="3", status="done"),
    ]
    forest = build_task_tree(rows)
    assert [t.id for t in forest] == ["1", "3"]
    assert [st.id for st in forest[0].subtasks] == ["2"]
    assert forest[1].subtasks == []


def test_missing_parent_becomes_root():
    rows = [
        make_task("orphan", id="a", parent_id="gone"),
        make_task("root", id="b"),
    ]
    forest = build_task_tree(rows)
    assert [t.id for t in forest] == ["a", "b"]


def test_self_parented_task_is_root():
    forest = build_task_tree([make_task("loop", id="x", parent_id="x")])
    assert [t.id for t in forest] == ["x"]
    assert forest[0].subtasks == []


def test_every_task_appears_exactly_once():
    rows = [
        make_task("a", id="a"),
        make_task("b", id="b", parent_id="a"),
        make_task("c", id="c", parent_id="b"),
        make_task("d", id="d", parent_id="missing"),
        make_task("e", id="e", parent_id="a"),
    ]
    ids = [t.id for t in flatten_tasks(build_task_tree(rows))]
    assert sorted(ids) == ["a", "b", "c", "d", "e"]
    assert len(ids) == len(set(ids))


def test_input_order_kept_for_subtasks():
    rows = [
        make_task("parent", id="p"),
        make_task("z", id="z", parent_id="p"),
        make_task("y", id="y", parent_id="p"),
    ]
    forest = build_task_tree(rows)
    assert [st.id for st in forest[0].subtasks] == ["z", "y"]


def test_build_tree_accepts_models_without_mutating_them():
    parent = Task.model_validate(make_task("parent", id="p"))
    child = Task.model_validate(make_task("child", id="c", parent_id="p"))
    forest = build_task_tree([parent, child])
    assert [st.id for st in forest[0].subtasks] == ["c"]
    assert parent.subtasks == []


def test_find_task_searches_one_subtask_level():
    rows = [
        make_task("a", id="a"),
        make_task("b", id="b", parent_id="a"),
        make_task("c", id="c", parent_id="b"),
    ]
    forest = build_task_tree(rows)
    assert find_task(forest, "a").id == "a"
    assert find_task(forest, "b").id == "b"
    assert find_task(forest, "c") is None
    assert find_task(forest, "nope") is None


def test_filter_by_status_assignee_and_search():
    forest = build_task_tree([
        make_task("Write report", id="1", status="todo", assignee_id="u1"),
        make_task("Review report", id="2", status="review", assignee_id="u2"),
        make_task("Ship it", id="3", status="todo", assignee_id="u2"),
    ])
    assert [t.id for t in filter_tasks(forest, status=TaskStatus.TODO)] == ["1", "3"]
    assert [t.id for t in filter_tasks(forest, assignee_id="u2")] == ["2", "3"]
    assert [t.id for t in filter_tasks(forest, search="REPORT")] == ["1", "2"]
    assert [t.id for t in filter_tasks(forest, status=TaskStatus.TODO, search="ship")] == ["3"]


def test_group_by_status_has_every_column():
    forest = build_task_tree([make_task("a", id="a", status="review")])
    groups = group_by_status(forest)
    assert list(groups.keys()) == list(TaskStatus)
    assert [t.id for t in groups[TaskStatus.REVIEW]] == ["a"]
    assert groups[TaskStatus.DONE] == []


def test_sort_by_priority_uses_enum_order():
    forest = build_task_tree([
        make_task("low", id="l", priority="low"),
        make_task("urgent", id="u", priority="urgent"),
        make_task("medium", id="m", priority="medium"),
    ])
    ordered = sort_tasks(forest, "priority", descending=False)
    assert [t.id for t in ordered] == ["u", "m", "l"]


def test_sort_by_due_date_keeps_undated_last():
    forest = build_task_tree([
        make_task("none", id="n"),
        make_task("late", id="late", due_date="2025-06-01T00:00:00+00:00"),
        make_task("early", id="early", due_date="2025-01-01T00:00:00+00:00"),
    ])
    assert [t.id for t in sort_tasks(forest, "due_date", descending=False)] == ["early", "late", "n"]
    assert [t.id for t in sort_tasks(forest, "due_date", descending=True)] == ["late", "early", "n"]


def test_sort_by_assignee_puts_unassigned_last():
    users = [User(id="u1", name="Bravo"), User(id="u2", name="Alpha")]
    forest = build_task_tree([
        make_task("nobody", id="n"),
        make_task("bravo", id="b", assignee_id="u1"),
        make_task("alpha", id="a", assignee_id="u2"),
    ])
    ordered = sort_tasks(forest, "assignee", descending=False, users=users)
    assert [t.id for t in ordered] == ["a", "b", "n"]


def test_sort_rejects_unknown_field():
    with pytest.raises(ValueError):
        sort_tasks([], "colour")


def test_paginate_clamps_page():
    result = paginate(list(range(25)), page=9, page_size=10)
    assert result["page"] == 3
    assert result["items"] == [20, 21, 22, 23, 24]
    assert result["total"] == 25
    assert result["total_pages"] == 3

    empty = paginate([], page=1, page_size=10)
    assert empty["items"] == []
    assert empty["total_pages"] == 1


def test_subtask_progress_counts_done_children():
    forest = build_task_tree([
        make_task("parent", id="p"),
        make_task("a", id="a", parent_id="p", status="done"),
        make_task("b", id="b", parent_id="p", status="todo"),
    ])
    assert subtask_progress(forest[0]) == (1, 2)
    assert subtask_progress(forest[0].subtasks[0]) == (0, 0)
