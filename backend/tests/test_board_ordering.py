# tests/test_board_ordering.py — Column/task ordering rules over in-memory snapshots
import pytest

from board_ordering import (
    ColumnState, SprintState, TaskState, append_position, assign_sprint, check_delete_column,
    check_wip_limit, filter_tasks, in_backlog, in_sprint, next_column_position, next_task_number,
    plan_move_task, reorder_columns, resolve_default_column, set_default_column,
)
from errors import InvariantViolation, NotFoundError

BOARD = "board-1"


def columns():
    return [
        ColumnState("backlog", 0, is_default=True, name="Backlog"),
        ColumnState("todo", 1, name="To Do"),
        ColumnState("doing", 2, wip_limit=2, name="In Progress"),
        ColumnState("done", 3, name="Done"),
    ]


def task(id, column="backlog", number=1, pos=0, sprint=None, assignee=None, deleted=False):
    return TaskState(id, BOARD, column, number, pos, sprint_id=sprint, assignee_id=assignee, deleted=deleted)


# --- Default column ---

def test_flagged_default_is_used():
    cols = [ColumnState("a", 0), ColumnState("b", 1, is_default=True)]
    assert resolve_default_column(cols) == "b"


def test_default_falls_back_to_lowest_position():
    cols = [ColumnState("late", 5), ColumnState("early", 2)]
    assert resolve_default_column(cols) == "early"


def test_board_without_columns_has_no_default():
    with pytest.raises(InvariantViolation):
        resolve_default_column([])


def test_set_default_leaves_exactly_one():
    flags = set_default_column(columns(), "done")
    assert flags == {"backlog": False, "todo": False, "doing": False, "done": True}


def test_set_default_unknown_column():
    with pytest.raises(NotFoundError):
        set_default_column(columns(), "nope")


def test_next_column_position():
    assert next_column_position([]) == 0
    assert next_column_position(columns()) == 4


# --- Reorder ---

def test_reorder_produces_dense_positions():
    positions = reorder_columns(columns(), ["done", "backlog", "doing", "todo"])
    assert positions == {"done": 0, "backlog": 1, "doing": 2, "todo": 3}
    assert sorted(positions.values()) == list(range(4))


@pytest.mark.parametrize("order", [
    ["done", "backlog", "doing"],                    # missing
    ["done", "backlog", "doing", "todo", "ghost"],   # unknown
    ["done", "done", "doing", "todo"],               # duplicate
])
def test_reorder_requires_exact_column_set(order):
    with pytest.raises(InvariantViolation):
        reorder_columns(columns(), order)


# --- Delete column ---

def test_delete_column_with_live_tasks_is_rejected():
    with pytest.raises(InvariantViolation):
        check_delete_column(columns(), [task("t1", column="todo")], "todo")


def test_delete_column_ignores_soft_deleted_tasks():
    plan = check_delete_column(columns(), [task("t1", column="todo", deleted=True)], "todo")
    assert plan.positions == {"backlog": 0, "doing": 1, "done": 2}
    assert plan.default_column_id == "backlog"


def test_delete_only_column_is_rejected():
    with pytest.raises(InvariantViolation):
        check_delete_column([ColumnState("only", 0, is_default=True)], [], "only")


def test_delete_default_column_moves_default_to_first_remaining():
    plan = check_delete_column(columns(), [], "backlog")
    assert plan.default_column_id == "todo"
    assert plan.positions == {"todo": 0, "doing": 1, "done": 2}


def test_delete_unknown_column():
    with pytest.raises(NotFoundError):
        check_delete_column(columns(), [], "ghost")


# --- Task numbering and positions ---

def test_first_task_number_is_one():
    assert next_task_number([]) == 1


def test_task_number_counts_deleted_tasks_and_high_water():
    assert next_task_number([1, 2, 3]) == 4
    assert next_task_number([1, 2], high_water=3) == 4
    assert next_task_number([5], high_water=2) == 6


def test_task_numbers_strictly_increase():
    issued = []
    for _ in range(5):
        issued.append(next_task_number(issued))
    assert issued == [1, 2, 3, 4, 5]


def test_append_position_per_column():
    tasks = [task("a", "todo", pos=0), task("b", "todo", pos=2), task("c", "done", pos=7)]
    assert append_position(tasks, "todo") == 3
    assert append_position(tasks, "backlog") == 0


def test_append_position_skips_deleted_tasks():
    tasks = [task("a", "todo", pos=0), task("b", "todo", pos=5, deleted=True)]
    assert append_position(tasks, "todo") == 1


# --- WIP limits and moves ---

def test_wip_limit_rejects_when_full():
    doing = columns()[2]
    tasks = [task("a", "doing", pos=0), task("b", "doing", pos=1)]
    with pytest.raises(InvariantViolation):
        check_wip_limit(doing, tasks)


def test_wip_limit_allows_below_limit():
    check_wip_limit(columns()[2], [task("a", "doing", pos=0), task("b", "doing", pos=1, deleted=True)])


def test_move_appends_to_target_column():
    tasks = [task("a", "todo", pos=0), task("b", "done", pos=0), task("c", "done", pos=1)]
    assert plan_move_task(tasks[0], "done", columns(), tasks) == 2


def test_move_to_same_column_keeps_position():
    tasks = [task("a", "todo", pos=4)]
    assert plan_move_task(tasks[0], "todo", columns(), tasks) == 4


def test_move_to_unknown_column():
    tasks = [task("a", "todo")]
    with pytest.raises(NotFoundError):
        plan_move_task(tasks[0], "other-board-column", columns(), tasks)


def test_move_respects_wip_limit():
    tasks = [task("a", "todo"), task("b", "doing", pos=0), task("c", "doing", pos=1)]
    with pytest.raises(InvariantViolation):
        plan_move_task(tasks[0], "doing", columns(), tasks)


# --- Sprints and backlog ---

def test_assign_sprint_same_board():
    assert assign_sprint(task("a"), "s1", [SprintState("s1", BOARD)]) == "s1"


def test_assign_sprint_none_is_backlog():
    assert assign_sprint(task("a", sprint="s1"), None, []) is None


def test_assign_sprint_other_board_is_rejected():
    with pytest.raises(InvariantViolation):
        assign_sprint(task("a"), "s9", [SprintState("s9", "board-2")])


def test_assign_unknown_sprint():
    with pytest.raises(NotFoundError):
        assign_sprint(task("a"), "s1", [])


def test_backlog_task_is_not_in_any_sprint():
    t = task("a")
    assert in_backlog(t)
    assert not in_sprint(t, "s1")


def test_sprint_filter_includes_backlog():
    tasks = [
        task("planned", sprint="s1"),
        task("other", sprint="s2", number=2),
        task("loose", number=3),
        task("gone", sprint="s1", number=4, deleted=True),
    ]
    assert [t.id for t in filter_tasks(tasks, sprint_id="s1")] == ["planned", "loose"]
    assert [t.id for t in filter_tasks(tasks, backlog_only=True)] == ["loose"]
    assert [t.id for t in filter_tasks(tasks)] == ["planned", "other", "loose"]


def test_filter_by_column_and_assignee():
    tasks = [task("a", "todo", assignee="u1"), task("b", "todo", number=2), task("c", "done", number=3, assignee="u1")]
    assert [t.id for t in filter_tasks(tasks, column_id="todo")] == ["a", "b"]
    assert [t.id for t in filter_tasks(tasks, assignee_id="u1")] == ["a", "c"]
