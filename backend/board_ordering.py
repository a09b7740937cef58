# board_ordering.py — Column/task ordering and numbering rules for Kanban boards
#
# Pure decisions over board snapshots. Every function either returns the new
# values the caller must write or raises; nothing here touches the database.
# board_service.py runs these under a per-board row lock so the
# "read max, write max + 1" patterns cannot interleave.

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from errors import InvariantViolation, NotFoundError


@dataclass(frozen=True)
class ColumnState:
    id: str
    sort_order: int
    is_default: bool = False
    wip_limit: Optional[int] = None
    name: str = ""


@dataclass(frozen=True)
class TaskState:
    id: str
    board_id: str
    column_id: str
    task_number: int
    sort_order: int
    sprint_id: Optional[str] = None
    assignee_id: Optional[str] = None
    deleted: bool = False


@dataclass(frozen=True)
class SprintState:
    id: str
    board_id: str


@dataclass(frozen=True)
class ColumnDeletePlan:
    positions: Dict[str, int]
    default_column_id: Optional[str]


def _live(tasks: Iterable[TaskState]) -> List[TaskState]:
    return [t for t in tasks if not t.deleted]


def _find_column(columns: Sequence[ColumnState], column_id: str) -> ColumnState:
    for col in columns:
        if col.id == column_id:
            return col
    raise NotFoundError("Column not found")


def _by_position(columns: Sequence[ColumnState]) -> List[ColumnState]:
    return sorted(columns, key=lambda c: (c.sort_order, c.id))


# ============================================================
# COLUMNS
# ============================================================

def resolve_default_column(columns: Sequence[ColumnState]) -> str:
    """Column new tasks land in when the caller names none"""
    if not columns:
        raise InvariantViolation("Board has no columns")
    for col in columns:
        if col.is_default:
            return col.id
    # No flagged default is a data anomaly; fall back to the leftmost column
    return _by_position(columns)[0].id


def next_column_position(columns: Sequence[ColumnState]) -> int:
    if not columns:
        return 0
    return max(c.sort_order for c in columns) + 1


def set_default_column(columns: Sequence[ColumnState], column_id: str) -> Dict[str, bool]:
    """Full is_default assignment for the board: exactly one True"""
    _find_column(columns, column_id)
    return {c.id: c.id == column_id for c in columns}


def reorder_columns(columns: Sequence[ColumnState], ordered_ids: Sequence[str]) -> Dict[str, int]:
    current = {c.id for c in columns}
    supplied = list(ordered_ids)
    if len(set(supplied)) != len(supplied):
        raise InvariantViolation("Column order contains duplicate ids")
    missing = current - set(supplied)
    extra = set(supplied) - current
    if missing or extra:
        parts = []
        if missing:
            parts.append(f"missing {sorted(missing)}")
        if extra:
            parts.append(f"unknown {sorted(extra)}")
        raise InvariantViolation(
            "Column order must list every column of the board exactly once: " + ", ".join(parts)
        )
    return {column_id: position for position, column_id in enumerate(supplied)}


def check_delete_column(
    columns: Sequence[ColumnState],
    tasks: Sequence[TaskState],
    column_id: str,
) -> ColumnDeletePlan:
    """Validate a column delete and compute the remaining columns' layout"""
    target = _find_column(columns, column_id)
    if any(t.column_id == column_id for t in _live(tasks)):
        raise InvariantViolation("Cannot delete column with tasks. Move or delete tasks first.")
    if len(columns) <= 1:
        raise InvariantViolation("Cannot delete the only column. Create another column first.")

    remaining = [c for c in _by_position(columns) if c.id != column_id]
    positions = {c.id: i for i, c in enumerate(remaining)}
    default_id = next((c.id for c in remaining if c.is_default), None)
    if target.is_default or default_id is None:
        default_id = remaining[0].id
    return ColumnDeletePlan(positions=positions, default_column_id=default_id)


# ============================================================
# TASKS
# ============================================================

def next_task_number(issued_numbers: Iterable[int], high_water: int = 0) -> int:
    """One past the largest number ever issued on the board; deleted tasks included"""
    highest = max(issued_numbers, default=0)
    return max(highest, high_water or 0) + 1


def append_position(tasks: Sequence[TaskState], column_id: str) -> int:
    positions = [t.sort_order for t in _live(tasks) if t.column_id == column_id]
    if not positions:
        return 0
    return max(positions) + 1


def check_wip_limit(column: ColumnState, tasks: Sequence[TaskState]) -> None:
    if not column.wip_limit:
        return
    held = sum(1 for t in _live(tasks) if t.column_id == column.id)
    if held >= column.wip_limit:
        raise InvariantViolation(
            f"Column '{column.name or column.id}' has reached its WIP limit of {column.wip_limit}"
        )


def plan_move_task(
    task: TaskState,
    target_column_id: str,
    columns: Sequence[ColumnState],
    tasks: Sequence[TaskState],
) -> int:
    """Sort position for the task in its new column.

    `columns`/`tasks` are the snapshot of the task's own board, so a column id
    from another board is simply not found.
    """
    if task.deleted:
        raise NotFoundError("Task not found")
    target = _find_column(columns, target_column_id)
    if task.column_id == target.id:
        return task.sort_order
    check_wip_limit(target, tasks)
    return append_position(tasks, target.id)


# ============================================================
# SPRINTS / BACKLOG
# ============================================================

def assign_sprint(task: TaskState, sprint_id: Optional[str], sprints: Sequence[SprintState]) -> Optional[str]:
    """Validated sprint id for the task; None puts it in the backlog"""
    if sprint_id is None:
        return None
    for sprint in sprints:
        if sprint.id == sprint_id:
            if sprint.board_id != task.board_id:
                raise InvariantViolation("Sprint belongs to a different board")
            return sprint.id
    raise NotFoundError("Sprint not found")


def in_backlog(task: TaskState) -> bool:
    return task.sprint_id is None


def in_sprint(task: TaskState, sprint_id: str) -> bool:
    """Explicit assignment only; backlog tasks are never *in* a sprint"""
    return task.sprint_id is not None and task.sprint_id == sprint_id


def visible_in_sprint_view(task: TaskState, sprint_id: str) -> bool:
    # Backlog tasks show up under every sprint filter as well
    return in_backlog(task) or in_sprint(task, sprint_id)


def filter_tasks(
    tasks: Sequence[TaskState],
    sprint_id: Optional[str] = None,
    backlog_only: bool = False,
    column_id: Optional[str] = None,
    assignee_id: Optional[str] = None,
) -> List[TaskState]:
    out = _live(tasks)
    if backlog_only:
        out = [t for t in out if in_backlog(t)]
    elif sprint_id:
        out = [t for t in out if visible_in_sprint_view(t, sprint_id)]
    if column_id:
        out = [t for t in out if t.column_id == column_id]
    if assignee_id:
        out = [t for t in out if t.assignee_id == assignee_id]
    return out
