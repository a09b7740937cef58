# board_service.py — Board mutations under a per-board row lock
#
# Each mutating call locks the board row first (SELECT ... FOR UPDATE), reads
# fresh column/task snapshots, lets board_ordering decide, then writes through
# the same session. The router commits via database.commit_or_conflict, so a
# lost race surfaces as ConflictError instead of a duplicate number.

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

import board_ordering
from errors import InvariantViolation, NotFoundError
from models import (
    Board, BoardColumn, Sprint, SprintStatus, Task, TaskLabelAssignment, TaskPriority, TaskType, utcnow,
)
from snapshots import column_state, load_columns, load_labels, load_sprint, load_tasks, task_state

logger = logging.getLogger("collabhub.boards")

# Default columns for a new board; Backlog receives tasks created without a column
DEFAULT_COLUMNS = [
    {"name": "Backlog", "color": "#64748b", "is_default": True},
    {"name": "To Do", "color": "#3b82f6"},
    {"name": "In Progress", "color": "#f59e0b"},
    {"name": "Done", "color": "#22c55e"},
]


async def lock_board(db: AsyncSession, board_id: str) -> Board:
    result = await db.execute(select(Board).where(Board.id == board_id).with_for_update())
    board = result.scalar_one_or_none()
    if board is None:
        raise NotFoundError("Board not found")
    return board


async def _get_task(db: AsyncSession, board_id: str, task_id: str) -> Task:
    result = await db.execute(
        select(Task).where(Task.id == task_id, Task.board_id == board_id, Task.deleted_at.is_(None))
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task not found")
    return task


def _column_by_id(columns: List[BoardColumn], column_id: str) -> BoardColumn:
    for col in columns:
        if col.id == column_id:
            return col
    raise NotFoundError("Column not found")


# ============================================================
# BOARD SETUP
# ============================================================

def add_default_columns(db: AsyncSession, board: Board, names: Optional[List[str]] = None) -> List[BoardColumn]:
    """Columns for a freshly created board; the first one is the default"""
    if names:
        specs = [{"name": name} for name in names]
        specs[0]["is_default"] = True
    else:
        specs = DEFAULT_COLUMNS
    columns = []
    for position, spec in enumerate(specs):
        col = BoardColumn(
            board_id=board.id,
            name=spec["name"],
            color=spec.get("color", "#6366f1"),
            sort_order=position,
            is_default=spec.get("is_default", False),
            wip_limit=spec.get("wip_limit"),
        )
        db.add(col)
        columns.append(col)
    return columns


# ============================================================
# READS
# ============================================================

async def resolve_default_column(db: AsyncSession, board_id: str) -> str:
    columns = await load_columns(db, board_id)
    return board_ordering.resolve_default_column([column_state(c) for c in columns])


async def next_task_number(db: AsyncSession, board_id: str) -> int:
    board = await lock_board(db, board_id)
    tasks = await load_tasks(db, board_id)
    return board_ordering.next_task_number((t.task_number for t in tasks), board.last_task_number)


async def append_task_to_column(db: AsyncSession, board_id: str, column_id: str) -> int:
    columns = await load_columns(db, board_id)
    _column_by_id(columns, column_id)
    tasks = await load_tasks(db, board_id)
    return board_ordering.append_position([task_state(t) for t in tasks], column_id)


async def list_tasks(
    db: AsyncSession,
    board_id: str,
    sprint_id: Optional[str] = None,
    backlog_only: bool = False,
    column_id: Optional[str] = None,
    assignee_id: Optional[str] = None,
) -> List[Task]:
    tasks = await load_tasks(db, board_id)
    by_id = {t.id: t for t in tasks}
    kept = board_ordering.filter_tasks(
        [task_state(t) for t in tasks],
        sprint_id=sprint_id,
        backlog_only=backlog_only,
        column_id=column_id,
        assignee_id=assignee_id,
    )
    return [by_id[t.id] for t in kept]


# ============================================================
# COLUMN MUTATIONS
# ============================================================

async def create_column(
    db: AsyncSession,
    board_id: str,
    name: str,
    color: Optional[str] = None,
    wip_limit: Optional[int] = None,
    is_default: bool = False,
) -> BoardColumn:
    await lock_board(db, board_id)
    columns = await load_columns(db, board_id)
    col = BoardColumn(
        board_id=board_id,
        name=name,
        color=color or "#6366f1",
        sort_order=board_ordering.next_column_position([column_state(c) for c in columns]),
        wip_limit=wip_limit,
        is_default=False,
    )
    db.add(col)
    await db.flush()
    if is_default or not columns:
        await set_default_column(db, board_id, col.id)
    return col


async def set_default_column(db: AsyncSession, board_id: str, column_id: str) -> BoardColumn:
    await lock_board(db, board_id)
    columns = await load_columns(db, board_id)
    flags = board_ordering.set_default_column([column_state(c) for c in columns], column_id)
    for col in columns:
        col.is_default = flags[col.id]
    return _column_by_id(columns, column_id)


async def update_column(
    db: AsyncSession,
    board_id: str,
    column_id: str,
    name: Optional[str] = None,
    color: Optional[str] = None,
    wip_limit: Optional[int] = None,
    is_default: Optional[bool] = None,
) -> BoardColumn:
    await lock_board(db, board_id)
    columns = await load_columns(db, board_id)
    col = _column_by_id(columns, column_id)

    if is_default is False and col.is_default:
        raise InvariantViolation("A board always has one default column; mark another column as default instead")
    if name is not None:
        col.name = name
    if color is not None:
        col.color = color
    if wip_limit is not None:
        col.wip_limit = wip_limit or None
    if is_default:
        await set_default_column(db, board_id, column_id)
    return col


async def reorder_columns(db: AsyncSession, board_id: str, ordered_ids: List[str]) -> List[BoardColumn]:
    await lock_board(db, board_id)
    columns = await load_columns(db, board_id)
    positions = board_ordering.reorder_columns([column_state(c) for c in columns], ordered_ids)
    for col in columns:
        col.sort_order = positions[col.id]
    logger.info(f"board={board_id} columns reordered: {ordered_ids}")
    return sorted(columns, key=lambda c: c.sort_order)


async def delete_column(db: AsyncSession, board_id: str, column_id: str) -> None:
    await lock_board(db, board_id)
    columns = await load_columns(db, board_id)
    tasks = await load_tasks(db, board_id)
    plan = board_ordering.check_delete_column(
        [column_state(c) for c in columns], [task_state(t) for t in tasks], column_id,
    )
    target = _column_by_id(columns, column_id)
    # Soft-deleted tasks still reference the column; re-home them to the default
    for task in tasks:
        if task.column_id == column_id:
            task.column_id = plan.default_column_id
    for col in columns:
        if col.id == column_id:
            continue
        col.sort_order = plan.positions[col.id]
        col.is_default = col.id == plan.default_column_id
    await db.delete(target)


# ============================================================
# TASK MUTATIONS
# ============================================================

async def create_task(
    db: AsyncSession,
    board_id: str,
    reporter_id: str,
    title: str,
    column_id: Optional[str] = None,
    sprint_id: Optional[str] = None,
    description: Optional[str] = None,
    task_type: TaskType = TaskType.TASK,
    priority: TaskPriority = TaskPriority.MEDIUM,
    story_points: Optional[int] = None,
    assignee_id: Optional[str] = None,
    parent_task_id: Optional[str] = None,
    due_date: Optional[datetime] = None,
    label_ids: Optional[List[str]] = None,
) -> Task:
    board = await lock_board(db, board_id)
    columns = await load_columns(db, board_id)
    tasks = await load_tasks(db, board_id)
    col_states = [column_state(c) for c in columns]
    task_states = [task_state(t) for t in tasks]

    target_id = column_id or board_ordering.resolve_default_column(col_states)
    target = column_state(_column_by_id(columns, target_id))
    board_ordering.check_wip_limit(target, task_states)

    number = board_ordering.next_task_number((t.task_number for t in task_states), board.last_task_number)
    position = board_ordering.append_position(task_states, target.id)

    task = Task(
        board_id=board_id,
        column_id=target.id,
        task_number=number,
        title=title,
        description=description,
        task_type=task_type,
        priority=priority,
        story_points=story_points,
        assignee_id=assignee_id,
        reporter_id=reporter_id,
        parent_task_id=parent_task_id,
        due_date=due_date,
        sort_order=position,
    )
    if sprint_id:
        task.sprint_id = board_ordering.assign_sprint(
            board_ordering.TaskState(id="", board_id=board_id, column_id=target.id, task_number=number, sort_order=position),
            sprint_id,
            await load_sprint(db, sprint_id),
        )
    board.last_task_number = number
    db.add(task)
    await db.flush()
    if label_ids:
        await _replace_labels(db, board_id, task, label_ids)
    logger.info(f"board={board_id} task #{number} created in column={target.id} at position {position}")
    return task


async def move_task(db: AsyncSession, board_id: str, task_id: str, target_column_id: str) -> Task:
    await lock_board(db, board_id)
    task = await _get_task(db, board_id, task_id)
    columns = await load_columns(db, board_id)
    tasks = await load_tasks(db, board_id)
    position = board_ordering.plan_move_task(
        task_state(task), target_column_id, [column_state(c) for c in columns], [task_state(t) for t in tasks],
    )
    task.column_id = target_column_id
    task.sort_order = position
    return task


async def assign_sprint(db: AsyncSession, board_id: str, task_id: str, sprint_id: Optional[str]) -> Task:
    await lock_board(db, board_id)
    task = await _get_task(db, board_id, task_id)
    sprints = await load_sprint(db, sprint_id) if sprint_id else []
    task.sprint_id = board_ordering.assign_sprint(task_state(task), sprint_id, sprints)
    return task


async def delete_task(db: AsyncSession, board_id: str, task_id: str) -> Task:
    """Soft delete; the task keeps its number so it is never handed out again"""
    await lock_board(db, board_id)
    task = await _get_task(db, board_id, task_id)
    task.deleted_at = utcnow()
    return task


# ============================================================
# SPRINTS
# ============================================================

async def _get_sprint(db: AsyncSession, board_id: str, sprint_id: str) -> Sprint:
    result = await db.execute(select(Sprint).where(Sprint.id == sprint_id, Sprint.board_id == board_id))
    sprint = result.scalar_one_or_none()
    if sprint is None:
        raise NotFoundError("Sprint not found")
    return sprint


async def update_sprint(db: AsyncSession, board_id: str, sprint_id: str, changes: dict) -> Sprint:
    """Apply field changes; activating a sprint returns any other active sprint to planning"""
    await lock_board(db, board_id)
    sprint = await _get_sprint(db, board_id, sprint_id)

    status = changes.get("status")
    if status is not None and SprintStatus(status) == SprintStatus.ACTIVE:
        await db.execute(
            update(Sprint)
            .where(Sprint.board_id == board_id, Sprint.status == SprintStatus.ACTIVE, Sprint.id != sprint_id)
            .values(status=SprintStatus.PLANNING)
            .execution_options(synchronize_session="fetch")
        )
    for field_name, value in changes.items():
        setattr(sprint, field_name, value)
    return sprint


async def delete_sprint(db: AsyncSession, board_id: str, sprint_id: str) -> None:
    """Delete a sprint; its tasks go back to the backlog"""
    await lock_board(db, board_id)
    sprint = await _get_sprint(db, board_id, sprint_id)
    await db.execute(
        update(Task)
        .where(Task.board_id == board_id, Task.sprint_id == sprint_id)
        .values(sprint_id=None)
        .execution_options(synchronize_session="fetch")
    )
    await db.delete(sprint)
    logger.info(f"board={board_id} sprint={sprint_id} deleted, tasks returned to backlog")


# ============================================================
# LABELS
# ============================================================

async def _replace_labels(db: AsyncSession, board_id: str, task: Task, label_ids: List[str]) -> List[str]:
    board_labels = {label.id for label in await load_labels(db, board_id)}
    wanted = list(dict.fromkeys(label_ids))
    foreign = [label_id for label_id in wanted if label_id not in board_labels]
    if foreign:
        raise InvariantViolation(f"Labels do not belong to this board: {', '.join(foreign)}")

    await db.execute(delete(TaskLabelAssignment).where(TaskLabelAssignment.task_id == task.id))
    for label_id in wanted:
        db.add(TaskLabelAssignment(task_id=task.id, label_id=label_id))
    await db.flush()
    return wanted


async def set_task_labels(db: AsyncSession, board_id: str, task_id: str, label_ids: List[str]) -> List[str]:
    """Replace the task's labels; every label must belong to the task's board"""
    await lock_board(db, board_id)
    task = await _get_task(db, board_id, task_id)
    labels = await _replace_labels(db, board_id, task, label_ids)
    logger.info(f"board={board_id} task #{task.task_number} labels set to {labels}")
    return labels
