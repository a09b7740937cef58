# routers/tasks.py — Task cards on a board: numbering, moves, sprint planning
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import board_service
from access import require_permission_level
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session, commit_or_conflict
from models import Board, Task, TaskPriority, TaskType
from permissions import PermissionLevel, ResourceKind, ResourceRef, ResourceSnapshot
from snapshots import load_org_role, load_task_label_ids

router = APIRouter(prefix="/api/v1/boards/{board_id}/tasks", tags=["Tasks"])


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    task_type: TaskType = TaskType.TASK
    priority: TaskPriority = TaskPriority.MEDIUM
    column_id: Optional[str] = None  # If None, goes to the board's default column
    sprint_id: Optional[str] = None  # If None, stays in the backlog
    story_points: Optional[int] = Field(None, ge=0)
    assignee_id: Optional[str] = None
    parent_task_id: Optional[str] = None
    due_date: Optional[datetime] = None
    label_ids: List[str] = Field(default_factory=list, description="Labels of this board to attach")


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    task_type: Optional[TaskType] = None
    priority: Optional[TaskPriority] = None
    story_points: Optional[int] = Field(None, ge=0)
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None
    column_id: Optional[str] = None
    sprint_id: Optional[str] = None
    label_ids: Optional[List[str]] = Field(None, description="Replaces the task's labels; [] clears them")

    @field_validator("title", "task_type", "priority", "label_ids", mode="before")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class TaskMove(BaseModel):
    column_id: str


class TaskSprintAssign(BaseModel):
    sprint_id: Optional[str] = None  # None returns the task to the backlog


class TaskOut(BaseModel):
    id: str
    key: str
    task_number: int
    title: str
    description: Optional[str] = None
    task_type: str
    priority: str
    board_id: str
    column_id: str
    sprint_id: Optional[str] = None
    story_points: Optional[int] = None
    assignee_id: Optional[str] = None
    reporter_id: str
    parent_task_id: Optional[str] = None
    due_date: Optional[str] = None
    sort_order: int
    label_ids: List[str] = []
    created_at: str
    updated_at: str


# ============================================================
# HELPERS
# ============================================================

def _ref(board_id: str) -> ResourceRef:
    return ResourceRef(ResourceKind.BOARD, board_id)


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _task_to_out(task: Task, board_key: str, label_ids: Optional[List[str]] = None) -> TaskOut:
    return TaskOut(
        id=task.id,
        key=f"{board_key}-{task.task_number}",
        task_number=task.task_number,
        title=task.title,
        description=task.description,
        task_type=TaskType(task.task_type).value,
        priority=TaskPriority(task.priority).value,
        board_id=task.board_id,
        column_id=task.column_id,
        sprint_id=task.sprint_id,
        story_points=task.story_points,
        assignee_id=task.assignee_id,
        reporter_id=task.reporter_id,
        parent_task_id=task.parent_task_id,
        due_date=_ts(task.due_date),
        sort_order=task.sort_order,
        label_ids=label_ids or [],
        created_at=_ts(task.created_at) or "",
        updated_at=_ts(task.updated_at) or "",
    )


async def _board_key(db: AsyncSession, board_id: str) -> str:
    result = await db.execute(select(Board.key).where(Board.id == board_id))
    return result.scalar_one()


async def _out(db: AsyncSession, board_id: str, task: Task) -> TaskOut:
    labels = await load_task_label_ids(db, [task.id])
    return _task_to_out(task, await _board_key(db, board_id), labels.get(task.id, []))


async def _get_task(db: AsyncSession, board_id: str, task_id: str) -> Task:
    result = await db.execute(
        select(Task).where(Task.id == task_id, Task.board_id == board_id, Task.deleted_at.is_(None))
    )
    task = result.scalar_one_or_none()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


async def _check_assignee(db: AsyncSession, board: ResourceSnapshot, assignee_id: Optional[str]):
    if assignee_id and await load_org_role(db, board.organization_id, assignee_id) is None:
        raise HTTPException(status_code=400, detail="Assignee is not a member of the board's organization")


# ============================================================
# TASK ENDPOINTS
# ============================================================

@router.get("", response_model=List[TaskOut])
async def list_tasks(
    board_id: str,
    sprint_id: Optional[str] = Query(None, description="Tasks of this sprint plus the backlog"),
    backlog: bool = Query(False, description="Only tasks without a sprint"),
    column_id: Optional[str] = Query(None),
    assignee_id: Optional[str] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    tasks = await board_service.list_tasks(
        db, board_id, sprint_id=sprint_id, backlog_only=backlog, column_id=column_id, assignee_id=assignee_id,
    )
    key = await _board_key(db, board_id)
    labels = await load_task_label_ids(db, [t.id for t in tasks])
    return [_task_to_out(t, key, labels.get(t.id, [])) for t in tasks]


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    board_id: str,
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a task at the end of its column with the board's next task number"""
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    await _check_assignee(db, board, data.assignee_id)
    if data.parent_task_id:
        await _get_task(db, board_id, data.parent_task_id)

    task = await board_service.create_task(
        db,
        board_id,
        reporter_id=user.id,
        title=data.title,
        column_id=data.column_id,
        sprint_id=data.sprint_id,
        description=data.description,
        task_type=data.task_type,
        priority=data.priority,
        story_points=data.story_points,
        assignee_id=data.assignee_id,
        parent_task_id=data.parent_task_id,
        due_date=data.due_date,
        label_ids=data.label_ids,
    )
    record_activity(
        db, user.id, "task.created", "task", task.id, board.organization_id,
        {"board_id": board_id, "task_number": task.task_number, "column_id": task.column_id},
    )
    await commit_or_conflict(db)
    return await _out(db, board_id, task)


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    board_id: str,
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    task = await _get_task(db, board_id, task_id)
    return await _out(db, board_id, task)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
    board_id: str,
    task_id: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update task fields; a column or sprint change goes through the same rules as move/assign"""
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    changes = data.model_dump(exclude_unset=True)
    column_id = changes.pop("column_id", None)
    sprint_change = "sprint_id" in changes
    sprint_id = changes.pop("sprint_id", None)
    label_ids = changes.pop("label_ids", None)

    if "assignee_id" in changes:
        await _check_assignee(db, board, changes["assignee_id"])
    if column_id:
        await board_service.move_task(db, board_id, task_id, column_id)
    if sprint_change:
        await board_service.assign_sprint(db, board_id, task_id, sprint_id)
    if label_ids is not None:
        await board_service.set_task_labels(db, board_id, task_id, label_ids)

    task = await _get_task(db, board_id, task_id)
    for field_name, value in changes.items():
        setattr(task, field_name, value)

    record_activity(
        db, user.id, "task.updated", "task", task_id, board.organization_id,
        {"fields": list(data.model_dump(exclude_unset=True))},
    )
    await commit_or_conflict(db)
    return await _out(db, board_id, task)


@router.post("/{task_id}/move", response_model=TaskOut)
async def move_task(
    board_id: str,
    task_id: str,
    data: TaskMove,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Move a task to the end of another column on the same board"""
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    task = await board_service.move_task(db, board_id, task_id, data.column_id)
    record_activity(
        db, user.id, "task.moved", "task", task_id, board.organization_id,
        {"column_id": data.column_id, "sort_order": task.sort_order},
    )
    await commit_or_conflict(db)
    return await _out(db, board_id, task)


@router.put("/{task_id}/sprint", response_model=TaskOut)
async def assign_task_sprint(
    board_id: str,
    task_id: str,
    data: TaskSprintAssign,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Put a task in a sprint of this board, or back in the backlog"""
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    task = await board_service.assign_sprint(db, board_id, task_id, data.sprint_id)
    record_activity(
        db, user.id, "task.sprint_assigned", "task", task_id, board.organization_id, {"sprint_id": data.sprint_id},
    )
    await commit_or_conflict(db)
    return await _out(db, board_id, task)


@router.delete("/{task_id}")
async def delete_task(
    board_id: str,
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Soft-delete a task; its number is never reissued"""
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    task = await board_service.delete_task(db, board_id, task_id)
    record_activity(
        db, user.id, "task.deleted", "task", task_id, board.organization_id, {"task_number": task.task_number},
    )
    await commit_or_conflict(db)
    return {"status": "deleted", "task_id": task_id}
