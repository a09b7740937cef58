# routers/boards.py — Kanban boards: grants, columns and sprints
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import board_service
import grants
import permissions
from access import require_org_role, require_permission_level
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session, commit_or_conflict
from models import Board, BoardColumn, BoardGroup, Group, GroupMember, Sprint, SprintStatus
from permissions import GroupRole, PermissionLevel, ResourceKind, ResourceRef, ResourceSnapshot
from snapshots import load_columns, load_grants_for, load_memberships, load_tasks

router = APIRouter(prefix="/api/v1/boards", tags=["Boards"])

BOARD_KEY_PATTERN = re.compile(r"^[A-Z]{2,10}$")


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken as UTC; SQLite hands stored values back without tzinfo"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ============================================================
# SCHEMAS
# ============================================================

# --- Board ---
class BoardCreate(BaseModel):
    organization_id: str
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    key: Optional[str] = Field(None, description="2-10 uppercase letters; derived from the name when omitted")
    project_id: Optional[str] = None
    columns: Optional[List[str]] = Field(None, description="Column names; the first becomes the default")
    group_ids: List[str] = Field(default_factory=list, description="Groups to grant write access at creation")


class BoardUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("name cannot be null")
        return v


class ColumnOut(BaseModel):
    id: str
    name: str
    color: Optional[str] = None
    sort_order: int
    is_default: bool
    wip_limit: Optional[int] = None
    task_count: int = 0


class BoardOut(BaseModel):
    id: str
    organization_id: str
    project_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    key: str
    created_by: str
    my_permission: Optional[PermissionLevel] = None
    columns: List[ColumnOut] = []
    task_count: int = 0
    created_at: str
    updated_at: str


class PermissionOut(BaseModel):
    resource_kind: str
    resource_id: str
    user_id: str
    level: Optional[PermissionLevel] = None
    required: Optional[PermissionLevel] = None
    allowed: Optional[bool] = None


# --- Column ---
class ColumnCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: Optional[str] = None
    wip_limit: Optional[int] = Field(None, ge=0)
    is_default: bool = False


class ColumnUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    color: Optional[str] = None
    wip_limit: Optional[int] = Field(None, ge=0, description="0 clears the limit")
    is_default: Optional[bool] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("name cannot be null")
        return v


class ColumnReorder(BaseModel):
    column_ids: List[str] = Field(..., min_length=1)


# --- Sprint ---
class SprintCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    goal: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def to_utc(cls, v):
        return _as_utc(v)


class SprintUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    goal: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[SprintStatus] = None

    @field_validator("name", "status", mode="before")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def to_utc(cls, v):
        return _as_utc(v)


class SprintOut(BaseModel):
    id: str
    board_id: str
    name: str
    goal: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: str
    created_by: str
    created_at: str


# ============================================================
# HELPERS
# ============================================================

def _ref(board_id: str) -> ResourceRef:
    return ResourceRef(ResourceKind.BOARD, board_id)


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _derive_key(name: str) -> str:
    prefix = "".join(c for c in name.upper() if "A" <= c <= "Z")[:4]
    return prefix if len(prefix) >= 2 else "TASK"


async def _load_board(db: AsyncSession, board_id: str) -> Board:
    result = await db.execute(select(Board).where(Board.id == board_id))
    return result.scalar_one()


async def _column_outs(db: AsyncSession, board_id: str) -> List[ColumnOut]:
    columns = await load_columns(db, board_id)
    counts = Counter(t.column_id for t in await load_tasks(db, board_id) if t.deleted_at is None)
    return [_column_out(c, counts.get(c.id, 0)) for c in columns]


def _column_out(col: BoardColumn, task_count: int = 0) -> ColumnOut:
    return ColumnOut(
        id=col.id,
        name=col.name,
        color=col.color,
        sort_order=col.sort_order,
        is_default=bool(col.is_default),
        wip_limit=col.wip_limit,
        task_count=task_count,
    )


async def _board_out(db: AsyncSession, board: Board, level: Optional[PermissionLevel]) -> BoardOut:
    columns = await _column_outs(db, board.id)
    return BoardOut(
        id=board.id,
        organization_id=board.organization_id,
        project_id=board.project_id,
        name=board.name,
        description=board.description,
        key=board.key,
        created_by=board.created_by,
        my_permission=level,
        columns=columns,
        task_count=sum(c.task_count for c in columns),
        created_at=_ts(board.created_at) or "",
        updated_at=_ts(board.updated_at) or "",
    )


def _sprint_out(sprint: Sprint) -> SprintOut:
    return SprintOut(
        id=sprint.id,
        board_id=sprint.board_id,
        name=sprint.name,
        goal=sprint.goal,
        start_date=_ts(sprint.start_date),
        end_date=_ts(sprint.end_date),
        status=SprintStatus(sprint.status).value,
        created_by=sprint.created_by,
        created_at=_ts(sprint.created_at) or "",
    )


# ============================================================
# BOARD ENDPOINTS
# ============================================================

@router.post("", response_model=BoardOut, status_code=201)
async def create_board(
    data: BoardCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a board with its columns; the creator holds admin on it"""
    await require_org_role(db, data.organization_id, user.id)

    key = data.key or _derive_key(data.name)
    if not BOARD_KEY_PATTERN.match(key):
        raise HTTPException(status_code=400, detail="Board key must be 2-10 uppercase letters (e.g. PROJ, DEV)")
    existing = await db.execute(
        select(Board.id).where(Board.organization_id == data.organization_id, Board.key == key)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Board key already exists in this organization")

    if data.project_id:
        project_ref = ResourceRef(ResourceKind.PROJECT, data.project_id)
        project, _ = await require_permission_level(db, user.id, project_ref, PermissionLevel.WRITE)
        if project.organization_id != data.organization_id:
            raise HTTPException(status_code=400, detail="Project belongs to a different organization")

    board = Board(
        organization_id=data.organization_id,
        project_id=data.project_id,
        name=data.name,
        description=data.description,
        key=key,
        last_task_number=0,
        created_by=user.id,
    )
    db.add(board)
    await db.flush()
    board_service.add_default_columns(db, board, data.columns)

    # Initial grants only for groups of this organization that the creator administers
    if data.group_ids:
        result = await db.execute(
            select(GroupMember.group_id)
            .join(Group, Group.id == GroupMember.group_id)
            .where(
                GroupMember.user_id == user.id,
                GroupMember.role == GroupRole.ADMIN,
                Group.organization_id == data.organization_id,
                Group.id.in_(data.group_ids),
            )
        )
        for group_id in set(result.scalars().all()):
            db.add(BoardGroup(board_id=board.id, group_id=group_id, permission_level=PermissionLevel.WRITE))

    record_activity(
        db, user.id, "board.created", "board", board.id, data.organization_id, {"name": data.name, "key": key},
    )
    await commit_or_conflict(db)

    return await _board_out(db, board, PermissionLevel.ADMIN)


@router.get("", response_model=List[BoardOut])
async def list_boards(
    organization_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Boards the caller can at least read"""
    memberships = await load_memberships(db, user.id)
    org_ids = [o for o in ([organization_id] if organization_id else list(memberships)) if o in memberships]
    if not org_ids:
        return []

    stmt = select(Board).where(Board.organization_id.in_(org_ids))
    if project_id:
        stmt = stmt.where(Board.project_id == project_id)
    result = await db.execute(stmt.order_by(Board.created_at.desc()))
    boards = result.scalars().all()

    snapshots = [ResourceSnapshot(ResourceKind.BOARD, b.id, b.organization_id, b.created_by) for b in boards]
    grants_by_board = await load_grants_for(db, ResourceKind.BOARD, [b.id for b in boards])
    visible = set(permissions.visible_resource_ids(user.id, snapshots, memberships, grants_by_board))

    out = []
    for board, snap in zip(boards, snapshots):
        if board.id not in visible:
            continue
        level = permissions.resolve(user.id, snap, memberships[board.organization_id], grants_by_board.get(board.id, []))
        out.append(await _board_out(db, board, level))
    return out


@router.get("/{board_id}", response_model=BoardOut)
async def get_board(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    _, level = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    return await _board_out(db, await _load_board(db, board_id), level)


@router.patch("/{board_id}", response_model=BoardOut)
async def update_board(
    board_id: str,
    data: BoardUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, level = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    board = await _load_board(db, board_id)

    changes = data.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        setattr(board, field_name, value)
    record_activity(db, user.id, "board.updated", "board", board_id, resource.organization_id, {"fields": list(changes)})
    await commit_or_conflict(db)
    return await _board_out(db, board, level)


@router.delete("/{board_id}")
async def delete_board(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a board with its columns, sprints and tasks"""
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    await db.delete(await _load_board(db, board_id))
    record_activity(db, user.id, "board.deleted", "board", board_id, resource.organization_id)
    await commit_or_conflict(db)
    return {"status": "deleted", "board_id": board_id}


@router.get("/{board_id}/permission", response_model=PermissionOut)
async def get_effective_permission(
    board_id: str,
    required: Optional[PermissionLevel] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """The caller's effective permission; with `required`, whether it is enough.

    Callers without any access get 403 rather than a null level.
    """
    _, level = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    allowed = permissions.at_least(level, required) if required is not None else None
    return PermissionOut(
        resource_kind=ResourceKind.BOARD.value,
        resource_id=board_id,
        user_id=user.id,
        level=level,
        required=required,
        allowed=allowed,
    )


# ============================================================
# GRANT ENDPOINTS
# ============================================================

@router.get("/{board_id}/groups", response_model=List[grants.GrantOut])
async def list_board_grants(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    return await grants.list_grants(db, resource)


@router.put("/{board_id}/groups/{group_id}", response_model=grants.GrantOut)
async def upsert_board_grant(
    board_id: str,
    group_id: str,
    data: grants.GrantUpsert,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    grant = await grants.upsert_grant(db, resource, group_id, data.permission_level)
    record_activity(
        db, user.id, "board.grant_set", "board", board_id, resource.organization_id,
        {"group_id": group_id, "level": data.permission_level.value},
    )
    await commit_or_conflict(db)
    return grant


@router.delete("/{board_id}/groups/{group_id}")
async def revoke_board_grant(
    board_id: str,
    group_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    await grants.revoke_grant(db, resource, group_id)
    record_activity(
        db, user.id, "board.grant_revoked", "board", board_id, resource.organization_id, {"group_id": group_id},
    )
    await commit_or_conflict(db)
    return {"status": "revoked", "group_id": group_id}


# ============================================================
# COLUMN ENDPOINTS
# ============================================================

@router.get("/{board_id}/columns", response_model=List[ColumnOut])
async def list_columns(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    return await _column_outs(db, board_id)


@router.post("/{board_id}/columns", response_model=ColumnOut, status_code=201)
async def create_column(
    board_id: str,
    data: ColumnCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Append a column at the end of the board"""
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    col = await board_service.create_column(
        db, board_id, data.name, color=data.color, wip_limit=data.wip_limit or None, is_default=data.is_default,
    )
    record_activity(db, user.id, "column.created", "board", board_id, resource.organization_id, {"column_id": col.id})
    await commit_or_conflict(db)
    return _column_out(col)


@router.put("/{board_id}/columns", response_model=List[ColumnOut])
async def reorder_columns(
    board_id: str,
    data: ColumnReorder,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Reorder columns; the list must name every column of the board exactly once"""
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    await board_service.reorder_columns(db, board_id, data.column_ids)
    record_activity(
        db, user.id, "column.reordered", "board", board_id, resource.organization_id, {"order": data.column_ids},
    )
    await commit_or_conflict(db)
    return await _column_outs(db, board_id)


@router.patch("/{board_id}/columns/{column_id}", response_model=ColumnOut)
async def update_column(
    board_id: str,
    column_id: str,
    data: ColumnUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    await board_service.update_column(
        db, board_id, column_id,
        name=data.name, color=data.color, wip_limit=data.wip_limit, is_default=data.is_default,
    )
    record_activity(
        db, user.id, "column.updated", "board", board_id, resource.organization_id,
        {"column_id": column_id, "fields": list(data.model_dump(exclude_unset=True))},
    )
    await commit_or_conflict(db)
    return next(c for c in await _column_outs(db, board_id) if c.id == column_id)


@router.put("/{board_id}/columns/{column_id}/default", response_model=List[ColumnOut])
async def set_default_column(
    board_id: str,
    column_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Make this the column new tasks land in; the previous default is cleared in the same transaction"""
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    await board_service.set_default_column(db, board_id, column_id)
    record_activity(
        db, user.id, "column.default_set", "board", board_id, resource.organization_id, {"column_id": column_id},
    )
    await commit_or_conflict(db)
    return await _column_outs(db, board_id)


@router.delete("/{board_id}/columns/{column_id}")
async def delete_column(
    board_id: str,
    column_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete an empty column; the last column of a board cannot be deleted"""
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    await board_service.delete_column(db, board_id, column_id)
    record_activity(
        db, user.id, "column.deleted", "board", board_id, resource.organization_id, {"column_id": column_id},
    )
    await commit_or_conflict(db)
    return {"status": "deleted", "column_id": column_id}


# ============================================================
# SPRINT ENDPOINTS
# ============================================================

@router.get("/{board_id}/sprints", response_model=List[SprintOut])
async def list_sprints(
    board_id: str,
    status: Optional[SprintStatus] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    stmt = select(Sprint).where(Sprint.board_id == board_id)
    if status:
        stmt = stmt.where(Sprint.status == status)
    result = await db.execute(stmt.order_by(Sprint.created_at.asc()))
    return [_sprint_out(s) for s in result.scalars().all()]


@router.post("/{board_id}/sprints", response_model=SprintOut, status_code=201)
async def create_sprint(
    board_id: str,
    data: SprintCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a sprint in planning state"""
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    if data.start_date and data.end_date and data.end_date < data.start_date:
        raise HTTPException(status_code=400, detail="Sprint end date is before its start date")

    sprint = Sprint(
        board_id=board_id,
        name=data.name,
        goal=data.goal,
        start_date=data.start_date,
        end_date=data.end_date,
        status=SprintStatus.PLANNING,
        created_by=user.id,
    )
    db.add(sprint)
    await db.flush()
    record_activity(db, user.id, "sprint.created", "sprint", sprint.id, resource.organization_id, {"board_id": board_id})
    await commit_or_conflict(db)
    return _sprint_out(sprint)


@router.get("/{board_id}/sprints/{sprint_id}", response_model=SprintOut)
async def get_sprint(
    board_id: str,
    sprint_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    result = await db.execute(select(Sprint).where(Sprint.id == sprint_id, Sprint.board_id == board_id))
    sprint = result.scalar_one_or_none()
    if not sprint:
        raise HTTPException(status_code=404, detail="Sprint not found")
    return _sprint_out(sprint)


@router.patch("/{board_id}/sprints/{sprint_id}", response_model=SprintOut)
async def update_sprint(
    board_id: str,
    sprint_id: str,
    data: SprintUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update a sprint; activating it returns the board's other active sprint to planning"""
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    changes = data.model_dump(exclude_unset=True)
    sprint = await board_service.update_sprint(db, board_id, sprint_id, changes)
    if sprint.start_date and sprint.end_date and _as_utc(sprint.end_date) < _as_utc(sprint.start_date):
        raise HTTPException(status_code=400, detail="Sprint end date is before its start date")
    record_activity(
        db, user.id, "sprint.updated", "sprint", sprint_id, resource.organization_id, {"fields": list(changes)},
    )
    await commit_or_conflict(db)
    return _sprint_out(sprint)


@router.delete("/{board_id}/sprints/{sprint_id}")
async def delete_sprint(
    board_id: str,
    sprint_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a sprint (admin); its tasks return to the backlog"""
    resource, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    await board_service.delete_sprint(db, board_id, sprint_id)
    record_activity(db, user.id, "sprint.deleted", "sprint", sprint_id, resource.organization_id, {"board_id": board_id})
    await commit_or_conflict(db)
    return {"status": "deleted", "sprint_id": sprint_id}
