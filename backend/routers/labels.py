# routers/labels.py — Board-scoped task labels
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access import require_permission_level
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session, commit_or_conflict
from models import TaskLabel
from permissions import PermissionLevel, ResourceKind, ResourceRef
from snapshots import load_labels

router = APIRouter(prefix="/api/v1/boards/{board_id}/labels", tags=["Labels"])

COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


# --- Schemas ---

class LabelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field("#6366f1", pattern=COLOR_PATTERN)


class LabelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)

    @field_validator("name", "color", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("labels always have a name and a color")
        return v


class LabelOut(BaseModel):
    id: str
    board_id: str
    name: str
    color: str
    created_at: str


# --- Helpers ---

def _ref(board_id: str) -> ResourceRef:
    return ResourceRef(ResourceKind.BOARD, board_id)


def _label_out(label: TaskLabel) -> LabelOut:
    return LabelOut(
        id=label.id,
        board_id=label.board_id,
        name=label.name,
        color=label.color,
        created_at=label.created_at.isoformat() if label.created_at else "",
    )


async def _get_label(db: AsyncSession, board_id: str, label_id: str) -> TaskLabel:
    result = await db.execute(select(TaskLabel).where(TaskLabel.id == label_id, TaskLabel.board_id == board_id))
    label = result.scalar_one_or_none()
    if not label:
        raise HTTPException(status_code=404, detail="Label not found")
    return label


async def _ensure_name_free(db: AsyncSession, board_id: str, name: str, label_id: Optional[str] = None):
    stmt = select(TaskLabel.id).where(TaskLabel.board_id == board_id, TaskLabel.name == name)
    if label_id:
        stmt = stmt.where(TaskLabel.id != label_id)
    if (await db.execute(stmt)).first():
        raise HTTPException(status_code=409, detail=f"Label '{name}' already exists on this board")


# --- Endpoints ---

@router.get("", response_model=List[LabelOut])
async def list_labels(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    return [_label_out(label) for label in await load_labels(db, board_id)]


@router.post("", response_model=LabelOut, status_code=201)
async def create_label(
    board_id: str,
    data: LabelCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Label name is required")
    await _ensure_name_free(db, board_id, name)

    label = TaskLabel(board_id=board_id, name=name, color=data.color)
    db.add(label)
    await db.flush()
    record_activity(db, user.id, "label.created", "label", label.id, board.organization_id, {"board_id": board_id})
    await commit_or_conflict(db)
    return _label_out(label)


@router.patch("/{label_id}", response_model=LabelOut)
async def update_label(
    board_id: str,
    label_id: str,
    data: LabelUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    label = await _get_label(db, board_id, label_id)
    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise HTTPException(status_code=400, detail="Label name is required")
        await _ensure_name_free(db, board_id, changes["name"], label_id)

    for field_name, value in changes.items():
        setattr(label, field_name, value)
    record_activity(db, user.id, "label.updated", "label", label_id, board.organization_id, {"fields": list(changes)})
    await commit_or_conflict(db)
    return _label_out(label)


@router.delete("/{label_id}")
async def delete_label(
    board_id: str,
    label_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a label (admin); it disappears from every task carrying it"""
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.ADMIN)
    label = await _get_label(db, board_id, label_id)
    await db.delete(label)
    record_activity(db, user.id, "label.deleted", "label", label_id, board.organization_id, {"board_id": board_id})
    await commit_or_conflict(db)
    return {"status": "deleted", "label_id": label_id}
