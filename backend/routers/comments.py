# routers/comments.py — Discussion threads on task cards
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access import require_permission_level
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session, commit_or_conflict
from models import Task, TaskComment, User
from permissions import PermissionLevel, ResourceKind, ResourceRef, at_least

router = APIRouter(prefix="/api/v1/boards/{board_id}/tasks/{task_id}/comments", tags=["Comments"])


class CommentIn(BaseModel):
    content: str = Field(..., max_length=10000)


class CommentOut(BaseModel):
    id: str
    task_id: str
    user_id: str
    author_name: str = ""
    content: str
    created_at: str
    updated_at: str


def _ref(board_id: str) -> ResourceRef:
    return ResourceRef(ResourceKind.BOARD, board_id)


def _comment_out(comment: TaskComment, author_name: str) -> CommentOut:
    return CommentOut(
        id=comment.id,
        task_id=comment.task_id,
        user_id=comment.user_id,
        author_name=author_name or "",
        content=comment.content,
        created_at=comment.created_at.isoformat() if comment.created_at else "",
        updated_at=comment.updated_at.isoformat() if comment.updated_at else "",
    )


def _clean(content: str) -> str:
    content = content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment content is required")
    return content


async def _ensure_task(db: AsyncSession, board_id: str, task_id: str) -> None:
    result = await db.execute(
        select(Task.id).where(Task.id == task_id, Task.board_id == board_id, Task.deleted_at.is_(None))
    )
    if result.first() is None:
        raise HTTPException(status_code=404, detail="Task not found")


async def _get_comment(db: AsyncSession, task_id: str, comment_id: str) -> TaskComment:
    result = await db.execute(
        select(TaskComment).where(TaskComment.id == comment_id, TaskComment.task_id == task_id)
    )
    comment = result.scalar_one_or_none()
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


@router.get("", response_model=List[CommentOut])
async def list_comments(
    board_id: str,
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Oldest first"""
    await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    await _ensure_task(db, board_id, task_id)
    result = await db.execute(
        select(TaskComment, User.display_name)
        .join(User, User.id == TaskComment.user_id)
        .where(TaskComment.task_id == task_id)
        .order_by(TaskComment.created_at.asc())
    )
    return [_comment_out(comment, name) for comment, name in result.all()]


@router.post("", response_model=CommentOut, status_code=201)
async def add_comment(
    board_id: str,
    task_id: str,
    data: CommentIn,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    content = _clean(data.content)
    await _ensure_task(db, board_id, task_id)

    comment = TaskComment(task_id=task_id, user_id=user.id, content=content)
    db.add(comment)
    await db.flush()
    record_activity(db, user.id, "comment.created", "task", task_id, board.organization_id, {"comment_id": comment.id})
    await commit_or_conflict(db)
    return _comment_out(comment, user.display_name)


@router.patch("/{comment_id}", response_model=CommentOut)
async def edit_comment(
    board_id: str,
    task_id: str,
    comment_id: str,
    data: CommentIn,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Only the author may edit a comment"""
    board, _ = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.WRITE)
    await _ensure_task(db, board_id, task_id)
    comment = await _get_comment(db, task_id, comment_id)
    if comment.user_id != user.id:
        raise HTTPException(status_code=403, detail="Only the author can edit this comment")

    comment.content = _clean(data.content)
    record_activity(db, user.id, "comment.updated", "task", task_id, board.organization_id, {"comment_id": comment_id})
    await commit_or_conflict(db)
    return _comment_out(comment, user.display_name)


@router.delete("/{comment_id}")
async def delete_comment(
    board_id: str,
    task_id: str,
    comment_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """The author or a board admin may delete a comment"""
    board, level = await require_permission_level(db, user.id, _ref(board_id), PermissionLevel.READ)
    await _ensure_task(db, board_id, task_id)
    comment = await _get_comment(db, task_id, comment_id)
    if comment.user_id != user.id and not at_least(level, PermissionLevel.ADMIN):
        raise HTTPException(status_code=403, detail="Only the author or a board admin can delete this comment")

    await db.delete(comment)
    record_activity(db, user.id, "comment.deleted", "task", task_id, board.organization_id, {"comment_id": comment_id})
    await commit_or_conflict(db)
    return {"status": "deleted", "comment_id": comment_id}
