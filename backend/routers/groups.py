# routers/groups.py — Groups inside an organization and their membership
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from access import ensure_group_admin_removable, require_org_role
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session, commit_or_conflict
from models import BoardGroup, Group, GroupMember, ProjectGroup, User
from permissions import GroupRole, OrgRole
from snapshots import load_org_role

router = APIRouter(prefix="/api/v1/groups", tags=["Groups"])


# --- Schemas ---

class GroupCreate(BaseModel):
    organization_id: str
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("name cannot be null")
        return v


class GroupMemberOut(BaseModel):
    user_id: str
    email: str
    display_name: str
    role: str


class GroupOut(BaseModel):
    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    created_by: str
    my_role: Optional[str] = None
    members: List[GroupMemberOut] = []
    created_at: str


class GroupMemberAdd(BaseModel):
    user_id: str
    role: GroupRole = GroupRole.MEMBER


class GroupMemberUpdate(BaseModel):
    role: GroupRole


# --- Helpers ---

async def _get_group(db: AsyncSession, group_id: str) -> Group:
    result = await db.execute(select(Group).where(Group.id == group_id))
    group = result.scalar_one_or_none()
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


async def _my_group_role(db: AsyncSession, group_id: str, user_id: str) -> Optional[GroupRole]:
    result = await db.execute(
        select(GroupMember.role).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )
    role = result.scalar_one_or_none()
    return GroupRole(role) if role is not None else None


async def _require_group_admin(db: AsyncSession, group: Group, user_id: str) -> GroupRole:
    """Group admins manage a group; the caller must still belong to its organization"""
    await require_org_role(db, group.organization_id, user_id)
    role = await _my_group_role(db, group.id, user_id)
    if role != GroupRole.ADMIN:
        raise HTTPException(status_code=403, detail="Group admin access required")
    return role


async def _group_out(db: AsyncSession, group: Group, my_role: Optional[GroupRole]) -> GroupOut:
    result = await db.execute(
        select(GroupMember, User)
        .join(User, User.id == GroupMember.user_id)
        .where(GroupMember.group_id == group.id)
        .order_by(GroupMember.created_at.asc())
    )
    return GroupOut(
        id=group.id,
        organization_id=group.organization_id,
        name=group.name,
        description=group.description,
        created_by=group.created_by,
        my_role=my_role.value if my_role else None,
        members=[
            GroupMemberOut(user_id=u.id, email=u.email, display_name=u.display_name or "", role=GroupRole(m.role).value)
            for m, u in result.all()
        ],
        created_at=group.created_at.isoformat() if group.created_at else "",
    )


async def _get_membership(db: AsyncSession, group_id: str, user_id: str) -> GroupMember:
    result = await db.execute(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


# --- Endpoints ---

@router.post("", response_model=GroupOut, status_code=201)
async def create_group(
    data: GroupCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a group (organization admin); the creator becomes its admin"""
    await require_org_role(db, data.organization_id, user.id, OrgRole.ADMIN)

    group = Group(
        organization_id=data.organization_id,
        name=data.name,
        description=data.description,
        created_by=user.id,
    )
    db.add(group)
    await db.flush()
    db.add(GroupMember(group_id=group.id, user_id=user.id, role=GroupRole.ADMIN))
    record_activity(db, user.id, "group.created", "group", group.id, data.organization_id, {"name": data.name})
    await commit_or_conflict(db)

    return await _group_out(db, group, GroupRole.ADMIN)


@router.get("", response_model=List[GroupOut])
async def list_groups(
    organization_id: str = Query(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Groups of an organization; admins see all of them, members see their own"""
    org_role = await require_org_role(db, organization_id, user.id)

    if org_role.rank >= OrgRole.ADMIN.rank:
        stmt = select(Group).where(Group.organization_id == organization_id)
    else:
        stmt = (
            select(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .where(Group.organization_id == organization_id, GroupMember.user_id == user.id)
        )
    result = await db.execute(stmt.order_by(Group.name.asc()))

    out = []
    for group in result.scalars().all():
        out.append(await _group_out(db, group, await _my_group_role(db, group.id, user.id)))
    return out


@router.get("/{group_id}", response_model=GroupOut)
async def get_group(
    group_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    group = await _get_group(db, group_id)
    org_role = await require_org_role(db, group.organization_id, user.id)
    my_role = await _my_group_role(db, group_id, user.id)
    if my_role is None and org_role.rank < OrgRole.ADMIN.rank:
        raise HTTPException(status_code=403, detail="Access denied")
    return await _group_out(db, group, my_role)


@router.patch("/{group_id}", response_model=GroupOut)
async def update_group(
    group_id: str,
    data: GroupUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    group = await _get_group(db, group_id)
    my_role = await _require_group_admin(db, group, user.id)

    changes = data.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        setattr(group, field_name, value)
    record_activity(db, user.id, "group.updated", "group", group.id, group.organization_id, {"fields": list(changes)})
    await commit_or_conflict(db)
    return await _group_out(db, group, my_role)


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a group; every grant it held goes with it"""
    group = await _get_group(db, group_id)
    await _require_group_admin(db, group, user.id)

    await db.execute(delete(ProjectGroup).where(ProjectGroup.group_id == group_id))
    await db.execute(delete(BoardGroup).where(BoardGroup.group_id == group_id))
    await db.delete(group)
    record_activity(db, user.id, "group.deleted", "group", group_id, group.organization_id)
    await commit_or_conflict(db)
    return {"status": "deleted", "group_id": group_id}


# --- Members ---

@router.post("/{group_id}/members", response_model=GroupOut, status_code=201)
async def add_group_member(
    group_id: str,
    data: GroupMemberAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Add an organization member to the group (group admin)"""
    group = await _get_group(db, group_id)
    my_role = await _require_group_admin(db, group, user.id)

    if await load_org_role(db, group.organization_id, data.user_id) is None:
        raise HTTPException(status_code=400, detail="User is not a member of the group's organization")

    existing = await db.execute(
        select(GroupMember.id).where(GroupMember.group_id == group_id, GroupMember.user_id == data.user_id)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User is already a member")

    db.add(GroupMember(group_id=group_id, user_id=data.user_id, role=data.role))
    record_activity(
        db, user.id, "group.member_added", "group", group_id, group.organization_id,
        {"user_id": data.user_id, "role": data.role.value},
    )
    await commit_or_conflict(db)
    return await _group_out(db, group, my_role)


@router.patch("/{group_id}/members/{member_user_id}", response_model=GroupOut)
async def change_group_member_role(
    group_id: str,
    member_user_id: str,
    data: GroupMemberUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Change a member's role; the last admin cannot be demoted"""
    group = await _get_group(db, group_id)
    await _require_group_admin(db, group, user.id)
    member = await _get_membership(db, group_id, member_user_id)
    current = GroupRole(member.role)

    if current == GroupRole.ADMIN and data.role != GroupRole.ADMIN:
        await ensure_group_admin_removable(db, group_id, member_user_id)

    member.role = data.role
    record_activity(
        db, user.id, "group.member_role_changed", "group", group_id, group.organization_id,
        {"user_id": member_user_id, "from": current.value, "to": data.role.value},
    )
    await commit_or_conflict(db)
    return await _group_out(db, group, await _my_group_role(db, group_id, user.id))


@router.delete("/{group_id}/members/{member_user_id}")
async def remove_group_member(
    group_id: str,
    member_user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Remove a member (group admin), or leave the group yourself"""
    group = await _get_group(db, group_id)
    if member_user_id != user.id:
        await _require_group_admin(db, group, user.id)
    member = await _get_membership(db, group_id, member_user_id)

    if GroupRole(member.role) == GroupRole.ADMIN:
        await ensure_group_admin_removable(db, group_id, member_user_id)

    await db.delete(member)
    record_activity(
        db, user.id, "group.member_removed", "group", group_id, group.organization_id, {"user_id": member_user_id},
    )
    await commit_or_conflict(db)
    return {"status": "removed", "user_id": member_user_id}
