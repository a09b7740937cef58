# grants.py — Group grants on projects and boards
# Shared by the project and board routers; both grant tables have the same
# shape and differ only in the resource column.

from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import InvariantViolation, NotFoundError
from models import BoardGroup, Group, ProjectGroup
from permissions import PermissionLevel, ResourceKind, ResourceSnapshot

_GRANT_TABLES = {
    ResourceKind.PROJECT: (ProjectGroup, "project_id"),
    ResourceKind.BOARD: (BoardGroup, "board_id"),
}


class GrantOut(BaseModel):
    group_id: str
    group_name: str
    permission_level: PermissionLevel
    created_at: Optional[str] = None


class GrantUpsert(BaseModel):
    permission_level: PermissionLevel


def _grant_out(row, group: Group) -> GrantOut:
    return GrantOut(
        group_id=group.id,
        group_name=group.name,
        permission_level=row.permission_level,
        created_at=row.created_at.isoformat() if row.created_at else None,
    )


async def list_grants(db: AsyncSession, resource: ResourceSnapshot) -> List[GrantOut]:
    model, column = _GRANT_TABLES[resource.kind]
    result = await db.execute(
        select(model, Group)
        .join(Group, Group.id == model.group_id)
        .where(getattr(model, column) == resource.id)
        .order_by(Group.name.asc())
    )
    return [_grant_out(row, group) for row, group in result.all()]


async def upsert_grant(
    db: AsyncSession, resource: ResourceSnapshot, group_id: str, level: PermissionLevel,
) -> GrantOut:
    """Create or change a group's grant; the group must live in the resource's organization"""
    result = await db.execute(select(Group).where(Group.id == group_id))
    group = result.scalar_one_or_none()
    if group is None:
        raise NotFoundError("Group not found")
    if group.organization_id != resource.organization_id:
        raise InvariantViolation("Group belongs to a different organization")

    model, column = _GRANT_TABLES[resource.kind]
    result = await db.execute(
        select(model).where(getattr(model, column) == resource.id, model.group_id == group_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = model(group_id=group_id, permission_level=level, **{column: resource.id})
        db.add(row)
    else:
        row.permission_level = level
    await db.flush()
    await db.refresh(row)
    return _grant_out(row, group)


async def revoke_grant(db: AsyncSession, resource: ResourceSnapshot, group_id: str) -> None:
    model, column = _GRANT_TABLES[resource.kind]
    result = await db.execute(
        select(model).where(getattr(model, column) == resource.id, model.group_id == group_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFoundError("Grant not found")
    await db.delete(row)
