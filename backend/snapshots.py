# snapshots.py — Snapshot providers for the permission resolver and board engine
# All reads go through the caller's session, so a check and the mutation it
# authorises see the same transaction.

from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from board_ordering import ColumnState, SprintState, TaskState
from models import (
    Board, BoardColumn, BoardGroup, Group, GroupMember, OrganizationMember,
    Project, ProjectGroup, Sprint, Task, TaskLabel, TaskLabelAssignment,
)
from permissions import (
    Grant, MembershipSnapshot, OrgRole, ResourceKind, ResourceRef,
    ResourceSnapshot, RoleAssignment,
)

_RESOURCE_MODELS = {
    ResourceKind.PROJECT: Project,
    ResourceKind.BOARD: Board,
}

_GRANT_MODELS = {
    ResourceKind.PROJECT: (ProjectGroup, ProjectGroup.project_id),
    ResourceKind.BOARD: (BoardGroup, BoardGroup.board_id),
}


# ============================================================
# IDENTITY & GRANTS
# ============================================================

async def load_resource(db: AsyncSession, ref: ResourceRef) -> Optional[ResourceSnapshot]:
    model = _RESOURCE_MODELS[ref.kind]
    result = await db.execute(
        select(model.id, model.organization_id, model.created_by).where(model.id == ref.id)
    )
    row = result.first()
    if row is None:
        return None
    return ResourceSnapshot(kind=ref.kind, id=row.id, organization_id=row.organization_id, created_by=row.created_by)


async def load_org_role(db: AsyncSession, organization_id: str, user_id: str) -> Optional[OrgRole]:
    result = await db.execute(
        select(OrganizationMember.role).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
    )
    role = result.scalar_one_or_none()
    return OrgRole(role) if role is not None else None


async def load_membership(db: AsyncSession, user_id: str, organization_id: str) -> MembershipSnapshot:
    org_role = await load_org_role(db, organization_id, user_id)
    group_ids = frozenset()
    if org_role is not None:
        result = await db.execute(
            select(GroupMember.group_id)
            .join(Group, Group.id == GroupMember.group_id)
            .where(GroupMember.user_id == user_id, Group.organization_id == organization_id)
        )
        group_ids = frozenset(result.scalars().all())
    return MembershipSnapshot(
        user_id=user_id, organization_id=organization_id, org_role=org_role, group_ids=group_ids,
    )


async def load_memberships(db: AsyncSession, user_id: str) -> Dict[str, MembershipSnapshot]:
    """Every organisation the user belongs to, keyed by organisation id"""
    org_rows = await db.execute(
        select(OrganizationMember.organization_id, OrganizationMember.role)
        .where(OrganizationMember.user_id == user_id)
    )
    group_rows = await db.execute(
        select(Group.organization_id, GroupMember.group_id)
        .join(Group, Group.id == GroupMember.group_id)
        .where(GroupMember.user_id == user_id)
    )
    groups_by_org: Dict[str, set] = {}
    for org_id, group_id in group_rows.all():
        groups_by_org.setdefault(org_id, set()).add(group_id)

    return {
        org_id: MembershipSnapshot(
            user_id=user_id,
            organization_id=org_id,
            org_role=OrgRole(role),
            group_ids=frozenset(groups_by_org.get(org_id, ())),
        )
        for org_id, role in org_rows.all()
    }


async def load_grants(db: AsyncSession, ref: ResourceRef) -> List[Grant]:
    model, resource_col = _GRANT_MODELS[ref.kind]
    result = await db.execute(
        select(model.group_id, model.permission_level).where(resource_col == ref.id)
    )
    return [Grant(group_id=group_id, level=level) for group_id, level in result.all()]


async def load_grants_for(db: AsyncSession, kind: ResourceKind, resource_ids: List[str]) -> Dict[str, List[Grant]]:
    if not resource_ids:
        return {}
    model, resource_col = _GRANT_MODELS[kind]
    result = await db.execute(
        select(resource_col, model.group_id, model.permission_level).where(resource_col.in_(resource_ids))
    )
    out: Dict[str, List[Grant]] = {}
    for resource_id, group_id, level in result.all():
        out.setdefault(resource_id, []).append(Grant(group_id=group_id, level=level))
    return out


def group_roles_query(group_id: str, for_update: bool = False):
    stmt = (
        select(GroupMember.user_id, GroupMember.role)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.user_id)
    )
    return stmt.with_for_update() if for_update else stmt


def org_roles_query(organization_id: str, for_update: bool = False):
    stmt = (
        select(OrganizationMember.user_id, OrganizationMember.role)
        .where(OrganizationMember.organization_id == organization_id)
        .order_by(OrganizationMember.user_id)
    )
    return stmt.with_for_update() if for_update else stmt


async def load_group_roles(db: AsyncSession, group_id: str, for_update: bool = False) -> List[RoleAssignment]:
    """With for_update, the member rows stay locked until commit so two demotions cannot both pass"""
    result = await db.execute(group_roles_query(group_id, for_update))
    return [RoleAssignment(user_id=u, role=getattr(r, "value", r)) for u, r in result.all()]


async def load_org_roles(db: AsyncSession, organization_id: str, for_update: bool = False) -> List[RoleAssignment]:
    result = await db.execute(org_roles_query(organization_id, for_update))
    return [RoleAssignment(user_id=u, role=getattr(r, "value", r)) for u, r in result.all()]


# ============================================================
# BOARD STATE
# ============================================================

def column_state(col: BoardColumn) -> ColumnState:
    return ColumnState(
        id=col.id,
        sort_order=col.sort_order or 0,
        is_default=bool(col.is_default),
        wip_limit=col.wip_limit,
        name=col.name,
    )


def task_state(task: Task) -> TaskState:
    return TaskState(
        id=task.id,
        board_id=task.board_id,
        column_id=task.column_id,
        task_number=task.task_number,
        sort_order=task.sort_order or 0,
        sprint_id=task.sprint_id,
        assignee_id=task.assignee_id,
        deleted=task.deleted_at is not None,
    )


async def load_columns(db: AsyncSession, board_id: str) -> List[BoardColumn]:
    result = await db.execute(
        select(BoardColumn).where(BoardColumn.board_id == board_id).order_by(BoardColumn.sort_order.asc())
    )
    return list(result.scalars().all())


async def load_tasks(db: AsyncSession, board_id: str) -> List[Task]:
    """All tasks ever created on the board, soft-deleted ones included"""
    result = await db.execute(
        select(Task).where(Task.board_id == board_id).order_by(Task.sort_order.asc(), Task.task_number.asc())
    )
    return list(result.scalars().all())


async def load_sprint(db: AsyncSession, sprint_id: str) -> List[SprintState]:
    """The sprint by id whatever its board, so cross-board use can be rejected"""
    result = await db.execute(select(Sprint.id, Sprint.board_id).where(Sprint.id == sprint_id))
    return [SprintState(id=sid, board_id=bid) for sid, bid in result.all()]


async def load_labels(db: AsyncSession, board_id: str) -> List[TaskLabel]:
    result = await db.execute(select(TaskLabel).where(TaskLabel.board_id == board_id).order_by(TaskLabel.name.asc()))
    return list(result.scalars().all())


async def load_task_label_ids(db: AsyncSession, task_ids: List[str]) -> Dict[str, List[str]]:
    """Label ids per task, batched for list views"""
    if not task_ids:
        return {}
    result = await db.execute(
        select(TaskLabelAssignment.task_id, TaskLabelAssignment.label_id)
        .join(TaskLabel, TaskLabel.id == TaskLabelAssignment.label_id)
        .where(TaskLabelAssignment.task_id.in_(task_ids))
        .order_by(TaskLabel.name.asc())
    )
    out: Dict[str, List[str]] = {}
    for task_id, label_id in result.all():
        out.setdefault(task_id, []).append(label_id)
    return out
