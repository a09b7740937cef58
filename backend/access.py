# access.py — Store-backed authorisation used by every router
# Loads fresh snapshots through the request session and defers every decision
# to permissions.py. Nothing is cached between calls.

import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import permissions
from errors import ForbiddenError, InvariantViolation, NotFoundError
from models import Organization
from permissions import OrgRole, PermissionLevel, ResourceRef, ResourceSnapshot
from snapshots import (
    load_grants, load_group_roles, load_membership, load_org_role,
    load_org_roles, load_resource,
)

logger = logging.getLogger("collabhub.access")


async def resolve_permission(
    db: AsyncSession, user_id: str, ref: ResourceRef,
) -> Tuple[ResourceSnapshot, Optional[PermissionLevel]]:
    """Effective permission of `user_id` on the resource; NotFoundError if it does not exist"""
    resource = await load_resource(db, ref)
    if resource is None:
        raise NotFoundError(f"{ref.kind.value.capitalize()} not found")
    membership = await load_membership(db, user_id, resource.organization_id)
    grants = await load_grants(db, ref) if membership.is_member else []
    return resource, permissions.resolve(user_id, resource, membership, grants)


async def require_permission_level(
    db: AsyncSession, user_id: str, ref: ResourceRef, required: PermissionLevel,
) -> Tuple[ResourceSnapshot, PermissionLevel]:
    resource, level = await resolve_permission(db, user_id, ref)
    if not permissions.at_least(level, required):
        logger.info(
            f"denied {ref.kind.value}={ref.id} user={user_id} "
            f"has={level.value if level else 'none'} needs={required.value}"
        )
        raise ForbiddenError(f"{required.value.capitalize()} access required")
    return resource, level


async def require_org_role(
    db: AsyncSession, organization_id: str, user_id: str, required: OrgRole = OrgRole.MEMBER,
) -> OrgRole:
    result = await db.execute(select(Organization.id).where(Organization.id == organization_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("Organization not found")
    role = await load_org_role(db, organization_id, user_id)
    if role is None:
        raise ForbiddenError("Not a member of this organization")
    if not permissions.org_role_at_least(role, required):
        logger.info(f"denied org={organization_id} user={user_id} role={role.value} needs={required.value}")
        raise ForbiddenError(f"Organization {required.value} role required")
    return role


# ============================================================
# MEMBERSHIP MUTATION GUARDS
# ============================================================

async def can_demote_or_remove_group_admin(
    db: AsyncSession, group_id: str, user_id: str, for_update: bool = False,
) -> bool:
    roles = await load_group_roles(db, group_id, for_update=for_update)
    return permissions.can_demote_or_remove_group_admin(roles, user_id)


async def can_demote_or_remove_org_owner(
    db: AsyncSession, organization_id: str, user_id: str, for_update: bool = False,
) -> bool:
    roles = await load_org_roles(db, organization_id, for_update=for_update)
    return permissions.can_demote_or_remove_org_owner(roles, user_id)


async def ensure_group_admin_removable(db: AsyncSession, group_id: str, user_id: str) -> None:
    if not await can_demote_or_remove_group_admin(db, group_id, user_id, for_update=True):
        logger.warning(f"rejected last-admin change group={group_id} user={user_id}")
        raise InvariantViolation("Cannot remove or demote the last admin of a group")


async def ensure_org_owner_removable(db: AsyncSession, organization_id: str, user_id: str) -> None:
    if not await can_demote_or_remove_org_owner(db, organization_id, user_id, for_update=True):
        logger.warning(f"rejected last-owner change org={organization_id} user={user_id}")
        raise InvariantViolation("Cannot remove or demote the last owner of an organization")
