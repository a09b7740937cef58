# routers/organizations.py — Organization management and membership
import re
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from access import ensure_org_owner_removable, require_org_role
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session, commit_or_conflict
from models import Organization, OrganizationMember, User
from permissions import OrgRole

router = APIRouter(prefix="/api/v1/organizations", tags=["Organizations"])


# --- Schemas ---

class OrgOut(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    created_by: str
    my_role: Optional[str] = None
    member_count: int = 0
    created_at: str


class OrgCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    slug: Optional[str] = None
    description: Optional[str] = None


class OrgUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    logo_url: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("name cannot be null")
        return v


class OrgMemberAdd(BaseModel):
    user_id: str
    role: OrgRole = OrgRole.MEMBER


class OrgMemberUpdate(BaseModel):
    role: OrgRole


class OrgMemberOut(BaseModel):
    user_id: str
    email: str
    display_name: str
    role: str
    joined_at: str


# --- Helpers ---

def _slugify(name: str) -> str:
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
    return slug[:50]


def _ts(dt) -> str:
    return dt.isoformat() if dt else ""


async def _get_org(db: AsyncSession, org_id: str) -> Organization:
    result = await db.execute(select(Organization).where(Organization.id == org_id))
    org = result.scalar_one_or_none()
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


async def _get_member(db: AsyncSession, org_id: str, user_id: str) -> OrganizationMember:
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user_id,
        )
    )
    member = result.scalar_one_or_none()
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


async def _org_out(db: AsyncSession, org: Organization, my_role: Optional[OrgRole]) -> OrgOut:
    count_stmt = select(func.count(OrganizationMember.id)).where(OrganizationMember.organization_id == org.id)
    count_result = await db.execute(count_stmt)
    return OrgOut(
        id=org.id,
        name=org.name,
        slug=org.slug,
        description=org.description,
        logo_url=org.logo_url,
        created_by=org.created_by,
        my_role=my_role.value if my_role else None,
        member_count=count_result.scalar() or 0,
        created_at=_ts(org.created_at),
    )


def _member_out(member: OrganizationMember, user: User) -> OrgMemberOut:
    return OrgMemberOut(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name or "",
        role=OrgRole(member.role).value,
        joined_at=_ts(member.created_at),
    )


def _require_owner_for(role: OrgRole, my_role: OrgRole, action: str):
    """Only owners may hand out or take away admin/owner roles"""
    if role in (OrgRole.ADMIN, OrgRole.OWNER) and my_role != OrgRole.OWNER:
        raise HTTPException(status_code=403, detail=f"Only an owner can {action} an {role.value}")


# --- Endpoints ---

@router.post("", response_model=OrgOut, status_code=201)
async def create_organization(
    data: OrgCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create an organization; the creator becomes its owner"""
    slug = _slugify(data.slug or data.name)
    if not slug:
        raise HTTPException(status_code=400, detail="Organization slug must contain letters or digits")

    result = await db.execute(select(Organization.id).where(Organization.slug == slug))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail=f"Organization slug '{slug}' already exists")

    org = Organization(name=data.name, slug=slug, description=data.description, created_by=user.id)
    db.add(org)
    await db.flush()
    db.add(OrganizationMember(organization_id=org.id, user_id=user.id, role=OrgRole.OWNER))
    record_activity(db, user.id, "organization.created", "organization", org.id, org.id, {"slug": slug})
    await commit_or_conflict(db)

    return await _org_out(db, org, OrgRole.OWNER)


@router.get("", response_model=List[OrgOut])
async def list_my_organizations(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Organizations the caller belongs to"""
    stmt = (
        select(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user.id)
        .order_by(Organization.created_at.desc())
    )
    result = await db.execute(stmt)
    return [await _org_out(db, org, OrgRole(role)) for org, role in result.all()]


@router.get("/{org_id}", response_model=OrgOut)
async def get_organization(
    org_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    my_role = await require_org_role(db, org_id, user.id)
    return await _org_out(db, await _get_org(db, org_id), my_role)


@router.patch("/{org_id}", response_model=OrgOut)
async def update_organization(
    org_id: str,
    data: OrgUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update organization details (admin)"""
    my_role = await require_org_role(db, org_id, user.id, OrgRole.ADMIN)
    org = await _get_org(db, org_id)

    changes = data.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        setattr(org, field_name, value)
    record_activity(db, user.id, "organization.updated", "organization", org.id, org.id, {"fields": list(changes)})
    await commit_or_conflict(db)

    return await _org_out(db, org, my_role)


@router.delete("/{org_id}")
async def delete_organization(
    org_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete an organization and everything in it (owner)"""
    await require_org_role(db, org_id, user.id, OrgRole.OWNER)
    org = await _get_org(db, org_id)
    await db.delete(org)
    await commit_or_conflict(db)
    return {"status": "deleted", "organization_id": org_id}


# --- Members ---

@router.get("/{org_id}/members", response_model=List[OrgMemberOut])
async def list_members(
    org_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_org_role(db, org_id, user.id)
    stmt = (
        select(OrganizationMember, User)
        .join(User, User.id == OrganizationMember.user_id)
        .where(OrganizationMember.organization_id == org_id)
        .order_by(OrganizationMember.created_at.asc())
    )
    result = await db.execute(stmt)
    return [_member_out(m, u) for m, u in result.all()]


@router.post("/{org_id}/members", response_model=OrgMemberOut, status_code=201)
async def add_member(
    org_id: str,
    data: OrgMemberAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Add an existing user to the organization (admin)"""
    my_role = await require_org_role(db, org_id, user.id, OrgRole.ADMIN)
    _require_owner_for(data.role, my_role, "appoint")

    result = await db.execute(select(User).where(User.id == data.user_id, User.is_active == True))
    target = result.scalar_one_or_none()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    existing = await db.execute(
        select(OrganizationMember.id).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == data.user_id,
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User is already a member")

    member = OrganizationMember(organization_id=org_id, user_id=data.user_id, role=data.role)
    db.add(member)
    record_activity(
        db, user.id, "organization.member_added", "user", data.user_id, org_id, {"role": data.role.value},
    )
    await commit_or_conflict(db)
    await db.refresh(member)
    return _member_out(member, target)


@router.patch("/{org_id}/members/{member_user_id}", response_model=OrgMemberOut)
async def change_member_role(
    org_id: str,
    member_user_id: str,
    data: OrgMemberUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Change a member's role; the last owner cannot be demoted"""
    my_role = await require_org_role(db, org_id, user.id, OrgRole.ADMIN)
    member = await _get_member(db, org_id, member_user_id)
    current = OrgRole(member.role)

    _require_owner_for(current, my_role, "change")
    _require_owner_for(data.role, my_role, "appoint")
    if current == OrgRole.OWNER and data.role != OrgRole.OWNER:
        await ensure_org_owner_removable(db, org_id, member_user_id)

    member.role = data.role
    record_activity(
        db, user.id, "organization.member_role_changed", "user", member_user_id, org_id,
        {"from": current.value, "to": data.role.value},
    )
    await commit_or_conflict(db)

    target = (await db.execute(select(User).where(User.id == member_user_id))).scalar_one()
    return _member_out(member, target)


@router.delete("/{org_id}/members/{member_user_id}")
async def remove_member(
    org_id: str,
    member_user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Remove a member (admin), or leave the organization yourself"""
    my_role = await require_org_role(db, org_id, user.id)
    member = await _get_member(db, org_id, member_user_id)
    current = OrgRole(member.role)

    if member_user_id != user.id:
        if my_role.rank < OrgRole.ADMIN.rank:
            raise HTTPException(status_code=403, detail="Admin access required")
        _require_owner_for(current, my_role, "remove")
    if current == OrgRole.OWNER:
        await ensure_org_owner_removable(db, org_id, member_user_id)

    await db.delete(member)
    record_activity(db, user.id, "organization.member_removed", "user", member_user_id, org_id)
    await commit_or_conflict(db)
    return {"status": "removed", "user_id": member_user_id}
