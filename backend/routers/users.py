# routers/users.py — The authenticated caller and where they belong
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from models import Organization, User
from snapshots import load_memberships

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


class MembershipOut(BaseModel):
    organization_id: str
    organization_name: str
    role: str
    group_ids: List[str] = []


class MeOut(BaseModel):
    id: str
    email: str
    display_name: str
    avatar_url: Optional[str] = None
    is_active: bool
    organizations: List[MembershipOut] = []


@router.get("/me", response_model=MeOut)
async def get_me(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Current user with organization roles and group memberships"""
    result = await db.execute(select(User).where(User.id == user.id))
    row = result.scalar_one()

    memberships = await load_memberships(db, user.id)
    names = {}
    if memberships:
        org_rows = await db.execute(
            select(Organization.id, Organization.name).where(Organization.id.in_(list(memberships)))
        )
        names = dict(org_rows.all())

    return MeOut(
        id=row.id,
        email=row.email,
        display_name=row.display_name or "",
        avatar_url=row.avatar_url,
        is_active=row.is_active,
        organizations=[
            MembershipOut(
                organization_id=org_id,
                organization_name=names.get(org_id, ""),
                role=m.org_role.value,
                group_ids=sorted(m.group_ids),
            )
            for org_id, m in memberships.items()
        ],
    )
