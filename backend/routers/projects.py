# routers/projects.py — Projects and their group grants
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, ValidationInfo, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import grants
import permissions
from access import require_org_role, require_permission_level
from activity import record_activity
from auth import get_current_user, CurrentUser
from database import get_db_session, commit_or_conflict
from models import Board, Project, ProjectStatus
from permissions import PermissionLevel, ResourceKind, ResourceRef, ResourceSnapshot
from snapshots import load_grants_for, load_memberships

router = APIRouter(prefix="/api/v1/projects", tags=["Projects"])


# --- Schemas ---

class ProjectCreate(BaseModel):
    organization_id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None

    @field_validator("name", "status", mode="before")
    @classmethod
    def not_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class ProjectOut(BaseModel):
    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    status: str
    created_by: str
    my_permission: Optional[PermissionLevel] = None
    created_at: str
    updated_at: str


class PermissionOut(BaseModel):
    resource_kind: str
    resource_id: str
    user_id: str
    level: Optional[PermissionLevel] = None
    required: Optional[PermissionLevel] = None
    allowed: Optional[bool] = None


# --- Helpers ---

def _ref(project_id: str) -> ResourceRef:
    return ResourceRef(ResourceKind.PROJECT, project_id)


def _ts(dt) -> str:
    return dt.isoformat() if dt else ""


def _project_out(project: Project, level: Optional[PermissionLevel]) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        organization_id=project.organization_id,
        name=project.name,
        description=project.description,
        status=ProjectStatus(project.status).value,
        created_by=project.created_by,
        my_permission=level,
        created_at=_ts(project.created_at),
        updated_at=_ts(project.updated_at),
    )


async def _load(db: AsyncSession, project_id: str) -> Project:
    result = await db.execute(select(Project).where(Project.id == project_id))
    return result.scalar_one()


# --- Endpoints ---

@router.post("", response_model=ProjectOut, status_code=201)
async def create_project(
    data: ProjectCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a project in an organization the caller belongs to; the creator holds admin on it"""
    await require_org_role(db, data.organization_id, user.id)

    project = Project(
        organization_id=data.organization_id,
        name=data.name,
        description=data.description,
        created_by=user.id,
    )
    db.add(project)
    await db.flush()
    record_activity(db, user.id, "project.created", "project", project.id, data.organization_id, {"name": data.name})
    await commit_or_conflict(db)

    return _project_out(project, PermissionLevel.ADMIN)


@router.get("", response_model=List[ProjectOut])
async def list_projects(
    organization_id: Optional[str] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Projects the caller can at least read"""
    memberships = await load_memberships(db, user.id)
    org_ids = [organization_id] if organization_id else list(memberships)
    org_ids = [o for o in org_ids if o in memberships]
    if not org_ids:
        return []

    result = await db.execute(
        select(Project).where(Project.organization_id.in_(org_ids)).order_by(Project.created_at.desc())
    )
    projects = result.scalars().all()
    snapshots = [
        ResourceSnapshot(ResourceKind.PROJECT, p.id, p.organization_id, p.created_by) for p in projects
    ]
    grants_by_project = await load_grants_for(db, ResourceKind.PROJECT, [p.id for p in projects])
    visible = set(permissions.visible_resource_ids(user.id, snapshots, memberships, grants_by_project))

    out = []
    for project, snap in zip(projects, snapshots):
        if project.id not in visible:
            continue
        level = permissions.resolve(
            user.id, snap, memberships[project.organization_id], grants_by_project.get(project.id, []),
        )
        out.append(_project_out(project, level))
    return out


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    _, level = await require_permission_level(db, user.id, _ref(project_id), PermissionLevel.READ)
    return _project_out(await _load(db, project_id), level)


@router.patch("/{project_id}", response_model=ProjectOut)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, level = await require_permission_level(db, user.id, _ref(project_id), PermissionLevel.WRITE)
    project = await _load(db, project_id)

    changes = data.model_dump(exclude_unset=True)
    for field_name, value in changes.items():
        setattr(project, field_name, value)
    record_activity(
        db, user.id, "project.updated", "project", project_id, resource.organization_id, {"fields": list(changes)},
    )
    await commit_or_conflict(db)
    return _project_out(project, level)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, _ = await require_permission_level(db, user.id, _ref(project_id), PermissionLevel.ADMIN)
    boards = await db.execute(select(Board).where(Board.project_id == project_id))
    for board in boards.scalars().all():
        await db.delete(board)
    await db.delete(await _load(db, project_id))
    record_activity(db, user.id, "project.deleted", "project", project_id, resource.organization_id)
    await commit_or_conflict(db)
    return {"status": "deleted", "project_id": project_id}


@router.get("/{project_id}/permission", response_model=PermissionOut)
async def get_effective_permission(
    project_id: str,
    required: Optional[PermissionLevel] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """The caller's effective permission; with `required`, whether it is enough.

    Callers without any access get 403 rather than a null level.
    """
    _, level = await require_permission_level(db, user.id, _ref(project_id), PermissionLevel.READ)
    return PermissionOut(
        resource_kind=ResourceKind.PROJECT.value,
        resource_id=project_id,
        user_id=user.id,
        level=level,
        required=required,
        allowed=permissions.at_least(level, required) if required else None,
    )


# --- Grants ---

@router.get("/{project_id}/groups", response_model=List[grants.GrantOut])
async def list_project_grants(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, _ = await require_permission_level(db, user.id, _ref(project_id), PermissionLevel.ADMIN)
    return await grants.list_grants(db, resource)


@router.put("/{project_id}/groups/{group_id}", response_model=grants.GrantOut)
async def upsert_project_grant(
    project_id: str,
    group_id: str,
    data: grants.GrantUpsert,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Give a group read/write/admin on the project, or change its level"""
    resource, _ = await require_permission_level(db, user.id, _ref(project_id), PermissionLevel.ADMIN)
    grant = await grants.upsert_grant(db, resource, group_id, data.permission_level)
    record_activity(
        db, user.id, "project.grant_set", "project", project_id, resource.organization_id,
        {"group_id": group_id, "level": data.permission_level.value},
    )
    await commit_or_conflict(db)
    return grant


@router.delete("/{project_id}/groups/{group_id}")
async def revoke_project_grant(
    project_id: str,
    group_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    resource, _ = await require_permission_level(db, user.id, _ref(project_id), PermissionLevel.ADMIN)
    await grants.revoke_grant(db, resource, group_id)
    record_activity(
        db, user.id, "project.grant_revoked", "project", project_id, resource.organization_id, {"group_id": group_id},
    )
    await commit_or_conflict(db)
    return {"status": "revoked", "group_id": group_id}
