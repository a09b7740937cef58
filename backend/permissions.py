# permissions.py — Effective-permission resolution over membership/grant snapshots
#
# Everything here is pure: callers (access.py) load the snapshots inside the
# request transaction and pass them in. Resolution order:
#   1. resource missing            → None
#   2. no organisation membership  → None
#   3. resource creator            → ADMIN (short-circuit, not revocable)
#   4. grants held by the user's groups in the owning organisation → max level
#   5. no matching grant           → None

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence


class PermissionLevel(str, Enum):
    """Resource permission, strictly ordered READ < WRITE < ADMIN"""

    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_RANK = {
    PermissionLevel.READ: 1,
    PermissionLevel.WRITE: 2,
    PermissionLevel.ADMIN: 3,
}


class OrgRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _ORG_ROLE_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, OrgRole):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, OrgRole):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, OrgRole):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, OrgRole):
            return NotImplemented
        return self.rank >= other.rank


_ORG_ROLE_RANK = {
    OrgRole.MEMBER: 1,
    OrgRole.ADMIN: 2,
    OrgRole.OWNER: 3,
}


class GroupRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


class ResourceKind(str, Enum):
    PROJECT = "project"
    BOARD = "board"


# ============================================================
# SNAPSHOTS
# ============================================================

@dataclass(frozen=True)
class ResourceRef:
    kind: ResourceKind
    id: str


@dataclass(frozen=True)
class ResourceSnapshot:
    kind: ResourceKind
    id: str
    organization_id: str
    created_by: str


@dataclass(frozen=True)
class Grant:
    group_id: str
    level: PermissionLevel


@dataclass(frozen=True)
class MembershipSnapshot:
    """A user's standing inside one organisation"""

    user_id: str
    organization_id: str
    org_role: Optional[OrgRole] = None
    group_ids: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_member(self) -> bool:
        return self.org_role is not None


@dataclass(frozen=True)
class RoleAssignment:
    """One row of a group or organisation member list"""

    user_id: str
    role: str


# ============================================================
# ORDERING UTILITIES
# ============================================================

def parse_level(value) -> PermissionLevel:
    if isinstance(value, PermissionLevel):
        return value
    try:
        return PermissionLevel(value)
    except ValueError:
        raise ValueError(f"Invalid permission level: {value!r}")


def at_least(level: Optional[PermissionLevel], required: PermissionLevel) -> bool:
    """`None` (no access) ranks below READ"""
    if level is None:
        return False
    return level >= required


def max_level(levels: Iterable[PermissionLevel]) -> Optional[PermissionLevel]:
    best = None
    for level in levels:
        if best is None or level > best:
            best = level
    return best


def org_role_at_least(role: Optional[OrgRole], required: OrgRole) -> bool:
    if role is None:
        return False
    return OrgRole(role).rank >= required.rank


# ============================================================
# RESOLUTION
# ============================================================

def resolve(
    user_id: str,
    resource: Optional[ResourceSnapshot],
    membership: MembershipSnapshot,
    grants: Sequence[Grant],
) -> Optional[PermissionLevel]:
    if not user_id:
        raise ValueError("user_id is required")
    if resource is None:
        return None
    if membership.organization_id != resource.organization_id or not membership.is_member:
        return None
    if resource.created_by == user_id:
        return PermissionLevel.ADMIN
    matching = [g.level for g in grants if g.group_id in membership.group_ids]
    return max_level(matching)


def authorize_at_least(
    user_id: str,
    resource: Optional[ResourceSnapshot],
    membership: MembershipSnapshot,
    grants: Sequence[Grant],
    required: PermissionLevel,
) -> bool:
    return at_least(resolve(user_id, resource, membership, grants), required)


# ============================================================
# MEMBERSHIP MUTATION GUARDS
# ============================================================

def _sole_holder(members: Sequence[RoleAssignment], role: str, user_id: str) -> bool:
    holders = {m.user_id for m in members if m.role == role}
    return holders == {user_id}


def can_demote_or_remove_group_admin(members: Sequence[RoleAssignment], target_user_id: str) -> bool:
    """False iff the target is the group's only remaining admin"""
    return not _sole_holder(members, GroupRole.ADMIN.value, target_user_id)


def can_demote_or_remove_org_owner(members: Sequence[RoleAssignment], target_user_id: str) -> bool:
    """False iff the target is the organisation's only remaining owner"""
    return not _sole_holder(members, OrgRole.OWNER.value, target_user_id)


def visible_resource_ids(
    user_id: str,
    resources: Sequence[ResourceSnapshot],
    memberships: Dict[str, MembershipSnapshot],
    grants_by_resource: Dict[str, List[Grant]],
) -> List[str]:
    """Ids of the resources on which the user resolves to at least READ"""
    out = []
    for res in resources:
        membership = memberships.get(res.organization_id)
        if membership is None:
            continue
        level = resolve(user_id, res, membership, grants_by_resource.get(res.id, []))
        if level is not None:
            out.append(res.id)
    return out
