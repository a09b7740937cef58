# tests/test_permissions.py — Permission resolver over in-memory snapshots
import pytest

from permissions import (
    Grant, MembershipSnapshot, OrgRole, PermissionLevel, ResourceKind, ResourceSnapshot,
    RoleAssignment, at_least, authorize_at_least, can_demote_or_remove_group_admin,
    can_demote_or_remove_org_owner, max_level, org_role_at_least, parse_level, resolve,
    visible_resource_ids,
)

ORG = "org-1"
BOARD = ResourceSnapshot(ResourceKind.BOARD, "board-1", ORG, created_by="creator")


def member(user_id="u1", groups=(), role=OrgRole.MEMBER, org=ORG):
    return MembershipSnapshot(user_id=user_id, organization_id=org, org_role=role, group_ids=frozenset(groups))


def test_levels_are_strictly_ordered():
    assert PermissionLevel.READ < PermissionLevel.WRITE < PermissionLevel.ADMIN
    assert PermissionLevel.ADMIN > PermissionLevel.READ
    assert not PermissionLevel.WRITE < PermissionLevel.WRITE
    assert sorted([PermissionLevel.ADMIN, PermissionLevel.READ, PermissionLevel.WRITE]) == [
        PermissionLevel.READ, PermissionLevel.WRITE, PermissionLevel.ADMIN,
    ]


def test_levels_serialise_as_strings():
    assert PermissionLevel.WRITE.value == "write"
    assert parse_level("admin") is PermissionLevel.ADMIN
    with pytest.raises(ValueError):
        parse_level("owner")


def test_at_least_treats_none_as_below_read():
    assert not at_least(None, PermissionLevel.READ)
    assert at_least(PermissionLevel.READ, PermissionLevel.READ)
    assert at_least(PermissionLevel.ADMIN, PermissionLevel.WRITE)
    assert not at_least(PermissionLevel.WRITE, PermissionLevel.ADMIN)


def test_max_level():
    assert max_level([]) is None
    assert max_level([PermissionLevel.READ, PermissionLevel.ADMIN, PermissionLevel.WRITE]) is PermissionLevel.ADMIN


def test_org_role_ordering():
    assert org_role_at_least(OrgRole.OWNER, OrgRole.ADMIN)
    assert org_role_at_least(OrgRole.ADMIN, OrgRole.ADMIN)
    assert not org_role_at_least(OrgRole.MEMBER, OrgRole.ADMIN)
    assert not org_role_at_least(None, OrgRole.MEMBER)


def test_org_roles_compare_by_rank():
    assert OrgRole.MEMBER < OrgRole.ADMIN < OrgRole.OWNER
    assert OrgRole.OWNER >= OrgRole.ADMIN
    assert OrgRole.MEMBER <= OrgRole.MEMBER
    assert max([OrgRole.ADMIN, OrgRole.OWNER, OrgRole.MEMBER]) is OrgRole.OWNER
    # String order would put "admin" first
    assert sorted([OrgRole.OWNER, OrgRole.MEMBER, OrgRole.ADMIN]) == [OrgRole.MEMBER, OrgRole.ADMIN, OrgRole.OWNER]


def test_creator_short_circuits_to_admin():
    level = resolve("creator", BOARD, member("creator"), grants=[])
    assert level is PermissionLevel.ADMIN


def test_creator_outranks_weaker_grant():
    grants = [Grant("g1", PermissionLevel.READ)]
    assert resolve("creator", BOARD, member("creator", ["g1"]), grants) is PermissionLevel.ADMIN


def test_non_member_has_no_access_even_as_creator():
    no_org = MembershipSnapshot(user_id="creator", organization_id=ORG)
    assert resolve("creator", BOARD, no_org, [Grant("g1", PermissionLevel.ADMIN)]) is None


def test_membership_in_other_org_does_not_count():
    other = member("u1", ["g1"], org="org-2")
    assert resolve("u1", BOARD, other, [Grant("g1", PermissionLevel.WRITE)]) is None


def test_missing_resource_resolves_to_none():
    assert resolve("u1", None, member(), []) is None


def test_empty_user_id_is_rejected():
    with pytest.raises(ValueError):
        resolve("", BOARD, member(), [])


def test_max_over_all_reachable_grants():
    grants = [
        Grant("g1", PermissionLevel.READ),
        Grant("g2", PermissionLevel.WRITE),
        Grant("g3", PermissionLevel.ADMIN),  # user not in g3
    ]
    assert resolve("u1", BOARD, member("u1", ["g1", "g2"]), grants) is PermissionLevel.WRITE


def test_no_matching_grant_means_no_access():
    grants = [Grant("g9", PermissionLevel.ADMIN)]
    assert resolve("u1", BOARD, member("u1", ["g1"]), grants) is None


def test_adding_a_grant_never_lowers_the_level():
    base = [Grant("g1", PermissionLevel.WRITE)]
    membership = member("u1", ["g1", "g2"])
    before = resolve("u1", BOARD, membership, base)
    for extra in PermissionLevel:
        after = resolve("u1", BOARD, membership, base + [Grant("g2", extra)])
        assert after >= before


def test_authorize_at_least():
    grants = [Grant("g1", PermissionLevel.WRITE)]
    m = member("u1", ["g1"])
    assert authorize_at_least("u1", BOARD, m, grants, PermissionLevel.READ)
    assert authorize_at_least("u1", BOARD, m, grants, PermissionLevel.WRITE)
    assert not authorize_at_least("u1", BOARD, m, grants, PermissionLevel.ADMIN)


def test_sole_group_admin_cannot_be_removed():
    members = [RoleAssignment("a", "admin"), RoleAssignment("b", "member")]
    assert not can_demote_or_remove_group_admin(members, "a")
    assert can_demote_or_remove_group_admin(members, "b")


def test_group_admin_removable_when_another_admin_exists():
    members = [RoleAssignment("a", "admin"), RoleAssignment("b", "admin")]
    assert can_demote_or_remove_group_admin(members, "a")


def test_sole_org_owner_cannot_be_removed():
    members = [RoleAssignment("o", "owner"), RoleAssignment("x", "admin")]
    assert not can_demote_or_remove_org_owner(members, "o")
    assert can_demote_or_remove_org_owner(members, "x")
    assert can_demote_or_remove_org_owner(members + [RoleAssignment("o2", "owner")], "o")


def test_visible_resource_ids():
    other_org_board = ResourceSnapshot(ResourceKind.BOARD, "board-2", "org-2", created_by="someone")
    private = ResourceSnapshot(ResourceKind.BOARD, "board-3", ORG, created_by="someone")
    resources = [BOARD, other_org_board, private]
    memberships = {ORG: member("u1", ["g1"])}
    grants = {"board-1": [Grant("g1", PermissionLevel.READ)], "board-2": [Grant("g1", PermissionLevel.ADMIN)]}
    assert visible_resource_ids("u1", resources, memberships, grants) == ["board-1"]
