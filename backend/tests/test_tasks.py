# tests/test_tasks.py — Task numbering, placement, moves and sprint planning
import pytest
from httpx import AsyncClient

from tests.conftest import (
    get_auth_headers, create_org, add_org_member, create_group, add_group_member, create_board, create_task,
)


async def _board_with_columns(client, org_id, by, names, key="FLOW"):
    resp = await client.post(
        "/api/v1/boards",
        json={"organization_id": org_id, "name": "Flow", "key": key, "columns": names},
        headers=get_auth_headers(by),
    )
    assert resp.status_code == 201, resp.text
    board = resp.json()
    return board, {c["name"]: c["id"] for c in board["columns"]}


async def _create_sprint(client, board_id, by, name="Sprint 1"):
    resp = await client.post(f"/api/v1/boards/{board_id}/sprints", json={"name": name}, headers=get_auth_headers(by))
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_numbering_and_placement_scenario(client: AsyncClient, alice):
    """Tasks land in the default column; numbers survive deletion"""
    org = await create_org(client, alice)
    board, cols = await _board_with_columns(client, org["id"], alice, ["Backlog", "To Do", "Done"])
    headers = get_auth_headers(alice)

    created = [await create_task(client, board["id"], alice, f"Task {i}") for i in range(3)]
    assert [t["column_id"] for t in created] == [cols["Backlog"]] * 3
    assert [t["task_number"] for t in created] == [1, 2, 3]
    assert [t["sort_order"] for t in created] == [0, 1, 2]
    assert [t["key"] for t in created] == ["FLOW-1", "FLOW-2", "FLOW-3"]

    resp = await client.delete(f"/api/v1/boards/{board['id']}/tasks/{created[1]['id']}", headers=headers)
    assert resp.status_code == 200

    fourth = await create_task(client, board["id"], alice, "Task 4")
    assert fourth["task_number"] == 4
    assert fourth["column_id"] == cols["Backlog"]
    assert fourth["sort_order"] == 3

    resp = await client.get(f"/api/v1/boards/{board['id']}/tasks", headers=headers)
    assert [t["task_number"] for t in resp.json()] == [1, 3, 4]


@pytest.mark.asyncio
async def test_numbers_never_reused_after_deleting_latest(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)

    first = await create_task(client, board["id"], alice)
    second = await create_task(client, board["id"], alice)
    await client.delete(f"/api/v1/boards/{board['id']}/tasks/{second['id']}", headers=headers)
    await client.delete(f"/api/v1/boards/{board['id']}/tasks/{first['id']}", headers=headers)

    third = await create_task(client, board["id"], alice)
    assert third["task_number"] == 3
    assert third["sort_order"] == 0


@pytest.mark.asyncio
async def test_numbering_is_per_board(client: AsyncClient, alice):
    org = await create_org(client, alice)
    one = await create_board(client, org["id"], alice, "One", "ONE")
    two = await create_board(client, org["id"], alice, "Two", "TWO")

    await create_task(client, one["id"], alice)
    await create_task(client, one["id"], alice)
    task = await create_task(client, two["id"], alice)
    assert task["task_number"] == 1
    assert task["key"] == "TWO-1"


@pytest.mark.asyncio
async def test_explicit_column_gets_its_own_positions(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board, cols = await _board_with_columns(client, org["id"], alice, ["Backlog", "To Do", "Done"])

    await create_task(client, board["id"], alice, "Backlog item")
    todo = await create_task(client, board["id"], alice, "Ready item", column_id=cols["To Do"])
    assert todo["column_id"] == cols["To Do"]
    assert todo["sort_order"] == 0
    assert todo["task_number"] == 2


@pytest.mark.asyncio
async def test_create_in_column_of_other_board_is_not_found(client: AsyncClient, alice):
    org = await create_org(client, alice)
    one = await create_board(client, org["id"], alice, "One", "ONE")
    two = await create_board(client, org["id"], alice, "Two", "TWO")
    resp = await client.post(
        f"/api/v1/boards/{one['id']}/tasks",
        json={"title": "Wrong board", "column_id": two["columns"][0]["id"]},
        headers=get_auth_headers(alice),
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_move_appends_to_target_column(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board, cols = await _board_with_columns(client, org["id"], alice, ["Backlog", "To Do", "Done"])
    headers = get_auth_headers(alice)

    a = await create_task(client, board["id"], alice, "A")
    b = await create_task(client, board["id"], alice, "B")
    await create_task(client, board["id"], alice, "C", column_id=cols["Done"])

    resp = await client.post(
        f"/api/v1/boards/{board['id']}/tasks/{a['id']}/move", json={"column_id": cols["Done"]}, headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["column_id"] == cols["Done"]
    assert resp.json()["sort_order"] == 1
    assert resp.json()["task_number"] == a["task_number"]

    resp = await client.patch(
        f"/api/v1/boards/{board['id']}/tasks/{b['id']}",
        json={"column_id": cols["Done"], "priority": "high"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["sort_order"] == 2
    assert resp.json()["priority"] == "high"


@pytest.mark.asyncio
async def test_wip_limit_blocks_moves_and_creation(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)
    resp = await client.post(
        f"/api/v1/boards/{board['id']}/columns", json={"name": "Review", "wip_limit": 1}, headers=headers,
    )
    review = resp.json()["id"]

    first = await create_task(client, board["id"], alice, "First")
    second = await create_task(client, board["id"], alice, "Second")
    resp = await client.post(
        f"/api/v1/boards/{board['id']}/tasks/{first['id']}/move", json={"column_id": review}, headers=headers,
    )
    assert resp.status_code == 200

    resp = await client.post(
        f"/api/v1/boards/{board['id']}/tasks/{second['id']}/move", json={"column_id": review}, headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "invariant_violation"

    resp = await client.post(
        f"/api/v1/boards/{board['id']}/tasks", json={"title": "Third", "column_id": review}, headers=headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_sprint_assignment_and_backlog(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)
    sprint = await _create_sprint(client, board["id"], alice)

    task = await create_task(client, board["id"], alice)
    assert task["sprint_id"] is None

    resp = await client.put(
        f"/api/v1/boards/{board['id']}/tasks/{task['id']}/sprint", json={"sprint_id": sprint["id"]}, headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["sprint_id"] == sprint["id"]

    resp = await client.put(
        f"/api/v1/boards/{board['id']}/tasks/{task['id']}/sprint", json={"sprint_id": None}, headers=headers,
    )
    assert resp.json()["sprint_id"] is None


@pytest.mark.asyncio
async def test_sprint_of_other_board_is_rejected(client: AsyncClient, alice):
    org = await create_org(client, alice)
    one = await create_board(client, org["id"], alice, "One", "ONE")
    two = await create_board(client, org["id"], alice, "Two", "TWO")
    foreign = await _create_sprint(client, two["id"], alice)
    headers = get_auth_headers(alice)

    task = await create_task(client, one["id"], alice)
    resp = await client.put(
        f"/api/v1/boards/{one['id']}/tasks/{task['id']}/sprint", json={"sprint_id": foreign["id"]}, headers=headers,
    )
    assert resp.status_code == 400

    resp = await client.post(
        f"/api/v1/boards/{one['id']}/tasks", json={"title": "X", "sprint_id": foreign["id"]}, headers=headers,
    )
    assert resp.status_code == 400

    resp = await client.put(
        f"/api/v1/boards/{one['id']}/tasks/{task['id']}/sprint", json={"sprint_id": "missing"}, headers=headers,
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_task_filters(client: AsyncClient, alice, bob):
    org = await create_org(client, alice)
    await add_org_member(client, org["id"], alice, bob)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)
    s1 = await _create_sprint(client, board["id"], alice, "Sprint 1")
    s2 = await _create_sprint(client, board["id"], alice, "Sprint 2")

    await create_task(client, board["id"], alice, "Planned", sprint_id=s1["id"], assignee_id=bob.id)
    await create_task(client, board["id"], alice, "Later", sprint_id=s2["id"])
    await create_task(client, board["id"], alice, "Loose")

    base = f"/api/v1/boards/{board['id']}/tasks"
    resp = await client.get(f"{base}?sprint_id={s1['id']}", headers=headers)
    assert [t["title"] for t in resp.json()] == ["Planned", "Loose"]
    resp = await client.get(f"{base}?backlog=true", headers=headers)
    assert [t["title"] for t in resp.json()] == ["Loose"]
    resp = await client.get(f"{base}?assignee_id={bob.id}", headers=headers)
    assert [t["title"] for t in resp.json()] == ["Planned"]
    resp = await client.get(base, headers=headers)
    assert len(resp.json()) == 3


@pytest.mark.asyncio
async def test_assignee_must_belong_to_organization(client: AsyncClient, alice, outsider):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    resp = await client.post(
        f"/api/v1/boards/{board['id']}/tasks",
        json={"title": "Who?", "assignee_id": outsider.id},
        headers=get_auth_headers(alice),
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_deleted_task_is_gone(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)
    task = await create_task(client, board["id"], alice)

    await client.delete(f"/api/v1/boards/{board['id']}/tasks/{task['id']}", headers=headers)
    resp = await client.get(f"/api/v1/boards/{board['id']}/tasks/{task['id']}", headers=headers)
    assert resp.status_code == 404
    resp = await client.delete(f"/api/v1/boards/{board['id']}/tasks/{task['id']}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_column_with_only_deleted_tasks_can_be_removed(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board, cols = await _board_with_columns(client, org["id"], alice, ["Backlog", "To Do", "Done"])
    headers = get_auth_headers(alice)
    task = await create_task(client, board["id"], alice, column_id=cols["To Do"])
    await client.delete(f"/api/v1/boards/{board['id']}/tasks/{task['id']}", headers=headers)

    resp = await client.delete(f"/api/v1/boards/{board['id']}/columns/{cols['To Do']}", headers=headers)
    assert resp.status_code == 200

    nxt = await create_task(client, board["id"], alice)
    assert nxt["task_number"] == 2


@pytest.mark.asyncio
async def test_read_only_member_cannot_write_tasks(client: AsyncClient, alice, bob):
    org = await create_org(client, alice)
    await add_org_member(client, org["id"], alice, bob)
    group = await create_group(client, org["id"], alice)
    await add_group_member(client, group["id"], alice, bob)
    board = await create_board(client, org["id"], alice)
    await client.put(
        f"/api/v1/boards/{board['id']}/groups/{group['id']}",
        json={"permission_level": "read"},
        headers=get_auth_headers(alice),
    )
    task = await create_task(client, board["id"], alice)
    bob_headers = get_auth_headers(bob)

    resp = await client.get(f"/api/v1/boards/{board['id']}/tasks", headers=bob_headers)
    assert resp.status_code == 200
    resp = await client.post(f"/api/v1/boards/{board['id']}/tasks", json={"title": "Nope"}, headers=bob_headers)
    assert resp.status_code == 403
    resp = await client.post(
        f"/api/v1/boards/{board['id']}/tasks/{task['id']}/move",
        json={"column_id": board["columns"][1]["id"]},
        headers=bob_headers,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_explicit_null_on_required_task_fields_is_rejected(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    task = await create_task(client, board["id"], alice, "Keep me")
    headers = get_auth_headers(alice)

    for field in ("title", "task_type", "priority"):
        resp = await client.patch(f"/api/v1/boards/{board['id']}/tasks/{task['id']}", json={field: None}, headers=headers)
        assert resp.status_code == 422, field

    # Nullable fields can still be cleared
    resp = await client.patch(
        f"/api/v1/boards/{board['id']}/tasks/{task['id']}", json={"description": None, "assignee_id": None}, headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["title"] == "Keep me"
