# tests/test_labels.py — Board labels and their use on tasks
import pytest
from httpx import AsyncClient

from tests.conftest import (
    get_auth_headers, create_org, add_org_member, create_group, add_group_member, create_board, create_task,
)


async def _create_label(client, board_id, by, name="bug", color="#ef4444"):
    resp = await client.post(
        f"/api/v1/boards/{board_id}/labels", json={"name": name, "color": color}, headers=get_auth_headers(by),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _grant(client, board_id, group_id, level, by):
    resp = await client.put(
        f"/api/v1/boards/{board_id}/groups/{group_id}",
        json={"permission_level": level},
        headers=get_auth_headers(by),
    )
    assert resp.status_code == 200, resp.text


@pytest.mark.asyncio
async def test_label_crud(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)
    labels = f"/api/v1/boards/{board['id']}/labels"

    ui = await _create_label(client, board["id"], alice, "ui", "#3b82f6")
    bug = await _create_label(client, board["id"], alice, "  bug  ")
    assert bug["name"] == "bug"

    resp = await client.get(labels, headers=headers)
    assert [l["name"] for l in resp.json()] == ["bug", "ui"]

    resp = await client.patch(f"{labels}/{ui['id']}", json={"name": "frontend"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["name"] == "frontend"
    assert resp.json()["color"] == "#3b82f6"

    resp = await client.delete(f"{labels}/{ui['id']}", headers=headers)
    assert resp.status_code == 200
    resp = await client.get(labels, headers=headers)
    assert [l["id"] for l in resp.json()] == [bug["id"]]


@pytest.mark.asyncio
async def test_label_names_are_unique_per_board(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    other = await create_board(client, org["id"], alice, name="Other", key="OTHER")
    headers = get_auth_headers(alice)

    first = await _create_label(client, board["id"], alice, "bug")
    resp = await client.post(f"/api/v1/boards/{board['id']}/labels", json={"name": "bug"}, headers=headers)
    assert resp.status_code == 409
    # Same name on another board is fine
    await _create_label(client, other["id"], alice, "bug")

    second = await _create_label(client, board["id"], alice, "ux")
    resp = await client.patch(
        f"/api/v1/boards/{board['id']}/labels/{second['id']}", json={"name": "bug"}, headers=headers,
    )
    assert resp.status_code == 409
    resp = await client.patch(
        f"/api/v1/boards/{board['id']}/labels/{first['id']}", json={"name": "bug", "color": "#000000"}, headers=headers,
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_label_validation(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)
    labels = f"/api/v1/boards/{board['id']}/labels"

    resp = await client.post(labels, json={"name": "   "}, headers=headers)
    assert resp.status_code == 400
    resp = await client.post(labels, json={"name": "bug", "color": "red"}, headers=headers)
    assert resp.status_code == 422
    label = await _create_label(client, board["id"], alice)
    resp = await client.patch(f"{labels}/{label['id']}", json={"name": None}, headers=headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_label_access_levels(client: AsyncClient, alice, bob, outsider):
    org = await create_org(client, alice)
    await add_org_member(client, org["id"], alice, bob)
    group = await create_group(client, org["id"], alice)
    await add_group_member(client, group["id"], alice, bob)
    board = await create_board(client, org["id"], alice)
    label = await _create_label(client, board["id"], alice)
    labels = f"/api/v1/boards/{board['id']}/labels"
    bob_headers = get_auth_headers(bob)

    resp = await client.get(labels, headers=get_auth_headers(outsider))
    assert resp.status_code == 403

    await _grant(client, board["id"], group["id"], "read", alice)
    resp = await client.get(labels, headers=bob_headers)
    assert resp.status_code == 200
    resp = await client.post(labels, json={"name": "docs"}, headers=bob_headers)
    assert resp.status_code == 403

    await _grant(client, board["id"], group["id"], "write", alice)
    resp = await client.post(labels, json={"name": "docs"}, headers=bob_headers)
    assert resp.status_code == 201
    resp = await client.delete(f"{labels}/{label['id']}", headers=bob_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_task_labels_on_create_and_update(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)
    bug = await _create_label(client, board["id"], alice, "bug")
    ui = await _create_label(client, board["id"], alice, "ui")

    task = await create_task(client, board["id"], alice, "Broken button", label_ids=[ui["id"], bug["id"], ui["id"]])
    assert task["label_ids"] == [bug["id"], ui["id"]]

    url = f"/api/v1/boards/{board['id']}/tasks/{task['id']}"
    resp = await client.patch(url, json={"label_ids": [ui["id"]]}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["label_ids"] == [ui["id"]]

    # Untouched when label_ids is left out
    resp = await client.patch(url, json={"title": "Broken submit button"}, headers=headers)
    assert resp.json()["label_ids"] == [ui["id"]]

    resp = await client.get(f"/api/v1/boards/{board['id']}/tasks", headers=headers)
    assert resp.json()[0]["label_ids"] == [ui["id"]]

    resp = await client.patch(url, json={"label_ids": []}, headers=headers)
    assert resp.json()["label_ids"] == []
    resp = await client.patch(url, json={"label_ids": None}, headers=headers)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_labels_from_another_board_are_rejected(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    other = await create_board(client, org["id"], alice, name="Other", key="OTHER")
    foreign = await _create_label(client, other["id"], alice, "bug")
    headers = get_auth_headers(alice)

    resp = await client.post(
        f"/api/v1/boards/{board['id']}/tasks", json={"title": "Nope", "label_ids": [foreign["id"]]}, headers=headers,
    )
    assert resp.status_code == 400
    resp = await client.get(f"/api/v1/boards/{board['id']}/tasks", headers=headers)
    assert resp.json() == []

    task = await create_task(client, board["id"], alice)
    resp = await client.patch(
        f"/api/v1/boards/{board['id']}/tasks/{task['id']}", json={"label_ids": [foreign["id"]]}, headers=headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_deleting_a_label_removes_it_from_tasks(client: AsyncClient, alice):
    org = await create_org(client, alice)
    board = await create_board(client, org["id"], alice)
    headers = get_auth_headers(alice)
    bug = await _create_label(client, board["id"], alice, "bug")
    task = await create_task(client, board["id"], alice, label_ids=[bug["id"]])

    resp = await client.delete(f"/api/v1/boards/{board['id']}/labels/{bug['id']}", headers=headers)
    assert resp.status_code == 200
    resp = await client.get(f"/api/v1/boards/{board['id']}/tasks/{task['id']}", headers=headers)
    assert resp.json()["label_ids"] == []
