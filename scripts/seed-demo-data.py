#!/usr/bin/env python3
"""
CollabHub — Demo Data Seeder
Creates an organization with groups, a project and a board full of tasks,
using the same service layer the API uses, so every ordering rule holds.

Usage:
    python scripts/seed-demo-data.py
    python scripts/seed-demo-data.py --users 12 --tasks 40 --seed 7
    DATABASE_URL=sqlite+aiosqlite:///./demo.db python scripts/seed-demo-data.py

Requires the package installed (pip install -e .) so backend modules import.
"""

import argparse
import asyncio
import random

import board_service
from database import get_db_context, init_db
from models import (
    Board, Group, GroupMember, Organization, OrganizationMember, Project, ProjectGroup, BoardGroup,
    Sprint, SprintStatus, TaskPriority, TaskType, User,
)
from permissions import GroupRole, OrgRole, PermissionLevel
from snapshots import load_columns


# ── Configuration ───────────────────────────────────────────

FIRST_NAMES = ["Alex", "Jordan", "Taylor", "Morgan", "Casey", "Riley", "Quinn", "Avery", "Sage", "River",
               "Kai", "Rowan", "Phoenix", "Skyler", "Dakota", "Reese", "Finley", "Harper", "Emery", "Blake"]
GROUPS = [("Engineering", PermissionLevel.WRITE), ("Design", PermissionLevel.READ), ("Leads", PermissionLevel.ADMIN)]
TASK_VERBS = ["Implement", "Fix", "Review", "Document", "Refactor", "Test", "Design", "Deploy"]
TASK_NOUNS = ["login flow", "board filters", "sprint report", "column settings", "billing page",
              "search index", "audit trail", "notification digest", "export job", "onboarding tour"]


async def seed(users: int, tasks: int, rng: random.Random) -> dict:
    async with get_db_context() as db:
        people = []
        for i in range(users):
            name = FIRST_NAMES[i % len(FIRST_NAMES)]
            people.append(User(email=f"{name.lower()}{i}@collabhub.dev", display_name=name, is_active=True))
        db.add_all(people)
        await db.flush()
        owner = people[0]

        org = Organization(name="CollabHub Demo", slug=f"collabhub-demo-{rng.randint(1000, 9999)}", created_by=owner.id)
        db.add(org)
        await db.flush()
        for i, person in enumerate(people):
            role = OrgRole.OWNER if i == 0 else (OrgRole.ADMIN if i == 1 else OrgRole.MEMBER)
            db.add(OrganizationMember(organization_id=org.id, user_id=person.id, role=role))

        project = Project(organization_id=org.id, name="Platform Relaunch", created_by=owner.id)
        board = Board(organization_id=org.id, name="Relaunch", key="RL", last_task_number=0, created_by=owner.id)
        db.add_all([project, board])
        await db.flush()
        board.project_id = project.id
        board_service.add_default_columns(db, board)

        for name, level in GROUPS:
            group = Group(organization_id=org.id, name=name, created_by=owner.id)
            db.add(group)
            await db.flush()
            db.add(GroupMember(group_id=group.id, user_id=owner.id, role=GroupRole.ADMIN))
            for person in rng.sample(people[1:], k=min(len(people) - 1, 4)):
                db.add(GroupMember(group_id=group.id, user_id=person.id, role=GroupRole.MEMBER))
            db.add(ProjectGroup(project_id=project.id, group_id=group.id, permission_level=level))
            db.add(BoardGroup(board_id=board.id, group_id=group.id, permission_level=level))

        sprint = Sprint(board_id=board.id, name="Sprint 1", status=SprintStatus.ACTIVE, created_by=owner.id)
        db.add(sprint)
        await db.flush()

        columns = await load_columns(db, board.id)
        for _ in range(tasks):
            await board_service.create_task(
                db,
                board.id,
                reporter_id=rng.choice(people).id,
                title=f"{rng.choice(TASK_VERBS)} {rng.choice(TASK_NOUNS)}",
                column_id=rng.choice(columns).id,
                sprint_id=sprint.id if rng.random() < 0.5 else None,
                task_type=rng.choice(list(TaskType)),
                priority=rng.choice(list(TaskPriority)),
                story_points=rng.choice([None, 1, 2, 3, 5, 8]),
                assignee_id=rng.choice(people).id,
            )

        return {"organization": org.id, "project": project.id, "board": board.id, "owner": owner.email}


def main():
    parser = argparse.ArgumentParser(description="CollabHub Demo Data Seeder")
    parser.add_argument("--users", type=int, default=8, help="Number of users")
    parser.add_argument("--tasks", type=int, default=25, help="Tasks on the demo board")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    async def run():
        await init_db()
        return await seed(max(args.users, 2), args.tasks, random.Random(args.seed))

    ids = asyncio.run(run())
    print("✅ Demo data seeded")
    print(f"   Organization: {ids['organization']}")
    print(f"   Project: {ids['project']}")
    print(f"   Board: {ids['board']} (key RL)")
    print(f"   Owner login: {ids['owner']}")
    print(f"   Tasks: {args.tasks}")


if __name__ == "__main__":
    main()
