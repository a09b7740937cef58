"""CollabHub initial schema — organizations, groups, grants, boards, tasks

Revision ID: a1f3c5e7b9d2
Revises:
Create Date: 2026-10-18 09:00:00.000000

New tables:
- users, organizations, organization_members
- groups, group_members
- projects, project_groups (grants)
- boards, board_groups (grants), board_columns, sprints, tasks
- activity_logs
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = 'a1f3c5e7b9d2'
down_revision = None
branch_labels = None
depends_on = None

org_role = sa.Enum('member', 'admin', 'owner', name='orgrole')
group_role = sa.Enum('member', 'admin', name='grouprole')
permission_level = sa.Enum('read', 'write', 'admin', name='permissionlevel')
project_status = sa.Enum('active', 'archived', 'completed', name='projectstatus')
sprint_status = sa.Enum('planning', 'active', 'completed', name='sprintstatus')
task_type = sa.Enum('story', 'task', 'bug', 'epic', 'subtask', name='tasktype')
task_priority = sa.Enum('lowest', 'low', 'medium', 'high', 'highest', name='taskpriority')


def upgrade() -> None:
    # ── Users ─────────────────────────────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('email', sa.String, nullable=False),
        sa.Column('display_name', sa.String, nullable=False, server_default=''),
        sa.Column('avatar_url', sa.String, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_is_active', 'users', ['is_active'])
    op.create_index('ix_users_created_at', 'users', ['created_at'])

    # ── Organizations ─────────────────────────────────────────────────────────
    op.create_table(
        'organizations',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('slug', sa.String, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('logo_url', sa.String, nullable=True),
        sa.Column('created_by', sa.String, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_organizations_name', 'organizations', ['name'])
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)

    op.create_table(
        'organization_members',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('organization_id', sa.String, sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', org_role, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_org_member'),
    )
    op.create_index('ix_organization_members_organization_id', 'organization_members', ['organization_id'])
    op.create_index('ix_organization_members_user_id', 'organization_members', ['user_id'])

    # ── Groups ────────────────────────────────────────────────────────────────
    op.create_table(
        'groups',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('organization_id', sa.String, sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_by', sa.String, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_groups_organization_id', 'groups', ['organization_id'])

    op.create_table(
        'group_members',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('group_id', sa.String, sa.ForeignKey('groups.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', group_role, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('group_id', 'user_id', name='uq_group_member'),
    )
    op.create_index('ix_group_members_group_id', 'group_members', ['group_id'])
    op.create_index('ix_group_members_user_id', 'group_members', ['user_id'])

    # ── Projects and their grants ─────────────────────────────────────────────
    op.create_table(
        'projects',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('organization_id', sa.String, sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('status', project_status, nullable=False),
        sa.Column('created_by', sa.String, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_projects_organization_id', 'projects', ['organization_id'])

    op.create_table(
        'project_groups',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('project_id', sa.String, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('group_id', sa.String, sa.ForeignKey('groups.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_level', permission_level, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('project_id', 'group_id', name='uq_project_group'),
    )
    op.create_index('ix_project_groups_project_id', 'project_groups', ['project_id'])
    op.create_index('ix_project_groups_group_id', 'project_groups', ['group_id'])

    # ── Boards ────────────────────────────────────────────────────────────────
    op.create_table(
        'boards',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('organization_id', sa.String, sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('project_id', sa.String, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=True),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('key', sa.String, nullable=False),
        sa.Column('last_task_number', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_by', sa.String, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('organization_id', 'key', name='uq_board_org_key'),
    )
    op.create_index('ix_boards_organization_id', 'boards', ['organization_id'])
    op.create_index('ix_boards_project_id', 'boards', ['project_id'])

    op.create_table(
        'board_groups',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('board_id', sa.String, sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('group_id', sa.String, sa.ForeignKey('groups.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_level', permission_level, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('board_id', 'group_id', name='uq_board_group'),
    )
    op.create_index('ix_board_groups_board_id', 'board_groups', ['board_id'])
    op.create_index('ix_board_groups_group_id', 'board_groups', ['group_id'])

    op.create_table(
        'board_columns',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('board_id', sa.String, sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('color', sa.String, nullable=True),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_default', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('wip_limit', sa.Integer, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_board_columns_board_id', 'board_columns', ['board_id'])
    op.create_index('idx_col_board_pos', 'board_columns', ['board_id', 'sort_order'])

    op.create_table(
        'sprints',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('board_id', sa.String, sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('goal', sa.Text, nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sprint_status, nullable=False),
        sa.Column('created_by', sa.String, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_sprints_board_id', 'sprints', ['board_id'])

    # ── Tasks (soft delete keeps issued numbers) ──────────────────────────────
    op.create_table(
        'tasks',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('board_id', sa.String, sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('column_id', sa.String, sa.ForeignKey('board_columns.id'), nullable=False),
        sa.Column('sprint_id', sa.String, sa.ForeignKey('sprints.id', ondelete='SET NULL'), nullable=True),
        sa.Column('task_number', sa.Integer, nullable=False),
        sa.Column('title', sa.String, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('task_type', task_type, nullable=False),
        sa.Column('priority', task_priority, nullable=False),
        sa.Column('story_points', sa.Integer, nullable=True),
        sa.Column('assignee_id', sa.String, sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('reporter_id', sa.String, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('parent_task_id', sa.String, sa.ForeignKey('tasks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('board_id', 'task_number', name='uq_task_board_number'),
    )
    op.create_index('ix_tasks_board_id', 'tasks', ['board_id'])
    op.create_index('ix_tasks_column_id', 'tasks', ['column_id'])
    op.create_index('ix_tasks_sprint_id', 'tasks', ['sprint_id'])
    op.create_index('ix_tasks_assignee_id', 'tasks', ['assignee_id'])
    op.create_index('idx_task_board_col', 'tasks', ['board_id', 'column_id'])

    # ── Activity log ──────────────────────────────────────────────────────────
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('organization_id', sa.String, sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=True),
        sa.Column('user_id', sa.String, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('action', sa.String, nullable=False),
        sa.Column('entity_type', sa.String, nullable=False),
        sa.Column('entity_id', sa.String, nullable=True),
        sa.Column('metadata', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_activity_logs_organization_id', 'activity_logs', ['organization_id'])
    op.create_index('ix_activity_logs_user_id', 'activity_logs', ['user_id'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])
    op.create_index('idx_activity_entity', 'activity_logs', ['entity_type', 'entity_id'])


def downgrade() -> None:
    op.drop_table('activity_logs')
    op.drop_table('tasks')
    op.drop_table('sprints')
    op.drop_table('board_columns')
    op.drop_table('board_groups')
    op.drop_table('boards')
    op.drop_table('project_groups')
    op.drop_table('projects')
    op.drop_table('group_members')
    op.drop_table('groups')
    op.drop_table('organization_members')
    op.drop_table('organizations')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (task_priority, task_type, sprint_status, project_status, permission_level, group_role, org_role):
        enum_type.drop(bind, checkfirst=True)
