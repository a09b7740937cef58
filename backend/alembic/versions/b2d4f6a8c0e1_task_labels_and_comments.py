"""Task labels and comments

Revision ID: b2d4f6a8c0e1
Revises: a1f3c5e7b9d2
Create Date: 2026-10-18 14:00:00.000000

New tables:
- task_labels (board-scoped, unique name per board)
- task_label_assignments
- task_comments
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = 'b2d4f6a8c0e1'
down_revision = 'a1f3c5e7b9d2'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── Labels ────────────────────────────────────────────────────────────────
    op.create_table(
        'task_labels',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('board_id', sa.String, sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String, nullable=False),
        sa.Column('color', sa.String, nullable=False, server_default='#6366f1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('board_id', 'name', name='uq_label_board_name'),
    )
    op.create_index('ix_task_labels_board_id', 'task_labels', ['board_id'])

    op.create_table(
        'task_label_assignments',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('task_id', sa.String, sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('label_id', sa.String, sa.ForeignKey('task_labels.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('task_id', 'label_id', name='uq_task_label'),
    )
    op.create_index('ix_task_label_assignments_task_id', 'task_label_assignments', ['task_id'])
    op.create_index('ix_task_label_assignments_label_id', 'task_label_assignments', ['label_id'])

    # ── Comments ──────────────────────────────────────────────────────────────
    op.create_table(
        'task_comments',
        sa.Column('id', sa.String, primary_key=True),
        sa.Column('task_id', sa.String, sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_task_comments_task_id', 'task_comments', ['task_id'])
    op.create_index('ix_task_comments_created_at', 'task_comments', ['created_at'])


def downgrade() -> None:
    op.drop_table('task_comments')
    op.drop_table('task_label_assignments')
    op.drop_table('task_labels')
