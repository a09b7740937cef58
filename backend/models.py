# models.py — Database models for CollabHub
# - UUID string primary keys everywhere
# - Organisation → group → resource grant chain (projects, boards)
# - Kanban boards with ordered columns, sprints and per-board task numbers
# - Soft deletes on tasks so issued task numbers stay visible

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from permissions import GroupRole, OrgRole, PermissionLevel

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


def _values(enum_cls):
    return [member.value for member in enum_cls]


# ============================================================
# ENUMS
# ============================================================

class ProjectStatus(str, PyEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    COMPLETED = "completed"


class SprintStatus(str, PyEnum):
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"


class TaskType(str, PyEnum):
    STORY = "story"
    TASK = "task"
    BUG = "bug"
    EPIC = "epic"
    SUBTASK = "subtask"


class TaskPriority(str, PyEnum):
    LOWEST = "lowest"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    HIGHEST = "highest"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    display_name = Column(String, nullable=False, default="")
    avatar_url = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    org_memberships = relationship("OrganizationMember", back_populates="user")
    group_memberships = relationship("GroupMember", back_populates="user")


# ============================================================
# ORGANISATIONS
# ============================================================

class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False, index=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    logo_url = Column(String, nullable=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    members = relationship("OrganizationMember", back_populates="organization", cascade="all, delete-orphan")
    groups = relationship("Group", back_populates="organization", cascade="all, delete-orphan")


class OrganizationMember(Base):
    __tablename__ = "organization_members"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SQLEnum(OrgRole, values_callable=_values), nullable=False, default=OrgRole.MEMBER)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    organization = relationship("Organization", back_populates="members")
    user = relationship("User", back_populates="org_memberships")

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_org_member"),
    )


# ============================================================
# GROUPS
# ============================================================

class Group(Base):
    __tablename__ = "groups"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    organization = relationship("Organization", back_populates="groups")
    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String, primary_key=True, default=new_uuid)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SQLEnum(GroupRole, values_callable=_values), nullable=False, default=GroupRole.MEMBER)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    group = relationship("Group", back_populates="members")
    user = relationship("User", back_populates="group_memberships")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
    )


# ============================================================
# PROJECTS
# ============================================================

class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(ProjectStatus, values_callable=_values), nullable=False, default=ProjectStatus.ACTIVE)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    grants = relationship("ProjectGroup", back_populates="project", cascade="all, delete-orphan")


class ProjectGroup(Base):
    """Grant: a group's permission level on a project"""
    __tablename__ = "project_groups"

    id = Column(String, primary_key=True, default=new_uuid)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_level = Column(
        SQLEnum(PermissionLevel, values_callable=_values), nullable=False, default=PermissionLevel.READ,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow)

    project = relationship("Project", back_populates="grants")
    group = relationship("Group")

    __table_args__ = (
        UniqueConstraint("project_id", "group_id", name="uq_project_group"),
    )


# ============================================================
# KANBAN BOARD
# ============================================================

class Board(Base):
    """Kanban board, optionally attached to a project"""
    __tablename__ = "boards"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    key = Column(String, nullable=False)  # Task key prefix, e.g. "PROJ" → PROJ-1
    last_task_number = Column(Integer, nullable=False, default=0)  # High-water mark
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    grants = relationship("BoardGroup", back_populates="board", cascade="all, delete-orphan")
    columns = relationship(
        "BoardColumn", back_populates="board", order_by="BoardColumn.sort_order", cascade="all, delete-orphan",
    )
    sprints = relationship("Sprint", back_populates="board", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="board", cascade="all, delete-orphan")
    labels = relationship("TaskLabel", back_populates="board", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("organization_id", "key", name="uq_board_org_key"),
    )


class BoardGroup(Base):
    """Grant: a group's permission level on a board"""
    __tablename__ = "board_groups"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_level = Column(
        SQLEnum(PermissionLevel, values_callable=_values), nullable=False, default=PermissionLevel.READ,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow)

    board = relationship("Board", back_populates="grants")
    group = relationship("Group")

    __table_args__ = (
        UniqueConstraint("board_id", "group_id", name="uq_board_group"),
    )


class BoardColumn(Base):
    __tablename__ = "board_columns"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, nullable=True, default="#6366f1")
    sort_order = Column(Integer, nullable=False, default=0)
    is_default = Column(Boolean, nullable=False, default=False)  # New tasks land here
    wip_limit = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    board = relationship("Board", back_populates="columns")

    __table_args__ = (
        Index("idx_col_board_pos", "board_id", "sort_order"),
    )


class Sprint(Base):
    __tablename__ = "sprints"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    goal = Column(Text, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(SQLEnum(SprintStatus, values_callable=_values), nullable=False, default=SprintStatus.PLANNING)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    board = relationship("Board", back_populates="sprints")


class Task(Base):
    """Task card; task_number is board-scoped, sort_order is column-scoped"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    column_id = Column(String, ForeignKey("board_columns.id"), nullable=False, index=True)
    sprint_id = Column(String, ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True, index=True)
    task_number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    task_type = Column(SQLEnum(TaskType, values_callable=_values), nullable=False, default=TaskType.TASK)
    priority = Column(SQLEnum(TaskPriority, values_callable=_values), nullable=False, default=TaskPriority.MEDIUM)
    story_points = Column(Integer, nullable=True)
    assignee_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    reporter_id = Column(String, ForeignKey("users.id"), nullable=False)
    parent_task_id = Column(String, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    board = relationship("Board", back_populates="tasks")
    column = relationship("BoardColumn")
    label_assignments = relationship("TaskLabelAssignment", back_populates="task", cascade="all, delete-orphan")
    comments = relationship("TaskComment", back_populates="task", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("board_id", "task_number", name="uq_task_board_number"),
        Index("idx_task_board_col", "board_id", "column_id"),
    )


class TaskLabel(Base):
    """Board-scoped label; names are unique per board"""
    __tablename__ = "task_labels"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    color = Column(String, nullable=False, default="#6366f1")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    board = relationship("Board", back_populates="labels")
    assignments = relationship("TaskLabelAssignment", back_populates="label", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("board_id", "name", name="uq_label_board_name"),
    )


class TaskLabelAssignment(Base):
    __tablename__ = "task_label_assignments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    label_id = Column(String, ForeignKey("task_labels.id", ondelete="CASCADE"), nullable=False, index=True)

    task = relationship("Task", back_populates="label_assignments")
    label = relationship("TaskLabel", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("task_id", "label_id", name="uq_task_label"),
    )


class TaskComment(Base):
    __tablename__ = "task_comments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    task = relationship("Task", back_populates="comments")


# ============================================================
# ACTIVITY LOG
# ============================================================

class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String, nullable=False)  # "task.created", "column.reordered", ...
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=True)
    extra_data = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        Index("idx_activity_entity", "entity_type", "entity_id"),
    )
