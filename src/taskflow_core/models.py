"""SQLAlchemy database models."""
from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    Enum,
    Index,
    Table,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class Role(str, enum.Enum):
    """User role, highest privilege first."""

    OWNER = "Owner"
    ADMIN = "Admin"
    DEPUTY_ADMIN = "Deputy Admin"
    PROJECT_MANAGER = "Project Manager"
    MEMBER = "Member"
    GUEST = "Guest"


class ProjectStatus(str, enum.Enum):
    """Project status. CLOSED is terminal."""

    ACTIVE = "Active"
    CLOSED = "Closed"


# Tasks carry a free-form status; closing always writes this value.
TASK_DONE_STATUS = "Done"


class TargetType(str, enum.Enum):
    """Entity kind a report (or a membership check) refers to."""

    TASK = "task"
    PROJECT = "project"


class ReportResult(str, enum.Enum):
    """Outcome recorded by a closing report."""

    FULLY_COMPLETE = "fully complete"
    PARTIALLY_COMPLETE = "partially complete"
    NOT_COMPLETE = "not complete"


class ChatScope(str, enum.Enum):
    """Where a chat message lives."""

    DEPARTMENT = "department"
    TASK = "task"


# Team junction tables: one row per unique (parent, user) pair.
# User references carry no ON DELETE action so that deleting a team member
# fails instead of silently shrinking a team.
project_curators = Table(
    'project_curators',
    Base.metadata,
    Column('project_id', Integer, ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
    Column('user_id', Integer, ForeignKey('users.id'), primary_key=True, index=True),
)

project_assignees = Table(
    'project_assignees',
    Base.metadata,
    Column('project_id', Integer, ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
    Column('user_id', Integer, ForeignKey('users.id'), primary_key=True, index=True),
)

task_curators = Table(
    'task_curators',
    Base.metadata,
    Column('task_id', Integer, ForeignKey('tasks.id', ondelete='CASCADE'), primary_key=True),
    Column('user_id', Integer, ForeignKey('users.id'), primary_key=True, index=True),
)

task_assignees = Table(
    'task_assignees',
    Base.metadata,
    Column('task_id', Integer, ForeignKey('tasks.id', ondelete='CASCADE'), primary_key=True),
    Column('user_id', Integer, ForeignKey('users.id'), primary_key=True, index=True),
)


class Department(Base):
    """
    Department model.

    Static reference set seeded at schema creation. Referenced by users and
    projects, never deleted by the application.
    """

    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Department {self.id}: {self.name}>"


class User(Base):
    """
    User model.

    A user belongs to exactly one department and holds exactly one role.
    Deletion is rejected while any project, task, report, message or team
    membership still references the user.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    login = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    position = Column(String(255), nullable=False)
    role = Column(
        Enum(Role, values_callable=_enum_values, native_enum=False, length=32),
        nullable=False,
        default=Role.MEMBER,
    )
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, default=1, index=True)
    avatar_path = Column(String(1024), nullable=False, default="", server_default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    department = relationship("Department", lazy="joined")

    @property
    def department_name(self) -> str:
        return self.department.name if self.department else ""

    def __repr__(self) -> str:
        return f"<User {self.login} ({self.role.value})>"


class Project(Base):
    """
    Project model.

    ``curator_user_id`` duplicates the first curator for quick display. Team
    rows in ``project_curators``/``project_assignees`` are owned by the
    project and written through :mod:`taskflow_core.crud` only.
    """

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=False)
    key = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    status = Column(
        Enum(ProjectStatus, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=ProjectStatus.ACTIVE,
        index=True,
    )
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    curator_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships (read-only: junction rows are reconciled explicitly)
    department = relationship("Department", lazy="joined")
    curators = relationship("User", secondary=project_curators, order_by="User.id", viewonly=True)
    assignees = relationship("User", secondary=project_assignees, order_by="User.id", viewonly=True)

    @property
    def department_name(self) -> str:
        return self.department.name if self.department else ""

    def __repr__(self) -> str:
        return f"<Project {self.key}: {self.name}>"


class Task(Base):
    """
    Task model.

    A task inherits its department through its project. ``status`` is
    free-form except that closing writes :data:`TASK_DONE_STATUS`.
    """

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=False)
    key = Column(String(64), nullable=False, unique=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    task_type = Column("type", String(50), nullable=False)
    status = Column(String(50), nullable=False, index=True)
    priority = Column(String(50), nullable=False)
    due_date = Column(Date, nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    curator_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    project = relationship("Project", lazy="joined")
    curators = relationship("User", secondary=task_curators, order_by="User.id", viewonly=True)
    assignees = relationship("User", secondary=task_assignees, order_by="User.id", viewonly=True)

    @property
    def department_id(self) -> int:
        return self.project.department_id

    @property
    def department_name(self) -> str:
        return self.project.department_name

    @property
    def project_key(self) -> str:
        return self.project.key

    @property
    def project_name(self) -> str:
        return self.project.name

    def __repr__(self) -> str:
        return f"<Task {self.key}: {self.title[:30]}>"


class Report(Base):
    """
    Closing report for a task or project. Immutable once created.

    ``target_id`` is polymorphic (task or project id) and therefore carries
    no foreign key.
    """

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=False)
    target_type = Column(
        Enum(TargetType, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
    )
    target_id = Column(Integer, nullable=False)
    result_status = Column(
        Enum(ReportResult, values_callable=_enum_values, native_enum=False, length=32),
        nullable=False,
        default=ReportResult.FULLY_COMPLETE,
    )
    author_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    resolution = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False, default="")
    file_path = Column(String(1024), nullable=False, default="")
    file_size = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    author = relationship("User", lazy="joined")

    __table_args__ = (
        Index("idx_reports_target", "target_type", "target_id"),
    )

    def __repr__(self) -> str:
        return f"<Report {self.id} {self.target_type.value}#{self.target_id}>"


class ChatMessage(Base):
    """Append-only chat message scoped to a department or a task."""

    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope_type = Column(
        Enum(ChatScope, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
    )
    scope_id = Column(Integer, nullable=False)
    author_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    body = Column(Text, nullable=False, default="")
    file_name = Column(String(255), nullable=False, default="")
    file_path = Column(String(1024), nullable=False, default="")
    file_size = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    author = relationship("User", lazy="joined")

    __table_args__ = (
        Index("idx_chat_messages_scope", "scope_type", "scope_id"),
    )

    @property
    def author_name(self) -> str:
        return self.author.full_name

    def __repr__(self) -> str:
        return f"<ChatMessage {self.scope_type.value}#{self.scope_id} by {self.author_user_id}>"
