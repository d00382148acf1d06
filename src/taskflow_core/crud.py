"""CRUD operations for users, projects, tasks, reports and chat.

Every multi-statement write runs inside :func:`taskflow_core.store.atomic`,
so it either commits in full or leaves the database untouched. Integrity
violations reported by the store are re-raised as domain errors
(:class:`ConflictError`, :class:`ReferentialIntegrityError`).

Authorization is not checked here; callers run the matching
:mod:`taskflow_core.permissions` check first and pass a
:class:`~taskflow_core.scopes.ListScope` to list operations. Department
moves of projects and users are the exception: their team checks read
stored task and team rows, so they run inside the write transaction.
"""
import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterable, Optional, Union

from sqlalchemy import and_, delete, func, insert, or_, select, union, update
from sqlalchemy.orm import Session

from . import models
from .errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ReferentialIntegrityError,
    TaskflowError,
    ValidationError,
)
from .id_allocation import allocate_id
from .passwords import hash_password, verify_password
from .roles import parse_role, validate_role_department_position
from .scopes import DEPARTMENT, ListScope
from .store import ForeignKeyViolation, UniqueViolation, atomic

logger = logging.getLogger("taskflow-core.crud")

TEAM_OUTSIDE_DEPARTMENT = "team members outside department"

MIN_TEAM_SIZE = 1
MAX_TEAM_SIZE = 5

PROJECT_KEY_PREFIX = "PRJ"
TASK_KEY_PREFIX = "TSK"

# kind -> (curators table, assignees table, parent column name)
TEAM_TABLES = {
    models.TargetType.PROJECT: (models.project_curators, models.project_assignees, "project_id"),
    models.TargetType.TASK: (models.task_curators, models.task_assignees, "task_id"),
}


@contextmanager
def _transaction(
    db: Session,
    conflict_message: str = "Duplicate value",
    reference_error: Optional[TaskflowError] = None,
):
    """Run a block atomically, translating store violations into domain errors."""
    try:
        with atomic(db):
            yield
    except UniqueViolation as e:
        logger.warning(f"{conflict_message}: {e}")
        raise ConflictError(conflict_message) from e
    except ForeignKeyViolation as e:
        logger.warning(f"Foreign key violation: {e}")
        raise (reference_error or ReferentialIntegrityError("Row is still referenced")) from e


def unique_ids(ids: Iterable[int]) -> list[int]:
    """Deduplicate ids, keeping first-seen order."""
    seen = set()
    result = []
    for value in ids:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def parse_target_type(value: Union[str, models.TargetType]) -> models.TargetType:
    """
    Parse ``task``/``project`` case-insensitively.

    Raises:
        ValidationError: For any other value
    """
    if isinstance(value, models.TargetType):
        return value
    try:
        return models.TargetType((value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown target type: '{value}'")


def parse_report_result(value: Union[str, models.ReportResult, None]) -> models.ReportResult:
    """
    Parse a report result; empty means fully complete.

    Raises:
        ValidationError: For an unknown result
    """
    if isinstance(value, models.ReportResult):
        return value
    cleaned = (value or "").strip().lower()
    if not cleaned:
        return models.ReportResult.FULLY_COMPLETE
    try:
        return models.ReportResult(cleaned)
    except ValueError:
        raise ValidationError(f"Unknown report result: '{value}'")


def _validate_team(curator_ids: Iterable[int], assignee_ids: Iterable[int]) -> tuple[list[int], list[int]]:
    curators = unique_ids(curator_ids)
    assignees = unique_ids(assignee_ids)
    for label, ids in (("curators", curators), ("assignees", assignees)):
        if not MIN_TEAM_SIZE <= len(ids) <= MAX_TEAM_SIZE:
            raise ValidationError(f"Between {MIN_TEAM_SIZE} and {MAX_TEAM_SIZE} {label} are required")
        if any(user_id <= 0 for user_id in ids):
            raise ValidationError(f"Invalid user id among {label}")
    return curators, assignees


def _required(**fields: Optional[str]) -> dict[str, str]:
    """Strip string fields and reject empty ones."""
    cleaned = {name: (value or "").strip() for name, value in fields.items()}
    missing = [name for name, value in cleaned.items() if not value]
    if missing:
        raise ValidationError(f"Required fields are missing: {', '.join(missing)}")
    return cleaned


# =============================================================================
# Team membership
# =============================================================================


def _insert_members(db: Session, table, parent_column: str, parent_id: int, user_ids: Iterable[int]) -> None:
    rows = [{parent_column: parent_id, "user_id": user_id} for user_id in user_ids]
    if rows:
        db.execute(insert(table), rows)


def _reconcile_members(db: Session, table, parent_column: str, parent_id: int, wanted: list[int]) -> None:
    """Make the junction rows of ``parent_id`` equal ``wanted`` by set difference."""
    parent = table.c[parent_column]
    current = set(db.execute(select(table.c.user_id).where(parent == parent_id)).scalars())
    stale = current - set(wanted)
    added = [user_id for user_id in wanted if user_id not in current]
    if stale:
        db.execute(delete(table).where(parent == parent_id, table.c.user_id.in_(stale)))
    _insert_members(db, table, parent_column, parent_id, added)
    if stale or added:
        logger.debug(f"{table.name}[{parent_id}]: +{added} -{sorted(stale)}")


def get_team_ids(
    db: Session,
    kind: Union[str, models.TargetType],
    target_id: int,
) -> tuple[list[int], list[int]]:
    """
    Return (curator ids, assignee ids) of a project or task, each ascending.
    """
    curators, assignees, parent_column = TEAM_TABLES[parse_target_type(kind)]
    return tuple(
        list(
            db.execute(
                select(table.c.user_id).where(table.c[parent_column] == target_id).order_by(table.c.user_id)
            ).scalars()
        )
        for table in (curators, assignees)
    )


def is_participant(db: Session, kind: Union[str, models.TargetType], target_id: int, user_id: int) -> bool:
    """
    Check whether a user curates or is assigned to a project or task.

    Args:
        db: Database session
        kind: ``task`` or ``project``
        target_id: Task or project id
        user_id: User to look for

    Returns:
        True if the user is in either junction set
    """
    curators, assignees, parent_column = TEAM_TABLES[parse_target_type(kind)]
    stmt = union(
        select(curators.c.user_id).where(curators.c[parent_column] == target_id, curators.c.user_id == user_id),
        select(assignees.c.user_id).where(assignees.c[parent_column] == target_id, assignees.c.user_id == user_id),
    )
    return db.execute(stmt).first() is not None


def _participant_target_ids(kind: models.TargetType, user_id: int):
    curators, assignees, parent_column = TEAM_TABLES[kind]
    return union(
        select(curators.c[parent_column]).where(curators.c.user_id == user_id),
        select(assignees.c[parent_column]).where(assignees.c.user_id == user_id),
    )


def users_belong_to_department(db: Session, user_ids: Iterable[int], department_id: int) -> bool:
    """
    Check that every user id exists and belongs to ``department_id``.

    Unknown ids count as outside the department. An empty id set passes.
    """
    ids = unique_ids(user_ids)
    if not ids:
        return True
    count = (
        db.query(func.count(func.distinct(models.User.id)))
        .filter(models.User.id.in_(ids), models.User.department_id == department_id)
        .scalar()
    )
    return count == len(ids)


def project_task_team_ids(db: Session, project_id: int) -> list[int]:
    """Distinct curator and assignee ids across all tasks of a project."""
    task_ids = select(models.Task.id).where(models.Task.project_id == project_id)
    stmt = union(
        select(models.task_curators.c.user_id).where(models.task_curators.c.task_id.in_(task_ids)),
        select(models.task_assignees.c.user_id).where(models.task_assignees.c.task_id.in_(task_ids)),
    )
    return sorted(db.execute(stmt).scalars())


def has_teams_outside_department(db: Session, user_id: int, department_id: int) -> bool:
    """Check whether a user sits on a project or task team of another department."""
    projects = db.query(models.Project.id).filter(
        models.Project.id.in_(_participant_target_ids(models.TargetType.PROJECT, user_id)),
        models.Project.department_id != department_id,
    )
    tasks = (
        db.query(models.Task.id)
        .join(models.Project, models.Task.project_id == models.Project.id)
        .filter(
            models.Task.id.in_(_participant_target_ids(models.TargetType.TASK, user_id)),
            models.Project.department_id != department_id,
        )
    )
    return projects.first() is not None or tasks.first() is not None


# =============================================================================
# Departments and users
# =============================================================================


def list_departments(db: Session, scope: ListScope) -> list[models.Department]:
    query = db.query(models.Department)
    if not scope.is_unrestricted:
        query = query.filter(models.Department.id == scope.department_id)
    return query.order_by(models.Department.id).all()


def department_exists(db: Session, department_id: int) -> bool:
    return db.query(models.Department.id).filter(models.Department.id == department_id).first() is not None


def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_login(db: Session, login: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.login == (login or "").strip()).first()


def list_users(db: Session, scope: ListScope) -> list[models.User]:
    """
    List users visible within ``scope``, ordered by id.

    A participant scope only ever contains the user themself.
    """
    query = db.query(models.User)
    if scope.kind == DEPARTMENT:
        query = query.filter(models.User.department_id == scope.department_id)
    elif not scope.is_unrestricted:
        query = query.filter(models.User.id == scope.user_id)
    return query.order_by(models.User.id).all()


def _insert_user(
    db: Session,
    login: str,
    password: str,
    full_name: str,
    position: str,
    role: models.Role,
    department_id: int,
) -> models.User:
    user = models.User(
        login=login,
        password_hash=hash_password(password),
        full_name=full_name,
        position=position,
        role=role,
        department_id=department_id,
        avatar_path="",
    )
    with _transaction(
        db,
        conflict_message=f"Login '{login}' is already taken",
        reference_error=ValidationError(f"Unknown department: {department_id}"),
    ):
        db.add(user)
    db.refresh(user)
    logger.info(f"Created user '{user.login}' (ID: {user.id}, role: {user.role.value})")
    return user


def register_user(
    db: Session,
    login: str,
    password: str,
    repeat_password: str,
    full_name: str,
    position: str,
    department_id: int,
) -> models.User:
    """
    Self-registration. The new user always gets the Member role.

    Args:
        db: Database session
        login: Unique login
        password: Plaintext password
        repeat_password: Must equal ``password``
        full_name: Display name
        position: Position, must be on the department's list
        department_id: Department to join

    Returns:
        Created user

    Raises:
        ValidationError: Missing fields, password mismatch, bad position
        ConflictError: Login already taken
    """
    fields = _required(login=login, full_name=full_name, position=position)
    if not password or not repeat_password:
        raise ValidationError("Password is required")
    if password != repeat_password:
        raise ValidationError("Passwords do not match")
    validate_role_department_position(models.Role.MEMBER, department_id, fields["position"])
    return _insert_user(
        db,
        fields["login"],
        password,
        fields["full_name"],
        fields["position"],
        models.Role.MEMBER,
        department_id,
    )


def create_user(
    db: Session,
    login: str,
    password: str,
    full_name: str,
    position: str,
    role: Union[str, models.Role],
    department_id: int,
) -> models.User:
    """
    Administrator-initiated user creation with any valid role.

    Raises:
        ValidationError: Missing fields or role/position mismatch
        ConflictError: Login already taken
    """
    fields = _required(login=login, full_name=full_name, position=position)
    if not password:
        raise ValidationError("Password is required")
    role = parse_role(role)
    validate_role_department_position(role, department_id, fields["position"])
    return _insert_user(db, fields["login"], password, fields["full_name"], fields["position"], role, department_id)


def authenticate(db: Session, login: str, password: str) -> models.User:
    """
    Check credentials. No session or token is issued.

    Raises:
        AuthenticationError: Unknown login or wrong password
    """
    user = get_user_by_login(db, login)
    if user is None or not verify_password(password or "", user.password_hash):
        logger.warning(f"Failed login attempt for '{(login or '').strip()}'")
        raise AuthenticationError("Invalid login or password")
    return user


def _update_user_row(db: Session, user_id: int, values: dict, conflict_message: str = "Duplicate value") -> models.User:
    with _transaction(db, conflict_message=conflict_message):
        result = db.execute(update(models.User).where(models.User.id == user_id).values(**values))
        if result.rowcount == 0:
            raise NotFoundError("User not found")
    return get_user(db, user_id)


def update_user_role(db: Session, user_id: int, role: Union[str, models.Role]) -> models.User:
    """
    Change a user's role, keeping their department and position.

    Raises:
        ValidationError: Unknown role or the user's position does not fit it
        NotFoundError: No such user
    """
    role = parse_role(role)
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    validate_role_department_position(role, user.department_id, user.position)
    updated = _update_user_row(db, user_id, {"role": role})
    logger.info(f"Changed role of user {user_id} to {role.value}")
    return updated


def update_user(
    db: Session,
    user_id: int,
    login: str,
    full_name: str,
    position: str,
    role: Union[str, models.Role],
    department_id: int,
) -> models.User:
    """
    Replace a user's account fields (administrator edit).

    A user may only change department once they no longer sit on any
    project or task team outside the new department.

    Raises:
        ValidationError: Missing fields or role/department/position mismatch
        ConflictError: Login already taken, or the user is still on teams
            of another department
        NotFoundError: No such user
    """
    fields = _required(login=login, full_name=full_name, position=position)
    role = parse_role(role)
    validate_role_department_position(role, department_id, fields["position"])
    values = {
        "login": fields["login"],
        "full_name": fields["full_name"],
        "position": fields["position"],
        "role": role,
        "department_id": department_id,
    }

    with _transaction(db, conflict_message=f"Login '{fields['login']}' is already taken"):
        current = db.query(models.User.department_id).filter(models.User.id == user_id).first()
        if current is None:
            raise NotFoundError("User not found")
        if current.department_id != department_id and has_teams_outside_department(db, user_id, department_id):
            raise ConflictError("User is still on project or task teams of another department")
        db.execute(update(models.User).where(models.User.id == user_id).values(**values))

    updated = get_user(db, user_id)
    logger.info(f"Updated user {user_id} ({updated.login})")
    return updated


def update_profile(
    db: Session,
    user_id: int,
    full_name: str,
    position: str,
    password: Optional[str] = None,
) -> models.User:
    """
    Update the caller's own name, position and optionally password.

    The position must still fit the user's role and department.

    Raises:
        ValidationError: Missing fields or position not allowed
        NotFoundError: No such user
    """
    fields = _required(full_name=full_name, position=position)
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    validate_role_department_position(user.role, user.department_id, fields["position"])

    values = {"full_name": fields["full_name"], "position": fields["position"]}
    if password and password.strip():
        values["password_hash"] = hash_password(password)
    updated = _update_user_row(db, user_id, values)
    logger.info(f"Updated profile of user {user_id}")
    return updated


def update_user_avatar(db: Session, user_id: int, avatar_path: str) -> models.User:
    """Point a user's avatar at a stored file."""
    updated = _update_user_row(db, user_id, {"avatar_path": avatar_path})
    logger.info(f"Updated avatar of user {user_id}")
    return updated


def delete_user(db: Session, user_id: int) -> None:
    """
    Delete a user that nothing references.

    Raises:
        NotFoundError: No such user
        ReferentialIntegrityError: The user still curates, is assigned, or
            authored reports or messages
    """
    with _transaction(
        db,
        reference_error=ReferentialIntegrityError(
            "User is still referenced by projects, tasks, reports or messages"
        ),
    ):
        result = db.execute(delete(models.User).where(models.User.id == user_id))
        if result.rowcount == 0:
            raise NotFoundError("User not found")
    logger.info(f"Deleted user {user_id}")


# =============================================================================
# Projects
# =============================================================================


def get_project(db: Session, project_id: int) -> Optional[models.Project]:
    return db.query(models.Project).filter(models.Project.id == project_id).first()


def get_project_department_id(db: Session, project_id: int) -> int:
    """
    Department of a project.

    Raises:
        NotFoundError: No such project
    """
    department_id = (
        db.query(models.Project.department_id).filter(models.Project.id == project_id).scalar()
    )
    if department_id is None:
        raise NotFoundError("Project not found")
    return department_id


def list_projects(db: Session, scope: ListScope) -> list[models.Project]:
    """List projects visible within ``scope``, ordered by id."""
    query = db.query(models.Project)
    if scope.kind == DEPARTMENT:
        query = query.filter(models.Project.department_id == scope.department_id)
    elif not scope.is_unrestricted:
        query = query.filter(
            models.Project.id.in_(_participant_target_ids(models.TargetType.PROJECT, scope.user_id))
        )
    return query.order_by(models.Project.id).all()


def create_project(
    db: Session,
    name: str,
    department_id: int,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
    key: str = "",
) -> models.Project:
    """
    Create an active project with its team.

    The project takes the lowest free id; an empty key becomes
    ``PRJ-<id>``. The first curator becomes the primary curator. Duplicate
    ids in either list are ignored.

    Args:
        db: Database session
        name: Project name
        department_id: Owning department
        curator_ids: 1-5 curator user ids
        assignee_ids: 1-5 assignee user ids
        key: Optional unique key

    Returns:
        Created project

    Raises:
        ValidationError: Missing name or bad team size
        ConflictError: Key already in use
    """
    fields = _required(name=name)
    if department_id <= 0:
        raise ValidationError("Department is required")
    curators, assignees = _validate_team(curator_ids, assignee_ids)
    key = (key or "").strip()

    with _transaction(
        db,
        conflict_message="Project key is already in use",
        reference_error=ValidationError("Unknown department or team member"),
    ):
        project_id = allocate_id(db, models.Project.__table__)
        db.add(
            models.Project(
                id=project_id,
                key=key or f"{PROJECT_KEY_PREFIX}-{project_id}",
                name=fields["name"],
                status=models.ProjectStatus.ACTIVE,
                department_id=department_id,
                curator_user_id=curators[0],
            )
        )
        db.flush()
        _insert_members(db, models.project_curators, "project_id", project_id, curators)
        _insert_members(db, models.project_assignees, "project_id", project_id, assignees)

    project = get_project(db, project_id)
    logger.info(f"Created project '{project.name}' ({project.key}) (ID: {project.id})")
    return project


def update_project(
    db: Session,
    project_id: int,
    name: str,
    department_id: int,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
    key: str = "",
) -> models.Project:
    """
    Update a project and replace its team.

    An empty key keeps the current key. The junction rows end up equal to
    the new sets, with removals and additions applied in one transaction.
    Moving the project to another department requires every task team
    member to belong to that department too.

    Raises:
        ValidationError: Missing name or bad team size
        ConflictError: Key already in use by another project
        PermissionDeniedError: Task teams outside the new department
        NotFoundError: No such project
    """
    fields = _required(name=name)
    if department_id <= 0:
        raise ValidationError("Department is required")
    curators, assignees = _validate_team(curator_ids, assignee_ids)
    key = (key or "").strip()

    values = {
        "name": fields["name"],
        "department_id": department_id,
        "curator_user_id": curators[0],
    }
    if key:
        values["key"] = key

    with _transaction(
        db,
        conflict_message=f"Project key '{key}' is already in use",
        reference_error=ValidationError("Unknown department or team member"),
    ):
        current = db.query(models.Project.department_id).filter(models.Project.id == project_id).first()
        if current is None:
            raise NotFoundError("Project not found")
        if current.department_id != department_id and not users_belong_to_department(
            db, project_task_team_ids(db, project_id), department_id
        ):
            logger.warning(f"Refused moving project {project_id} to department {department_id}")
            raise PermissionDeniedError(TEAM_OUTSIDE_DEPARTMENT)
        db.execute(update(models.Project).where(models.Project.id == project_id).values(**values))
        _reconcile_members(db, models.project_curators, "project_id", project_id, curators)
        _reconcile_members(db, models.project_assignees, "project_id", project_id, assignees)

    project = get_project(db, project_id)
    logger.info(f"Updated project {project_id} ({project.key})")
    return project


def delete_project(db: Session, project_id: int) -> None:
    """
    Delete a project with all its tasks and team rows.

    Order: task curators, task assignees, task chat messages, tasks, project
    curators, project assignees, project.

    Raises:
        NotFoundError: No such project (nothing is deleted)
    """
    task_ids = select(models.Task.id).where(models.Task.project_id == project_id)
    with _transaction(db):
        if get_project(db, project_id) is None:
            raise NotFoundError("Project not found")
        db.execute(delete(models.task_curators).where(models.task_curators.c.task_id.in_(task_ids)))
        db.execute(delete(models.task_assignees).where(models.task_assignees.c.task_id.in_(task_ids)))
        db.execute(
            delete(models.ChatMessage)
            .where(
                models.ChatMessage.scope_type == models.ChatScope.TASK,
                models.ChatMessage.scope_id.in_(task_ids),
            )
            .execution_options(synchronize_session=False)
        )
        db.execute(
            delete(models.Task)
            .where(models.Task.project_id == project_id)
            .execution_options(synchronize_session=False)
        )
        db.execute(delete(models.project_curators).where(models.project_curators.c.project_id == project_id))
        db.execute(delete(models.project_assignees).where(models.project_assignees.c.project_id == project_id))
        db.execute(
            delete(models.Project)
            .where(models.Project.id == project_id)
            .execution_options(synchronize_session=False)
        )
    logger.info(f"Deleted project {project_id} with its tasks")


def _close_project_rows(db: Session, project_id: int) -> int:
    result = db.execute(
        update(models.Project)
        .where(models.Project.id == project_id)
        .values(status=models.ProjectStatus.CLOSED)
    )
    if result.rowcount == 0:
        raise NotFoundError("Project not found")
    tasks = db.execute(
        update(models.Task)
        .where(models.Task.project_id == project_id)
        .values(status=models.TASK_DONE_STATUS)
        .execution_options(synchronize_session=False)
    )
    return tasks.rowcount


def close_project(db: Session, project_id: int) -> models.Project:
    """
    Close a project and mark every one of its tasks Done, atomically.

    Raises:
        NotFoundError: No such project (no task is touched)
    """
    with _transaction(db):
        closed_tasks = _close_project_rows(db, project_id)
    logger.info(f"Closed project {project_id} ({closed_tasks} tasks marked done)")
    return get_project(db, project_id)


# =============================================================================
# Tasks
# =============================================================================


def get_task(db: Session, task_id: int) -> Optional[models.Task]:
    return db.query(models.Task).filter(models.Task.id == task_id).first()


def get_task_department_id(db: Session, task_id: int) -> int:
    """
    Department of a task, inherited from its project.

    Raises:
        NotFoundError: No such task
    """
    department_id = (
        db.query(models.Project.department_id)
        .join(models.Task, models.Task.project_id == models.Project.id)
        .filter(models.Task.id == task_id)
        .scalar()
    )
    if department_id is None:
        raise NotFoundError("Task not found")
    return department_id


def get_task_project_id(db: Session, task_id: int) -> int:
    project_id = db.query(models.Task.project_id).filter(models.Task.id == task_id).scalar()
    if project_id is None:
        raise NotFoundError("Task not found")
    return project_id


def list_tasks(db: Session, scope: ListScope, project_id: Optional[int] = None) -> list[models.Task]:
    """
    List tasks visible within ``scope``, optionally for one project.

    Args:
        db: Database session
        scope: Visibility filter
        project_id: Restrict to one project

    Returns:
        Tasks ordered by id
    """
    query = db.query(models.Task)
    if project_id is not None:
        query = query.filter(models.Task.project_id == project_id)
    if scope.kind == DEPARTMENT:
        query = query.filter(
            models.Task.project_id.in_(
                select(models.Project.id).where(models.Project.department_id == scope.department_id)
            )
        )
    elif not scope.is_unrestricted:
        query = query.filter(models.Task.id.in_(_participant_target_ids(models.TargetType.TASK, scope.user_id)))
    return query.order_by(models.Task.id).all()


def _task_fields(title, task_type, status, priority, project_id) -> dict[str, str]:
    fields = _required(title=title, type=task_type, status=status, priority=priority)
    if not project_id or project_id <= 0:
        raise ValidationError("Project is required")
    return fields


def create_task(
    db: Session,
    project_id: int,
    title: str,
    task_type: str,
    status: str,
    priority: str,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
    description: str = "",
    due_date: Optional[date] = None,
    key: str = "",
) -> models.Task:
    """
    Create a task in a project with its team.

    The task takes the lowest free id; an empty key becomes ``TSK-<id>``.
    The first curator becomes the primary curator.

    Raises:
        ValidationError: Missing fields or bad team size
        NotFoundError: No such project
        ConflictError: Key already in use
    """
    fields = _task_fields(title, task_type, status, priority, project_id)
    curators, assignees = _validate_team(curator_ids, assignee_ids)
    key = (key or "").strip()

    with _transaction(
        db,
        conflict_message="Task key is already in use",
        reference_error=ValidationError("Unknown project or team member"),
    ):
        if get_project(db, project_id) is None:
            raise NotFoundError("Project not found")
        task_id = allocate_id(db, models.Task.__table__)
        db.add(
            models.Task(
                id=task_id,
                key=key or f"{TASK_KEY_PREFIX}-{task_id}",
                title=fields["title"],
                description=(description or "").strip(),
                task_type=fields["type"],
                status=fields["status"],
                priority=fields["priority"],
                due_date=due_date,
                project_id=project_id,
                curator_user_id=curators[0],
            )
        )
        db.flush()
        _insert_members(db, models.task_curators, "task_id", task_id, curators)
        _insert_members(db, models.task_assignees, "task_id", task_id, assignees)

    task = get_task(db, task_id)
    logger.info(f"Created task '{task.title}' ({task.key}) (ID: {task.id}) in project {project_id}")
    return task


def update_task(
    db: Session,
    task_id: int,
    project_id: int,
    title: str,
    task_type: str,
    status: str,
    priority: str,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
    description: str = "",
    due_date: Optional[date] = None,
    key: str = "",
) -> models.Task:
    """
    Update a task and replace its team.

    Raises:
        ValidationError: Missing fields or bad team size
        NotFoundError: No such task or project
        ConflictError: Key already in use by another task
    """
    fields = _task_fields(title, task_type, status, priority, project_id)
    curators, assignees = _validate_team(curator_ids, assignee_ids)
    key = (key or "").strip()

    values = {
        "title": fields["title"],
        "description": (description or "").strip(),
        "task_type": fields["type"],
        "status": fields["status"],
        "priority": fields["priority"],
        "due_date": due_date,
        "project_id": project_id,
        "curator_user_id": curators[0],
    }
    if key:
        values["key"] = key

    with _transaction(
        db,
        conflict_message=f"Task key '{key}' is already in use",
        reference_error=ValidationError("Unknown project or team member"),
    ):
        if get_project(db, project_id) is None:
            raise NotFoundError("Project not found")
        result = db.execute(update(models.Task).where(models.Task.id == task_id).values(**values))
        if result.rowcount == 0:
            raise NotFoundError("Task not found")
        _reconcile_members(db, models.task_curators, "task_id", task_id, curators)
        _reconcile_members(db, models.task_assignees, "task_id", task_id, assignees)

    task = get_task(db, task_id)
    logger.info(f"Updated task {task_id} ({task.key})")
    return task


def delete_task(db: Session, task_id: int) -> None:
    """
    Delete a task with its team rows and chat messages.

    Raises:
        NotFoundError: No such task (nothing is deleted)
    """
    with _transaction(db):
        db.execute(delete(models.task_assignees).where(models.task_assignees.c.task_id == task_id))
        db.execute(delete(models.task_curators).where(models.task_curators.c.task_id == task_id))
        db.execute(
            delete(models.ChatMessage)
            .where(
                models.ChatMessage.scope_type == models.ChatScope.TASK,
                models.ChatMessage.scope_id == task_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = db.execute(
            delete(models.Task)
            .where(models.Task.id == task_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Task not found")
    logger.info(f"Deleted task {task_id}")


def _close_task_row(db: Session, task_id: int) -> None:
    result = db.execute(
        update(models.Task).where(models.Task.id == task_id).values(status=models.TASK_DONE_STATUS)
    )
    if result.rowcount == 0:
        raise NotFoundError("Task not found")


def close_task(db: Session, task_id: int) -> models.Task:
    """
    Mark a task Done. Closing a closed task is a no-op.

    Raises:
        NotFoundError: No such task
    """
    with _transaction(db):
        _close_task_row(db, task_id)
    logger.info(f"Closed task {task_id}")
    return get_task(db, task_id)


def target_department_id(db: Session, kind: Union[str, models.TargetType], target_id: int) -> int:
    """Department of a task or project. Raises NotFoundError if it is gone."""
    if parse_target_type(kind) == models.TargetType.TASK:
        return get_task_department_id(db, target_id)
    return get_project_department_id(db, target_id)


# =============================================================================
# Reports
# =============================================================================


def get_report(db: Session, report_id: int) -> Optional[models.Report]:
    return db.query(models.Report).filter(models.Report.id == report_id).first()


def _target_exists(db: Session, kind: models.TargetType, target_id: int) -> bool:
    model = models.Task if kind == models.TargetType.TASK else models.Project
    return db.query(model.id).filter(model.id == target_id).first() is not None


def create_report(
    db: Session,
    author_id: int,
    target_type: Union[str, models.TargetType],
    target_id: int,
    title: str,
    resolution: str,
    result_status: Union[str, models.ReportResult, None] = None,
    close_item: bool = False,
    file_name: str = "",
    file_path: str = "",
    file_size: int = 0,
) -> models.Report:
    """
    File a closing report, optionally closing its target in the same transaction.

    With ``close_item`` a task target is marked Done; a project target is
    closed together with all its tasks.

    Args:
        db: Database session
        author_id: Reporting user
        target_type: ``task`` or ``project``
        target_id: Target id
        title: Report title
        resolution: Resolution text
        result_status: Outcome; empty means fully complete
        close_item: Close the target as well
        file_name: Original name of an attached file
        file_path: Stored path of the attached file
        file_size: Attached file size in bytes

    Returns:
        Created report

    Raises:
        ValidationError: Unknown target type or result, missing fields
        NotFoundError: Target does not exist (nothing is written)
    """
    kind = parse_target_type(target_type)
    result = parse_report_result(result_status)
    fields = _required(title=title, resolution=resolution)
    if target_id <= 0:
        raise ValidationError("Target is required")

    with _transaction(db, conflict_message="Report id was taken concurrently, retry"):
        if not _target_exists(db, kind, target_id):
            raise NotFoundError(f"{kind.value.capitalize()} not found")
        report_id = allocate_id(db, models.Report.__table__)
        db.add(
            models.Report(
                id=report_id,
                target_type=kind,
                target_id=target_id,
                result_status=result,
                author_user_id=author_id,
                title=fields["title"],
                resolution=fields["resolution"],
                file_name=file_name or "",
                file_path=file_path or "",
                file_size=file_size or 0,
            )
        )
        db.flush()
        if close_item:
            if kind == models.TargetType.TASK:
                _close_task_row(db, target_id)
            else:
                _close_project_rows(db, target_id)

    report = get_report(db, report_id)
    logger.info(
        f"Created report {report_id} on {kind.value} {target_id} "
        f"({result.value}{', closed' if close_item else ''})"
    )
    return report


def _report_scope_filter(scope: ListScope):
    task_target = models.Report.target_type == models.TargetType.TASK
    project_target = models.Report.target_type == models.TargetType.PROJECT
    if scope.kind == DEPARTMENT:
        department_tasks = (
            select(models.Task.id)
            .join(models.Project, models.Task.project_id == models.Project.id)
            .where(models.Project.department_id == scope.department_id)
        )
        department_projects = select(models.Project.id).where(models.Project.department_id == scope.department_id)
        return or_(
            and_(task_target, models.Report.target_id.in_(department_tasks)),
            and_(project_target, models.Report.target_id.in_(department_projects)),
        )
    return or_(
        models.Report.author_user_id == scope.user_id,
        and_(task_target, models.Report.target_id.in_(_participant_target_ids(models.TargetType.TASK, scope.user_id))),
        and_(
            project_target,
            models.Report.target_id.in_(_participant_target_ids(models.TargetType.PROJECT, scope.user_id)),
        ),
    )


def report_in_scope(db: Session, scope: ListScope, report_id: int) -> bool:
    """Whether a report would appear in a list taken with ``scope``."""
    query = db.query(models.Report.id).filter(models.Report.id == report_id)
    if not scope.is_unrestricted:
        query = query.filter(_report_scope_filter(scope))
    return query.first() is not None


def report_target_labels(db: Session, reports: Iterable[models.Report]) -> dict[int, str]:
    """
    Map report id to a readable target label.

    The label is the task title or project name, or ``Task #<id>`` /
    ``Project #<id>`` when the target no longer exists.
    """
    reports = list(reports)
    task_ids = {r.target_id for r in reports if r.target_type == models.TargetType.TASK}
    project_ids = {r.target_id for r in reports if r.target_type == models.TargetType.PROJECT}
    titles = dict(db.query(models.Task.id, models.Task.title).filter(models.Task.id.in_(task_ids)).all()) if task_ids else {}
    names = (
        dict(db.query(models.Project.id, models.Project.name).filter(models.Project.id.in_(project_ids)).all())
        if project_ids
        else {}
    )

    labels = {}
    for report in reports:
        if report.target_type == models.TargetType.TASK:
            labels[report.id] = titles.get(report.target_id, f"Task #{report.target_id}")
        else:
            labels[report.id] = names.get(report.target_id, f"Project #{report.target_id}")
    return labels


def list_reports(db: Session, scope: ListScope) -> list[dict]:
    """
    List reports visible within ``scope``, newest id first.

    Department scope matches reports whose target lives in the department.
    Participant scope matches reports the user wrote or whose target the
    user participates in.

    Returns:
        Report dicts including ``target_label`` and ``author_name``
    """
    query = db.query(models.Report)
    if not scope.is_unrestricted:
        query = query.filter(_report_scope_filter(scope))
    return describe_reports(db, query.order_by(models.Report.id.desc()).all())


def describe_reports(db: Session, reports: list[models.Report]) -> list[dict]:
    """Flatten reports for display, adding the target label and author name."""
    labels = report_target_labels(db, reports)
    return [
        {
            "id": r.id,
            "target_type": r.target_type,
            "target_id": r.target_id,
            "target_label": labels[r.id],
            "result_status": r.result_status,
            "author_id": r.author_user_id,
            "author_name": r.author.full_name,
            "title": r.title,
            "resolution": r.resolution,
            "file_name": r.file_name,
            "file_size": r.file_size,
            "created_at": r.created_at,
        }
        for r in reports
    ]


def get_report_file(db: Session, report_id: int) -> models.Report:
    """
    Report carrying an attached file.

    Raises:
        NotFoundError: No such report, or it has no file
    """
    report = get_report(db, report_id)
    if report is None:
        raise NotFoundError("Report not found")
    if not report.file_path.strip():
        raise NotFoundError("Report has no attached file")
    return report


# =============================================================================
# Chat
# =============================================================================


def _list_messages(db: Session, scope: models.ChatScope, scope_id: int) -> list[models.ChatMessage]:
    return (
        db.query(models.ChatMessage)
        .filter(models.ChatMessage.scope_type == scope, models.ChatMessage.scope_id == scope_id)
        .order_by(models.ChatMessage.created_at, models.ChatMessage.id)
        .all()
    )


def _post_message(
    db: Session,
    scope: models.ChatScope,
    scope_id: int,
    author_id: int,
    body: str,
    file_name: str = "",
    file_path: str = "",
    file_size: int = 0,
) -> models.ChatMessage:
    body = (body or "").strip()
    if not body and not file_path:
        raise ValidationError("Message is empty")
    message = models.ChatMessage(
        scope_type=scope,
        scope_id=scope_id,
        author_user_id=author_id,
        body=body,
        file_name=file_name or "",
        file_path=file_path or "",
        file_size=file_size or 0,
    )
    with _transaction(db):
        db.add(message)
    db.refresh(message)
    logger.info(f"User {author_id} posted message {message.id} to {scope.value} {scope_id}")
    return message


def list_department_messages(db: Session, department_id: int) -> list[models.ChatMessage]:
    if not department_exists(db, department_id):
        raise NotFoundError("Department not found")
    return _list_messages(db, models.ChatScope.DEPARTMENT, department_id)


def post_department_message(db: Session, department_id: int, author_id: int, body: str) -> models.ChatMessage:
    """
    Append a text message to a department chat.

    Raises:
        ValidationError: Empty body
        NotFoundError: No such department
    """
    if not department_exists(db, department_id):
        raise NotFoundError("Department not found")
    return _post_message(db, models.ChatScope.DEPARTMENT, department_id, author_id, body)


def list_task_messages(db: Session, task_id: int) -> list[models.ChatMessage]:
    if get_task(db, task_id) is None:
        raise NotFoundError("Task not found")
    return _list_messages(db, models.ChatScope.TASK, task_id)


def post_task_message(
    db: Session,
    task_id: int,
    author_id: int,
    body: str,
    file_name: str = "",
    file_path: str = "",
    file_size: int = 0,
) -> models.ChatMessage:
    """
    Append a message to a task chat. Either text or an attachment is required.

    Raises:
        ValidationError: Neither body nor attachment
        NotFoundError: No such task
    """
    if get_task(db, task_id) is None:
        raise NotFoundError("Task not found")
    return _post_message(db, models.ChatScope.TASK, task_id, author_id, body, file_name, file_path, file_size)


def get_message(db: Session, message_id: int) -> Optional[models.ChatMessage]:
    return db.query(models.ChatMessage).filter(models.ChatMessage.id == message_id).first()


def get_message_attachment(db: Session, message_id: int) -> models.ChatMessage:
    """
    Message carrying an attachment.

    Raises:
        NotFoundError: No such message, or it has no attachment
    """
    message = get_message(db, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if not message.file_path.strip():
        raise NotFoundError("Message has no attachment")
    return message
