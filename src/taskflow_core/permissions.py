"""Role- and department-based authorization.

Rules, in order of precedence:

- Super roles (Owner, Admin, Deputy Admin) may do everything and see
  everything.
- A Project Manager works inside their own department: lists are limited to
  it, projects and tasks may only be created or edited there, and only
  non-leadership users of that department may be managed.
- Members and Guests see only the projects, tasks and reports they take
  part in, may not create, edit or delete projects or tasks, and may close
  (or report on) only items they curate or are assigned to.

Independently of the role, every curator and assignee of a project or task
must belong to the item's department.

Check functions return nothing on success and raise
:class:`PermissionDeniedError` with a readable reason otherwise. Nothing is
cached; each check reads the current state.
"""
import logging
from typing import Iterable, NoReturn, Optional

from sqlalchemy.orm import Session

from . import crud, models
from .errors import PermissionDeniedError
from .roles import is_leadership_role, is_super_role, can_manage_users, parse_role
from .scopes import ListScope

logger = logging.getLogger("taskflow-core.permissions")

TEAM_OUTSIDE_DEPARTMENT = crud.TEAM_OUTSIDE_DEPARTMENT


def _deny(actor: models.User, reason: str) -> NoReturn:
    logger.warning(f"Denied '{actor.login}' ({actor.role.value}): {reason}")
    raise PermissionDeniedError(reason)


def _is_project_manager(actor: models.User) -> bool:
    return actor.role == models.Role.PROJECT_MANAGER


# =============================================================================
# List scopes
# =============================================================================


def listing_scope(actor: models.User, department_id: Optional[int] = None) -> ListScope:
    """
    Visibility of projects, tasks and reports for ``actor``.

    Args:
        actor: Requesting user
        department_id: Optional department filter, honoured for super roles
            only (others are already pinned to a department or to their own
            memberships)

    Returns:
        ListScope to pass to the crud list functions
    """
    if is_super_role(actor.role):
        if department_id is not None:
            return ListScope.department(department_id)
        return ListScope.everything()
    if _is_project_manager(actor):
        return ListScope.department(actor.department_id)
    return ListScope.participant(actor.id)


def user_listing_scope(actor: models.User) -> ListScope:
    """Super roles see all users, Project Managers their department, others nobody."""
    if is_super_role(actor.role):
        return ListScope.everything()
    if _is_project_manager(actor):
        return ListScope.department(actor.department_id)
    _deny(actor, "insufficient permissions to list users")


def department_listing_scope(actor: models.User) -> ListScope:
    """Non-super actors only see their own department."""
    if is_super_role(actor.role):
        return ListScope.everything()
    return ListScope.department(actor.department_id)


# =============================================================================
# Projects and tasks
# =============================================================================


def check_team_in_department(
    db: Session,
    actor: models.User,
    department_id: int,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
) -> None:
    """
    Require every curator and assignee to belong to ``department_id``.

    Applies to all roles. Unknown user ids count as outside the department.
    """
    team = crud.unique_ids(list(curator_ids) + list(assignee_ids))
    if not crud.users_belong_to_department(db, team, department_id):
        _deny(actor, TEAM_OUTSIDE_DEPARTMENT)


def _require_leadership(actor: models.User, action: str) -> None:
    if not is_leadership_role(actor.role):
        _deny(actor, f"insufficient permissions to {action}")


def _require_own_department(actor: models.User, department_id: int, action: str) -> None:
    if _is_project_manager(actor) and department_id != actor.department_id:
        _deny(actor, f"a project manager may only {action} in their own department")


def check_can_create_project(
    db: Session,
    actor: models.User,
    department_id: int,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
) -> None:
    _require_leadership(actor, "create projects")
    _require_own_department(actor, department_id, "create projects")
    check_team_in_department(db, actor, department_id, curator_ids, assignee_ids)


def check_can_update_project(
    db: Session,
    actor: models.User,
    project_id: int,
    department_id: int,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
) -> None:
    """
    Edit rights for a project.

    A Project Manager must own both the project's current department and
    the department it is being saved with.

    Raises:
        PermissionDeniedError: Not allowed
        NotFoundError: No such project
    """
    _require_leadership(actor, "edit projects")
    if _is_project_manager(actor):
        _require_own_department(actor, crud.get_project_department_id(db, project_id), "edit projects")
        _require_own_department(actor, department_id, "edit projects")
    check_team_in_department(db, actor, department_id, curator_ids, assignee_ids)


def check_can_delete_project(db: Session, actor: models.User, project_id: int) -> None:
    _require_leadership(actor, "delete projects")
    if _is_project_manager(actor):
        _require_own_department(actor, crud.get_project_department_id(db, project_id), "delete projects")


def check_can_create_task(
    db: Session,
    actor: models.User,
    project_id: int,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
) -> None:
    """
    Create rights for a task in ``project_id``.

    The team is checked against the project's department.

    Raises:
        PermissionDeniedError: Not allowed
        NotFoundError: No such project
    """
    _require_leadership(actor, "create tasks")
    department_id = crud.get_project_department_id(db, project_id)
    _require_own_department(actor, department_id, "create tasks")
    check_team_in_department(db, actor, department_id, curator_ids, assignee_ids)


def check_can_update_task(
    db: Session,
    actor: models.User,
    task_id: int,
    project_id: int,
    curator_ids: Iterable[int],
    assignee_ids: Iterable[int],
) -> None:
    _require_leadership(actor, "edit tasks")
    department_id = crud.get_project_department_id(db, project_id)
    if _is_project_manager(actor):
        _require_own_department(actor, crud.get_task_department_id(db, task_id), "edit tasks")
        _require_own_department(actor, department_id, "edit tasks")
    check_team_in_department(db, actor, department_id, curator_ids, assignee_ids)


def check_can_delete_task(db: Session, actor: models.User, task_id: int) -> None:
    _require_leadership(actor, "delete tasks")
    if _is_project_manager(actor):
        _require_own_department(actor, crud.get_task_department_id(db, task_id), "delete tasks")


def check_can_close(db: Session, actor: models.User, target_type, target_id: int) -> None:
    """
    Rights to close a task or project, directly or through a report.

    - Super roles: always
    - Project Manager: items of their department, or items they take part in
    - Member/Guest: items they curate or are assigned to; for a task, taking
      part in its parent project also counts

    Raises:
        PermissionDeniedError: Not allowed
        NotFoundError: Target does not exist (checked for non-super actors)
        ValidationError: Unknown target type
    """
    kind = crud.parse_target_type(target_type)
    if is_super_role(actor.role):
        return

    department_id = crud.target_department_id(db, kind, target_id)
    if _is_project_manager(actor) and department_id == actor.department_id:
        return
    if crud.is_participant(db, kind, target_id, actor.id):
        return
    if kind == models.TargetType.TASK:
        project_id = crud.get_task_project_id(db, target_id)
        if crud.is_participant(db, models.TargetType.PROJECT, project_id, actor.id):
            return
    _deny(actor, f"only a curator or assignee may close this {kind.value}")


def check_can_view_report(db: Session, actor: models.User, report: models.Report) -> None:
    """A report is visible to whoever would see it in their report list."""
    if not crud.report_in_scope(db, listing_scope(actor), report.id):
        _deny(actor, "no access to this report")


# =============================================================================
# User management
# =============================================================================


def check_can_create_user(actor: models.User, role, department_id: int) -> None:
    """A Project Manager may only create Members and Guests of their own department."""
    if not can_manage_users(actor.role):
        _deny(actor, "insufficient permissions to manage users")
    if _is_project_manager(actor):
        if department_id != actor.department_id:
            _deny(actor, "a project manager may only assign their own department")
        if is_leadership_role(parse_role(role)):
            _deny(actor, "a project manager may only assign the Member or Guest role")


def check_can_manage_user(actor: models.User, target: models.User) -> None:
    """
    Whether ``actor`` may edit or delete ``target`` at all.

    A Project Manager may only manage non-leadership users of their own
    department.
    """
    if not can_manage_users(actor.role):
        _deny(actor, "insufficient permissions to manage users")
    if _is_project_manager(actor):
        if target.department_id != actor.department_id:
            _deny(actor, "a project manager may only manage users of their own department")
        if is_leadership_role(target.role):
            _deny(actor, "a project manager may not manage leadership accounts")


def check_can_assign_role(actor: models.User, target: models.User, new_role) -> None:
    """Manage rights plus: a Project Manager may only grant Member or Guest."""
    check_can_manage_user(actor, target)
    if _is_project_manager(actor) and is_leadership_role(parse_role(new_role)):
        _deny(actor, "a project manager may only assign the Member or Guest role")


def check_can_update_user(actor: models.User, target: models.User, new_role, new_department_id: int) -> None:
    """Role rights plus: a Project Manager may not move users to another department."""
    check_can_assign_role(actor, target, new_role)
    if _is_project_manager(actor) and new_department_id != actor.department_id:
        _deny(actor, "a project manager may only assign their own department")


# =============================================================================
# Chat
# =============================================================================


def check_department_chat_access(actor: models.User, department_id: int) -> None:
    if not is_super_role(actor.role) and department_id != actor.department_id:
        _deny(actor, "access is limited to your own department chat")


def check_task_chat_access(db: Session, actor: models.User, task_id: int) -> None:
    """
    Task chat is open to the task's (inherited) department.

    Raises:
        PermissionDeniedError: Other department
        NotFoundError: No such task
    """
    department_id = crud.get_task_department_id(db, task_id)
    if not is_super_role(actor.role) and department_id != actor.department_id:
        _deny(actor, "access is limited to tasks of your own department")


def check_message_access(db: Session, actor: models.User, message: models.ChatMessage) -> None:
    if message.scope_type == models.ChatScope.TASK:
        check_task_chat_access(db, actor, message.scope_id)
    else:
        check_department_chat_access(actor, message.scope_id)
