"""User management endpoints."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from taskflow_core import crud, models, permissions, schemas
from taskflow_core.errors import NotFoundError

from ...database import get_db
from ..dependencies import get_actor

logger = logging.getLogger("taskflow-core.users")

router = APIRouter(tags=["users"])


def _get_target(db: Session, user_id: int) -> models.User:
    target = crud.get_user(db, user_id)
    if target is None:
        raise NotFoundError("User not found")
    return target


@router.get("", response_model=schemas.UserListResponse)
def list_users(
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    List users.

    Super roles see everyone, Project Managers their department; Members
    and Guests are refused.
    """
    scope = permissions.user_listing_scope(actor)
    return schemas.UserListResponse(items=crud.list_users(db, scope))


@router.post("", response_model=schemas.UserResponse, status_code=201)
def create_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Create an account with any role the actor may grant."""
    permissions.check_can_create_user(actor, payload.role, payload.department_id)
    user = crud.create_user(
        db,
        login=payload.login,
        password=payload.password,
        full_name=payload.full_name,
        position=payload.position,
        role=payload.role,
        department_id=payload.department_id,
    )
    logger.info(f"'{actor.login}' created user '{user.login}'")
    return user


@router.patch("/{user_id}/role", response_model=schemas.UserResponse)
def update_user_role(
    user_id: int,
    payload: schemas.UserRoleUpdate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    Change a user's role.

    The user's current position must fit the new role.
    """
    target = _get_target(db, user_id)
    permissions.check_can_assign_role(actor, target, payload.role)
    return crud.update_user_role(db, user_id, payload.role)


@router.put("/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: int,
    payload: schemas.UserUpdate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Replace a user's login, name, position, role and department."""
    target = _get_target(db, user_id)
    permissions.check_can_update_user(actor, target, payload.role, payload.department_id)
    return crud.update_user(
        db,
        user_id,
        login=payload.login,
        full_name=payload.full_name,
        position=payload.position,
        role=payload.role,
        department_id=payload.department_id,
    )


@router.delete("/{user_id}", response_model=schemas.MessageResponse)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    Delete a user.

    Refused with 409 while the user is still referenced anywhere.
    """
    target = _get_target(db, user_id)
    permissions.check_can_manage_user(actor, target)
    crud.delete_user(db, user_id)
    return schemas.MessageResponse(message="User deleted")
