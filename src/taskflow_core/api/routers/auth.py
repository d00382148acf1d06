"""Registration and credential check endpoints."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from taskflow_core import crud, schemas

from ...database import get_db

logger = logging.getLogger("taskflow-core.auth")

router = APIRouter(tags=["auth"])


@router.post("/register", response_model=schemas.UserResponse, status_code=201)
def register(
    payload: schemas.RegisterRequest,
    db: Session = Depends(get_db),
):
    """
    Register a new account with the Member role.

    - **position** must be one of the department's positions
    - **repeat_password** must match **password**
    """
    return crud.register_user(
        db,
        login=payload.login,
        password=payload.password,
        repeat_password=payload.repeat_password,
        full_name=payload.full_name,
        position=payload.position,
        department_id=payload.department_id,
    )


@router.post("/login", response_model=schemas.LoginResponse)
def login(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Check credentials and return the user.

    No token is issued; subsequent requests identify the actor through the
    ``X-Actor-Login`` header.
    """
    user = crud.authenticate(db, payload.login, payload.password)
    logger.info(f"User '{user.login}' logged in")
    return schemas.LoginResponse(user=schemas.UserResponse.model_validate(user))
