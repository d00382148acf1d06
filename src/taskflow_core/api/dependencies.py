"""Shared FastAPI dependencies: actor resolution."""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from taskflow_core import crud, models

from ..database import get_db

logger = logging.getLogger("taskflow-core.api.dependencies")

ACTOR_HEADER = "X-Actor-Login"


def get_optional_actor(
    x_actor_login: Optional[str] = Header(None, alias=ACTOR_HEADER),
    db: Session = Depends(get_db),
) -> Optional[models.User]:
    """
    Resolve the acting user from the ``X-Actor-Login`` header, if present.

    The header is trusted as-is; no token is verified.

    Raises:
        HTTPException: 401 if a login is given but unknown
    """
    login = (x_actor_login or "").strip()
    if not login:
        return None
    actor = crud.get_user_by_login(db, login)
    if actor is None:
        logger.warning(f"Unknown actor '{login}'")
        raise HTTPException(status_code=401, detail="Unknown actor")
    return actor


def get_actor(actor: Optional[models.User] = Depends(get_optional_actor)) -> models.User:
    """
    Resolve the acting user; the header is mandatory.

    Raises:
        HTTPException: 401 if the header is missing or the login is unknown
    """
    if actor is None:
        raise HTTPException(status_code=401, detail=f"{ACTOR_HEADER} header is required")
    return actor
