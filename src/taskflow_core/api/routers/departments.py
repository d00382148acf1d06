"""Departments API endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from taskflow_core import crud, models, permissions, schemas
from taskflow_core.scopes import ListScope

from ...database import get_db
from ..dependencies import get_optional_actor

router = APIRouter(tags=["departments"])


@router.get("", response_model=schemas.DepartmentListResponse)
def list_departments(
    db: Session = Depends(get_db),
    actor: Optional[models.User] = Depends(get_optional_actor),
):
    """
    List departments.

    Anonymous callers (e.g. the registration form) get all departments;
    non-super actors only their own.
    """
    scope = permissions.department_listing_scope(actor) if actor else ListScope.everything()
    return schemas.DepartmentListResponse(items=crud.list_departments(db, scope))
