"""Projects API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from taskflow_core import crud, models, permissions, schemas
from taskflow_core.errors import NotFoundError, TaskflowError

from ...database import get_db
from ..dependencies import get_actor

logger = logging.getLogger("taskflow-core.projects")

router = APIRouter(tags=["projects"])


@router.get("", response_model=schemas.ProjectListResponse)
def list_projects(
    department_id: Optional[int] = Query(None, gt=0, description="Filter by department (super roles only)"),
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    List projects visible to the actor.

    - Super roles: all projects, optionally one **department_id**
    - Project Manager: projects of their department
    - Member/Guest: projects they curate or are assigned to
    """
    scope = permissions.listing_scope(actor, department_id)
    return schemas.ProjectListResponse(items=crud.list_projects(db, scope))


@router.post("", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    project: schemas.ProjectWrite,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    Create a new project.

    - **key**: Unique key; generated as ``PRJ-<id>`` when empty
    - **name**: Project name
    - **department_id**: Owning department
    - **curator_ids** / **assignee_ids**: 1-5 users each, all from the department
    """
    permissions.check_can_create_project(
        db, actor, project.department_id, project.curator_ids, project.assignee_ids
    )
    try:
        return crud.create_project(
            db,
            name=project.name,
            department_id=project.department_id,
            curator_ids=project.curator_ids,
            assignee_ids=project.assignee_ids,
            key=project.key,
        )
    except TaskflowError:
        raise
    except Exception as e:
        logger.error(f"Error creating project: {e}", exc_info=True)
        raise


@router.put("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: int,
    project: schemas.ProjectWrite,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    Update a project and replace its team.

    An empty **key** keeps the current key.
    """
    permissions.check_can_update_project(
        db, actor, project_id, project.department_id, project.curator_ids, project.assignee_ids
    )
    return crud.update_project(
        db,
        project_id,
        name=project.name,
        department_id=project.department_id,
        curator_ids=project.curator_ids,
        assignee_ids=project.assignee_ids,
        key=project.key,
    )


@router.delete("/{project_id}", response_model=schemas.MessageResponse)
def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Delete a project together with its tasks and team rows."""
    permissions.check_can_delete_project(db, actor, project_id)
    crud.delete_project(db, project_id)
    return schemas.MessageResponse(message="Project deleted")


@router.patch("/{project_id}/close", response_model=schemas.ProjectResponse)
def close_project(
    project_id: int,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Close a project; all of its tasks become Done."""
    permissions.check_can_close(db, actor, models.TargetType.PROJECT, project_id)
    return crud.close_project(db, project_id)


@router.get("/{project_id}/tasks", response_model=schemas.TaskListResponse)
def list_project_tasks(
    project_id: int,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """List the tasks of one project that the actor may see."""
    if crud.get_project(db, project_id) is None:
        raise NotFoundError("Project not found")
    scope = permissions.listing_scope(actor)
    return schemas.TaskListResponse(items=crud.list_tasks(db, scope, project_id=project_id))
