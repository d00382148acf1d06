"""Tasks API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from taskflow_core import crud, models, permissions, schemas
from taskflow_core.errors import TaskflowError

from ...database import get_db
from ..dependencies import get_actor

logger = logging.getLogger("taskflow-core.tasks")

router = APIRouter(tags=["tasks"])


@router.get("", response_model=schemas.TaskListResponse)
def list_tasks(
    department_id: Optional[int] = Query(None, gt=0, description="Filter by department (super roles only)"),
    project_id: Optional[int] = Query(None, gt=0, description="Filter by project"),
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    List tasks visible to the actor.

    - Super roles: all tasks, optionally one **department_id**
    - Project Manager: tasks of their department's projects
    - Member/Guest: tasks they curate or are assigned to
    """
    scope = permissions.listing_scope(actor, department_id)
    return schemas.TaskListResponse(items=crud.list_tasks(db, scope, project_id=project_id))


@router.post("", response_model=schemas.TaskResponse, status_code=201)
def create_task(
    task: schemas.TaskWrite,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    Create a task in a project.

    - **key**: Unique key; generated as ``TSK-<id>`` when empty
    - **type** / **status** / **priority**: Free-form labels
    - **curator_ids** / **assignee_ids**: 1-5 users each, all from the project's department
    - **due_date**: Optional, ``YYYY-MM-DD``
    """
    permissions.check_can_create_task(db, actor, task.project_id, task.curator_ids, task.assignee_ids)
    try:
        return crud.create_task(
            db,
            project_id=task.project_id,
            title=task.title,
            task_type=task.type,
            status=task.status,
            priority=task.priority,
            curator_ids=task.curator_ids,
            assignee_ids=task.assignee_ids,
            description=task.description,
            due_date=task.due_date,
            key=task.key,
        )
    except TaskflowError:
        raise
    except Exception as e:
        logger.error(f"Error creating task: {e}", exc_info=True)
        raise


@router.put("/{task_id}", response_model=schemas.TaskResponse)
def update_task(
    task_id: int,
    task: schemas.TaskWrite,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Update a task and replace its team. An empty **key** keeps the current key."""
    permissions.check_can_update_task(db, actor, task_id, task.project_id, task.curator_ids, task.assignee_ids)
    return crud.update_task(
        db,
        task_id,
        project_id=task.project_id,
        title=task.title,
        task_type=task.type,
        status=task.status,
        priority=task.priority,
        curator_ids=task.curator_ids,
        assignee_ids=task.assignee_ids,
        description=task.description,
        due_date=task.due_date,
        key=task.key,
    )


@router.delete("/{task_id}", response_model=schemas.MessageResponse)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Delete a task with its team rows and chat."""
    permissions.check_can_delete_task(db, actor, task_id)
    crud.delete_task(db, task_id)
    return schemas.MessageResponse(message="Task deleted")


@router.patch("/{task_id}/close", response_model=schemas.TaskResponse)
def close_task(
    task_id: int,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Mark a task Done."""
    permissions.check_can_close(db, actor, models.TargetType.TASK, task_id)
    return crud.close_task(db, task_id)
