"""Department and task chat endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session
from taskflow_core import blobstore, crud, models, permissions, schemas
from taskflow_core.config import Settings, get_settings

from ...database import get_db
from ..dependencies import get_actor
from ..files import blob_response, read_upload

logger = logging.getLogger("taskflow-core.chat")

router = APIRouter(tags=["chat"])


@router.get("/department", response_model=schemas.ChatMessageListResponse)
def list_department_messages(
    department_id: Optional[int] = Query(None, gt=0, description="Defaults to the actor's department"),
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """List a department chat in posting order."""
    department_id = department_id or actor.department_id
    permissions.check_department_chat_access(actor, department_id)
    return schemas.ChatMessageListResponse(items=crud.list_department_messages(db, department_id))


@router.post("/department", response_model=schemas.ChatMessageResponse, status_code=201)
def post_department_message(
    payload: schemas.DepartmentMessageCreate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    Post a text message to a department chat.

    - **department_id**: Optional; defaults to the actor's department
    - **body**: Message text
    """
    department_id = payload.department_id or actor.department_id
    permissions.check_department_chat_access(actor, department_id)
    return crud.post_department_message(db, department_id, actor.id, payload.body)


@router.get("/task", response_model=schemas.ChatMessageListResponse)
def list_task_messages(
    task_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """List a task chat in posting order."""
    permissions.check_task_chat_access(db, actor, task_id)
    return schemas.ChatMessageListResponse(items=crud.list_task_messages(db, task_id))


@router.post("/task", response_model=schemas.ChatMessageResponse, status_code=201)
def post_task_message(
    task_id: int = Form(...),
    body: str = Form(""),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    """
    Post to a task chat. Either **body** or **file** is required.
    """
    permissions.check_task_chat_access(db, actor, task_id)

    data = read_upload(file, settings.max_chat_attachment_bytes, label="Attachment")
    path, size = "", 0
    if data:
        path, size = blobstore.save(settings.messages_dir, file.filename or "", data, prefix="message")
    try:
        return crud.post_task_message(
            db,
            task_id,
            actor.id,
            body,
            file_name=(file.filename or "") if data else "",
            file_path=path,
            file_size=size,
        )
    except Exception:
        blobstore.remove(path)
        raise


@router.get("/messages/{message_id}/file")
def download_attachment(
    message_id: int,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Download a chat message attachment."""
    message = crud.get_message_attachment(db, message_id)
    permissions.check_message_access(db, actor, message)
    return blob_response(message.file_path, message.file_name or f"message_{message_id}")
