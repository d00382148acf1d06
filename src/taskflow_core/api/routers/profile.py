"""Own-profile endpoints, including the avatar."""
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session
from taskflow_core import blobstore, crud, models, schemas
from taskflow_core.config import Settings, get_settings
from taskflow_core.errors import NotFoundError, ValidationError

from ...database import get_db
from ..dependencies import get_actor
from ..files import blob_response, read_upload

logger = logging.getLogger("taskflow-core.profile")

router = APIRouter(tags=["profile"])


@router.get("", response_model=schemas.UserResponse)
def get_profile(actor: models.User = Depends(get_actor)):
    """Return the acting user."""
    return actor


@router.put("", response_model=schemas.ProfileResponse)
def update_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    Update own name and position, optionally the password.

    The position must remain valid for the actor's role and department.
    """
    user = crud.update_profile(
        db,
        actor.id,
        full_name=payload.full_name,
        position=payload.position,
        password=payload.password,
    )
    return schemas.ProfileResponse(message="Profile updated", user=schemas.UserResponse.model_validate(user))


@router.post("/avatar", response_model=schemas.ProfileResponse)
def upload_avatar(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    """Replace the acting user's avatar image."""
    data = read_upload(file, settings.max_avatar_bytes, label="Avatar")
    if not data:
        raise ValidationError("File is required")

    previous = actor.avatar_path
    path, _ = blobstore.save(settings.avatars_dir, file.filename or "", data, prefix="avatar")
    try:
        user = crud.update_user_avatar(db, actor.id, path)
    except Exception:
        blobstore.remove(path)
        raise
    if previous and previous != path:
        blobstore.remove(previous)
    logger.info(f"Stored avatar for '{user.login}' ({len(data)} bytes)")
    return schemas.ProfileResponse(message="Avatar updated", user=schemas.UserResponse.model_validate(user))


@router.get("/avatar/{user_id}")
def get_avatar(
    user_id: int,
    db: Session = Depends(get_db),
):
    """Serve a user's avatar image. Public so that it can be embedded."""
    user = crud.get_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if not user.avatar_path.strip():
        raise NotFoundError("No avatar uploaded")
    return blob_response(user.avatar_path, f"avatar_{user_id}{Path(user.avatar_path).suffix}", disposition="inline")
