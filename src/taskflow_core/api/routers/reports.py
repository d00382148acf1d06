"""Closing report endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session
from taskflow_core import blobstore, crud, models, permissions, schemas
from taskflow_core.config import Settings, get_settings

from ...database import get_db
from ..dependencies import get_actor
from ..files import blob_response, read_upload

logger = logging.getLogger("taskflow-core.reports")

router = APIRouter(tags=["reports"])


@router.get("", response_model=schemas.ReportListResponse)
def list_reports(
    department_id: Optional[int] = Query(None, gt=0, description="Filter by department (super roles only)"),
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """
    List reports visible to the actor, newest first.

    - Super roles: all reports, optionally one **department_id**
    - Project Manager: reports on targets in their department
    - Member/Guest: own reports and reports on targets they participate in
    """
    scope = permissions.listing_scope(actor, department_id)
    return schemas.ReportListResponse(items=crud.list_reports(db, scope))


@router.post("", response_model=schemas.ReportResponse, status_code=201)
def create_report(
    target_type: str = Form(...),
    target_id: int = Form(...),
    title: str = Form(...),
    resolution: str = Form(...),
    result_status: str = Form(""),
    close_item: bool = Form(False),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    """
    File a closing report on a task or project.

    - **target_type**: ``task`` or ``project``
    - **result_status**: ``fully complete`` (default), ``partially complete`` or ``not complete``
    - **close_item**: Also close the target (a project closes all its tasks)
    - **file**: Optional attachment
    """
    kind = crud.parse_target_type(target_type)
    permissions.check_can_close(db, actor, kind, target_id)

    data = read_upload(file, settings.max_report_file_bytes, label="Report file")
    path, size = "", 0
    if data:
        path, size = blobstore.save(settings.reports_dir, file.filename or "", data, prefix="report")
    try:
        report = crud.create_report(
            db,
            author_id=actor.id,
            target_type=kind,
            target_id=target_id,
            title=title,
            resolution=resolution,
            result_status=result_status,
            close_item=close_item,
            file_name=(file.filename or "") if data else "",
            file_path=path,
            file_size=size,
        )
    except Exception:
        blobstore.remove(path)
        raise
    logger.info(f"'{actor.login}' filed report {report.id} on {kind.value} {target_id}")
    return crud.describe_reports(db, [report])[0]


@router.get("/{report_id}/file")
def download_report_file(
    report_id: int,
    db: Session = Depends(get_db),
    actor: models.User = Depends(get_actor),
):
    """Download the file attached to a report."""
    report = crud.get_report_file(db, report_id)
    permissions.check_can_view_report(db, actor, report)
    return blob_response(report.file_path, report.file_name or f"report_{report_id}")
