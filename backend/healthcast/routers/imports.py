# healthcast/routers/imports.py
from __future__ import annotations

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session
import structlog

from healthcast.core.access import RoleAccessGate, require_access
from healthcast.core.security import get_current_user
from healthcast.db.session import get_db
from healthcast.exceptions import ForecastingError, UnknownSubjectError
from healthcast.models.subject import Subject
from healthcast.models.user import User
from healthcast.routers.forecast import domain_failure
from healthcast.schemas.common import fail, meta_now, ok
from healthcast.services.ingestion import ingest_file

router = APIRouter(prefix="/api/imports", tags=["imports"])
logger = structlog.get_logger(__name__)

ACCEPTED_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "application/json",
    "application/x-ndjson",
    "application/ndjson",
}


@router.post("/statistics")
async def import_statistics(
    subject_id: int = Query(..., description="Subject the tallies belong to"),
    file: UploadFile = File(..., description="CSV, JSON array or NDJSON of {date, count, area?, provenance?, note?}"),
    caller: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Bulk-load manually kept historical tallies. Rows that cannot be parsed are
    skipped and reported in `warnings`; the rest are stored together.
    """
    meta = meta_now(subject_id=subject_id, filename=file.filename)
    try:
        require_access(RoleAccessGate(), caller, subject_id)
        if db.get(Subject, subject_id) is None:
            raise UnknownSubjectError(subject_id)
    except ForecastingError as exc:
        return domain_failure(exc, subject_id=subject_id)

    file_ct = (file.content_type or "").split(";")[0].strip().lower()
    if file_ct not in ACCEPTED_TYPES:
        return fail(
            code="UNSUPPORTED_MEDIA_TYPE",
            message=f"Import expects CSV or JSON; got {file_ct or 'unknown'}.",
            status_code=415,
            meta=meta,
        )

    raw_bytes = await file.read()
    if not raw_bytes or not raw_bytes.strip():
        return fail(code="EMPTY_FILE", message="Uploaded file is empty.", status_code=400, meta=meta)

    try:
        stats = ingest_file(db, subject_id, raw_bytes, file_ct, filename=file.filename)
    except ForecastingError as exc:
        return domain_failure(exc, subject_id=subject_id)

    logger.info("imports.completed", subject_id=subject_id, ingested=stats.ingested_rows, skipped=stats.skipped_rows)
    return ok(data=stats.model_dump(), meta=meta, status_code=201)
