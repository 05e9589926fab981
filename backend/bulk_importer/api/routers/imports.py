"""Endpoints for CSV import orchestration and tracking."""

from __future__ import annotations

import logging
import uuid

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from bulk_importer.api.dependencies.db import get_session
from bulk_importer.api.dependencies.tenant import get_tenant_id
from bulk_importer.api.routers.job_helpers import serialize_job
from bulk_importer.api.schemas.job import ImportAccepted, ImportJobStatus
from bulk_importer.core.config import get_settings
from bulk_importer.db.models.import_job import JOB_PENDING, ImportJob
from bulk_importer.services import csv_ingest, job_lifecycle
from bulk_importer.services.csv_templates import render_template
from bulk_importer.services.import_strategies import (
    ImportStrategy,
    UnknownImportTypeError,
    get_strategy,
)
from bulk_importer.services.progress_tracker import fetch_progress, publish_progress
from bulk_importer.services.scheduler import schedule
from bulk_importer.storage import blob_store

logger = logging.getLogger(__name__)

router = APIRouter()

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "text/plain",
    "application/vnd.ms-excel",
    "application/octet-stream",
}


def _strategy_or_404(import_type: str) -> ImportStrategy:
    try:
        return get_strategy(import_type)
    except UnknownImportTypeError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0]) from exc


def _tenant_job_or_404(db: Session, job_id: str, tenant_id: str) -> ImportJob:
    job = db.get(ImportJob, job_id)
    if not job or job.tenant_id != tenant_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import job not found")
    return job


def _upload_size(file: UploadFile) -> int:
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)
    return size


@router.get(
    "/templates/{import_type}",
    summary="Download a CSV template for an import type",
    response_class=Response,
)
async def download_template(import_type: str) -> Response:
    strategy = _strategy_or_404(import_type)
    return Response(
        content=render_template(strategy),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{strategy.template_file_name}"'
        },
    )


@router.post(
    "/{import_type}",
    summary="Start a CSV import job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportAccepted,
)
async def enqueue_import(
    import_type: str,
    file: UploadFile = File(...),
    uploaded_by: str | None = Form(None, alias="uploadedBy"),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_session),
) -> ImportAccepted:
    """Validate and store the CSV, record a pending job, and schedule processing."""
    strategy = _strategy_or_404(import_type)
    settings = get_settings()

    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required",
        )
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if not file.filename.lower().endswith(".csv") or (
        content_type and content_type not in CSV_CONTENT_TYPES
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please upload a CSV file",
        )

    file_size = _upload_size(file)
    if file_size > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum size is {settings.max_upload_bytes // (1024 * 1024)}MB.",
        )

    key = blob_store.build_blob_key(f"{strategy.import_type}-imports", tenant_id, file.filename)
    try:
        blob_url = await csv_ingest.stage_file(file, key)
    except OSError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store uploaded file",
        ) from exc

    job_id = str(uuid.uuid4())
    job = ImportJob(
        id=job_id,
        tenant_id=tenant_id,
        import_type=strategy.import_type,
        file_name=file.filename,
        uploaded_by=uploaded_by or "unknown",
        blob_url=blob_url,
        status=JOB_PENDING,
        total_records=0,
    )
    try:
        db.add(job)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        blob_store.delete(blob_url)
        logger.error(f"Database error creating import job: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create import job",
        ) from exc

    publish_progress(job_id, status=JOB_PENDING, message="Queued")
    try:
        schedule(
            strategy.event_name,
            {
                "jobId": job_id,
                "blobUrl": blob_url,
                "tenantId": tenant_id,
                "fileName": file.filename,
                "importType": strategy.import_type,
            },
        )
    except Exception as exc:
        logger.error(f"Error enqueueing import job {job_id}: {exc}", exc_info=True)
        job_lifecycle.mark_failed(db, job_id, "Import failed: could not schedule processing")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start import process",
        ) from exc

    logger.info(f"Created {strategy.import_type} import job {job_id} for file {file.filename}")
    return ImportAccepted(
        job_id=job_id,
        import_type=strategy.import_type,
        file_name=file.filename,
        file_size=file_size,
        estimated_records=file_size // strategy.bytes_per_record,
        message=f"{strategy.import_type.capitalize()} import job started. Poll the job for progress.",
    )


@router.get(
    "",
    summary="List the tenant's import jobs",
    response_model=list[ImportJobStatus],
)
async def list_imports(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of jobs to return"),
    job_status: str | None = Query(
        None, alias="status", description="Filter by status (pending, processing, completed, failed)"
    ),
    import_type: str | None = Query(None, alias="importType"),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_session),
) -> list[ImportJobStatus]:
    """Newest first."""
    try:
        query = (
            select(ImportJob)
            .where(ImportJob.tenant_id == tenant_id)
            .options(selectinload(ImportJob.row_errors))
        )
        if job_status:
            query = query.where(ImportJob.status == job_status)
        if import_type:
            query = query.where(ImportJob.import_type == import_type)
        query = query.order_by(ImportJob.created_at.desc()).limit(limit)
        jobs = db.scalars(query).all()
    except SQLAlchemyError as exc:
        logger.error(f"Database error listing import jobs: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve import jobs",
        ) from exc
    return [serialize_job(job, fetch_progress(job.id)) for job in jobs]


@router.get(
    "/{job_id}",
    summary="Check import progress",
    response_model=ImportJobStatus,
)
async def get_import_status(
    job_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_session),
) -> ImportJobStatus:
    """Expose the job snapshot that polling clients re-request until it is terminal."""
    try:
        job = _tenant_job_or_404(db, job_id, tenant_id)
    except SQLAlchemyError as exc:
        logger.error(f"Database error fetching job status {job_id}: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch import status",
        ) from exc
    return serialize_job(job, fetch_progress(job_id))


@router.post(
    "/{job_id}/cancel",
    summary="Request cancellation of an import job",
    response_model=ImportJobStatus,
)
async def cancel_import(
    job_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_session),
) -> ImportJobStatus:
    """Pending jobs fail immediately; processing jobs stop at the next chunk boundary."""
    job = _tenant_job_or_404(db, job_id, tenant_id)
    if job.is_terminal:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Import job already {job.status}",
        )
    job_lifecycle.request_cancel(db, job)
    logger.info(f"Cancellation requested for import job {job_id}")
    return serialize_job(job, None)
