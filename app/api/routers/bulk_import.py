"""
Bulk import endpoints: streamed and background imports, job status, and
standalone play-history imports.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.api.dependencies import get_import_upload, require_import_token
from app.config import get_import_settings
from app.schemas.bulk_import import (
    ImportDefaults,
    ImportJobAcceptedResponse,
    ImportJobListResponse,
    ImportJobStatusResponse,
    ImportOptionsRequest,
    ImportRequest,
    PlayImportRequest,
    PlayImportResponse,
)
from app.services.import_coordinator import (
    FastAPIBackgroundTaskExecutor,
    ImportJobCoordinator,
    ImportOptions,
    ImportTaskExecutor,
    ImportValidationError,
    PreparedImport,
    get_import_coordinator,
    get_thread_pool_executor,
)
from app.services.progress_broker import ProgressBroker, ProgressChannel, get_progress_broker
from db.models.import_job import ImportJob
from db.session import get_db

router = APIRouter(
    prefix="/imports",
    tags=["bulk-import"],
    dependencies=[Depends(require_import_token)],
)

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
# Stored only so interrupted jobs can be resumed.
RESUME_ONLY_PAYLOAD_KEYS = frozenset({"records", "plays"})


def get_stream_executor() -> ImportTaskExecutor:
    return get_thread_pool_executor()


def _to_options(request: ImportOptionsRequest) -> ImportOptions:
    return ImportOptions(
        enhance_with_reference=request.enhance_with_reference,
        rewrite_descriptions=request.rewrite_descriptions,
        import_plays=request.import_plays,
        update_existing_plays=request.update_existing_plays,
        defaults=request.defaults.to_defaults(),
    )


def _prepare(coordinator: ImportJobCoordinator, payload: ImportRequest) -> PreparedImport:
    try:
        if payload.links:
            return coordinator.prepare_links(
                library_id=payload.library_id,
                links=payload.links,
                options=_to_options(payload),
            )
        return coordinator.prepare_upload(
            library_id=payload.library_id,
            content=payload.content or "",
            filename=payload.filename,
            options=_to_options(payload),
        )
    except ImportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_dict()) from exc


def _event_stream(channel: ProgressChannel, broker: ProgressBroker) -> Iterator[str]:
    keepalive = get_import_settings().stream_keepalive_seconds
    try:
        for frame in channel.frames(keepalive_seconds=keepalive):
            if frame is None:
                yield ": keepalive\n\n"
                continue
            yield f"data: {json.dumps(frame, default=str)}\n\n"
    finally:
        # Only the subscription ends here; the job keeps running.
        broker.close(channel.job_id)


def _stream_response(
    *,
    coordinator: ImportJobCoordinator,
    db: Session,
    executor: ImportTaskExecutor,
    prepared: PreparedImport,
    broker: ProgressBroker,
) -> StreamingResponse:
    started = coordinator.start(db=db, executor=executor, prepared=prepared, subscribe=True)
    return StreamingResponse(
        _event_stream(started.channel, broker),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/stream")
def stream_import(
    payload: ImportRequest,
    db: Session = Depends(get_db),
    coordinator: ImportJobCoordinator = Depends(get_import_coordinator),
    executor: ImportTaskExecutor = Depends(get_stream_executor),
    broker: ProgressBroker = Depends(get_progress_broker),
) -> StreamingResponse:
    prepared = _prepare(coordinator, payload)
    return _stream_response(coordinator=coordinator, db=db, executor=executor, prepared=prepared, broker=broker)


@router.post("/upload/stream")
def stream_upload_import(
    library_id: UUID = Form(...),
    enhance_with_reference: bool = Form(default=False),
    rewrite_descriptions: bool = Form(default=False),
    import_plays: bool = Form(default=False),
    update_existing_plays: bool = Form(default=False),
    defaults: str | None = Form(default=None, description="JSON object of default field values"),
    file: UploadFile = Depends(get_import_upload),
    db: Session = Depends(get_db),
    coordinator: ImportJobCoordinator = Depends(get_import_coordinator),
    executor: ImportTaskExecutor = Depends(get_stream_executor),
    broker: ProgressBroker = Depends(get_progress_broker),
) -> StreamingResponse:
    try:
        parsed_defaults = ImportDefaults.model_validate_json(defaults) if defaults else ImportDefaults()
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=json.loads(exc.json()),
        ) from exc

    options = ImportOptions(
        enhance_with_reference=enhance_with_reference,
        rewrite_descriptions=rewrite_descriptions,
        import_plays=import_plays,
        update_existing_plays=update_existing_plays,
        defaults=parsed_defaults.to_defaults(),
    )
    try:
        content = file.file.read()
    finally:
        file.file.close()

    try:
        prepared = coordinator.prepare_upload(
            library_id=library_id,
            content=content,
            filename=file.filename,
            options=options,
        )
    except ImportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_dict()) from exc

    return _stream_response(coordinator=coordinator, db=db, executor=executor, prepared=prepared, broker=broker)


@router.post(
    "",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ImportJobAcceptedResponse,
)
def start_import(
    payload: ImportRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    coordinator: ImportJobCoordinator = Depends(get_import_coordinator),
) -> ImportJobAcceptedResponse:
    prepared = _prepare(coordinator, payload)
    started = coordinator.start(
        db=db,
        executor=FastAPIBackgroundTaskExecutor(background_tasks),
        prepared=prepared,
    )
    job = started.job
    return ImportJobAcceptedResponse(
        job_id=job.id,
        job_type=job.job_type,
        status=job.status,
        total_items=job.total_items,
        created_at=job.created_at,
    )


@router.post("/plays", response_model=PlayImportResponse)
def import_plays(
    payload: PlayImportRequest,
    db: Session = Depends(get_db),
    coordinator: ImportJobCoordinator = Depends(get_import_coordinator),
) -> PlayImportResponse:
    try:
        job_id, summary = coordinator.import_plays(
            db=db,
            library_id=payload.library_id,
            content=payload.content,
            filename=payload.filename,
            update_existing=payload.update_existing,
        )
    except ImportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_dict()) from exc

    return PlayImportResponse(job_id=job_id, status="completed", summary=summary.to_dict())


@router.get("/{job_id}", response_model=ImportJobStatusResponse)
def get_import_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    coordinator: ImportJobCoordinator = Depends(get_import_coordinator),
) -> ImportJobStatusResponse:
    job = coordinator.get_job(db=db, job_id=job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import job not found: {job_id}",
        )
    return _to_status_response(job)


@router.get("", response_model=ImportJobListResponse)
def list_import_jobs(
    library_id: UUID | None = Query(default=None, description="Optional library filter"),
    status_filter: str | None = Query(default=None, alias="status", description="Optional status filter"),
    limit: int = Query(default=50, ge=1, le=500, description="Max jobs returned"),
    db: Session = Depends(get_db),
    coordinator: ImportJobCoordinator = Depends(get_import_coordinator),
) -> ImportJobListResponse:
    jobs = coordinator.list_jobs(db=db, library_id=library_id, status=status_filter, limit=limit)
    return ImportJobListResponse(jobs=[_to_status_response(job) for job in jobs])


def _public_payload(payload: dict | None) -> dict | None:
    if payload is None:
        return None
    return {key: value for key, value in payload.items() if key not in RESUME_ONLY_PAYLOAD_KEYS}


def _to_status_response(job: ImportJob) -> ImportJobStatusResponse:
    return ImportJobStatusResponse(
        job_id=job.id,
        library_id=job.library_id,
        job_type=job.job_type,
        status=job.status,
        total_items=job.total_items,
        processed_items=job.processed_items,
        successful_items=job.successful_items,
        failed_items=job.failed_items,
        phase=job.phase,
        current_item=job.current_item,
        error_message=job.error_message,
        request_payload=_public_payload(job.request_payload),
        result=job.result_payload,
        created_at=job.created_at,
        updated_at=job.updated_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )
