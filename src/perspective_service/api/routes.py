"""HTTP endpoints for health, discovery and correction."""

from __future__ import annotations

import logging
import secrets

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from perspective_service import __version__
from perspective_service.api.uploads import store_upload, stream_and_discard, validate_image_upload
from perspective_service.services import CorrectionService, worker_status
from perspective_service.supervisor.models import (
    MODE_DESCRIPTIONS,
    SUPPORTED_MODES,
    FailureKind,
    JobFailure,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_NAME = "Perspective Correction API"


def get_service(request: Request) -> CorrectionService:
    return request.app.state.service


def require_api_key(
    service: CorrectionService = Depends(get_service),
    x_api_key: str | None = Header(default=None),
    api_key: str | None = Query(default=None),
) -> None:
    expected = service.settings.server.api_key
    if not expected:
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Server configuration error: API_KEY not configured",
        )
    provided = x_api_key or api_key
    if not provided:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            "Missing API key. Provide via X-API-Key header or api_key query parameter.",
        )
    if not secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid API key")


@router.get("/")
def describe() -> dict[str, object]:
    return {
        "service": SERVICE_NAME,
        "version": __version__,
        "endpoints": {
            "health": "GET /health - Check service health",
            "correct": (
                "POST /correct - Correct perspective in image "
                '(multipart/form-data with "image" field)'
            ),
        },
        "options": dict(MODE_DESCRIPTIONS),
    }


@router.get("/health")
def health(service: CorrectionService = Depends(get_service)) -> dict[str, object]:
    worker = worker_status(service.settings)
    return {
        "status": "healthy",
        "worker_path": str(worker.executable),
        "worker_exists": worker.exists,
    }


@router.post("/correct", dependencies=[Depends(require_api_key)], response_model=None)
def correct(
    image: UploadFile | None = File(default=None),
    option: str | None = Form(default=None),
    service: CorrectionService = Depends(get_service),
) -> StreamingResponse | JSONResponse:
    if image is None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "No image file provided")

    mode = (option or service.settings.worker.default_mode).strip().upper()
    if mode not in SUPPORTED_MODES:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            f"Invalid option {option!r}. Expected one of: {', '.join(SUPPORTED_MODES)}",
        )
    suffix = validate_image_upload(image)

    input_path = service.new_upload_path(suffix)
    size = store_upload(
        image.file,
        input_path,
        max_bytes=service.settings.server.max_upload_bytes,
    )
    logger.info(
        "Upload stored: filename=%s path=%s size=%d mode=%s",
        image.filename,
        input_path,
        size,
        mode,
    )

    try:
        job, result = service.correct(input_path, mode)
    except BaseException:
        # Covers failures before the job registered the upload for its own cleanup.
        input_path.unlink(missing_ok=True)
        raise
    if isinstance(result, JobFailure):
        return JSONResponse(
            status_code=(
                status.HTTP_504_GATEWAY_TIMEOUT
                if result.kind is FailureKind.TIMEOUT
                else status.HTTP_500_INTERNAL_SERVER_ERROR
            ),
            content={
                "error": "Failed to process image",
                "kind": result.kind.value,
                "details": result.message,
                "job_id": result.job_id,
                "diagnostics": {
                    "exit_code": result.diagnostics.exit_code,
                    "killed": result.diagnostics.killed,
                    "stderr": result.diagnostics.stderr,
                },
            },
        )

    return StreamingResponse(
        stream_and_discard(result.artifact_path, job.artifacts),
        media_type=result.media_type,
        headers={
            "X-Job-Id": job.job_id,
            "Content-Disposition": f'inline; filename="{result.artifact_path.name}"',
        },
        background=BackgroundTask(job.artifacts.discard_all),
    )
