"""FastAPI application for the image gallery."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import FastAPI, File, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from gallery import __version__
from gallery.adapters.ledger import JsonLedger, LedgerError
from gallery.config import Settings
from gallery.domain.models import UploadResponse
from gallery.security import problem_response
from gallery.security.uploads import StorageError, UploadError
from gallery.services.security_service import security_service
from gallery.services.upload_service import IncomingFile, UploadService

settings = Settings.from_env()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    current = settings
    current.upload_dir.mkdir(parents=True, exist_ok=True)
    current.thumbs_dir.mkdir(parents=True, exist_ok=True)
    JsonLedger(current.ledger_path).ensure()
    logger.info(
        "Gallery started upload_dir=%s ledger=%s", current.upload_dir, current.ledger_path
    )
    yield


app = FastAPI(
    title="Image Gallery API",
    description="Upload, resize and list gallery images",
    version=__version__,
    lifespan=lifespan,
)


def _upload_service() -> UploadService:
    return UploadService.from_settings(settings)


def _ensure_correlation_id(request: Request) -> str:
    """Return existing correlation id or generate a new one."""
    correlation_id = getattr(request.state, "correlation_id", None)
    if not correlation_id:
        correlation_id = security_service.generate_correlation_id()
        request.state.correlation_id = correlation_id
    return correlation_id


def _problem_response(
    request: Request,
    *,
    status_code: int,
    title: str,
    detail: str,
    code: str,
    headers: Optional[dict] = None,
    extras: Optional[dict[str, Any]] = None,
):
    """Produce a problem details response carrying the request's correlation id."""
    response_headers = dict(security_service.get_security_headers())
    if headers:
        response_headers.update(headers)
    return problem_response(
        status=status_code,
        title=title,
        detail=detail,
        code=code,
        headers=response_headers,
        extras=extras,
        correlation_id=_ensure_correlation_id(request),
        instance=str(request.url.path),
    )


@app.middleware("http")
async def security_middleware(request: Request, call_next):
    """Tag each request with a correlation id and harden the response headers."""
    correlation_id = _ensure_correlation_id(request)
    security_service.log_request(correlation_id, request.method, request.url.path)

    response = await call_next(request)

    for header, value in security_service.get_security_headers().items():
        response.headers.setdefault(header, value)
    response.headers.setdefault("X-Correlation-ID", correlation_id)
    return response


# Exception handlers
@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    logger.warning("Upload rejected: %s (%s)", exc.code, exc.message)
    return _problem_response(
        request,
        status_code=exc.status,
        title="Invalid upload",
        detail=exc.message,
        code=exc.code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation failed: %s", exc.errors())
    return _problem_response(
        request,
        status_code=status.HTTP_400_BAD_REQUEST,
        title="Invalid request",
        detail="Request payload is malformed",
        code="validation_error",
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Normalize HTTP exceptions into problem details."""
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    title = "HTTP error"
    code = "http_error"

    if exc.status_code == status.HTTP_404_NOT_FOUND:
        title = "Resource not found"
        detail = "Requested resource was not found"
        code = "not_found"
    elif exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        title = "Method not allowed"
        code = "method_not_allowed"

    logger.warning("HTTPException (%s): %s", exc.status_code, detail)
    return _problem_response(
        request,
        status_code=exc.status_code,
        title=title,
        detail=detail,
        code=code,
        headers=exc.headers,
    )


@app.exception_handler(LedgerError)
@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: Exception):
    logger.error("Storage failure: %s", exc, exc_info=exc)
    return _problem_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        title="Internal server error",
        detail="Internal server error",
        code="internal_error",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return _problem_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        title="Internal server error",
        detail="Internal server error",
        code="internal_error",
    )


async def _read_limited(upload: UploadFile, max_bytes: int) -> bytes:
    raw = await upload.read(max_bytes + 1)
    await upload.close()
    if len(raw) > max_bytes:
        raise UploadError(
            "payload_too_large",
            f"Maximum upload size is {max_bytes} bytes per file",
            status=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )
    return raw


async def _collect_files(uploads: List[UploadFile]) -> List[IncomingFile]:
    """Apply the transport limits to the whole request before any processing."""
    current = settings
    if not uploads:
        raise UploadError("no_files", "No files provided", status=status.HTTP_400_BAD_REQUEST)
    if len(uploads) > current.max_files:
        raise UploadError(
            "too_many_files",
            f"At most {current.max_files} files can be uploaded at once",
            status=status.HTTP_400_BAD_REQUEST,
        )
    for upload in uploads:
        declared = (upload.content_type or "").lower()
        if not declared.startswith("image/"):
            raise UploadError(
                "unsupported_media_type",
                "Only image files are allowed",
                status=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            )

    incoming: List[IncomingFile] = []
    for upload in uploads:
        data = await _read_limited(upload, current.max_bytes)
        incoming.append(
            IncomingFile(
                original_name=upload.filename or "",
                data=data,
                declared_type=upload.content_type,
            )
        )
    return incoming


@app.post("/upload", response_model=UploadResponse)
async def upload_images(
    request: Request,
    images: Optional[List[UploadFile]] = File(None),
):
    """Accept up to ten images, store resized copies and thumbnails."""
    incoming = await _collect_files(images or [])
    logger.info("Upload request file_count=%d", len(incoming))

    result = await run_in_threadpool(_upload_service().process_batch, incoming)

    client_ip = request.client.host if request.client else "unknown"
    for record in result.records:
        security_service.log_upload(record.id, record.mime, record.size, client_ip)
    return result.response


@app.get("/images")
async def list_images():
    """Return the whole ledger, newest first."""
    records = await run_in_threadpool(_upload_service().list_records)
    return [record.to_json() for record in records]


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
