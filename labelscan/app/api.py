"""FastAPI application exposing the label decoder.

Run with ``uvicorn labelscan.app.api:app`` or ``labelscan serve``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator

from fastapi import FastAPI, File, HTTPException, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from labelscan import __version__
from labelscan.app.dependencies import (
    DecodingServiceDep,
    close_decoding_services,
    get_settings,
)
from labelscan.domain.models import Success
from labelscan.infrastructure.observability import (
    configure_logging,
    configure_tracing,
    format_prometheus,
    get_logger,
)

logger = get_logger(__name__)

ACCEPTED_CONTENT_TYPES = frozenset(
    {"image/jpeg", "image/png", "image/webp", "application/octet-stream"}
)
USAGE = "POST a label photo as multipart field 'file' to /decode"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    ocr_available: bool


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level)
    if settings.tracing_enabled:
        configure_tracing(
            service_name="labelscan-api", sample_rate=settings.tracing_sample_rate
        )
    yield
    await close_decoding_services()


app = FastAPI(title="labelscan API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.get("/")
async def index() -> dict[str, str]:
    return {"message": USAGE}


@app.get("/health", response_model=HealthResponse)
async def health_check(service: DecodingServiceDep) -> HealthResponse:
    """Report whether the service is up and whether OCR fallback is configured."""
    return HealthResponse(status="ok", ocr_available=service.ocr_available)


@app.post("/decode")
async def decode_label(
    file: Annotated[UploadFile, File(description="Label photo to decode")],
    service: DecodingServiceDep,
) -> JSONResponse:
    """Decode the model code and asset tag from an uploaded label photo.

    Accepts JPEG, PNG or WebP images, or ``application/octet-stream`` to let
    the decoder detect the format. Returns 200 with the identifiers, or 422
    with ``{error_kind, message}`` when the label could not be decoded.
    """
    content_type = (file.content_type or "application/octet-stream").split(";", 1)[0]
    content_type = content_type.strip().lower()
    if content_type not in ACCEPTED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported content type: {content_type}. Use JPEG, PNG, or WebP.",
        )

    data = await file.read()
    outcome = await service.decode(
        data, filename=file.filename or "label.jpg", content_type=content_type
    )
    if isinstance(outcome, Success):
        return JSONResponse(content=outcome.to_dict())
    return JSONResponse(
        status_code=422, content=outcome.to_dict()
    )


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics() -> str:
    """Expose decode counters and timings in Prometheus text format."""
    return format_prometheus()


__all__ = ["ACCEPTED_CONTENT_TYPES", "HealthResponse", "app"]
