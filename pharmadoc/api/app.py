"""FastAPI application for the pharmacy document API.

Provides upload endpoints for purchase bills and prescriptions, plus a
health check reporting which recognition provider is in use.
"""

import asyncio
import shutil
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from pharmadoc import __version__
from pharmadoc.documents import DocumentKind, SourceDocument
from pharmadoc.pipeline.assembler import PipelineResult
from pharmadoc.pipeline.processor import DocumentPipeline, build_pipeline
from pharmadoc.pipeline.uploads import uploaded_file
from pharmadoc.utils.config import load_config
from pharmadoc.utils.errors import PharmaDocError
from pharmadoc.utils.logger import get_logger

from .schemas import ExtractionResponse, HealthResponse, RecognitionInfo

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def _get_pipeline() -> DocumentPipeline:
    """Build the process-wide pipeline once.

    The pipeline owns the single circuit breaker shared by all requests.
    """
    return build_pipeline(load_config())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    config = load_config()
    if config.ocr.probe_remote_on_startup:
        available = _get_pipeline().chain.probe_remote()
        logger.info("Remote OCR provider available at startup: %s", available)
    yield


app = FastAPI(
    title="PharmaDoc API",
    description="Extract structured data from pharmacy bills and prescriptions",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    chain = _get_pipeline().chain
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=shutil.which("tesseract") is not None,
        preferred_provider=str(chain.preferred_provider),
        remote_disabled_reason=chain.breaker.reason,
    )


def _run_pipeline(
    content: bytes, filename: str, media_type: str, kind: DocumentKind, store_id: str | None
) -> PipelineResult:
    with uploaded_file(content, filename) as path:
        document = SourceDocument(
            content=path.read_bytes(), media_type=media_type, filename=filename
        )
        return _get_pipeline().process(document, kind, store_id)


async def _extract(
    file: UploadFile, kind: DocumentKind, store_id: str | None
) -> ExtractionResponse:
    start_time = time.time()
    filename = file.filename or "document"
    content = await file.read()
    media_type = file.content_type or "application/octet-stream"

    # Recognition blocks for seconds; keep it off the event loop.
    try:
        result = await asyncio.to_thread(
            _run_pipeline, content, filename, media_type, kind, store_id
        )
    except PharmaDocError as exc:
        logger.error("%s extraction failed for %s: %s", kind, filename, exc)
        raise HTTPException(status_code=exc.http_status, detail=exc.user_message) from exc

    payload = result.to_dict()
    return ExtractionResponse(
        success=True,
        document_id=str(uuid.uuid4()),
        kind=str(kind),
        filename=filename,
        recognition=RecognitionInfo(
            provider=payload["recognition"]["provider"],
            confidence=payload["recognition"]["confidence"],
            elapsed_ms=payload["recognition"]["elapsed_ms"],
            page_count=payload["recognition"]["page_count"],
        ),
        raw_text=result.recognition.text,
        data=payload["record"],
        matches=payload["matches"],
        warnings=payload["warnings"],
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@app.post("/ocr/bill", response_model=ExtractionResponse)
async def process_bill(
    file: Annotated[UploadFile, File(...)],
    store_id: Annotated[str | None, Form()] = None,
) -> ExtractionResponse:
    """Extract supplier, line items and totals from a purchase bill."""
    return await _extract(file, DocumentKind.BILL, store_id)


@app.post("/ocr/prescription", response_model=ExtractionResponse)
async def process_prescription(
    file: Annotated[UploadFile, File(...)],
    store_id: Annotated[str | None, Form()] = None,
) -> ExtractionResponse:
    """Extract doctor, patient and medicines from a prescription."""
    return await _extract(file, DocumentKind.PRESCRIPTION, store_id)
