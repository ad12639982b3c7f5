"""Pydantic response schemas for the FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel


class RecognitionInfo(BaseModel):
    """How the document text was obtained."""

    provider: str
    confidence: float
    elapsed_ms: float
    page_count: int = 1


class ExtractionResponse(BaseModel):
    """Response schema for bill and prescription extraction."""

    success: bool
    document_id: str
    kind: str
    filename: str
    recognition: RecognitionInfo
    raw_text: str
    data: dict[str, Any]
    matches: dict[str, list[dict[str, Any]]]
    warnings: list[str]
    processing_time_ms: float


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    preferred_provider: str
    remote_disabled_reason: str | None = None
