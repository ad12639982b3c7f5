"""Configuration management for the pharmacy document pipeline.

Loads and validates YAML configuration with sensible defaults for image
normalization, the OCR provider chain, text sufficiency thresholds and
catalog reconciliation.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PreprocessingConfig(BaseModel):
    """Configuration for the image normalizer."""

    enabled: bool = True
    max_dimension: int = 3000
    min_dimension: int = 800
    upscale_target: int = 1200
    sharpen_sigma: float = 1.0
    sharpen_amount: float = 1.0


class OCRConfig(BaseModel):
    """Configuration for the remote and local recognition providers."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3
    timeout_seconds: float = 60.0
    min_image_side: int = 100
    low_confidence_threshold: float = 30.0

    remote_enabled: bool = True
    vision_endpoint: str = "https://vision.googleapis.com/v1/images:annotate"
    vision_api_key: str | None = Field(
        default_factory=lambda: os.environ.get("GOOGLE_CLOUD_API_KEY")
    )
    vision_timeout_seconds: float = 30.0
    vision_confidence: float = 95.0
    remote_confidence_floor: float = 50.0
    remote_min_text_length: int = 10
    language_hints: list[str] = Field(default_factory=lambda: ["en", "hi"])
    probe_remote_on_startup: bool = True


class PDFConfig(BaseModel):
    """Configuration for embedded PDF text extraction."""

    max_pages: int = 50
    embedded_min_chars: int = 50
    embedded_confidence: float = 95.0
    limited_confidence: float = 40.0


class ValidationConfig(BaseModel):
    """Text sufficiency thresholds applied after recognition."""

    min_text_chars: int = 10
    min_bill_text_chars: int = 20
    min_bill_lines: int = 5
    min_prescription_lines: int = 3


class ReconciliationConfig(BaseModel):
    """Configuration for catalog candidate ranking."""

    max_candidates: int = 5
    retry_with_leading_word: bool = True


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    pdf: PDFConfig = Field(default_factory=PDFConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    reconciliation: ReconciliationConfig = Field(
        default_factory=ReconciliationConfig
    )
    catalog_path: str = "configs/catalog.yaml"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
