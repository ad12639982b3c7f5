"""Shared test fixtures for the pharmacy document test suite."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from pharmadoc.reconciliation.catalog import CatalogEntity, InMemoryCatalog

SAMPLE_BILL_LINES = [
    "ABC PHARMACEUTICALS",
    "Phone: 9876543210",
    "Bill No: INV-2024-001",
    "Paracetamol 500mg 10 12.50",
    "Total: 125.00",
]

SAMPLE_PRESCRIPTION_LINES = [
    "Dr. Anil Mehta",
    "Patient: Ravi Kumar",
    "Date: 12/03/2024",
    "Rx",
    "1. Amoxicillin 500mg - twice daily",
    "2. Paracetamol 650mg 1-0-1 after food",
    "3. Cetirizine 10mg",
]


def png_bytes(width: int = 200, height: int = 150, value: int = 255) -> bytes:
    """Encode a solid RGB image as PNG bytes."""
    img = Image.fromarray(np.full((height, width, 3), value, dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic BGR test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def sample_png() -> bytes:
    return png_bytes()


@pytest.fixture
def bill_lines() -> list[str]:
    return list(SAMPLE_BILL_LINES)


@pytest.fixture
def prescription_lines() -> list[str]:
    return list(SAMPLE_PRESCRIPTION_LINES)


@pytest.fixture
def catalog() -> InMemoryCatalog:
    """A small single-store catalog of medicines and one supplier."""
    return InMemoryCatalog(
        {
            "store-1": [
                CatalogEntity(id="m1", name="Paracetamol 650", generic_name="Paracetamol"),
                CatalogEntity(id="m2", name="Paracetamol", generic_name="Paracetamol"),
                CatalogEntity(
                    id="m3",
                    name="Crocin Advance",
                    generic_name="Paracetamol",
                    manufacturer="GSK",
                ),
                CatalogEntity(id="m4", name="Amoxil", generic_name="Amoxicillin"),
                CatalogEntity(id="s1", name="ABC Pharmaceuticals", phone="9876543210"),
            ],
            "store-2": [CatalogEntity(id="x1", name="Paracetamol")],
        }
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
