"""Temporary storage for uploaded documents."""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pharmadoc.utils.logger import get_logger

logger = get_logger(__name__)


@contextmanager
def uploaded_file(content: bytes, filename: str = "document") -> Iterator[Path]:
    """Write an upload to a temporary file and remove it on exit.

    The file is deleted whether the body completes or raises.

    Args:
        content: Uploaded bytes.
        filename: Original filename; only its suffix is kept.

    Yields:
        Path of the temporary file.
    """
    suffix = Path(filename).suffix.lower()
    fd, name = tempfile.mkstemp(prefix="pharmadoc-", suffix=suffix)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Error cleaning up uploaded file %s: %s", path, exc)
        else:
            logger.debug("Cleaned up uploaded file %s", path)
