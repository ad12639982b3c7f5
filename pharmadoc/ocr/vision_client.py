"""Google Cloud Vision text detection over the REST ``images:annotate`` API.

The integration does not expose a per-word score, so successful results are
reported with a fixed high-trust confidence.
"""

import base64
import re
import time

import httpx

from pharmadoc.utils.config import OCRConfig
from pharmadoc.utils.errors import RemoteProviderError
from pharmadoc.utils.logger import get_logger

from .recognition import Provider, RecognitionResult

logger = get_logger(__name__)

# 1x1 transparent PNG used to probe availability.
PROBE_IMAGE = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mP8/5+hHgAHggJ/PchI7wAAAABJRU5ErkJggg=="
)

_ACCESS_FAILURE_PATTERN = re.compile(
    r"blocked|permission_denied|permission denied|quota|billing|api key not valid",
    re.IGNORECASE,
)
_ACCESS_FAILURE_STATUSES = {401, 403, 429}


def is_access_failure(error: RemoteProviderError) -> bool:
    """Whether a remote failure means the provider is structurally unavailable.

    Access, quota, permission and billing failures will repeat for every
    document; transient errors (timeouts, 5xx, empty results) will not.
    """
    if error.status_code in _ACCESS_FAILURE_STATUSES:
        return True
    return bool(_ACCESS_FAILURE_PATTERN.search(str(error)))


def _error_message(response: httpx.Response) -> str:
    """Best-effort ``status message`` text from an error response body."""
    try:
        error = response.json().get("error", {})
        message = f"{error.get('status') or ''} {error.get('message', '')}".strip()
    except (ValueError, AttributeError, TypeError):
        message = ""
    return message or response.reason_phrase


class GoogleVisionClient:
    """Minimal synchronous client for Vision ``TEXT_DETECTION``.

    Args:
        api_key: Google Cloud API key.
        config: OCR configuration (endpoint, timeout, language hints).
        http_client: Optional pre-built ``httpx.Client``; one is created
            otherwise.
    """

    def __init__(
        self,
        api_key: str,
        config: OCRConfig | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.config = config or OCRConfig()
        self.api_key = api_key
        self._client = http_client or httpx.Client(
            timeout=self.config.vision_timeout_seconds
        )

    def close(self) -> None:
        self._client.close()

    def _annotate(self, image_bytes: bytes) -> dict:
        """POST one annotate request and return the first response entry.

        Raises:
            RemoteProviderError: On transport errors, non-2xx responses or an
                error embedded in the response body.
        """
        payload = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image_bytes).decode("ascii")},
                    "features": [{"type": "TEXT_DETECTION", "maxResults": 1}],
                    "imageContext": {"languageHints": self.config.language_hints},
                }
            ]
        }

        try:
            response = self._client.post(
                self.config.vision_endpoint,
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise RemoteProviderError(f"Google Vision request failed: {exc}") from exc

        if response.is_error:
            raise RemoteProviderError(
                f"Google Vision API error: {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            first = (response.json().get("responses") or [{}])[0]
            error = first.get("error")
        except (ValueError, AttributeError, TypeError, IndexError) as exc:
            raise RemoteProviderError(
                f"Unexpected Google Vision response body: {response.text[:200]!r}"
            ) from exc

        if error:
            if not isinstance(error, dict):
                raise RemoteProviderError(f"Google Vision API error: {error}")
            raise RemoteProviderError(
                f"Google Vision API error: {error.get('message', '')}",
                status_code=error.get("code"),
            )
        return first

    def recognize(self, image_bytes: bytes) -> RecognitionResult:
        """Detect text in an image.

        Args:
            image_bytes: Encoded image (PNG or JPEG).

        Returns:
            Recognition result with provider ``google-vision``.

        Raises:
            RemoteProviderError: If the call fails or detects no text.
        """
        start = time.monotonic()
        first = self._annotate(image_bytes)
        annotations = first.get("textAnnotations") or []
        if not annotations:
            raise RemoteProviderError("No text detected in image")

        try:
            text = str(annotations[0].get("description", ""))
        except (AttributeError, TypeError, KeyError) as exc:
            raise RemoteProviderError(
                f"Malformed text annotation: {annotations[0]!r}"
            ) from exc
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "Google Vision extracted %d characters in %.0f ms", len(text), elapsed_ms
        )
        return RecognitionResult(
            text=text,
            confidence=self.config.vision_confidence,
            provider=Provider.GOOGLE_VISION,
            elapsed_ms=elapsed_ms,
        )

    def probe(self) -> None:
        """Send a minimal request to verify the key and quota.

        Raises:
            RemoteProviderError: If the API rejects the request.
        """
        self._annotate(PROBE_IMAGE)
