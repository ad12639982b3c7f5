"""Tests for the recognition providers and the provider chain."""

import io
import json
import threading
from unittest.mock import MagicMock, patch

import httpx
import pytest
from PIL import Image

from pharmadoc.ocr.circuit_breaker import BreakerState, CircuitBreaker
from pharmadoc.ocr.provider_chain import OCRProviderChain
from pharmadoc.ocr.recognition import Provider, RecognitionResult
from pharmadoc.ocr.tesseract_engine import TesseractEngine
from pharmadoc.ocr.vision_client import (
    PROBE_IMAGE,
    GoogleVisionClient,
    is_access_failure,
)
from pharmadoc.utils.config import OCRConfig
from pharmadoc.utils.errors import (
    ExtractionWarning,
    RecognitionFailed,
    RecognitionTimeout,
    RemoteProviderError,
)

BILL_TEXT = "ABC PHARMACEUTICALS\nParacetamol 500mg 10 12.50\nTotal: 125.00"


def _mock_tesseract_data() -> dict:
    """Create mock pytesseract output data."""
    return {
        "text": ["", "Paracetamol", "500mg", "", "Total"],
        "conf": [-1, 95, 88, -1, 72],
    }


def _vision_client(handler, config: OCRConfig | None = None) -> GoogleVisionClient:
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return GoogleVisionClient("test-key", config, http_client=http_client)


def _vision_ok(text: str):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"responses": [{"textAnnotations": [{"description": text}]}]}
        )

    return handler


def _vision_error(status: int, status_name: str, message: str):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status,
            json={"error": {"code": status, "status": status_name, "message": message}},
        )

    return handler


class TestRecognitionResult:
    def test_confidence_clamped(self) -> None:
        assert RecognitionResult("x", 140, Provider.TESSERACT).confidence == 100.0
        assert RecognitionResult("x", -3, Provider.TESSERACT).confidence == 0.0


class TestCircuitBreaker:
    """Tests for the one-way availability flag."""

    def test_starts_available(self) -> None:
        breaker = CircuitBreaker()
        assert breaker.is_available
        assert breaker.state is BreakerState.AVAILABLE
        assert breaker.reason is None

    def test_trip_is_one_way(self) -> None:
        breaker = CircuitBreaker()
        assert breaker.trip("quota exceeded") is True
        assert breaker.trip("billing disabled") is False
        assert breaker.state is BreakerState.DISABLED
        assert breaker.reason == "quota exceeded"

    def test_concurrent_trips_transition_once(self) -> None:
        breaker = CircuitBreaker()
        results: list[bool] = []
        threads = [
            threading.Thread(target=lambda: results.append(breaker.trip("blocked")))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1
        assert not breaker.is_available


class TestAccessFailure:
    @pytest.mark.parametrize(
        "message",
        [
            "PERMISSION_DENIED: Cloud Vision API has not been used",
            "Requests to this API are blocked.",
            "Quota exceeded for quota metric",
            "This API method requires billing to be enabled",
            "API key not valid. Please pass a valid API key.",
        ],
    )
    def test_access_messages(self, message: str) -> None:
        assert is_access_failure(RemoteProviderError(message))

    def test_forbidden_status(self) -> None:
        assert is_access_failure(RemoteProviderError("Forbidden", status_code=403))

    def test_transient_failure(self) -> None:
        assert not is_access_failure(RemoteProviderError("read timeout"))
        assert not is_access_failure(RemoteProviderError("Internal", status_code=500))


class TestGoogleVisionClient:
    """Tests for the Vision REST client (mocked transport)."""

    def test_recognize_returns_full_text(self) -> None:
        client = _vision_client(_vision_ok(BILL_TEXT))
        result = client.recognize(b"\x89PNG...")
        assert result.text == BILL_TEXT
        assert result.provider is Provider.GOOGLE_VISION
        assert result.confidence == 95.0

    def test_request_payload(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.url.params["key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"responses": [{"textAnnotations": [{"description": "x"}]}]}
            )

        _vision_client(handler).recognize(b"abc")
        req = seen["body"]["requests"][0]
        assert seen["key"] == "test-key"
        assert req["image"]["content"] == "YWJj"
        assert req["features"][0]["type"] == "TEXT_DETECTION"
        assert req["imageContext"]["languageHints"] == ["en", "hi"]

    def test_no_annotations_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"responses": [{}]})

        with pytest.raises(RemoteProviderError, match="No text detected"):
            _vision_client(handler).recognize(b"img")

    def test_http_error_carries_status(self) -> None:
        client = _vision_client(_vision_error(403, "PERMISSION_DENIED", "API key not valid."))
        with pytest.raises(RemoteProviderError) as exc_info:
            client.recognize(b"img")
        assert exc_info.value.status_code == 403
        assert "PERMISSION_DENIED" in str(exc_info.value)

    def test_embedded_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"responses": [{"error": {"code": 3, "message": "Bad image data."}}]}
            )

        with pytest.raises(RemoteProviderError, match="Bad image data"):
            _vision_client(handler).recognize(b"img")

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>proxy login</html>"),
            httpx.Response(200, json=["unexpected"]),
            httpx.Response(200, json={"responses": ["unexpected"]}),
            httpx.Response(200, json={"responses": [{"error": "quota exceeded"}]}),
            httpx.Response(200, json={"responses": [{"textAnnotations": ["plain"]}]}),
        ],
    )
    def test_malformed_body_wrapped(self, response: httpx.Response) -> None:
        with pytest.raises(RemoteProviderError):
            _vision_client(lambda request: response).recognize(b"img")

    def test_non_json_error_body(self) -> None:
        client = _vision_client(
            lambda request: httpx.Response(502, text="<html>Bad Gateway</html>")
        )
        with pytest.raises(RemoteProviderError) as exc_info:
            client.recognize(b"img")
        assert exc_info.value.status_code == 502
        assert "Bad Gateway" in str(exc_info.value)

    def test_transport_error_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RemoteProviderError, match="request failed"):
            _vision_client(handler).recognize(b"img")

    def test_probe_sends_probe_image(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"responses": [{}]})

        _vision_client(handler).probe()
        content = seen["body"]["requests"][0]["image"]["content"]
        assert content and PROBE_IMAGE.startswith(b"\x89PNG")


class TestTesseractEngine:
    """Tests for the TesseractEngine class (mocked)."""

    @patch("pharmadoc.ocr.tesseract_engine.pytesseract")
    def test_recognize(self, mock_pytesseract: MagicMock, sample_png: bytes) -> None:
        mock_pytesseract.image_to_string.return_value = BILL_TEXT + "\n"
        mock_pytesseract.image_to_data.return_value = _mock_tesseract_data()

        result = TesseractEngine().recognize(sample_png)

        assert result.text == BILL_TEXT
        assert result.provider is Provider.TESSERACT
        assert result.confidence == 85.0
        _, kwargs = mock_pytesseract.image_to_string.call_args
        assert kwargs["timeout"] == 60.0
        assert kwargs["config"] == "--psm 3 -c preserve_interword_spaces=1"

    @patch("pharmadoc.ocr.tesseract_engine.pytesseract")
    def test_timeout(self, mock_pytesseract: MagicMock, sample_png: bytes) -> None:
        mock_pytesseract.image_to_string.side_effect = RuntimeError("Tesseract process timeout")
        with pytest.raises(RecognitionTimeout) as exc_info:
            TesseractEngine().recognize(sample_png)
        assert exc_info.value.http_status == 504

    @patch("pharmadoc.ocr.tesseract_engine.pytesseract")
    def test_tesseract_error(self, mock_pytesseract: MagicMock, sample_png: bytes) -> None:
        class FakeTesseractError(Exception):
            pass

        mock_pytesseract.TesseractError = FakeTesseractError
        mock_pytesseract.image_to_string.side_effect = FakeTesseractError("bad input")
        with pytest.raises(RecognitionFailed):
            TesseractEngine().recognize(sample_png)

    @patch("pharmadoc.ocr.tesseract_engine.pytesseract")
    def test_short_text_fails(self, mock_pytesseract: MagicMock, sample_png: bytes) -> None:
        mock_pytesseract.image_to_string.return_value = " ab \n"
        mock_pytesseract.image_to_data.return_value = {"text": ["ab"], "conf": [40]}
        with pytest.raises(RecognitionFailed):
            TesseractEngine().recognize(sample_png)

    def test_small_image_rejected(self) -> None:
        buf = io.BytesIO()
        Image.new("RGB", (50, 200), "white").save(buf, format="PNG")
        with pytest.raises(RecognitionFailed) as exc_info:
            TesseractEngine().recognize(buf.getvalue())
        assert "too small" in exc_info.value.user_message

    def test_unreadable_image(self) -> None:
        with pytest.raises(RecognitionFailed):
            TesseractEngine().recognize(b"not an image")


class TestOCRProviderChain:
    """Tests for remote-first routing and breaker behaviour."""

    def _chain(self, remote=None, local_result=None, breaker=None):
        local = MagicMock(spec=TesseractEngine)
        local.recognize.return_value = local_result or RecognitionResult(
            BILL_TEXT, 80.0, Provider.TESSERACT
        )
        chain = OCRProviderChain(
            local_engine=local,
            pdf_handler=MagicMock(),
            breaker=breaker or CircuitBreaker(),
            remote=remote,
        )
        return chain, local

    def test_remote_preferred_and_accepted(self) -> None:
        remote = MagicMock(spec=GoogleVisionClient)
        remote.recognize.return_value = RecognitionResult(BILL_TEXT, 95, Provider.GOOGLE_VISION)
        chain, local = self._chain(remote)

        result = chain.recognize(b"img")

        assert result.provider is Provider.GOOGLE_VISION
        local.recognize.assert_not_called()

    def test_no_remote_uses_local(self) -> None:
        chain, local = self._chain()
        assert chain.preferred_provider is Provider.TESSERACT
        assert chain.recognize(b"img").provider is Provider.TESSERACT

    def test_short_remote_text_falls_back(self) -> None:
        remote = MagicMock(spec=GoogleVisionClient)
        remote.recognize.return_value = RecognitionResult("Rx", 95, Provider.GOOGLE_VISION)
        chain, local = self._chain(remote)

        assert chain.recognize(b"img").provider is Provider.TESSERACT
        assert chain.breaker.is_available

    def test_access_failure_trips_breaker(self) -> None:
        remote = _vision_client(
            _vision_error(403, "PERMISSION_DENIED", "Cloud Vision API has not been used")
        )
        breaker = CircuitBreaker()
        chain, local = self._chain(remote, breaker=breaker)

        first = chain.recognize(b"img")
        assert first.provider is Provider.TESSERACT
        assert breaker.state is BreakerState.DISABLED

        remote_spy = MagicMock(wraps=remote)
        chain.remote = remote_spy
        second = chain.recognize(b"img")
        assert second.provider is Provider.TESSERACT
        remote_spy.recognize.assert_not_called()

    def test_transient_failure_keeps_breaker(self) -> None:
        remote = _vision_client(_vision_error(503, "UNAVAILABLE", "Service unavailable"))
        chain, local = self._chain(remote)
        assert chain.recognize(b"img").provider is Provider.TESSERACT
        assert chain.breaker.is_available

    def test_html_response_falls_back(self) -> None:
        remote = _vision_client(
            lambda request: httpx.Response(200, text="<html>proxy login</html>")
        )
        chain, local = self._chain(remote)
        result = chain.recognize(b"img")
        assert result.provider is Provider.TESSERACT
        local.recognize.assert_called_once_with(b"img")
        assert chain.breaker.is_available

    def test_low_local_confidence_warns(self) -> None:
        chain, _ = self._chain(
            local_result=RecognitionResult(BILL_TEXT, 22.0, Provider.TESSERACT)
        )
        result = chain.recognize(b"img")
        assert result.warning == ExtractionWarning.LOW_CONFIDENCE.value

    def test_local_errors_propagate(self) -> None:
        chain, local = self._chain()
        local.recognize.side_effect = RecognitionTimeout("timed out")
        with pytest.raises(RecognitionTimeout):
            chain.recognize(b"img")

    def test_pdf_delegates_to_handler(self) -> None:
        chain, _ = self._chain()
        expected = RecognitionResult(BILL_TEXT, 95, Provider.EMBEDDED_TEXT)
        chain.pdf_handler.recognize.return_value = expected
        assert chain.recognize_document_text(b"%PDF") is expected

    def test_probe_trips_on_access_failure(self) -> None:
        remote = _vision_client(_vision_error(429, "RESOURCE_EXHAUSTED", "Quota exceeded"))
        chain, _ = self._chain(remote)
        assert chain.probe_remote() is False
        assert chain.preferred_provider is Provider.TESSERACT

    def test_probe_success(self) -> None:
        remote = _vision_client(lambda request: httpx.Response(200, json={"responses": [{}]}))
        chain, _ = self._chain(remote)
        assert chain.probe_remote() is True

    def test_probe_without_remote(self) -> None:
        chain, _ = self._chain()
        assert chain.probe_remote() is False
