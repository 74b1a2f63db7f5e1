"""Vision-model OCR fallback for asset labels.

When no barcode can be read, the original photo is sent to an
OpenAI-compatible vision model, which returns the printed model code and
asset code as structured fields. Each field comes back with a value, a
status and a confidence, which are kept as diagnostics.

The pipeline only depends on the ``OcrCapability`` protocol; ``OpenAIAnalyzer``
is the implementation used in production.
"""

from __future__ import annotations

import base64
import time
from typing import Literal, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from labelscan.app.config import Settings
from labelscan.domain.models import (
    ErrorKind,
    Failure,
    FieldDiagnostic,
    FieldStatus,
    OcrExtraction,
)
from labelscan.infrastructure.observability import get_logger, record_ocr_request, traced

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

MODEL_CODE_FIELD = "model_code"
ASSET_CODE_FIELD = "asset_code"

PROMPT = """You are reading a printed hardware asset label from a photo.
The label carries two codes, usually printed under a linear barcode:

1. The model code: 4-16 letters, digits or hyphens (for example E3012804).
2. The asset code: exactly 3 letters followed by 4-5 digits (for example HBJ04724).

The photo may be rotated, skewed or poorly lit. Read the codes exactly as
printed, without spaces. For each field report:
- value: the code, or null if you cannot find it
- status: "ok", "missing", "low-confidence" or "invalid" (text found but it
  does not match the expected format)
- confidence: a number between 0 and 1

Only report characters you can clearly read."""


class OcrCapability(Protocol):
    """Anything that can turn label photo bytes into an OcrExtraction."""

    async def extract_text(
        self, image_data: bytes, filename: str, content_type: str
    ) -> OcrExtraction | Failure:
        ...


class LabelFieldReading(BaseModel):
    """One field as returned by the vision model."""

    value: str | None = None
    status: Literal["ok", "missing", "low-confidence", "invalid"] = "ok"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class LabelReading(BaseModel):
    """Structured vision model reply."""

    model_config = ConfigDict(protected_namespaces=())

    model_code: LabelFieldReading
    asset_code: LabelFieldReading


def _field_schema() -> dict[str, object]:
    return {
        "type": "object",
        "properties": {
            "value": {"type": ["string", "null"]},
            "status": {
                "type": "string",
                "enum": [status.value for status in FieldStatus],
            },
            "confidence": {"type": "number"},
        },
        "required": ["value", "status", "confidence"],
        "additionalProperties": False,
    }


RESPONSE_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        MODEL_CODE_FIELD: _field_schema(),
        ASSET_CODE_FIELD: _field_schema(),
    },
    "required": [MODEL_CODE_FIELD, ASSET_CODE_FIELD],
    "additionalProperties": False,
}


def grade_field(reading: LabelFieldReading, min_confidence: float) -> FieldDiagnostic:
    """Turn a raw field reading into a diagnostic with a locally checked status."""
    value = (reading.value or "").strip() or None
    if value is None:
        status = FieldStatus.MISSING
    elif reading.status == FieldStatus.INVALID.value:
        status = FieldStatus.INVALID
    elif (
        reading.status == FieldStatus.LOW_CONFIDENCE.value
        or reading.confidence < min_confidence
    ):
        status = FieldStatus.LOW_CONFIDENCE
    else:
        status = FieldStatus.OK
    return FieldDiagnostic(value=value, status=status, confidence=reading.confidence)


def build_extraction(reading: LabelReading, min_confidence: float) -> OcrExtraction:
    """Combine graded fields into ``"<model code> <asset code>"``."""
    diagnostics = {
        MODEL_CODE_FIELD: grade_field(reading.model_code, min_confidence),
        ASSET_CODE_FIELD: grade_field(reading.asset_code, min_confidence),
    }
    combined = " ".join(
        diag.value for diag in diagnostics.values() if diag.value is not None
    )
    return OcrExtraction(combined_text=combined, field_diagnostics=diagnostics)


def _image_mime_type(content_type: str) -> str:
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime.startswith("image/"):
        return mime
    return "image/jpeg"


class OpenAIAnalyzer:
    """Reads label codes with an OpenAI-compatible vision model."""

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        min_confidence: float = 0.6,
    ) -> None:
        """Initialize the analyzer.

        Args:
            api_key: API key sent as a bearer token.
            model: Vision-capable chat model.
            base_url: API root, e.g. https://api.openai.com/v1.
            timeout: HTTP timeout in seconds.
            min_confidence: Fields below this confidence are graded
                ``low-confidence``.
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.min_confidence = min_confidence
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "OpenAIAnalyzer":
        await self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_payload(
        self, image_data: bytes, filename: str, content_type: str
    ) -> dict[str, object]:
        """Build the chat-completions request body for one photo."""
        encoded = base64.b64encode(image_data).decode("ascii")
        data_url = f"data:{_image_mime_type(content_type)};base64,{encoded}"
        return {
            "model": self.model,
            "temperature": 0,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": f"{PROMPT}\n\nFile: {filename}"},
                        {
                            "type": "image_url",
                            "image_url": {"url": data_url, "detail": "high"},
                        },
                    ],
                }
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "asset_label",
                    "strict": True,
                    "schema": RESPONSE_SCHEMA,
                },
            },
        }

    @traced("ocr_request")
    async def extract_text(
        self, image_data: bytes, filename: str, content_type: str
    ) -> OcrExtraction | Failure:
        """Send a label photo to the vision model.

        Args:
            image_data: Original encoded photo bytes.
            filename: Original upload name, passed to the model as a hint.
            content_type: Declared MIME type of the photo.

        Returns:
            OcrExtraction, or an OcrUnavailable / OcrRequestFailed failure.
        """
        if not self.api_key:
            return Failure(
                ErrorKind.OCR_UNAVAILABLE,
                "OCR fallback is not configured (set OPENAI_API_KEY)",
            )

        started = time.perf_counter()
        outcome = await self._request(image_data, filename, content_type)
        status = "failed" if isinstance(outcome, Failure) else "success"
        record_ocr_request(status, time.perf_counter() - started)
        return outcome

    async def _request(
        self, image_data: bytes, filename: str, content_type: str
    ) -> OcrExtraction | Failure:
        try:
            client = await self._get_client()
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=self.build_payload(image_data, filename, content_type),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "OCR API error: status_code=%s, detail=%s",
                e.response.status_code,
                e.response.text[:200],
            )
            return Failure(
                ErrorKind.OCR_REQUEST_FAILED,
                f"OCR API error: {e.response.status_code}",
                cause=e,
            )
        except httpx.TimeoutException as e:
            logger.error("OCR request timed out after %.1fs", self.timeout)
            return Failure(ErrorKind.OCR_REQUEST_FAILED, "OCR request timed out", cause=e)
        except httpx.HTTPError as e:
            logger.error("OCR request failed: %s", str(e))
            return Failure(
                ErrorKind.OCR_REQUEST_FAILED, f"OCR request failed: {e}", cause=e
            )
        except ValueError as e:
            logger.error("OCR response is not JSON: %s", str(e))
            return Failure(
                ErrorKind.OCR_REQUEST_FAILED, "OCR response is not valid JSON", cause=e
            )

        return self._parse_response(data)

    def _parse_response(self, data: object) -> OcrExtraction | Failure:
        """Validate the chat-completions reply into an OcrExtraction."""
        try:
            content = data["choices"][0]["message"]["content"]  # type: ignore[index]
        except (KeyError, IndexError, TypeError) as e:
            logger.warning("OCR response has no message content: %s", str(e))
            return Failure(
                ErrorKind.OCR_REQUEST_FAILED,
                "OCR response did not contain a message",
                cause=e,
            )
        if not content:
            return Failure(ErrorKind.OCR_REQUEST_FAILED, "OCR response was empty")

        try:
            reading = LabelReading.model_validate_json(content)
        except ValidationError as e:
            logger.warning("Failed to parse OCR response: %s", str(e))
            return Failure(
                ErrorKind.OCR_REQUEST_FAILED,
                f"Could not interpret OCR response: {e.error_count()} validation error(s)",
                cause=e,
            )

        extraction = build_extraction(reading, self.min_confidence)
        logger.info(
            "OCR fallback read %r (%s)",
            extraction.combined_text,
            ", ".join(
                f"{name}={diag.status.value}"
                for name, diag in extraction.field_diagnostics.items()
            ),
        )
        return extraction


def resolve_ocr_capability(settings: Settings) -> OpenAIAnalyzer | None:
    """Return the configured OCR fallback, or None without an API key."""
    if not settings.ocr_available:
        logger.info("OPENAI_API_KEY not set; OCR fallback disabled")
        return None
    return OpenAIAnalyzer(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        timeout=settings.ocr_timeout_seconds,
        min_confidence=settings.ocr_min_confidence,
    )


__all__ = [
    "ASSET_CODE_FIELD",
    "MODEL_CODE_FIELD",
    "LabelFieldReading",
    "LabelReading",
    "OcrCapability",
    "OpenAIAnalyzer",
    "RESPONSE_SCHEMA",
    "build_extraction",
    "grade_field",
    "resolve_ocr_capability",
]
