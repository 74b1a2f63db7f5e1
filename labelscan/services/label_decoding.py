"""Label decoding service.

Turns a photographed asset label into a validated model code / asset tag
pair:

1. Decode the photo and project it to brightness.
2. Try to read a linear barcode at 0, 90, 180 and 270 degrees, stopping at
   the first hit, and parse its text.
3. If no barcode was read, or its text is not a valid label, send the
   original photo to the OCR fallback (when configured) and parse its text.

Every stage reports failure as a ``Failure`` value; only an unreadable image
ends the request before the fallback is considered.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum

from labelscan.app.config import Settings
from labelscan.domain.models import (
    DecodeOutcome,
    ErrorKind,
    Failure,
    OcrExtraction,
    Strategy,
    Success,
)
from labelscan.infrastructure.ai.code_validation import parse_identifiers
from labelscan.infrastructure.ai.image_analyzer import (
    OcrCapability,
    resolve_ocr_capability,
)
from labelscan.infrastructure.ai.preprocessing import (
    OrientationSearch,
    decode_image,
    project_luminance,
)
from labelscan.infrastructure.ai.symbol_reader import (
    NOT_FOUND_MESSAGE,
    ReaderFactory,
    RecognizerConfig,
    SymbolReader,
)
from labelscan.infrastructure.observability import (
    add_span_event,
    get_logger,
    log_context,
    log_exception,
    record_decode,
    record_exception,
    record_symbol_attempt,
    set_span_attribute,
    trace_span,
)

logger = get_logger(__name__)


class DecodeState(str, Enum):
    """Stages of a single decode request."""

    TRYING_SYMBOL = "trying_symbol"
    TRYING_OCR = "trying_ocr"
    DONE = "done"


def combine_failures(symbol_failure: Failure, ocr_failure: Failure) -> Failure:
    """Merge both strategies' failures so the message names both causes."""
    return Failure(
        kind=ocr_failure.kind,
        message=f"{symbol_failure.message}; OCR fallback failed: {ocr_failure.message}",
        cause=ocr_failure.cause or symbol_failure.cause,
    )


class LabelDecodingService:
    """Decodes label photos, barcode first with an optional OCR fallback.

    The service keeps only configuration and collaborators; every call to
    ``decode`` is self-contained and safe to run concurrently.
    """

    def __init__(
        self,
        ocr: OcrCapability | None = None,
        recognizer_config: RecognizerConfig | None = None,
        reader_factory: ReaderFactory = SymbolReader,
        ocr_timeout: float | None = 30.0,
        compensate_leading_one: bool = True,
    ) -> None:
        """Initialize the service.

        Args:
            ocr: OCR fallback, or None when it is not configured.
            recognizer_config: Barcode allow-list and effort settings.
            reader_factory: Builds a fresh SymbolReader for every orientation.
            ocr_timeout: Seconds to wait for the OCR fallback (None = no limit).
            compensate_leading_one: Strip a stray leading ``1`` from model codes.
        """
        self.ocr = ocr
        self.recognizer_config = recognizer_config or RecognizerConfig()
        self._reader_factory = reader_factory
        self.ocr_timeout = ocr_timeout
        self.compensate_leading_one = compensate_leading_one

    @property
    def ocr_available(self) -> bool:
        return self.ocr is not None

    async def close(self) -> None:
        """Release the OCR client, if it holds one."""
        close = getattr(self.ocr, "close", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def decode(
        self,
        image_data: bytes,
        filename: str = "label.jpg",
        content_type: str = "image/jpeg",
    ) -> DecodeOutcome:
        """Decode one label photo.

        Args:
            image_data: Encoded photo bytes as uploaded.
            filename: Original filename, forwarded to the OCR fallback.
            content_type: Declared MIME type.

        Returns:
            Success with the identifiers and the strategy that found them, or
            a Failure describing why neither strategy succeeded.
        """
        started = time.perf_counter()
        with log_context(filename=filename), trace_span(
            "decode_label", filename=filename, content_type=content_type
        ):
            outcome = await self._run(image_data, filename, content_type)
            set_span_attribute("state", DecodeState.DONE.value)
            set_span_attribute("outcome", "success" if isinstance(outcome, Success) else "failure")

        duration = time.perf_counter() - started
        if isinstance(outcome, Success):
            record_decode(outcome.strategy.value, "success", None, duration)
            logger.info(
                "Decoded %s via %s in %.3fs",
                outcome.identifiers.combined_code,
                outcome.strategy.value,
                duration,
            )
        else:
            record_decode(None, "failure", outcome.kind.value, duration)
            logger.warning("Decode failed (%s): %s", outcome.kind.value, outcome.message)
        return outcome

    def decode_symbol(
        self, image_data: bytes, content_type: str | None = None
    ) -> DecodeOutcome:
        """Run the barcode half of the pipeline synchronously.

        Returns:
            Success tagged ``symbol``; an UnreadableImage failure; the parse
            failure of a barcode whose text is not a label; or the last
            orientation's SymbolNotFound.
        """
        raster = decode_image(image_data, content_type)
        if isinstance(raster, Failure):
            return raster
        luminance = project_luminance(raster)

        last_failure = Failure(ErrorKind.SYMBOL_NOT_FOUND, NOT_FOUND_MESSAGE)
        for oriented in OrientationSearch(luminance):
            reader = self._reader_factory(self.recognizer_config)
            recognition = reader.read(oriented)
            found = not isinstance(recognition, Failure)
            record_symbol_attempt(oriented.angle, found)
            if isinstance(recognition, Failure):
                last_failure = recognition
                continue

            identifiers = parse_identifiers(
                recognition.raw_text, compensate_leading_one=self.compensate_leading_one
            )
            if isinstance(identifiers, Failure):
                # The barcode was read; other orientations would give the same text.
                logger.info(
                    "%s barcode at %d degrees is not a label: %s",
                    recognition.symbology,
                    oriented.angle,
                    identifiers.message,
                )
                return Failure(
                    identifiers.kind,
                    f'{recognition.symbology} barcode "{recognition.raw_text}" '
                    f"is not a valid label: {identifiers.message}",
                )
            logger.debug("Barcode read at %d degrees", oriented.angle)
            add_span_event("symbol_found", angle=oriented.angle, symbology=recognition.symbology)
            return Success(
                identifiers=identifiers,
                strategy=Strategy.SYMBOL,
                symbology=recognition.symbology,
            )

        return last_failure

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _run(
        self, image_data: bytes, filename: str, content_type: str
    ) -> DecodeOutcome:
        state = DecodeState.TRYING_SYMBOL
        with log_context(state=state.value):
            # CPU-bound; keep it off the event loop.
            symbol_outcome = await asyncio.to_thread(
                self.decode_symbol, image_data, content_type
            )
        if isinstance(symbol_outcome, Success):
            return symbol_outcome
        if symbol_outcome.kind is ErrorKind.UNREADABLE_IMAGE:
            return symbol_outcome

        state = DecodeState.TRYING_OCR
        with log_context(state=state.value):
            logger.debug("Barcode stage failed: %s", symbol_outcome.message)
            return await self._try_ocr(symbol_outcome, image_data, filename, content_type)

    async def _try_ocr(
        self,
        symbol_failure: Failure,
        image_data: bytes,
        filename: str,
        content_type: str,
    ) -> DecodeOutcome:
        if self.ocr is None:
            logger.info("OCR fallback not configured")
            return symbol_failure

        extraction = await self._extract(self.ocr, image_data, filename, content_type)
        if isinstance(extraction, Failure):
            if extraction.kind is ErrorKind.OCR_UNAVAILABLE:
                return symbol_failure
            return combine_failures(symbol_failure, extraction)

        identifiers = parse_identifiers(
            extraction.combined_text, compensate_leading_one=self.compensate_leading_one
        )
        if isinstance(identifiers, Failure):
            return combine_failures(symbol_failure, identifiers)

        return Success(
            identifiers=identifiers,
            strategy=Strategy.OCR,
            ocr_diagnostics=dict(extraction.field_diagnostics),
        )

    async def _extract(
        self,
        ocr: OcrCapability,
        image_data: bytes,
        filename: str,
        content_type: str,
    ) -> OcrExtraction | Failure:
        try:
            with trace_span("ocr_fallback", filename=filename):
                request = ocr.extract_text(image_data, filename, content_type)
                if self.ocr_timeout is None:
                    return await request
                return await asyncio.wait_for(request, timeout=self.ocr_timeout)
        except asyncio.TimeoutError as exc:
            logger.error("OCR fallback timed out after %.1fs", self.ocr_timeout)
            return Failure(
                ErrorKind.OCR_REQUEST_FAILED,
                f"OCR request timed out after {self.ocr_timeout:g}s",
                cause=exc,
            )
        except Exception as exc:
            log_exception(logger, "OCR fallback raised", exc)
            record_exception(exc)
            return Failure(
                ErrorKind.OCR_REQUEST_FAILED, f"OCR request failed: {exc}", cause=exc
            )


def build_decoding_service(settings: Settings) -> LabelDecodingService:
    """Build a LabelDecodingService from application settings."""
    return LabelDecodingService(
        ocr=resolve_ocr_capability(settings),
        ocr_timeout=settings.ocr_timeout_seconds,
    )


__all__ = [
    "DecodeState",
    "LabelDecodingService",
    "build_decoding_service",
    "combine_failures",
]
