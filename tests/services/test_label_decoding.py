"""Tests for the label decoding service."""

from __future__ import annotations

import asyncio
import io
import threading
from unittest.mock import AsyncMock

import numpy as np
import pytest
import zxingcpp
from PIL import Image

from labelscan.app.config import Settings
from labelscan.domain.models import (
    ErrorKind,
    Failure,
    FieldDiagnostic,
    FieldStatus,
    OcrExtraction,
    OrientedRaster,
    RecognitionResult,
    Strategy,
    StructuredIdentifiers,
    Success,
)
from labelscan.infrastructure.ai.image_analyzer import OpenAIAnalyzer
from labelscan.infrastructure.ai.symbol_reader import NOT_FOUND_MESSAGE, RecognizerConfig
from labelscan.infrastructure.observability import current_log_context
from labelscan.infrastructure.observability.metrics import DECODES, get_registry
from labelscan.services.label_decoding import (
    LabelDecodingService,
    build_decoding_service,
    combine_failures,
)

LABEL_TEXT = "1E3012804 HBJ04724"
EXPECTED = StructuredIdentifiers(
    raw_code=LABEL_TEXT, model_code="E3012804", asset_tag="HBJ04724"
)


def _png(size: tuple[int, int] = (8, 6)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, (255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeReader:
    """Reader that succeeds only at the given angles."""

    def __init__(self, text: str, angles: tuple[int, ...]) -> None:
        self.text = text
        self.angles = angles
        self.seen: list[int] = []

    def read(self, oriented: OrientedRaster) -> RecognitionResult | Failure:
        self.seen.append(oriented.angle)
        if oriented.angle in self.angles:
            return RecognitionResult(raw_text=self.text, symbology="CODE_128")
        return Failure(
            ErrorKind.SYMBOL_NOT_FOUND,
            f"{NOT_FOUND_MESSAGE} (rotation {oriented.angle})",
        )


class ReaderFactory:
    """Records every reader it builds."""

    def __init__(self, text: str = LABEL_TEXT, angles: tuple[int, ...] = (0,)) -> None:
        self.text = text
        self.angles = angles
        self.readers: list[FakeReader] = []

    def __call__(self, config: RecognizerConfig) -> FakeReader:
        reader = FakeReader(self.text, self.angles)
        self.readers.append(reader)
        return reader


def _ocr(result: OcrExtraction | Failure) -> AsyncMock:
    ocr = AsyncMock()
    ocr.extract_text.return_value = result
    return ocr


class SlowOcr:
    async def extract_text(
        self, image_data: bytes, filename: str, content_type: str
    ) -> OcrExtraction | Failure:
        await asyncio.sleep(5)
        return OcrExtraction(combined_text=LABEL_TEXT)


class BrokenOcr:
    async def extract_text(
        self, image_data: bytes, filename: str, content_type: str
    ) -> OcrExtraction | Failure:
        raise RuntimeError("socket closed")


class TestSymbolStrategy:
    """Tests for decoding via the barcode reader."""

    def test_upright_symbol(self) -> None:
        factory = ReaderFactory(angles=(0,))
        ocr = _ocr(OcrExtraction(combined_text=LABEL_TEXT))
        service = LabelDecodingService(ocr=ocr, reader_factory=factory)

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Success)
        assert outcome.strategy == Strategy.SYMBOL
        assert outcome.symbology == "CODE_128"
        assert outcome.identifiers == EXPECTED
        assert outcome.ocr_diagnostics is None
        assert len(factory.readers) == 1
        ocr.extract_text.assert_not_called()

    def test_fresh_reader_per_orientation(self) -> None:
        """Orientations are tried in order with a new reader each time."""
        factory = ReaderFactory(angles=(180,))
        service = LabelDecodingService(reader_factory=factory)

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Success)
        assert [reader.seen for reader in factory.readers] == [[0], [90], [180]]
        assert len({id(reader) for reader in factory.readers}) == 3

    @pytest.mark.parametrize("angle", [0, 90, 180, 270])
    def test_same_identifiers_at_any_rotation(self, angle: int) -> None:
        service = LabelDecodingService(reader_factory=ReaderFactory(angles=(angle,)))
        outcome = service.decode_symbol(_png(), "image/png")
        assert isinstance(outcome, Success)
        assert outcome.identifiers == EXPECTED

    def test_decoding_twice_is_idempotent(self) -> None:
        service = LabelDecodingService(reader_factory=ReaderFactory(angles=(90,)))
        data = _png()
        first = asyncio.run(service.decode(data, "label.png", "image/png"))
        second = asyncio.run(service.decode(data, "label.png", "image/png"))
        assert first == second

    def test_not_found_without_ocr(self) -> None:
        service = LabelDecodingService(ocr=None, reader_factory=ReaderFactory(angles=()))

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.SYMBOL_NOT_FOUND
        assert outcome.message == f"{NOT_FOUND_MESSAGE} (rotation 270)"

    def test_blank_symbol_text_is_malformed(self) -> None:
        service = LabelDecodingService(reader_factory=ReaderFactory(text="  "))
        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))
        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.MALFORMED_IDENTIFIER

    def test_invalid_symbol_text_skips_other_orientations(self) -> None:
        factory = ReaderFactory(text="E3012804 AB1234", angles=(0, 90, 180, 270))
        service = LabelDecodingService(reader_factory=factory)

        outcome = service.decode_symbol(_png(), "image/png")

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.INVALID_ASSET_TAG
        assert "E3012804 AB1234" in outcome.message
        assert len(factory.readers) == 1


class TestUnreadableImage:
    """Tests for images that cannot be decoded."""

    def test_unreadable_image_never_reaches_ocr(self) -> None:
        ocr = _ocr(OcrExtraction(combined_text=LABEL_TEXT))
        factory = ReaderFactory()
        service = LabelDecodingService(ocr=ocr, reader_factory=factory)

        outcome = asyncio.run(service.decode(b"not an image", "label.jpg", "image/jpeg"))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.UNREADABLE_IMAGE
        ocr.extract_text.assert_not_called()
        assert factory.readers == []


class TestOcrFallback:
    """Tests for the OCR fallback path."""

    def test_fallback_matches_symbol_result(self) -> None:
        diagnostics = {
            "model_code": FieldDiagnostic("1E3012804", FieldStatus.OK, 0.95),
            "asset_code": FieldDiagnostic("HBJ04724", FieldStatus.OK, 0.9),
        }
        ocr = _ocr(OcrExtraction(combined_text=LABEL_TEXT, field_diagnostics=diagnostics))
        service = LabelDecodingService(ocr=ocr, reader_factory=ReaderFactory(angles=()))

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Success)
        assert outcome.strategy == Strategy.OCR
        assert outcome.symbology is None
        assert outcome.identifiers == EXPECTED
        assert outcome.ocr_diagnostics == diagnostics
        ocr.extract_text.assert_awaited_once()
        args = ocr.extract_text.await_args.args
        assert args[1:] == ("label.png", "image/png")

    def test_invalid_symbol_text_falls_back_to_ocr(self) -> None:
        factory = ReaderFactory(text="GARBAGE")
        ocr = _ocr(OcrExtraction(combined_text=LABEL_TEXT))
        service = LabelDecodingService(ocr=ocr, reader_factory=factory)

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Success)
        assert outcome.strategy == Strategy.OCR
        assert len(factory.readers) == 1

    def test_both_strategies_fail(self) -> None:
        ocr = _ocr(Failure(ErrorKind.OCR_REQUEST_FAILED, "OCR API error: 500"))
        service = LabelDecodingService(ocr=ocr, reader_factory=ReaderFactory(angles=()))

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.OCR_REQUEST_FAILED
        assert outcome.message == (
            f"{NOT_FOUND_MESSAGE} (rotation 270); OCR fallback failed: OCR API error: 500"
        )

    def test_blank_ocr_text_is_malformed(self) -> None:
        ocr = _ocr(OcrExtraction(combined_text=""))
        service = LabelDecodingService(ocr=ocr, reader_factory=ReaderFactory(angles=()))

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.MALFORMED_IDENTIFIER
        assert "OCR fallback failed" in outcome.message

    def test_unavailable_capability_keeps_symbol_failure(self) -> None:
        ocr = _ocr(Failure(ErrorKind.OCR_UNAVAILABLE, "not configured"))
        service = LabelDecodingService(ocr=ocr, reader_factory=ReaderFactory(angles=()))

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.SYMBOL_NOT_FOUND

    def test_ocr_timeout(self) -> None:
        service = LabelDecodingService(
            ocr=SlowOcr(), reader_factory=ReaderFactory(angles=()), ocr_timeout=0.01
        )

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.OCR_REQUEST_FAILED
        assert outcome.message.endswith("OCR request timed out after 0.01s")

    def test_ocr_exception_becomes_failure(self) -> None:
        service = LabelDecodingService(
            ocr=BrokenOcr(), reader_factory=ReaderFactory(angles=())
        )

        outcome = asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.OCR_REQUEST_FAILED
        assert isinstance(outcome.cause, RuntimeError)


class TestRenderedLabels:
    """End-to-end decoding of rendered Code 128 labels."""

    @staticmethod
    def _label_png(angle: int) -> bytes:
        bars = np.asarray(
            zxingcpp.write_barcode(
                zxingcpp.BarcodeFormat.Code128, LABEL_TEXT, width=600, height=120
            ),
            dtype=np.uint8,
        )
        image = Image.fromarray(np.pad(bars, 40, constant_values=255)).convert("RGB")
        # PIL rotates counter-clockwise
        rotated = image.rotate(-angle, expand=True, fillcolor="white")
        buffer = io.BytesIO()
        rotated.save(buffer, format="PNG")
        return buffer.getvalue()

    @pytest.mark.parametrize("angle", [0, 90, 180, 270])
    def test_rotated_label_decodes_to_same_identifiers(self, angle: int) -> None:
        service = LabelDecodingService()

        outcome = asyncio.run(
            service.decode(self._label_png(angle), "label.png", "image/png")
        )

        assert isinstance(outcome, Success)
        assert outcome.strategy == Strategy.SYMBOL
        assert outcome.symbology == "CODE_128"
        assert outcome.identifiers == EXPECTED
        assert outcome.identifiers.combined_code == "E3012804 HBJ04724"


class TestConcurrency:
    """Tests for running decodes alongside other work on the event loop."""

    def test_symbol_stage_does_not_block_event_loop(self) -> None:
        """Other tasks keep running while the barcode stage works."""
        released = threading.Event()
        waited: list[bool] = []

        class BlockingReader:
            def __init__(self, config: RecognizerConfig) -> None:
                self.config = config

            def read(self, oriented: OrientedRaster) -> RecognitionResult:
                waited.append(released.wait(timeout=2))
                return RecognitionResult(raw_text=LABEL_TEXT, symbology="CODE_128")

        service = LabelDecodingService(reader_factory=BlockingReader)

        async def release() -> None:
            await asyncio.sleep(0.01)
            released.set()

        async def run() -> Success | Failure:
            outcome, _ = await asyncio.gather(
                service.decode(_png(), "label.png", "image/png"), release()
            )
            return outcome

        outcome = asyncio.run(run())

        assert waited == [True]
        assert isinstance(outcome, Success)

    def test_log_context_reaches_symbol_stage(self) -> None:
        contexts: list[dict] = []

        class RecordingReader(FakeReader):
            def read(self, oriented: OrientedRaster) -> RecognitionResult | Failure:
                contexts.append(current_log_context())
                return super().read(oriented)

        service = LabelDecodingService(
            reader_factory=lambda config: RecordingReader(LABEL_TEXT, (0,))
        )

        asyncio.run(service.decode(_png(), "label.png", "image/png"))

        assert contexts == [{"filename": "label.png", "state": "trying_symbol"}]

    def test_decode_symbol_returns_last_orientation_failure(self) -> None:
        service = LabelDecodingService(reader_factory=ReaderFactory(angles=()))

        outcome = service.decode_symbol(_png(), "image/png")

        assert outcome == Failure(
            ErrorKind.SYMBOL_NOT_FOUND, f"{NOT_FOUND_MESSAGE} (rotation 270)"
        )


class TestServiceSupport:
    """Tests for metrics, failure merging and construction."""

    def test_decode_recorded_in_metrics(self) -> None:
        get_registry().reset()
        service = LabelDecodingService(reader_factory=ReaderFactory())

        asyncio.run(service.decode(_png(), "label.png", "image/png"))

        counter = get_registry().counter(DECODES)
        labels = {"strategy": "symbol", "outcome": "success", "error_kind": None}
        assert counter.get(labels) == 1.0

    def test_combine_failures(self) -> None:
        merged = combine_failures(
            Failure(ErrorKind.SYMBOL_NOT_FOUND, "no barcode"),
            Failure(ErrorKind.INVALID_MODEL_CODE, "bad model"),
        )
        assert merged.kind == ErrorKind.INVALID_MODEL_CODE
        assert merged.message == "no barcode; OCR fallback failed: bad model"

    def test_build_without_api_key(self) -> None:
        service = build_decoding_service(Settings())
        assert service.ocr is None
        assert not service.ocr_available

    def test_build_with_api_key(self) -> None:
        settings = Settings(openai_api_key="sk-test", ocr_timeout_seconds=12.5)
        service = build_decoding_service(settings)
        assert isinstance(service.ocr, OpenAIAnalyzer)
        assert service.ocr.timeout == 12.5
        assert service.ocr_timeout == 12.5
