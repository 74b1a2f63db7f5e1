"""Tests for the FastAPI label decoding endpoints."""

from __future__ import annotations

import io
from typing import Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from labelscan.app.api import app
from labelscan.app.dependencies import get_decoding_service
from labelscan.domain.models import (
    ErrorKind,
    Failure,
    Strategy,
    StructuredIdentifiers,
    Success,
)
from labelscan.infrastructure.observability.metrics import record_decode
from labelscan.services.label_decoding import LabelDecodingService

SUCCESS = Success(
    identifiers=StructuredIdentifiers(
        raw_code="1E3012804 HBJ04724", model_code="E3012804", asset_tag="HBJ04724"
    ),
    strategy=Strategy.SYMBOL,
    symbology="CODE_128",
)


def _png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), (255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def service() -> AsyncMock:
    mock = AsyncMock(spec=LabelDecodingService)
    mock.ocr_available = False
    mock.decode.return_value = SUCCESS
    return mock


@pytest.fixture
def client(service: AsyncMock) -> Iterator[TestClient]:
    app.dependency_overrides[get_decoding_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestDecodeEndpoint:
    """Tests for POST /decode."""

    def test_success_returns_identifiers(self, client: TestClient, service: AsyncMock) -> None:
        response = client.post(
            "/decode", files={"file": ("label.png", io.BytesIO(_png()), "image/png")}
        )

        assert response.status_code == 200
        assert response.json() == {
            "raw_code": "1E3012804 HBJ04724",
            "model_code": "E3012804",
            "asset_tag": "HBJ04724",
            "combined_code": "E3012804 HBJ04724",
            "strategy": "symbol",
            "symbology": "CODE_128",
            "ocr_diagnostics": None,
        }
        service.decode.assert_awaited_once()
        assert service.decode.await_args.kwargs == {
            "filename": "label.png",
            "content_type": "image/png",
        }

    def test_failure_returns_422(self, client: TestClient, service: AsyncMock) -> None:
        service.decode.return_value = Failure(
            ErrorKind.SYMBOL_NOT_FOUND, "No supported linear barcode found"
        )

        response = client.post(
            "/decode", files={"file": ("label.jpg", io.BytesIO(b"x"), "image/jpeg")}
        )

        assert response.status_code == 422
        assert response.json() == {
            "error_kind": "SymbolNotFound",
            "message": "No supported linear barcode found",
        }

    def test_octet_stream_accepted(self, client: TestClient) -> None:
        response = client.post(
            "/decode",
            files={"file": ("label", io.BytesIO(_png()), "application/octet-stream")},
        )
        assert response.status_code == 200

    def test_unsupported_content_type(self, client: TestClient, service: AsyncMock) -> None:
        response = client.post(
            "/decode", files={"file": ("label.gif", io.BytesIO(b"GIF89a"), "image/gif")}
        )

        assert response.status_code == 415
        assert "image/gif" in response.json()["detail"]
        service.decode.assert_not_called()

    def test_missing_file_is_rejected(self, client: TestClient) -> None:
        response = client.post("/decode")
        assert response.status_code == 422
        assert "detail" in response.json()


class TestRealService:
    """Tests running the real decoding service behind the API."""

    def test_unreadable_upload(self) -> None:
        app.dependency_overrides[get_decoding_service] = lambda: LabelDecodingService()
        try:
            response = TestClient(app).post(
                "/decode",
                files={"file": ("label.jpg", io.BytesIO(b"not a jpeg"), "image/jpeg")},
            )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 422
        assert response.json()["error_kind"] == "UnreadableImage"


class TestInfoEndpoints:
    """Tests for index, health and metrics endpoints."""

    def test_index(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert "/decode" in response.json()["message"]

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "ocr_available": False}

    def test_metrics(self, client: TestClient) -> None:
        record_decode("symbol", "success", None, 0.05)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "label_decodes_total" in response.text

    def test_cors_preflight(self, client: TestClient) -> None:
        response = client.options(
            "/decode",
            headers={
                "Origin": "https://inventory.example",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
