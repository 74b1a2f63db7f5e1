"""Shared FastAPI dependencies for the labelscan HTTP adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from labelscan.app.config import Settings, load_settings
from labelscan.services.label_decoding import (
    LabelDecodingService,
    build_decoding_service,
)

__all__ = [
    "close_decoding_services",
    "get_decoding_service",
    "get_settings",
    "DecodingServiceDep",
    "SettingsDep",
]

_services: dict[Settings, LabelDecodingService] = {}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Resolve settings once per process."""
    return load_settings()


def get_decoding_service(
    settings: Settings = Depends(get_settings),
) -> LabelDecodingService:
    """Return the decoding service for these settings, building it on first use."""
    service = _services.get(settings)
    if service is None:
        service = _services[settings] = build_decoding_service(settings)
    return service


async def close_decoding_services() -> None:
    """Close the OCR clients held by cached services."""
    services = list(_services.values())
    _services.clear()
    for service in services:
        await service.close()


# Annotated dependency types
SettingsDep = Annotated[Settings, Depends(get_settings)]
DecodingServiceDep = Annotated[LabelDecodingService, Depends(get_decoding_service)]
