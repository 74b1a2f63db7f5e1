"""Configuration utilities for labelscan.

Settings come from three layers, later ones winning: built-in defaults, an
optional JSON config file, then environment variables.

Example config.json::

    {
        "ocr": {"model": "gpt-4o-mini", "timeout_seconds": 20},
        "logging": {"level": "DEBUG"},
        "tracing": {"enabled": true, "sample_rate": 0.25}
    }

The API key is never read from the file; set ``OPENAI_API_KEY``.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping

DEFAULT_CONFIG_PATH = "config.json"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_config(path: str | Path) -> Dict[str, Any]:
    """Load configuration from a JSON file.

    Args:
        path: Path to the JSON configuration file.

    Returns:
        A dictionary of configuration values.
    """
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the decode pipeline and its adapters."""

    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"
    ocr_timeout_seconds: float = 30.0
    ocr_min_confidence: float = 0.6
    log_level: str = "INFO"
    tracing_enabled: bool = False
    tracing_sample_rate: float = 1.0

    @property
    def ocr_available(self) -> bool:
        """The OCR fallback can only run with an API key."""
        return bool(self.openai_api_key.strip())


def _as_float(name: str, raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _as_log_level(name: str, raw: Any) -> str:
    level = str(raw).strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"{name} must be one of {', '.join(LOG_LEVELS)}, got {raw!r}")
    return level


def _as_bool(name: str, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _from_file(settings: Settings, config: Mapping[str, Any]) -> Settings:
    ocr = config.get("ocr", {}) or {}
    logging_cfg = config.get("logging", {}) or {}
    tracing_cfg = config.get("tracing", {}) or {}
    updates: dict[str, Any] = {}
    if "model" in ocr:
        updates["openai_model"] = str(ocr["model"])
    if "base_url" in ocr:
        updates["openai_base_url"] = str(ocr["base_url"])
    if "timeout_seconds" in ocr:
        updates["ocr_timeout_seconds"] = _as_float("ocr.timeout_seconds", ocr["timeout_seconds"])
    if "min_confidence" in ocr:
        updates["ocr_min_confidence"] = _as_float("ocr.min_confidence", ocr["min_confidence"])
    if "level" in logging_cfg:
        updates["log_level"] = _as_log_level("logging.level", logging_cfg["level"])
    if "enabled" in tracing_cfg:
        updates["tracing_enabled"] = _as_bool("tracing.enabled", tracing_cfg["enabled"])
    if "sample_rate" in tracing_cfg:
        updates["tracing_sample_rate"] = _as_float(
            "tracing.sample_rate", tracing_cfg["sample_rate"]
        )
    return replace(settings, **updates)


def _from_env(settings: Settings, environ: Mapping[str, str]) -> Settings:
    updates: dict[str, Any] = {}
    if environ.get("OPENAI_API_KEY"):
        updates["openai_api_key"] = environ["OPENAI_API_KEY"]
    if environ.get("OPENAI_MODEL"):
        updates["openai_model"] = environ["OPENAI_MODEL"]
    if environ.get("OPENAI_BASE_URL"):
        updates["openai_base_url"] = environ["OPENAI_BASE_URL"]
    if environ.get("LABELSCAN_OCR_TIMEOUT"):
        updates["ocr_timeout_seconds"] = _as_float(
            "LABELSCAN_OCR_TIMEOUT", environ["LABELSCAN_OCR_TIMEOUT"]
        )
    if environ.get("LABELSCAN_OCR_MIN_CONFIDENCE"):
        updates["ocr_min_confidence"] = _as_float(
            "LABELSCAN_OCR_MIN_CONFIDENCE", environ["LABELSCAN_OCR_MIN_CONFIDENCE"]
        )
    if environ.get("LABELSCAN_LOG_LEVEL"):
        updates["log_level"] = _as_log_level(
            "LABELSCAN_LOG_LEVEL", environ["LABELSCAN_LOG_LEVEL"]
        )
    if environ.get("LABELSCAN_TRACING"):
        updates["tracing_enabled"] = _as_bool("LABELSCAN_TRACING", environ["LABELSCAN_TRACING"])
    return replace(settings, **updates)


def load_settings(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Resolve settings from defaults, an optional JSON file and the environment.

    Args:
        config_path: JSON file to read. When None, ``config.json`` in the
            working directory is used if it exists.
        environ: Environment mapping, defaults to ``os.environ``.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
        ValueError: If a numeric, boolean or log level setting is invalid.
    """
    settings = Settings()
    if config_path is not None:
        settings = _from_file(settings, load_config(config_path))
    elif Path(DEFAULT_CONFIG_PATH).is_file():
        settings = _from_file(settings, load_config(DEFAULT_CONFIG_PATH))
    return _from_env(settings, os.environ if environ is None else environ)


__all__ = ["DEFAULT_CONFIG_PATH", "LOG_LEVELS", "Settings", "load_config", "load_settings"]
