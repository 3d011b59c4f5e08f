"""Drone image record gateways."""

from __future__ import annotations

from pathlib import Path

from orthotiles.core.models import RecordsConfig

from .base import ImageRecordGateway
from .http import HttpImageGateway
from .json_store import JsonFileImageGateway
from .memory import InMemoryImageGateway

__all__ = [
    "HttpImageGateway",
    "ImageRecordGateway",
    "InMemoryImageGateway",
    "JsonFileImageGateway",
    "build_gateway",
]


def build_gateway(config: RecordsConfig) -> ImageRecordGateway:
    """Return the gateway selected by ``config.backend``."""

    backend = config.backend.lower()
    if backend == "json":
        return JsonFileImageGateway(Path(config.path))
    if backend == "http":
        if not config.api_base_url:
            raise ValueError("records.api_base_url is required for the http backend")
        return HttpImageGateway.from_env(
            config.api_base_url,
            token_var=config.api_token_env,
            timeout=config.timeout_seconds,
        )
    raise ValueError(f"Unsupported records backend: {config.backend}")
