"""Record gateway talking to the web application's admin API."""

from __future__ import annotations

import os
from typing import Any, List, Mapping, Optional

import requests

from orthotiles.core.errors import GatewayError, RecordNotFound
from orthotiles.core.models import DroneImageRecord, camel_case_updates
from orthotiles.logging import get_logger

from .base import ImageRecordGateway

LOGGER = get_logger(__name__)

COLLECTION_PATH = "/api/admin/drone-images"


class HttpImageGateway(ImageRecordGateway):
    """Thin client for ``/api/admin/drone-images``."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        if token:
            authorization = token if token.lower().startswith("bearer ") else f"Bearer {token}"
            self._session.headers.update({"Authorization": authorization})

    @classmethod
    def from_env(
        cls,
        base_url: str,
        *,
        token_var: str = "ORTHOTILES_API_TOKEN",
        **kwargs: Any,
    ) -> "HttpImageGateway":
        return cls(base_url, token=os.getenv(token_var), **kwargs)

    def get_image(self, image_id: int) -> Optional[DroneImageRecord]:
        for record in self.list_images():
            if record.id == image_id:
                return record
        return None

    def list_images(self) -> List[DroneImageRecord]:
        url = f"{self._base_url}{COLLECTION_PATH}"
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise GatewayError(f"Failed to list drone images from {url}: {exc}") from exc
        if response.status_code != 200:
            raise GatewayError(f"Failed to list drone images from {url}: {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise GatewayError(f"Drone image listing from {url} is not JSON") from exc
        if not isinstance(payload, list):
            raise GatewayError(f"Unexpected drone image listing from {url}")
        records = [DroneImageRecord.from_mapping(item) for item in payload]
        return sorted(records, key=lambda record: record.id)

    def list_images_needing_tiles(self) -> List[DroneImageRecord]:
        return [record for record in self.list_images() if not record.has_tiles]

    def update_image(self, image_id: int, updates: Mapping[str, Any]) -> DroneImageRecord:
        url = f"{self._base_url}{COLLECTION_PATH}/{image_id}"
        body = camel_case_updates(updates)
        try:
            response = self._session.put(url, json=body, timeout=self._timeout)
        except requests.RequestException as exc:
            raise GatewayError(f"Failed to update drone image {image_id}: {exc}") from exc
        if response.status_code == 404:
            raise RecordNotFound(f"Drone image {image_id} not found")
        if not 200 <= response.status_code < 300:
            raise GatewayError(f"Failed to update drone image {image_id}: {response.status_code} {response.text}")
        LOGGER.debug("record updated", extra={"image_id": image_id, "fields": sorted(body)})
        return DroneImageRecord.from_mapping(response.json())
