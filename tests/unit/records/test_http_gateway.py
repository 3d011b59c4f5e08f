from typing import Any, Dict, List, Optional

import pytest
import requests

from orthotiles.core.errors import GatewayError, RecordNotFound
from orthotiles.core.models import ProcessingStatus, RecordsConfig
from orthotiles.records import HttpImageGateway, build_gateway
from orthotiles.records.json_store import JsonFileImageGateway


RECORD = {
    "id": 7,
    "name": "Valley Meadows",
    "filePath": "/uploads/valley.tif",
    "northEastLat": "44.0",
    "northEastLng": "-110.0",
    "southWestLat": "43.0",
    "southWestLng": "-111.0",
    "hasTiles": False,
    "processingStatus": "failed",
}


class StubResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        return self._payload


class StubSession:
    def __init__(self, responses: List[StubResponse]) -> None:
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self._responses = responses
        self.error: Optional[Exception] = None

    def _respond(self, **call: Any) -> StubResponse:
        self.calls.append(call)
        if self.error is not None:
            raise self.error
        return self._responses.pop(0)

    def get(self, url: str, timeout: int) -> StubResponse:
        return self._respond(method="GET", url=url, timeout=timeout)

    def put(self, url: str, json: Dict[str, Any], timeout: int) -> StubResponse:
        return self._respond(method="PUT", url=url, json=json, timeout=timeout)


def test_lists_records_with_bearer_token() -> None:
    session = StubSession([StubResponse(200, [RECORD])])
    gateway = HttpImageGateway("http://maps.local/", token="secret", timeout=5, session=session)

    records = gateway.list_images_needing_tiles()

    assert [record.id for record in records] == [7]
    assert records[0].processing_status is ProcessingStatus.FAILED
    assert session.headers["Authorization"] == "Bearer secret"
    assert session.calls == [{"method": "GET", "url": "http://maps.local/api/admin/drone-images", "timeout": 5}]


def test_update_sends_camel_case_partial_fields() -> None:
    session = StubSession([StubResponse(200, {**RECORD, "hasTiles": True, "processingStatus": "complete"})])
    gateway = HttpImageGateway("http://maps.local", session=session)

    updated = gateway.update_image(7, {"has_tiles": True, "processing_status": ProcessingStatus.COMPLETE})

    assert updated.has_tiles is True
    call = session.calls[0]
    assert call["method"] == "PUT"
    assert call["url"] == "http://maps.local/api/admin/drone-images/7"
    assert call["json"] == {"hasTiles": True, "processingStatus": "complete"}
    assert "Authorization" not in session.headers


def test_not_found_update_raises_record_not_found() -> None:
    session = StubSession([StubResponse(404, {"message": "Drone image not found"})])

    with pytest.raises(RecordNotFound):
        HttpImageGateway("http://maps.local", session=session).update_image(7, {"has_tiles": True})


def test_server_errors_raise_gateway_error() -> None:
    session = StubSession([StubResponse(500, text="boom")])

    with pytest.raises(GatewayError):
        HttpImageGateway("http://maps.local", session=session).list_images()


def test_connection_errors_raise_gateway_error() -> None:
    session = StubSession([])
    session.error = requests.ConnectionError("refused")

    with pytest.raises(GatewayError):
        HttpImageGateway("http://maps.local", session=session).get_image(7)


def test_build_gateway_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORTHOTILES_API_TOKEN", "abc")

    http_gateway = build_gateway(RecordsConfig(backend="http", api_base_url="http://maps.local"))
    json_gateway = build_gateway(RecordsConfig(backend="json", path="records.json"))

    assert isinstance(http_gateway, HttpImageGateway)
    assert isinstance(json_gateway, JsonFileImageGateway)
    with pytest.raises(ValueError):
        build_gateway(RecordsConfig(backend="sqlite"))
    with pytest.raises(ValueError):
        build_gateway(RecordsConfig(backend="http"))
