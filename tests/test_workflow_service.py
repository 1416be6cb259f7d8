from __future__ import annotations

from dataclasses import replace

import pytest
import requests
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.controllers.occupancy_controller import router as occupancy_router
from backend.domain.errors import ExternalServiceFailure
from backend.repository.memory_repository import InMemoryStore
from backend.services import workflow_service as workflow_module
from backend.services.workflow_service import WorkflowClient, WorkflowService
from backend.utils.config import get_settings


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


SUCCESS_BODY = {
    "workflow_run_id": "run-123",
    "task_id": "task-9",
    "data": {"status": "succeeded", "outputs": {"notified": True}},
}


def _build_service(api_url: str | None = "https://workflow.test/v1", api_key: str | None = "wf-key"):
    settings = replace(
        get_settings(),
        workflow_api_url=api_url,
        workflow_api_key=api_key,
        workflow_user="minpaku-test",
    )
    store = InMemoryStore()
    store.seed_demo_data()
    return WorkflowService(store=store, client=WorkflowClient(settings), settings=settings)


def test_trigger_posts_blocking_run(monkeypatch):
    captured = {}

    def fake_post(url, headers, json, timeout):
        captured.update(url=url, headers=headers, body=json)
        return FakeResponse(payload=SUCCESS_BODY)

    monkeypatch.setattr(workflow_module.requests, "post", fake_post)

    run = _build_service().trigger(has_discrepancy=True, reserved_count=4, detected_count=6, booking_name="田中太郎")

    assert run.workflow_run_id == "run-123"
    assert run.status == "succeeded"
    assert run.outputs == {"notified": True}
    assert captured["url"] == "https://workflow.test/v1/workflows/run"
    assert captured["headers"]["Authorization"] == "Bearer wf-key"
    assert captured["body"] == {
        "inputs": {
            "hasDiscrepancy": True,
            "reservedCount": 4,
            "detectedCount": 6,
            "bookingName": "田中太郎",
        },
        "response_mode": "blocking",
        "user": "minpaku-test",
    }


def test_booking_id_supplies_guest_name(monkeypatch):
    captured = {}

    def fake_post(url, headers, json, timeout):
        captured["inputs"] = json["inputs"]
        return FakeResponse(payload=SUCCESS_BODY)

    monkeypatch.setattr(workflow_module.requests, "post", fake_post)
    app = FastAPI()
    app.include_router(occupancy_router)
    app.state.workflow_service = _build_service()
    client = TestClient(app)

    body = {"has_discrepancy": False, "reserved_count": 3, "detected_count": 3, "booking_id": 3}
    response = client.post("/occupancy/workflow", json=body)

    assert response.status_code == 200
    assert captured["inputs"]["bookingName"] == "山田次郎"
    assert captured["inputs"]["hasDiscrepancy"] is False


def test_explicit_booking_name_wins_over_booking_id(monkeypatch):
    captured = {}

    def fake_post(url, headers, json, timeout):
        captured["inputs"] = json["inputs"]
        return FakeResponse(payload=SUCCESS_BODY)

    monkeypatch.setattr(workflow_module.requests, "post", fake_post)

    _build_service().trigger(
        has_discrepancy=True,
        reserved_count=4,
        detected_count=5,
        booking_name="Front desk",
        booking_id=1,
    )

    assert captured["inputs"]["bookingName"] == "Front desk"


def test_unknown_booking_id_is_not_found_before_calling_out(monkeypatch):
    def fail_post(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(workflow_module.requests, "post", fail_post)
    app = FastAPI()
    app.include_router(occupancy_router)
    app.state.workflow_service = _build_service()
    client = TestClient(app)

    body = {"has_discrepancy": True, "reserved_count": 2, "detected_count": 3, "booking_id": 404}
    response = client.post("/occupancy/workflow", json=body)

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "BookingNotFound"


def test_unconfigured_client_fails_without_calling_out(monkeypatch):
    def fail_post(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(workflow_module.requests, "post", fail_post)

    with pytest.raises(ExternalServiceFailure):
        _build_service(api_key=None).trigger(has_discrepancy=False, reserved_count=2, detected_count=1)


@pytest.mark.parametrize(
    "response_or_error",
    [
        FakeResponse(status_code=500, text="boom"),
        FakeResponse(status_code=200, text="<html>"),
        FakeResponse(status_code=200, payload=["unexpected"], text="[]"),
        requests.exceptions.ConnectionError("refused"),
    ],
)
def test_failures_become_external_service_failure(monkeypatch, response_or_error):
    def fake_post(*args, **kwargs):
        if isinstance(response_or_error, Exception):
            raise response_or_error
        return response_or_error

    monkeypatch.setattr(workflow_module.requests, "post", fake_post)

    with pytest.raises(ExternalServiceFailure) as exc_info:
        _build_service().trigger(has_discrepancy=True, reserved_count=2, detected_count=3)
    assert exc_info.value.stage == "forwarding"


def test_workflow_endpoint_maps_failures_to_bad_gateway(monkeypatch):
    monkeypatch.setattr(
        workflow_module.requests,
        "post",
        lambda *args, **kwargs: FakeResponse(status_code=502, text="upstream down"),
    )
    app = FastAPI()
    app.include_router(occupancy_router)
    app.state.workflow_service = _build_service()
    client = TestClient(app)

    body = {"has_discrepancy": True, "reserved_count": 2, "detected_count": 3}
    response = client.post("/occupancy/workflow", json=body)

    assert response.status_code == 502
    assert response.json()["detail"]["diagnostic"] == "upstream down"


def test_workflow_endpoint_returns_run(monkeypatch):
    monkeypatch.setattr(
        workflow_module.requests,
        "post",
        lambda *args, **kwargs: FakeResponse(payload=SUCCESS_BODY),
    )
    app = FastAPI()
    app.include_router(occupancy_router)
    app.state.workflow_service = _build_service()
    client = TestClient(app)

    response = client.post(
        "/occupancy/workflow",
        json={"has_discrepancy": False, "reserved_count": 2, "detected_count": 2},
    )

    assert response.status_code == 200
    assert response.json()["workflow_run_id"] == "run-123"
    assert response.json()["status"] == "succeeded"
