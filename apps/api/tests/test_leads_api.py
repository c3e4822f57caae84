from __future__ import annotations

import json
import logging
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leadflow.core.auth import AuthUser, get_current_user
from leadflow.core.config import get_settings
from leadflow.core.database import get_db
from leadflow.main import app
from leadflow.pipeline.models import Lead, LeadDocument
from leadflow.platform.cache.backend import InMemoryCacheBackend
from leadflow.platform.cache.service import get_cache_backend
from leadflow.platform.storage.object_store import LocalObjectStore, get_object_store


@pytest.fixture()
def client(
    db_session: Session,
    seeded,
    tmp_path: Path,
) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    actors = {
        "admin": AuthUser(user_id=seeded.admin_id, vendor_id=1, roles=["admin"]),
        "sales": AuthUser(user_id=seeded.sales_id, vendor_id=1, roles=["sales"]),
        "outsider": AuthUser(user_id=seeded.outsider_id, vendor_id=2, roles=["sales"]),
        "metrics": AuthUser(user_id=seeded.admin_id, vendor_id=1, roles=["system.metrics.read"]),
    }
    state = {"current": "admin"}

    def override_get_current_user() -> AuthUser:
        return actors[state["current"]]

    def set_actor(name: str) -> None:
        state["current"] = name

    object_store = LocalObjectStore(tmp_path)
    cache = InMemoryCacheBackend()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_cache_backend] = lambda: cache
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def _create_lead(test_client: TestClient, **overrides: object) -> dict:
    payload = {"firstname": "Kiran", "lastname": "Rao", "contact_no": "9000000000", **overrides}
    response = test_client.post("/api/leads", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]["lead"]


def test_health_and_me(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    assert test_client.get("/health").json()["status"] == "ok"
    me = test_client.get("/me").json()
    assert me == {"user_id": 1, "vendor_id": 1, "roles": ["admin"]}


def test_booking_stage_over_multipart(
    client: tuple[TestClient, Callable[[str], None]], db_session: Session, seeded
) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.post(
        f"/api/leads/{lead['id']}/stages/booking",
        data={"booking_amount": "50000", "total_project_amount": "150000", "remark": "advance received"},
        files=[
            ("final_documents", ("plan.pdf", b"%PDF", "application/pdf")),
            ("final_documents", ("elevation.pdf", b"%PDF", "application/pdf")),
        ],
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Booking stage completed with 2 final documents uploaded. Remark: advance received."
    assert body["data"]["status"] == {"from": 101, "to": 104}
    assert len(body["data"]["documents"]) == 2
    assert db_session.scalar(select(func.count()).select_from(LeadDocument)) == 2


def test_stage_payload_can_arrive_as_json_field(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.post(
        f"/api/leads/{lead['id']}/stages/request-tech-check",
        data={"payload": json.dumps({"assign_to": 3, "remark": "docs verified"})},
    )

    assert response.status_code == 200, response.text
    assert response.json()["data"]["status"] == {"from": 101, "to": 108}


def test_validation_error_envelope(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.post(
        f"/api/leads/{lead['id']}/stages/booking",
        data={"booking_amount": "100"},
        headers={"X-Correlation-Id": "corr-booking-1"},
    )

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "code": "validation_error",
        "message": "final_documents is required",
        "correlation_id": "corr-booking-1",
    }


def test_cross_vendor_access_is_forbidden(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    lead = _create_lead(test_client)

    set_actor("outsider")
    response = test_client.get(f"/api/leads/{lead['id']}/readiness/dispatch")

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_configuration_error_is_unprocessable(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("outsider")

    response = test_client.post("/api/leads", json={"firstname": "Nope"})

    assert response.status_code == 422
    assert response.json()["message"] == "status type 'Type 1' not configured for vendor 2"


def test_missing_lead_is_not_found(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    response = test_client.post("/api/leads/9999/move/completed", json={"remark": "done"})

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_stage_listing_and_readiness(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    assigned = _create_lead(test_client, assign_to=2)
    _create_lead(test_client)

    admin_page = test_client.get("/api/leads/stages/open", params={"limit": 1})
    assert admin_page.status_code == 200
    assert admin_page.json()["total"] == 2
    assert len(admin_page.json()["data"]) == 1

    set_actor("sales")
    sales_page = test_client.get("/api/leads/stages/open").json()
    assert sales_page["total"] == 1
    assert sales_page["data"][0]["id"] == assigned["id"]

    report = test_client.get(f"/api/leads/{assigned['id']}/readiness/payment").json()
    assert report["ready"] is False
    assert report["reasons"]["has_total_project_amount"] is False

    assert test_client.get("/api/leads/stages/nowhere").status_code == 400
    assert test_client.get(f"/api/leads/{assigned['id']}/readiness/nowhere").status_code == 400


def test_production_readiness_and_move_to_under_installation(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    report = test_client.get(f"/api/leads/{lead['id']}/readiness/production").json()
    assert report["ready"] is False
    assert report["reasons"]["missing_items"] == ["Carcass", "Shutter", "Stock Hardware"]

    moved = test_client.post(f"/api/leads/{lead['id']}/move/under-installation", json={"remark": "team on site"})
    assert moved.status_code == 200, moved.text
    assert moved.json()["message"] == "Lead moved to under installation. Remark: team on site."

    backward = test_client.post(f"/api/leads/{lead['id']}/move/ready-to-dispatch")
    assert backward.status_code == 400


def test_tasks_activity_status_and_dashboard(client: tuple[TestClient, Callable[[str], None]], db_session: Session) -> None:
    test_client, set_actor = client
    lead = _create_lead(test_client)

    assigned = test_client.post(
        f"/api/leads/{lead['id']}/tasks/final-measurement",
        json={"task_type": "Final Measurement", "due_date": "2026-10-20T09:00:00Z", "user_id": 2},
    )
    assert assigned.status_code == 201, assigned.text
    assert assigned.json()["data"]["status"] == {"from": 101, "to": 105}

    on_hold = test_client.post(
        f"/api/leads/{lead['id']}/activity-status",
        json={"activity_status": "onHold", "remark": "site locked", "due_date": "2026-10-25T09:00:00Z"},
    )
    assert on_hold.status_code == 200
    assert db_session.get(Lead, lead["id"]).activity_status == "onHold"

    reverted = test_client.post(f"/api/leads/{lead['id']}/activity-status/revert", json={"remark": "site open"})
    assert reverted.status_code == 200

    set_actor("sales")
    open_tasks = test_client.get("/api/tasks/open").json()
    assert [task["task_type"] for task in open_tasks] == ["Final Measurement"]

    completed = test_client.post(f"/api/tasks/{open_tasks[0]['id']}/complete")
    assert completed.json()["status"] == "completed"

    counts = test_client.get("/api/dashboard/lead-status-wise-counts", params={"mine": "false"}).json()
    assert counts["mode"] == "overall_leads"
    assert counts["data"]["stages"]["final-site-measurement-stage"] == 1
    assert test_client.get("/api/dashboard/tasks").json()["success"] is True


def test_document_urls_are_signed(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)
    test_client.post(
        f"/api/leads/{lead['id']}/stages/client-documentation",
        files=[
            ("ppt_files", ("id proof.pdf", b"%PDF", "application/pdf")),
            ("pytha_files", ("kitchen.pyo", b"pytha", "application/octet-stream")),
        ],
    )

    response = test_client.get(f"/api/leads/{lead['id']}/documents", params={"tag": "Type 11"})

    assert response.status_code == 200
    [document] = response.json()["data"]
    assert document["doc_og_name"] == "id proof.pdf"
    assert document["tech_check_status"] == "pending"
    assert document["signed_url"].startswith("file://")

    pytha = test_client.get(f"/api/leads/{lead['id']}/documents", params={"tag": "Type 12"}).json()["data"]
    assert [item["doc_og_name"] for item in pytha] == ["kitchen.pyo"]


def test_correlation_id_returned_in_header(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    generated = test_client.get("/api/leads/9999/readiness/dispatch")
    assert generated.headers.get("x-correlation-id")
    assert generated.json()["correlation_id"] == generated.headers["x-correlation-id"]

    provided = test_client.get("/api/leads/9999/readiness/dispatch", headers={"X-Correlation-Id": "abc-123"})
    assert provided.headers.get("x-correlation-id") == "abc-123"
    assert provided.json()["correlation_id"] == "abc-123"


def test_logs_include_correlation_id_for_http(
    client: tuple[TestClient, Callable[[str], None]], caplog: pytest.LogCaptureFixture
) -> None:
    test_client, _ = client
    caplog.set_level(logging.INFO)

    response = test_client.get("/api/leads/9999/readiness/dispatch", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [r for r in caplog.records if r.name == "leadflow.request" and r.getMessage() == "http.request"]
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/leads/{id}/readiness/dispatch"
        and getattr(record, "status_code", None) == 404
        for record in records
    )


def test_metrics_endpoint_hidden_unless_enabled(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    assert test_client.get("/metrics").status_code == 404


def test_metrics_endpoint_requires_permission(
    client: tuple[TestClient, Callable[[str], None]], monkeypatch: pytest.MonkeyPatch
) -> None:
    test_client, set_actor = client
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()

    assert test_client.get("/metrics").status_code == 403

    set_actor("metrics")
    response = test_client.get("/metrics")
    assert response.status_code == 200
    assert "stage_transitions_total" in response.text
