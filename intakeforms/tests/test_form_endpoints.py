from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from intakeforms import main  # noqa: E402
from intakeforms.form_store import FormStore  # noqa: E402
from intakeforms.ticket_client import TicketBackendClient  # noqa: E402


VALID_APPEAL_ANSWERS = {
    "banId": "ABC123",
    "email": "player@example.com",
    "why": "My account was shared with a friend who broke the rules.",
}


@pytest.fixture
def store(tmp_path: Path) -> FormStore:
    return FormStore(root=tmp_path)


@pytest.fixture
def client(store):
    with patch.object(main, "form_store", store), patch.object(
        main, "ticket_client", TicketBackendClient(base_url="")
    ):
        yield TestClient(main.app)


def _ticket_form() -> dict:
    return {
        "fields": [
            {"id": "kind", "type": "dropdown", "label": "Kind", "options": ["Crash", "Other"], "required": True,
             "optionSectionMapping": {"Crash": "crash"}},
            {"id": "log", "type": "textarea", "label": "Crash log", "required": True, "sectionId": "crash"},
        ],
        "sections": [{"id": "crash", "title": "Crash details", "hideByDefault": True}],
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_default_appeal_form_is_served(client):
    response = client.get("/api/forms/appeal/ban")
    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "default"
    assert body["definition"]["fields"][0]["id"] == "why"


def test_missing_ticket_form_is_404(client):
    assert client.get("/api/forms/ticket/bug").status_code == 404


def test_builder_operations_persist(client):
    assert client.put("/api/forms/ticket/bug", json=_ticket_form()).status_code == 200

    response = client.post(
        "/api/forms/ticket/bug/fields",
        json={"field": {"id": "notes", "type": "text", "label": "Notes"}, "index": 0},
    )
    assert response.status_code == 200
    fields = {item["id"]: item for item in response.json()["definition"]["fields"]}
    assert fields["notes"]["order"] == 0
    assert fields["kind"]["order"] == 1

    response = client.post(
        "/api/forms/ticket/bug/fields/transfer",
        json={"field_id": "notes", "from_section_id": None, "to_section_id": "crash"},
    )
    assert response.status_code == 200

    response = client.delete("/api/forms/ticket/bug/sections/crash")
    ids = [item["id"] for item in response.json()["definition"]["fields"]]
    assert ids == ["kind"]

    response = client.post("/api/forms/ticket/bug/fields/move", json={"from_index": 0, "to_index": 4})
    assert response.status_code == 400


def test_visibility_and_validation_follow_answers(client):
    client.put("/api/forms/ticket/bug", json=_ticket_form())

    hidden = client.post("/api/forms/ticket/bug/visibility", json={"answers": {"kind": "Other"}}).json()
    assert hidden == {"visibleSectionIds": [], "visibleFieldIds": ["kind"]}

    result = client.post("/api/forms/ticket/bug/validate", json={"answers": {"kind": "Other"}}).json()
    assert result == {"valid": True, "issues": []}

    result = client.post("/api/forms/ticket/bug/validate", json={"answers": {"kind": "Crash", "log": "short"}}).json()
    assert result["valid"] is False
    assert result["issues"][0]["fieldId"] == "log"
    assert result["issues"][0]["kind"] == "min_length"


def test_appeal_submission_is_rejected_with_issues(client):
    response = client.post("/api/appeals", json={"punishment_type": "ban", "answers": {"banId": "1"}})

    assert response.status_code == 422
    field_ids = {issue["fieldId"] for issue in response.json()["detail"]["issues"]}
    assert field_ids == {"banId", "email", "why"}


def test_appeal_submission_without_backend_returns_payload(client):
    response = client.post(
        "/api/appeals",
        json={"punishment_type": "ban", "player_uuid": "uuid-1", "answers": VALID_APPEAL_ANSWERS},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["forwarded"] is False
    assert body["backend"] is None
    assert body["payload"]["punishmentId"] == "ABC123"
    assert body["payload"]["reason"] == VALID_APPEAL_ANSWERS["why"]


def test_ticket_submission_is_forwarded(store):
    store.save_form("ticket", "bug", _ticket_form())
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "received"})

    backend = TicketBackendClient(base_url="https://tickets.example.com", transport=httpx.MockTransport(handler))
    with patch.object(main, "form_store", store), patch.object(main, "ticket_client", backend):
        response = TestClient(main.app).post(
            "/api/tickets/T-9/submit",
            json={"ticket_type": "bug_report", "subject": "Crash on join", "answers": {"kind": "Other"}},
        )

    assert response.status_code == 200
    assert response.json()["forwarded"] is True
    assert response.json()["backend"] == {"status": "received"}
    assert seen[0].url.path == "/tickets/T-9/submit"
    assert json.loads(seen[0].content)["formData"] == {"kind": "Other"}


def test_backend_failure_maps_to_502(store):
    store.save_form("ticket", "bug", _ticket_form())
    backend = TicketBackendClient(
        base_url="https://tickets.example.com",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="down")),
    )
    with patch.object(main, "form_store", store), patch.object(main, "ticket_client", backend):
        response = TestClient(main.app).post(
            "/api/tickets/T-9/submit",
            json={"ticket_type": "bug", "answers": {"kind": "Other"}},
        )

    assert response.status_code == 502
