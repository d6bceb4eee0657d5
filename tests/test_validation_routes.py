import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from shared.auth.jwt_handler import create_operator_token
from services.ticket_validation.main import app
from services.ticket_validation.models.domain import ScanOutcome, TicketState
from services.ticket_validation.routes.validation import (
    get_audit_log, get_ticket_store, get_token_codec,
)
from tests.conftest import make_ticket
from tests.fakes import FailingAuditLog


def _auth(role="scanner", email="puerta@example.com"):
    token = create_operator_token(str(uuid.uuid4()), role, email=email)
    return {"Authorization": f"Bearer {token}"}


def _bearer(claims):
    token = jwt.encode(claims, "test-jwt-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(codec, store, audit_log):
    app.dependency_overrides[get_token_codec] = lambda: codec
    app.dependency_overrides[get_ticket_store] = lambda: store
    app.dependency_overrides[get_audit_log] = lambda: audit_log
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _validate(client, token, event_id, headers=None, **scanner_info):
    return client.post(
        "/api/v1/tickets/validate",
        json={"qr_token": token, "event_id": event_id, "scanner_info": scanner_info},
        headers=headers or _auth(),
    )


def test_validate_valid_ticket(client, store, issue, event_id):
    ticket, token = issue(event_id=event_id, type_name="VIP Platino", event_name="Festival")

    response = _validate(client, token, event_id, device="zebra-01")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["scan_result"] == "valid"
    assert data["display_message"] == "✅ ENTRADA VIP VÁLIDA - Festival"
    assert data["ticket_info"]["id"] == ticket.id
    assert data["ticket_info"]["scanned_by"] == "puerta@example.com"
    assert data["audit_recorded"] is True
    assert store.tickets[ticket.id].state == TicketState.SCANNED


def test_validate_used_ticket_is_conflict(client, issue, event_id):
    _, token = issue(event_id=event_id)

    _validate(client, token, event_id)
    response = _validate(client, token, event_id)

    assert response.status_code == 409
    assert response.json()["scan_result"] == "used"
    assert response.json()["display_message"].startswith("❌ ENTRADA GENERAL YA UTILIZADA")


def test_validate_wrong_event(client, issue, event_id):
    _, token = issue(event_id=event_id)

    response = _validate(client, token, str(uuid.uuid4()))

    assert response.status_code == 400
    assert response.json()["scan_result"] == "wrong_event"
    assert response.json()["display_message"] == "🚫 QR NO VÁLIDO PARA ESTE EVENTO"


def test_validate_wrong_event_names_both_events(client, store, issue, event_id):
    _, token = issue(event_id=event_id, event_name="Festival")
    gate_ticket = store.add(make_ticket(event_name="Feria del Libro"))

    response = _validate(client, token, gate_ticket.event_id)

    data = response.json()
    assert response.status_code == 400
    assert data["ticket_info"]["event"]["name"] == "Festival"
    assert data["current_event"]["id"] == gate_ticket.event_id
    assert data["current_event"]["name"] == "Feria del Libro"


def test_validate_forged_token(client, event_id):
    response = _validate(client, "no.es.jwt", event_id)

    assert response.status_code == 400
    data = response.json()
    assert data["scan_result"] == "invalid"
    assert data["reason"] == "token_invalid"
    assert data["ticket_info"] is None


def test_validate_expired_ticket_message(client, issue, event_id):
    _, token = issue(event_id=event_id, state=TicketState.EXPIRED)

    response = _validate(client, token, event_id)

    assert response.status_code == 400
    assert response.json()["display_message"] == "❌ ENTRADA EXPIRADA"


def test_validate_store_failure_is_service_unavailable(client, store, issue, event_id):
    _, token = issue(event_id=event_id)

    async def broken_find(ticket_id):
        raise ConnectionError("postgres caído")

    store.find = broken_find

    response = _validate(client, token, event_id)

    assert response.status_code == 503
    assert response.json()["scan_result"] == "system_error"


def test_validate_reports_degraded_audit(codec, store, issue, event_id):
    _, token = issue(event_id=event_id)
    app.dependency_overrides[get_token_codec] = lambda: codec
    app.dependency_overrides[get_ticket_store] = lambda: store
    app.dependency_overrides[get_audit_log] = lambda: FailingAuditLog()
    try:
        with TestClient(app) as client:
            response = _validate(client, token, event_id)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["audit_recorded"] is False


def test_validate_records_scanner_metadata(client, audit_log, issue, event_id):
    _, token = issue(event_id=event_id)

    _validate(client, token, event_id, user="Juan", device="zebra-01", location="Acceso B")

    info = audit_log.records[0].scanner_info
    assert info.user == "Juan"
    assert info.device == "zebra-01"
    assert info.location == "Acceso B"
    assert info.ip_address is not None


def test_validate_rejects_malformed_body(client):
    response = client.post(
        "/api/v1/tickets/validate",
        json={"qr_token": "", "event_id": "no-es-uuid"},
        headers=_auth(),
    )

    assert response.status_code == 422


def test_validate_requires_authentication(client, event_id):
    response = client.post(
        "/api/v1/tickets/validate",
        json={"qr_token": "x.y.z", "event_id": event_id},
    )

    assert response.status_code in (401, 403)


def test_validate_rejects_invalid_operator_token(client, event_id):
    response = _validate(client, "x.y.z", event_id, headers={"Authorization": "Bearer basura"})

    assert response.status_code == 401


def test_validate_requires_scanner_role(client, event_id):
    response = _validate(
        client, "x.y.z", event_id,
        headers=_bearer({"sub": "cliente-1", "role": "user", "type": "access"}),
    )

    assert response.status_code == 403


def test_validate_rejects_non_access_token(client, event_id):
    response = _validate(
        client, "x.y.z", event_id,
        headers=_bearer({"sub": "op-1", "role": "scanner", "type": "refresh"}),
    )

    assert response.status_code == 401


def test_validate_rejects_expired_operator_token(client, event_id):
    token = create_operator_token("op-1", "scanner", expires_delta=timedelta(minutes=-1))

    response = _validate(client, "x.y.z", event_id, headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_get_ticket(client, issue, event_id):
    ticket, _ = issue(event_id=event_id)

    response = client.get(f"/api/v1/tickets/{ticket.id}", headers=_auth(role="coordinator"))

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == ticket.id
    assert data["status"] == "generated"
    assert data["event"]["id"] == event_id


def test_get_unknown_ticket_is_not_found(client):
    response = client.get(f"/api/v1/tickets/{uuid.uuid4()}", headers=_auth())

    assert response.status_code == 404


def test_expire_ticket(client, store, issue, event_id):
    ticket, _ = issue(event_id=event_id)

    response = client.put(f"/api/v1/tickets/{ticket.id}/expire", headers=_auth(role="admin"))

    assert response.status_code == 200
    assert response.json()["ticket"]["status"] == "expired"
    assert store.tickets[ticket.id].state == TicketState.EXPIRED


def test_expire_scanned_ticket_is_conflict(client, store, issue, event_id):
    ticket, _ = issue(event_id=event_id, state=TicketState.SCANNED)

    response = client.put(f"/api/v1/tickets/{ticket.id}/expire", headers=_auth(role="admin"))

    assert response.status_code == 409
    assert store.tickets[ticket.id].state == TicketState.SCANNED


def test_expire_twice_is_conflict(client, issue, event_id):
    ticket, _ = issue(event_id=event_id)
    headers = _auth(role="admin")

    client.put(f"/api/v1/tickets/{ticket.id}/expire", headers=headers)
    response = client.put(f"/api/v1/tickets/{ticket.id}/expire", headers=headers)

    assert response.status_code == 409


def test_expire_unknown_ticket_is_not_found(client):
    response = client.put(f"/api/v1/tickets/{uuid.uuid4()}/expire", headers=_auth(role="admin"))

    assert response.status_code == 404


def test_expire_requires_admin(client, issue, event_id):
    ticket, _ = issue(event_id=event_id)

    response = client.put(f"/api/v1/tickets/{ticket.id}/expire", headers=_auth(role="scanner"))

    assert response.status_code == 403


def test_scan_logs_are_newest_first_and_paginated(client, issue, event_id):
    _, token = issue(event_id=event_id)
    _validate(client, "basura", event_id)
    _validate(client, token, event_id)
    _validate(client, token, event_id)

    response = client.get(
        f"/api/v1/tickets/logs/{event_id}",
        params={"limit": 2},
        headers=_auth(role="admin"),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["pagination"] == {"total": 3, "limit": 2, "offset": 0, "total_pages": 2}
    assert len(data["data"]) == 2
    timestamps = [entry["timestamp"] for entry in data["data"]]
    assert timestamps == sorted(timestamps, reverse=True)


def test_scan_logs_filter_by_result(client, issue, event_id):
    _, token = issue(event_id=event_id)
    _validate(client, token, event_id)
    _validate(client, token, event_id)

    response = client.get(
        f"/api/v1/tickets/logs/{event_id}",
        params={"result": ScanOutcome.USED.value},
        headers=_auth(role="admin"),
    )

    data = response.json()
    assert data["pagination"]["total"] == 1
    assert data["data"][0]["scan_result"] == "used"


def test_scan_logs_filter_by_date_range(client, issue, event_id):
    _, token = issue(event_id=event_id)
    _validate(client, token, event_id)
    _validate(client, token, event_id)
    now = datetime.now(timezone.utc)

    outside = client.get(
        f"/api/v1/tickets/logs/{event_id}",
        params={"startDate": "2000-01-01T00:00:00Z", "endDate": "2000-01-02T00:00:00Z"},
        headers=_auth(role="admin"),
    )
    inside = client.get(
        f"/api/v1/tickets/logs/{event_id}",
        params={
            "startDate": (now - timedelta(hours=1)).isoformat(),
            "endDate": (now + timedelta(hours=1)).isoformat(),
        },
        headers=_auth(role="admin"),
    )

    assert outside.status_code == 200
    assert outside.json()["pagination"]["total"] == 0
    assert outside.json()["data"] == []
    assert inside.json()["pagination"]["total"] == 2


def test_scan_logs_open_ended_range(client, issue, event_id):
    _, token = issue(event_id=event_id)
    _validate(client, token, event_id)

    response = client.get(
        f"/api/v1/tickets/logs/{event_id}",
        params={"startDate": "2000-01-01T00:00:00"},
        headers=_auth(role="admin"),
    )

    assert response.json()["pagination"]["total"] == 1


def test_scan_logs_reject_inverted_range(client, issue, event_id):
    issue(event_id=event_id)

    response = client.get(
        f"/api/v1/tickets/logs/{event_id}",
        params={"startDate": "2000-01-02T00:00:00Z", "endDate": "2000-01-01T00:00:00Z"},
        headers=_auth(role="admin"),
    )

    assert response.status_code == 400


def test_scan_logs_unknown_event_is_not_found(client):
    response = client.get(f"/api/v1/tickets/logs/{uuid.uuid4()}", headers=_auth(role="admin"))

    assert response.status_code == 404
    assert response.json()["detail"] == "Evento no encontrado"


def test_scan_logs_require_admin(client, event_id):
    response = client.get(f"/api/v1/tickets/logs/{event_id}", headers=_auth(role="scanner"))

    assert response.status_code == 403
