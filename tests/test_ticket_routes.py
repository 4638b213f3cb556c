from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from conftest import make_ticket

from ats_verify.dependencies import tickets as ticket_deps
from ats_verify.main import create_app
from ats_verify.tickets.errors import (
    DuplicateTicketError,
    InvalidTicketTransitionError,
    TicketConflictError,
    TicketNotFoundError,
    TicketPermissionError,
)
from ats_verify.tickets.models import RejectionReason, TicketAuditEntry, TicketField
from ats_verify.tickets.state import TicketStatus

ATS = {"Authorization": "Bearer ats-token"}
CUSTOMS = {"Authorization": "Bearer customs-token"}
MARKETPLACE = {"Authorization": "Bearer marketplace-token"}

CREATE_PAYLOAD = {
    "support_ticket_id": "TCK-001-0042",
    "iin": "900101300123",
    "full_name": "Aigerim Sadykova",
    "application_number": "4455",
    "document_number": "DOC-42",
    "rejection_reason": RejectionReason.IIN_MISMATCH.value,
    "priority": "high",
}


@pytest.fixture
def ticket_client():
    app = create_app()
    service = AsyncMock()
    service.ensure_may_attach = MagicMock()

    async def override_service():
        return service

    app.dependency_overrides[ticket_deps.get_ticket_service] = override_service

    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_ping_is_public(ticket_client):
    client, _ = ticket_client

    response = client.get("/api/v1/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_reports_database_ok(ticket_client):
    client, _ = ticket_client
    postgres = MagicMock()
    postgres.test_connection = AsyncMock(return_value=True)
    client.app.state.postgres = postgres

    response = client.get("/api/v1/ping/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}
    postgres.test_connection.assert_awaited_once()


def test_ready_fails_when_database_unreachable(ticket_client):
    client, _ = ticket_client
    postgres = MagicMock()
    postgres.test_connection = AsyncMock(side_effect=OSError("connection refused"))
    client.app.state.postgres = postgres

    response = client.get("/api/v1/ping/ready")

    assert response.status_code == 503
    assert response.json()["detail"] == "Database is unavailable"


def test_ready_fails_without_pool(ticket_client):
    client, _ = ticket_client

    response = client.get("/api/v1/ping/ready")

    assert response.status_code == 503


def test_secure_ping_requires_admin(ticket_client):
    client, _ = ticket_client

    assert client.get("/api/v1/ping/secure", headers=ATS).status_code == 403
    response = client.get("/api/v1/ping/secure", headers={"Authorization": "Bearer admin-token"})
    assert response.json() == {"status": "ok", "user": "admin", "role": "admin"}


def test_ticket_routes_require_token(ticket_client):
    client, _ = ticket_client

    assert client.get("/api/v1/tickets").status_code == 401
    assert client.get("/api/v1/tickets", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_list_tickets_returns_board(ticket_client):
    client, service = ticket_client
    ticket = make_ticket(str(uuid4()), status=TicketStatus.IN_PROGRESS, attachments=("/uploads/a.pdf",))
    service.list_tickets = AsyncMock(return_value=[ticket])

    response = client.get("/api/v1/tickets", headers=MARKETPLACE)

    assert response.status_code == 200
    body = response.json()
    assert body[0]["id"] == ticket.id
    assert body[0]["status"] == "in_progress"
    assert body[0]["attachments"] == ["/uploads/a.pdf"]


def test_create_ticket_returns_created_id(ticket_client):
    client, service = ticket_client
    ticket = make_ticket(str(uuid4()), code="TCK-001-0042")
    service.create_ticket = AsyncMock(return_value=ticket)

    response = client.post("/api/v1/tickets", json=CREATE_PAYLOAD, headers=ATS)

    assert response.status_code == 201
    assert response.json() == {"id": ticket.id}
    draft = service.create_ticket.await_args.args[0]
    assert draft.support_ticket_id == "TCK-001-0042"
    assert service.create_ticket.await_args.kwargs["actor"].username == "ats"


def test_create_ticket_rejects_malformed_code(ticket_client):
    client, service = ticket_client
    service.create_ticket = AsyncMock()

    response = client.post(
        "/api/v1/tickets", json={**CREATE_PAYLOAD, "support_ticket_id": "tck0010042"}, headers=ATS
    )

    assert response.status_code == 422
    service.create_ticket.assert_not_awaited()


def test_create_ticket_rejects_unknown_reason(ticket_client):
    client, _ = ticket_client

    response = client.post("/api/v1/tickets", json={**CREATE_PAYLOAD, "rejection_reason": "Other"}, headers=ATS)

    assert response.status_code == 422


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (TicketPermissionError("Customs staff may not create tickets."), 403),
        (DuplicateTicketError("Ticket TCK-001-0042 already exists"), 409),
    ],
)
def test_create_ticket_maps_service_errors(ticket_client, error, expected):
    client, service = ticket_client
    service.create_ticket = AsyncMock(side_effect=error)

    response = client.post("/api/v1/tickets", json=CREATE_PAYLOAD, headers=CUSTOMS)

    assert response.status_code == expected
    assert response.json()["detail"] == str(error)


def test_change_status_returns_canonical_ticket(ticket_client):
    client, service = ticket_client
    ticket = make_ticket(str(uuid4()), status=TicketStatus.COMPLETED)
    service.change_status = AsyncMock(return_value=ticket)

    response = client.patch(f"/api/v1/tickets/{ticket.id}/status", json={"status": "completed"}, headers=ATS)

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert service.change_status.await_args.kwargs["new_status"] is TicketStatus.COMPLETED


def test_change_status_forbidden_for_role(ticket_client):
    client, service = ticket_client
    message = "Marketplace staff may not move tickets to Completed."
    service.change_status = AsyncMock(side_effect=InvalidTicketTransitionError(message))

    response = client.patch(f"/api/v1/tickets/{uuid4()}/status", json={"status": "completed"}, headers=MARKETPLACE)

    assert response.status_code == 403
    assert response.json()["detail"] == message


def test_change_status_unknown_ticket(ticket_client):
    client, service = ticket_client
    service.change_status = AsyncMock(side_effect=TicketNotFoundError("missing"))

    response = client.patch(f"/api/v1/tickets/{uuid4()}/status", json={"status": "to_do"}, headers=ATS)

    assert response.status_code == 404


def test_change_status_conflicts_when_ticket_moved_meanwhile(ticket_client):
    client, service = ticket_client
    service.change_status = AsyncMock(side_effect=TicketConflictError("Ticket is completed, not to_do"))

    response = client.patch(f"/api/v1/tickets/{uuid4()}/status", json={"status": "in_progress"}, headers=CUSTOMS)

    assert response.status_code == 409
    assert response.json()["detail"] == "Ticket is completed, not to_do"


def test_change_status_rejects_unknown_status(ticket_client):
    client, _ = ticket_client

    response = client.patch(f"/api/v1/tickets/{uuid4()}/status", json={"status": "archived"}, headers=ATS)

    assert response.status_code == 422


def test_update_comment_passes_field(ticket_client):
    client, service = ticket_client
    ticket = make_ticket(str(uuid4()), customs_comment="Checked")
    service.update_comment = AsyncMock(return_value=ticket)

    response = client.patch(
        f"/api/v1/tickets/{ticket.id}/comment",
        json={"field": "customs_comment", "value": "Checked"},
        headers=CUSTOMS,
    )

    assert response.status_code == 200
    assert response.json()["customs_comment"] == "Checked"
    assert service.update_comment.await_args.kwargs["field"] is TicketField.CUSTOMS_COMMENT


def test_update_comment_forbidden(ticket_client):
    client, service = ticket_client
    service.update_comment = AsyncMock(side_effect=TicketPermissionError("Customs staff may not add comments"))

    response = client.patch(
        f"/api/v1/tickets/{uuid4()}/comment",
        json={"field": "support_comment", "value": "x"},
        headers=CUSTOMS,
    )

    assert response.status_code == 403


def test_upload_attachments_returns_appended_urls(ticket_client):
    client, service = ticket_client
    ticket_id = str(uuid4())
    service.add_attachments = AsyncMock(return_value=[f"/uploads/{ticket_id}/new.pdf"])

    response = client.post(
        f"/api/v1/tickets/{ticket_id}/attachments",
        files=[("attachments", ("new.pdf", b"%PDF", "application/pdf"))],
        headers=ATS,
    )

    assert response.status_code == 200
    assert response.json() == {"attachments": [f"/uploads/{ticket_id}/new.pdf"]}
    (files,) = service.add_attachments.await_args.args[1:]
    assert files[0].filename == "new.pdf"
    assert files[0].content == b"%PDF"


def test_upload_attachments_refused_before_files_are_read(ticket_client):
    client, service = ticket_client
    message = "Customs staff may not attach files to tickets."
    service.ensure_may_attach = MagicMock(side_effect=TicketPermissionError(message))
    service.add_attachments = AsyncMock()

    response = client.post(
        f"/api/v1/tickets/{uuid4()}/attachments",
        files=[("attachments", ("new.pdf", b"%PDF", "application/pdf"))],
        headers=CUSTOMS,
    )

    assert response.status_code == 403
    assert response.json()["detail"] == message
    assert service.ensure_may_attach.call_args.args[0].username == "customs"
    service.add_attachments.assert_not_awaited()

def test_get_audit_returns_entries(ticket_client):
    client, service = ticket_client
    ticket_id = str(uuid4())
    entry = TicketAuditEntry(
        id=str(uuid4()),
        ticket_id=ticket_id,
        action="status_changed",
        actor="ats",
        from_status=TicketStatus.TO_DO,
        to_status=TicketStatus.IN_PROGRESS,
        created_at=datetime.now(timezone.utc),
    )
    service.get_audit_log = AsyncMock(return_value=[entry])

    response = client.get(f"/api/v1/tickets/{ticket_id}/audit", headers=ATS)

    assert response.status_code == 200
    assert response.json()[0]["action"] == "status_changed"
    assert response.json()[0]["to_status"] == "in_progress"


def test_service_unavailable_without_database():
    app = create_app()
    client = TestClient(app)

    response = client.get("/api/v1/tickets", headers=ATS)

    assert response.status_code == 503
