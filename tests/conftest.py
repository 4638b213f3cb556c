from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Sequence

import pytest

from ats_verify.tickets.models import AttachmentFile, RejectionReason, Ticket, TicketDraft, TicketField
from ats_verify.tickets.state import TicketPriority, TicketStatus
from ats_verify.ui.api import APIError


def make_ticket(
    ticket_id: str = "t-1",
    *,
    code: str = "TCK-001-0001",
    status: TicketStatus = TicketStatus.TO_DO,
    **overrides,
) -> Ticket:
    now = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
    ticket = Ticket(
        id=ticket_id,
        support_ticket_id=code,
        status=status,
        priority=TicketPriority.MEDIUM,
        iin="900101300123",
        full_name="Aigerim Sadykova",
        application_number="1234567890123",
        document_number="DOC-77",
        rejection_reason=RejectionReason.IMEI_NOT_FOUND.value,
        created_at=now,
        updated_at=now,
    )
    return replace(ticket, **overrides) if overrides else ticket


def make_draft(**overrides) -> TicketDraft:
    values = dict(
        support_ticket_id="TCK-001-0042",
        iin="900101300123",
        full_name="Aigerim Sadykova",
        application_number="4455",
        document_number="DOC-42",
        rejection_reason=RejectionReason.DOCUMENT_NOT_FOUND.value,
        priority=TicketPriority.HIGH,
    )
    values.update(overrides)
    return TicketDraft(**values)


class FakeBackend:
    """In-memory stand-in for the ticket service used by the workflow tests."""

    def __init__(self, tickets: Sequence[Ticket] = ()) -> None:
        self.server: dict[str, Ticket] = {ticket.id: ticket for ticket in tickets}
        self.calls: list[tuple] = []
        self.list_error: Exception | None = None
        self.status_error: Exception | None = None
        self.comment_error: Exception | None = None
        self.create_error: Exception | None = None
        self.upload_error: Exception | None = None
        self.return_canonical = True
        self._next_id = 100

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def list_tickets(self) -> list[Ticket]:
        self.calls.append(("list",))
        if self.list_error is not None:
            raise self.list_error
        return list(self.server.values())

    async def change_ticket_status(self, ticket_id: str, *, status: TicketStatus) -> Ticket | None:
        self.calls.append(("status", ticket_id, status))
        if self.status_error is not None:
            raise self.status_error
        self.server[ticket_id] = replace(self.server[ticket_id], status=status)
        return self.server[ticket_id] if self.return_canonical else None

    async def update_comment(self, ticket_id: str, *, field: TicketField, value: str) -> Ticket | None:
        self.calls.append(("comment", ticket_id, field, value))
        if self.comment_error is not None:
            raise self.comment_error
        self.server[ticket_id] = replace(self.server[ticket_id], **{field.value: value})
        return self.server[ticket_id] if self.return_canonical else None

    async def create_ticket(self, draft: TicketDraft) -> str:
        self.calls.append(("create", draft.support_ticket_id))
        if self.create_error is not None:
            raise self.create_error
        ticket_id = f"t-{self._next_id}"
        self._next_id += 1
        self.server[ticket_id] = make_ticket(
            ticket_id,
            code=draft.support_ticket_id,
            iin=draft.iin,
            full_name=draft.full_name,
            support_comment=draft.support_comment,
        )
        return ticket_id

    async def upload_attachments(self, ticket_id: str, files: Sequence[AttachmentFile]) -> list[str]:
        self.calls.append(("upload", ticket_id, len(files)))
        if self.upload_error is not None:
            raise self.upload_error
        urls = [f"/uploads/{ticket_id}/{item.filename}" for item in files]
        ticket = self.server[ticket_id]
        self.server[ticket_id] = replace(ticket, attachments=ticket.attachments + tuple(urls))
        return urls


def forbidden(message: str = "Insufficient permissions") -> APIError:
    return APIError(message, status_code=403)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(
        [
            make_ticket("t-1", code="TCK-001-0001", status=TicketStatus.TO_DO),
            make_ticket("t-2", code="TCK-001-0002", status=TicketStatus.IN_PROGRESS),
            make_ticket("t-3", code="TCK-001-0003", status=TicketStatus.COMPLETED),
        ]
    )
