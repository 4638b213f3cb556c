from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence
from uuid import UUID, uuid4

from ats_verify.dependencies.auth import User
from ats_verify.services.attachments import AttachmentStorage

from .errors import InvalidTicketTransitionError, TicketNotFoundError, TicketPermissionError
from .models import AttachmentFile, Ticket, TicketAuditEntry, TicketDraft, TicketField
from .permissions import (
    DEFAULT_MATRIX,
    AuthorizationMatrix,
    attachment_denial_message,
    comment_denial_message,
    creation_denial_message,
    denial_message,
)
from .repository import TicketRepository
from .state import TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TicketService:
    """Authoritative ticket operations; every change is checked against the matrix."""

    repository: TicketRepository
    storage: AttachmentStorage
    matrix: AuthorizationMatrix = field(default=DEFAULT_MATRIX)

    async def ensure_schema(self) -> None:
        await self.repository.ensure_schema()

    async def create_ticket(self, draft: TicketDraft, *, actor: User) -> Ticket:
        if not self.matrix.may_create(actor.role):
            raise TicketPermissionError(creation_denial_message(actor.role))
        draft.validate()

        ticket = await self.repository.create_ticket(
            ticket_id=uuid4(),
            draft=draft,
            status=TicketStateMachine.initial_state(),
            created_by=actor.username,
        )
        logger.info("Ticket %s created by %s", ticket.support_ticket_id, actor.username)
        return ticket

    async def get_ticket(self, ticket_id: UUID) -> Ticket:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def list_tickets(self) -> list[Ticket]:
        return await self.repository.list_tickets()

    async def change_status(self, ticket_id: UUID, *, new_status: TicketStatus, actor: User) -> Ticket:
        ticket = await self.get_ticket(ticket_id)
        if ticket.status == new_status:
            return ticket

        if not self.matrix.may_transition(actor.role, ticket.status, new_status):
            logger.info(
                "Refused move of %s %s -> %s for %s",
                ticket.support_ticket_id,
                ticket.status.value,
                new_status.value,
                actor.role.value,
            )
            raise InvalidTicketTransitionError(denial_message(actor.role, new_status))

        updated = await self.repository.change_status(
            ticket_id=ticket_id,
            from_status=ticket.status,
            to_status=new_status,
            actor=actor.username,
        )
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return updated

    async def update_comment(self, ticket_id: UUID, *, field: TicketField, value: str, actor: User) -> Ticket:
        if not self.matrix.may_edit_field(actor.role, field):
            raise TicketPermissionError(comment_denial_message(actor.role))

        updated = await self.repository.update_comment(
            ticket_id=ticket_id, field=TicketField(field), value=value, actor=actor.username
        )
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return updated

    def ensure_may_attach(self, actor: User) -> None:
        if not self.matrix.may_create(actor.role):
            raise TicketPermissionError(attachment_denial_message(actor.role))

    async def add_attachments(self, ticket_id: UUID, files: Sequence[AttachmentFile], *, actor: User) -> list[str]:
        """Store ``files`` and append them to the ticket; returns the appended URLs."""

        self.ensure_may_attach(actor)
        if not files:
            raise ValueError("At least one attachment is required")
        await self.get_ticket(ticket_id)

        urls = [await self.storage.save(str(ticket_id), item.filename, item.content) for item in files]
        updated = await self.repository.append_attachments(ticket_id=ticket_id, urls=urls, actor=actor.username)
        if updated is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        logger.info("Appended %d attachment(s) to %s", len(urls), updated.support_ticket_id)
        return urls

    async def get_audit_log(self, ticket_id: UUID) -> list[TicketAuditEntry]:
        await self.get_ticket(ticket_id)
        return await self.repository.get_audit_log(ticket_id)
