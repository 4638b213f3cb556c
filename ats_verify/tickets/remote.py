from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, Sequence

from .models import AttachmentFile, Ticket, TicketDraft, TicketField
from .state import TicketStatus

if TYPE_CHECKING:
    from .store import TicketStore

logger = logging.getLogger(__name__)


class TicketBackend(Protocol):
    """Remote authority the board talks to; implemented by ``TicketAPIClient``."""

    async def list_tickets(self) -> list[Ticket]:
        ...

    async def create_ticket(self, draft: TicketDraft) -> str:
        ...

    async def upload_attachments(self, ticket_id: str, files: Sequence[AttachmentFile]) -> list[str]:
        ...

    async def change_ticket_status(self, ticket_id: str, *, status: TicketStatus) -> Ticket | None:
        ...

    async def update_comment(self, ticket_id: str, *, field: TicketField, value: str) -> Ticket | None:
        ...


async def resync(store: TicketStore, backend: TicketBackend) -> bool:
    """Replace the store with the authoritative ticket list.

    Returns ``False`` when the list could not be fetched; the store is then left
    untouched and the caller decides how to recover.
    """

    try:
        tickets = await backend.list_tickets()
    except Exception as exc:  # noqa: BLE001 - any failure leaves the store as-is
        logger.warning("Ticket resync failed: %s", exc)
        return False
    store.replace_all(tickets)
    return True
