from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from ats_verify.core.config import Settings, get_settings
from ats_verify.tickets.coordinator import TransitionCoordinator, TransitionOrdering, TransitionOutcome
from ats_verify.tickets.creation import CreationResult, TicketCreationWorkflow
from ats_verify.tickets.editor import TicketEditor
from ats_verify.tickets.errors import TicketServiceError
from ats_verify.tickets.models import AttachmentFile, Ticket, TicketDraft, TicketField
from ats_verify.tickets.permissions import DEFAULT_MATRIX, AuthorizationMatrix
from ats_verify.tickets.remote import TicketBackend, resync
from ats_verify.tickets.state import TicketStatus
from ats_verify.tickets.store import TicketStore
from ats_verify.ui.api import TicketAPIClient
from ats_verify.ui.auth import AuthProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BoardColumn:
    status: TicketStatus
    label: str
    tickets: tuple[Ticket, ...]


class TicketBoard:
    """Kanban view model wiring one actor's intents to the workflow engine.

    Failures are collected in :attr:`notices` instead of being raised, so a
    renderer can show them next to the board.
    """

    def __init__(
        self,
        profile: AuthProfile,
        backend: TicketBackend,
        *,
        store: TicketStore | None = None,
        matrix: AuthorizationMatrix | None = None,
        ordering: TransitionOrdering = TransitionOrdering.LAST_RESPONSE_WINS,
    ) -> None:
        self.profile = profile
        self.store = store or TicketStore()
        self.notices: list[str] = []
        self._backend = backend
        self._matrix = matrix or DEFAULT_MATRIX
        self.coordinator = TransitionCoordinator(
            self.store, backend, matrix=self._matrix, ordering=ordering, notify=self.notices.append
        )
        self.editor = TicketEditor(self.store, backend, matrix=self._matrix)
        self.creation = TicketCreationWorkflow(self.store, backend, editor=self.editor, matrix=self._matrix)

    @classmethod
    def connect(cls, profile: AuthProfile, settings: Settings | None = None) -> "TicketBoard":
        settings = settings or get_settings()
        client = TicketAPIClient(base_url=settings.api_base_url, token=profile.token, timeout=settings.http_timeout)
        return cls(profile, client, ordering=TransitionOrdering(settings.transition_ordering))

    async def refresh(self) -> bool:
        if await resync(self.store, self._backend):
            return True
        self.notices.append("Tickets could not be loaded.")
        return False

    def columns(self) -> list[BoardColumn]:
        return [
            BoardColumn(status=status, label=status.label, tickets=tuple(self.store.by_status(status)))
            for status in TicketStatus
        ]

    def movable_targets(self, ticket_id: str) -> set[TicketStatus]:
        return self.coordinator.movable_targets(self.profile.role, ticket_id)

    @property
    def can_create(self) -> bool:
        return self._matrix.may_create(self.profile.role)

    @property
    def comment_field(self) -> TicketField | None:
        return self._matrix.comment_field_for(self.profile.role)

    async def drop(self, ticket_id: str, over_id: str) -> TransitionOutcome:
        """Handle a card released over a column or another card."""

        return await self.coordinator.request_move(ticket_id, over_id, self.profile.role)

    async def add_comment(self, ticket_id: str, text: str) -> Ticket | None:
        try:
            return await self.editor.add_comment(ticket_id, self.profile.role, text)
        except (TicketServiceError, ValueError) as exc:
            self.notices.append(str(exc))
            return None

    async def create_ticket(self, draft: TicketDraft, files: Sequence[AttachmentFile] = ()) -> CreationResult | None:
        try:
            return await self.creation.create(draft, files, actor_role=self.profile.role)
        except (TicketServiceError, ValueError) as exc:
            logger.warning("Ticket creation failed for %s: %s", self.profile.username, exc)
            self.notices.append(str(exc))
            return None
