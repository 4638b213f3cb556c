from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ats_verify.dependencies.auth import Role

from .editor import TicketEditor
from .errors import TicketCreationError, TicketPermissionError, TicketServiceError
from .models import AttachmentFile, TicketDraft
from .permissions import DEFAULT_MATRIX, AuthorizationMatrix, creation_denial_message
from .remote import TicketBackend, resync
from .store import TicketStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CreationResult:
    ticket_id: str
    attachments: list[str] = field(default_factory=list)


class TicketCreationWorkflow:
    """Create a ticket record, then upload its staged files.

    The two calls are not atomic. When the record is saved but the upload fails the
    ticket stays on the server without attachments and the caller receives a
    :class:`TicketCreationError` with ``partial=True``.
    """

    def __init__(
        self,
        store: TicketStore,
        backend: TicketBackend,
        *,
        editor: TicketEditor | None = None,
        matrix: AuthorizationMatrix | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._matrix = matrix or DEFAULT_MATRIX
        self._editor = editor or TicketEditor(store, backend, matrix=self._matrix)

    async def create(
        self,
        draft: TicketDraft,
        files: Sequence[AttachmentFile] = (),
        *,
        actor_role: Role | str | None,
    ) -> CreationResult:
        if not self._matrix.may_create(actor_role):
            raise TicketPermissionError(creation_denial_message(actor_role))
        draft.validate()

        try:
            ticket_id = await self._backend.create_ticket(draft)
        except Exception as exc:  # noqa: BLE001 - mapped onto the creation error
            # Nothing was persisted; staged files are dropped with this call.
            raise TicketCreationError(f"Ticket could not be created: {exc}") from exc

        logger.info("Created ticket %s (%s)", draft.support_ticket_id, ticket_id)
        urls: list[str] = []
        if files:
            try:
                urls = await self._editor.add_attachments(ticket_id, files)
            except TicketServiceError as exc:
                logger.error(
                    "Ticket %s was created but %d attachment(s) failed to upload: %s",
                    draft.support_ticket_id,
                    len(files),
                    exc,
                )
                await resync(self._store, self._backend)
                raise TicketCreationError(
                    f"Ticket could not be created: {exc}", ticket_id=ticket_id, partial=True
                ) from exc
        else:
            await resync(self._store, self._backend)

        return CreationResult(ticket_id=ticket_id, attachments=urls)
