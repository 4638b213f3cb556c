from __future__ import annotations

import logging
from dataclasses import replace
from typing import Sequence

from ats_verify.dependencies.auth import Role
from ats_verify.ui.api import APIError

from .errors import TicketPermissionError, TicketRemoteError
from .models import AttachmentFile, Ticket
from .permissions import DEFAULT_MATRIX, AuthorizationMatrix, attachment_denial_message, comment_denial_message
from .remote import TicketBackend, resync
from .store import TicketStore

logger = logging.getLogger(__name__)


class TicketEditor:
    """Role-scoped edits of narrative fields and attachments.

    Unlike status moves nothing is written optimistically: the store changes only
    after the service confirms, and the full list is reloaded afterwards.
    """

    def __init__(self, store: TicketStore, backend: TicketBackend, *, matrix: AuthorizationMatrix | None = None) -> None:
        self._store = store
        self._backend = backend
        self._matrix = matrix or DEFAULT_MATRIX

    async def add_comment(self, ticket_id: str, actor_role: Role | str | None, text: str) -> Ticket:
        """Overwrite the comment field owned by ``actor_role`` with ``text``.

        Earlier text in the field is replaced; callers that want to keep it must
        concatenate before calling.
        """

        field = self._matrix.comment_field_for(actor_role)
        if field is None:
            raise TicketPermissionError(comment_denial_message(actor_role))
        if not text or not text.strip():
            raise ValueError("Comment text must not be empty")
        self._store.get(ticket_id)

        try:
            canonical = await self._backend.update_comment(ticket_id, field=field, value=text)
            if self._store.find(ticket_id) is not None:
                self._store.patch(
                    ticket_id,
                    lambda ticket: canonical if canonical is not None else replace(ticket, **{field.value: text}),
                )
        except Exception as exc:  # noqa: BLE001 - mapped onto the ticket error hierarchy
            await resync(self._store, self._backend)
            if isinstance(exc, APIError) and exc.is_forbidden:
                raise TicketPermissionError(comment_denial_message(actor_role)) from exc
            raise TicketRemoteError(f"Comment could not be saved: {exc}", status_code=_status_code(exc)) from exc

        logger.info("Updated %s on ticket %s", field.value, ticket_id)
        await resync(self._store, self._backend)
        return self._store.get(ticket_id)

    async def add_attachments(
        self,
        ticket_id: str,
        files: Sequence[AttachmentFile],
        actor_role: Role | str | None = None,
    ) -> list[str]:
        """Upload ``files`` and append them to the ticket; returns the newly appended URLs."""

        if not files:
            return []
        if actor_role is not None and not self._matrix.may_create(actor_role):
            raise TicketPermissionError(attachment_denial_message(actor_role))

        try:
            urls = await self._backend.upload_attachments(ticket_id, list(files))
        except Exception as exc:  # noqa: BLE001 - mapped onto the ticket error hierarchy
            if isinstance(exc, APIError) and exc.is_forbidden:
                raise TicketPermissionError(attachment_denial_message(actor_role)) from exc
            raise TicketRemoteError(
                f"Attachments could not be uploaded: {exc}", status_code=_status_code(exc)
            ) from exc

        logger.info("Uploaded %d attachment(s) to ticket %s", len(files), ticket_id)
        await resync(self._store, self._backend)
        return urls


def _status_code(exc: Exception) -> int | None:
    return exc.status_code if isinstance(exc, APIError) else None
