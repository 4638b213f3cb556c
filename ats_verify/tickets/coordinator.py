"""Optimistic status transitions reconciled against the ticket service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from ats_verify.dependencies.auth import Role
from ats_verify.ui.api import APIError

from .models import Ticket
from .permissions import DEFAULT_MATRIX, AuthorizationMatrix, denial_message
from .remote import TicketBackend, resync
from .state import TicketStatus
from .store import TicketStore

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "The ticket could not be moved. The board was reloaded from the server."


class TransitionOrdering(str, Enum):
    """How overlapping moves of the same ticket are ordered.

    ``LAST_RESPONSE_WINS`` lets every request run independently and keeps whichever
    store write lands last. ``SERIALIZED_PER_TICKET`` runs each move of a ticket to
    completion before the next one for that ticket starts.
    """

    LAST_RESPONSE_WINS = "last_response_wins"
    SERIALIZED_PER_TICKET = "serialized_per_ticket"


class OutcomeStatus(str, Enum):
    NOOP = "noop"
    CONFIRMED = "confirmed"
    DENIED = "denied"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TransitionOutcome:
    ticket_id: str
    from_status: TicketStatus | None
    to_status: TicketStatus | None
    status: OutcomeStatus
    message: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status is OutcomeStatus.CONFIRMED


class TransitionCoordinator:
    """Apply a move locally, ask the service, then confirm or roll back."""

    def __init__(
        self,
        store: TicketStore,
        backend: TicketBackend,
        *,
        matrix: AuthorizationMatrix | None = None,
        ordering: TransitionOrdering = TransitionOrdering.LAST_RESPONSE_WINS,
        notify: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._matrix = matrix or DEFAULT_MATRIX
        self._ordering = TransitionOrdering(ordering)
        self._notify = notify or (lambda message: logger.info("Board notice: %s", message))
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_waiters: dict[str, int] = {}

    @property
    def ordering(self) -> TransitionOrdering:
        return self._ordering

    def resolve_target(self, drop_target: TicketStatus | str) -> TicketStatus | None:
        """Map a drop target (column id or ticket id) onto a status."""

        if isinstance(drop_target, TicketStatus):
            return drop_target
        try:
            return TicketStatus(drop_target)
        except ValueError:
            pass
        # Dropped onto a card: the card's current column is the target.
        target_ticket = self._store.find(str(drop_target))
        return target_ticket.status if target_ticket is not None else None

    def movable_targets(self, actor_role: Role | str | None, ticket_id: str) -> set[TicketStatus]:
        """Columns the board should offer; advisory only."""

        ticket = self._store.find(ticket_id)
        if ticket is None:
            return set()
        return self._matrix.allowed_targets(actor_role, ticket.status)

    async def request_move(
        self,
        ticket_id: str,
        drop_target: TicketStatus | str,
        actor_role: Role | str | None,
    ) -> TransitionOutcome:
        target = self.resolve_target(drop_target)
        if target is None or self._store.find(ticket_id) is None:
            logger.debug("Ignoring drop of %s onto unknown target %r", ticket_id, drop_target)
            return TransitionOutcome(ticket_id, None, target, OutcomeStatus.NOOP)

        if self._ordering is TransitionOrdering.SERIALIZED_PER_TICKET:
            return await self._serialized_transition(ticket_id, target, actor_role)
        return await self._transition(ticket_id, target, actor_role)

    async def _serialized_transition(
        self, ticket_id: str, target: TicketStatus, actor_role: Role | str | None
    ) -> TransitionOutcome:
        lock = self._locks.setdefault(ticket_id, asyncio.Lock())
        self._lock_waiters[ticket_id] = self._lock_waiters.get(ticket_id, 0) + 1
        try:
            async with lock:
                return await self._transition(ticket_id, target, actor_role)
        finally:
            self._lock_waiters[ticket_id] -= 1
            if not self._lock_waiters[ticket_id]:
                del self._lock_waiters[ticket_id]
                del self._locks[ticket_id]

    async def _transition(
        self, ticket_id: str, target: TicketStatus, actor_role: Role | str | None
    ) -> TransitionOutcome:
        previous = self._store.find(ticket_id)
        if previous is None:
            # Removed by a resync while this move waited for its turn.
            return TransitionOutcome(ticket_id, None, target, OutcomeStatus.NOOP)
        if previous.status == target:
            return TransitionOutcome(ticket_id, previous.status, target, OutcomeStatus.NOOP)

        self._store.patch(ticket_id, lambda ticket: replace(ticket, status=target))
        logger.info(
            "Moving ticket %s %s -> %s as %s", previous.support_ticket_id, previous.status.value, target.value, actor_role
        )

        try:
            canonical = await self._backend.change_ticket_status(ticket_id, status=target)
            if canonical is not None and self._store.find(ticket_id) is not None:
                self._store.patch(ticket_id, lambda _ticket: canonical)
        except Exception as exc:  # noqa: BLE001 - every failure is rolled back and reported
            return await self._roll_back(previous, target, actor_role, exc)

        return TransitionOutcome(ticket_id, previous.status, target, OutcomeStatus.CONFIRMED)

    async def _roll_back(
        self,
        previous: Ticket,
        target: TicketStatus,
        actor_role: Role | str | None,
        exc: Exception,
    ) -> TransitionOutcome:
        if isinstance(exc, APIError) and exc.is_forbidden:
            message = denial_message(actor_role, target)
            outcome_status = OutcomeStatus.DENIED
        else:
            message = GENERIC_FAILURE_MESSAGE
            outcome_status = OutcomeStatus.FAILED
        logger.warning(
            "Move of ticket %s to %s rejected (%s); rolling back", previous.support_ticket_id, target.value, exc
        )
        self._notify(message)
        await self._reconcile_after_failure(previous)
        return TransitionOutcome(previous.id, previous.status, target, outcome_status, message)

    async def _reconcile_after_failure(self, previous: Ticket) -> None:
        if await resync(self._store, self._backend):
            return
        # Server list unavailable: put back the status we last saw from the server.
        if self._store.find(previous.id) is not None:
            self._store.patch(previous.id, lambda ticket: replace(ticket, status=previous.status))
