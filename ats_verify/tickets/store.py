from __future__ import annotations

import logging
from typing import Callable, Iterable

from .errors import TicketNotFoundError
from .models import Ticket
from .state import TicketStatus

logger = logging.getLogger(__name__)

TicketMutator = Callable[[Ticket], Ticket]


class TicketStore:
    """In-memory mirror of the tickets visible to the current actor.

    Records are frozen, so handing them out never exposes mutable state. The only
    writes are :meth:`patch` (one ticket, whole-value replacement) and
    :meth:`replace_all`; whichever write completes last wins.
    """

    def __init__(self, tickets: Iterable[Ticket] = ()) -> None:
        self._tickets: dict[str, Ticket] = {}
        self._version = 0
        self.replace_all(tickets)

    @property
    def version(self) -> int:
        """Counter incremented on every write."""

        return self._version

    def list(self) -> list[Ticket]:
        return list(self._tickets.values())

    def get(self, ticket_id: str) -> Ticket:
        try:
            return self._tickets[ticket_id]
        except KeyError:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found") from None

    def find(self, ticket_id: str) -> Ticket | None:
        return self._tickets.get(ticket_id)

    def by_status(self, status: TicketStatus) -> list[Ticket]:
        return [ticket for ticket in self._tickets.values() if ticket.status == status]

    def replace_all(self, tickets: Iterable[Ticket]) -> None:
        snapshot: dict[str, Ticket] = {}
        for ticket in tickets:
            _check_status(ticket)
            snapshot[ticket.id] = ticket
        self._tickets = snapshot
        self._version += 1
        logger.debug("Ticket store replaced with %d tickets", len(snapshot))

    def patch(self, ticket_id: str, mutator: TicketMutator) -> Ticket:
        """Replace one ticket with ``mutator(ticket)`` and return the new value."""

        current = self.get(ticket_id)
        updated = mutator(current)
        if updated.identity() != current.identity():
            raise ValueError(f"Ticket {ticket_id} identity is immutable")
        _check_status(updated)
        self._tickets = {**self._tickets, ticket_id: updated}
        self._version += 1
        return updated


def _check_status(ticket: Ticket) -> None:
    if not isinstance(ticket.status, TicketStatus):
        raise ValueError(f"Ticket {ticket.id} has unsupported status {ticket.status!r}")
