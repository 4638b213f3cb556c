from __future__ import annotations

from enum import Enum
from itertools import permutations


class TicketStatus(str, Enum):
    """Kanban columns a ticket can sit in."""

    TO_DO = "to_do"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS: dict[TicketStatus, str] = {
    TicketStatus.TO_DO: "To do",
    TicketStatus.IN_PROGRESS: "In progress",
    TicketStatus.COMPLETED: "Completed",
}


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(str, Enum):
    """Classification supplied by the external risk engine."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class TicketStateMachine:
    """Ticket lifecycle graph.

    Every pairwise move between the three columns is structurally valid, including
    moving backward, and no status is terminal. Whether a given actor may perform a
    move is decided by :class:`~ats_verify.tickets.permissions.AuthorizationMatrix`.
    """

    _TRANSITIONS: frozenset[tuple[TicketStatus, TicketStatus]] = frozenset(permutations(TicketStatus, 2))

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.TO_DO

    @classmethod
    def transitions(cls) -> frozenset[tuple[TicketStatus, TicketStatus]]:
        return cls._TRANSITIONS

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return (current, new) in cls._TRANSITIONS

    @classmethod
    def parse(cls, value: TicketStatus | str) -> TicketStatus:
        """Coerce ``value`` into a status, rejecting anything outside the three columns."""

        if isinstance(value, TicketStatus):
            return value
        try:
            return TicketStatus(str(value))
        except ValueError as exc:
            raise ValueError(f"Unknown ticket status: {value!r}") from exc
