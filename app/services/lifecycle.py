import logging
from enum import StrEnum

from app.services.errors import InvalidTransition

logger = logging.getLogger(__name__)


class RequestStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class QuoteStatus(StrEnum):
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"


class Urgency(StrEnum):
    NORMAL = "normal"
    URGENT = "urgent"


class SchedulingType(StrEnum):
    NOW = "now"
    SCHEDULED = "scheduled"


class ActorRole(StrEnum):
    CLIENT = "client"
    TECHNICIAN = "technician"
    ADMIN = "admin"


ACTIVE_STATUSES = (RequestStatus.ACCEPTED, RequestStatus.IN_PROGRESS)
TERMINAL_STATUSES = (RequestStatus.COMPLETED, RequestStatus.CANCELLED)

_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.ACCEPTED, RequestStatus.CANCELLED}),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED}),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

# None stands for "no quote yet"
_QUOTE_TRANSITIONS: dict[QuoteStatus | None, frozenset[QuoteStatus]] = {
    None: frozenset({QuoteStatus.SENT}),
    QuoteStatus.SENT: frozenset({QuoteStatus.APPROVED, QuoteStatus.REJECTED}),
    QuoteStatus.REJECTED: frozenset({QuoteStatus.SENT}),
    QuoteStatus.APPROVED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return RequestStatus(target) in _TRANSITIONS[RequestStatus(current)]


def ensure_transition(current: str, target: str) -> None:
    """Raise InvalidTransition unless current -> target is a lifecycle edge."""
    if not can_transition(current, target):
        logger.info("Rejected transition %s -> %s", current, target)
        raise InvalidTransition(f"Cannot move a {current} request to {target}.")


def can_quote_transition(current: str | None, target: str) -> bool:
    key = QuoteStatus(current) if current else None
    return QuoteStatus(target) in _QUOTE_TRANSITIONS[key]


def ensure_quote_transition(current: str | None, target: str) -> None:
    if not can_quote_transition(current, target):
        raise InvalidTransition(f"Cannot move quote from {current or 'none'} to {target}.")
