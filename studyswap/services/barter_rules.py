"""
Barter transition table - the one place that decides which status changes are legal.
Both the dedicated endpoints (accept/reject/cancel/withdraw) and the generic status
update resolve through TRANSITIONS; they differ only in which source states they offer.
"""

import enum

from studyswap.core.errors import ConflictError, InvalidOperationError
from studyswap.db.models.barter import BarterStatus


class Effect(str, enum.Enum):
    RESERVE = "reserve"  # both items -> Reserved, record -> accepted
    REJECT = "reject"  # record -> rejected, items untouched
    REVERT = "revert"  # Reserved items -> Available, record -> rejected
    DELETE = "delete"  # record removed


TRANSITIONS: dict[tuple[BarterStatus, BarterStatus], Effect] = {
    (BarterStatus.PENDING, BarterStatus.ACCEPTED): Effect.RESERVE,
    (BarterStatus.PENDING, BarterStatus.REJECTED): Effect.REJECT,
    (BarterStatus.PENDING, BarterStatus.CANCELLED): Effect.DELETE,
    (BarterStatus.ACCEPTED, BarterStatus.REJECTED): Effect.REVERT,
}

# Values the generic update endpoint accepts as a target
UPDATABLE_STATUSES = frozenset({BarterStatus.PENDING, BarterStatus.ACCEPTED, BarterStatus.REJECTED})


def parse_status(value: str) -> BarterStatus:
    """Case-insensitive: "Accepted" and "accepted" name the same status."""
    try:
        return BarterStatus(value.strip().lower())
    except ValueError:
        raise InvalidOperationError(f"Unknown barter status: {value!r}") from None


def resolve(current: str, target: str, verb: str, *, pending_only: bool = False) -> Effect:
    """
    Return the effect of moving a record from `current` to `target`.
    `verb` names the operation in the error message ("accept", "cancel", ...).
    Dedicated endpoints pass pending_only=True: they never act on a closed record.
    """
    source = parse_status(current)
    destination = parse_status(target)
    effect = TRANSITIONS.get((source, destination))
    if effect is None or (pending_only and source is not BarterStatus.PENDING):
        if source is BarterStatus.PENDING:
            raise ConflictError(f"Cannot {verb}. Barter cannot move from pending to {destination.value}")
        raise ConflictError(f"Cannot {verb}. Barter is already {source.value}")
    return effect
