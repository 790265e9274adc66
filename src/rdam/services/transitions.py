"""Request lifecycle transition table.

The single source of truth for which state changes are allowed. Pure
functions over state values; no record instance or I/O is needed.

    PENDING           -> PAID, EXPIRED
    PAID              -> PUBLISHED, EXPIRED
    PUBLISHED         -> PUBLISHED_EXPIRED
    PUBLISHED_EXPIRED -> (terminal)
    EXPIRED           -> (terminal)
"""

from __future__ import annotations

from rdam.db.models.base import RequestState

ALLOWED_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.PENDING: frozenset({RequestState.PAID, RequestState.EXPIRED}),
    RequestState.PAID: frozenset({RequestState.PUBLISHED, RequestState.EXPIRED}),
    RequestState.PUBLISHED: frozenset({RequestState.PUBLISHED_EXPIRED}),
    RequestState.PUBLISHED_EXPIRED: frozenset(),
    RequestState.EXPIRED: frozenset(),
}

# States in which a download token is held
TOKEN_BEARING_STATES = frozenset({RequestState.PUBLISHED, RequestState.PUBLISHED_EXPIRED})


def is_valid_transition(current: RequestState, target: RequestState) -> bool:
    """Check whether moving from current to target is allowed."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def is_terminal(state: RequestState) -> bool:
    """Check whether no transition leaves the given state."""
    return not ALLOWED_TRANSITIONS.get(state)


def allowed_targets(state: RequestState) -> frozenset[RequestState]:
    return ALLOWED_TRANSITIONS.get(state, frozenset())
