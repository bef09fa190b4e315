"""State machine for review item ownership transitions.

Structural legality only: whether a state may follow another, independent
of which queries are open. Business context lives in the coordinator.
"""

from __future__ import annotations

from qrflow.errors import InvalidTransition
from qrflow.models.state import Completed, OriginatorPending, Pending


def transition_error(current, target) -> str | None:
    """Return the reason a transition is illegal, or None if it is legal."""
    match (current, target):
        case (OriginatorPending(), Pending()):
            return None
        case (OriginatorPending(), OriginatorPending()):
            return None
        case (OriginatorPending(), Completed()):
            return None
        case (Pending(), OriginatorPending()):
            return None
        case (Pending(), Pending()):
            # Covers both reassignment and the idempotent re-assert of the same team
            return None
        case (Pending(), Completed()):
            return "queries are still open"
        case (Completed(), _):
            return "item is completed"
    raise TypeError(f"Unknown state variant in transition {current!r} -> {target!r}")


def can_transition(current, target) -> bool:
    return transition_error(current, target) is None


def validate_transition(current, target) -> None:
    """Validate a state transition. Raises InvalidTransition if illegal."""
    reason = transition_error(current, target)
    if reason is not None:
        raise InvalidTransition(current, target, reason)
