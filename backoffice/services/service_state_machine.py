"""
Service (repair) State Machine

This module is the SINGLE SOURCE OF TRUTH for service status transitions.
All status changes must go through this module.

    received -> in_repair -> delivered

Every edge moves one step forward. There is no skipping (received ->
delivered is rejected so the repair stage always shows up in the audit
trail) and delivered is terminal.
"""

from typing import Dict, List

from backoffice.core.errors import InvalidTransition
from backoffice.models.service_history import ServiceStatus, OPEN_SERVICE_STATUSES


# =============================================================================
# TRANSITION RULES
# =============================================================================

# current_status -> [allowed next statuses]
SERVICE_TRANSITIONS: Dict[str, List[str]] = {
    ServiceStatus.RECEIVED.value: [ServiceStatus.IN_REPAIR.value],
    ServiceStatus.IN_REPAIR.value: [ServiceStatus.DELIVERED.value],
    ServiceStatus.DELIVERED.value: [],  # Terminal state
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (ServiceStatus.RECEIVED.value, ServiceStatus.IN_REPAIR.value): "Start Repair",
    (ServiceStatus.IN_REPAIR.value, ServiceStatus.DELIVERED.value): "Deliver to Customer",
}


def _value(status) -> str:
    return status.value if isinstance(status, ServiceStatus) else str(status)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status, new_status) -> bool:
    """Check if a transition is allowed."""
    return _value(new_status) in SERVICE_TRANSITIONS.get(_value(current_status), [])


def get_allowed_transitions(current_status) -> List[str]:
    """Statuses reachable in one step from current status."""
    return list(SERVICE_TRANSITIONS.get(_value(current_status), []))


def get_transition_action(current_status, new_status) -> str:
    """Human-readable action name for a transition."""
    current, new = _value(current_status), _value(new_status)
    return TRANSITION_ACTIONS.get((current, new), f"{current} -> {new}")


def validate_transition(current_status, new_status) -> None:
    """
    Validate a status transition.

    Re-sending the current status is rejected: every accepted call moves
    the record exactly one step forward.

    Raises:
        InvalidTransition: if new_status is not the single next step
    """
    current, new = _value(current_status), _value(new_status)

    if can_transition(current, new):
        return

    allowed = get_allowed_transitions(current)
    if not allowed:
        raise InvalidTransition(
            f"Service in '{current}' status cannot be modified. This is a terminal state.",
            details={"current": current, "requested": new, "allowed": []},
        )
    raise InvalidTransition(
        f"Cannot change service from '{current}' to '{new}'. "
        f"Allowed transitions: {', '.join(allowed)}",
        details={"current": current, "requested": new, "allowed": allowed},
    )


def is_terminal(status) -> bool:
    return not SERVICE_TRANSITIONS.get(_value(status), [])


def is_open(status) -> bool:
    """Open services block a new service on the same warranty."""
    return _value(status) in OPEN_SERVICE_STATUSES
