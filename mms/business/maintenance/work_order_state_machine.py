"""
State machine for work order status transitions
"""

from typing import Dict, Set
from mms.business.core.errors import InvalidTransition


class WorkOrderStateMachine:
    """
    Work order lifecycle.

    Planned and Scheduled orders may be held or cancelled; completion is
    only reachable from InProgress.
    """

    PLANNED = 'Planned'
    SCHEDULED = 'Scheduled'
    IN_PROGRESS = 'InProgress'
    ON_HOLD = 'OnHold'
    COMPLETED = 'Completed'
    CANCELLED = 'Cancelled'

    STATUSES = (PLANNED, SCHEDULED, IN_PROGRESS, ON_HOLD, COMPLETED, CANCELLED)

    TERMINAL_STATES = {COMPLETED, CANCELLED}

    TRANSITIONS: Dict[str, Set[str]] = {
        PLANNED: {SCHEDULED, IN_PROGRESS, ON_HOLD, CANCELLED},
        SCHEDULED: {IN_PROGRESS, ON_HOLD, CANCELLED},
        IN_PROGRESS: {ON_HOLD, COMPLETED, CANCELLED},
        ON_HOLD: {SCHEDULED, IN_PROGRESS, CANCELLED},
        # COMPLETED and CANCELLED are terminal
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        if from_status in cls.TERMINAL_STATES:
            return False
        if from_status == to_status:
            return True
        return to_status in cls.TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """
        Raises:
            InvalidTransition: If transition is not allowed
        """
        if to_status not in cls.STATUSES:
            raise InvalidTransition(f"Unknown work order status: {to_status}")
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransition(f"Invalid work order status transition: {from_status} → {to_status}")

    @classmethod
    def get_allowed_transitions(cls, from_status: str) -> Set[str]:
        """Get set of allowed target statuses from current status"""
        if from_status in cls.TERMINAL_STATES:
            return set()
        return cls.TRANSITIONS.get(from_status, set())
