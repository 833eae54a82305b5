"""
State machine for the inspection journey

Encodes valid transitions. Keeps "what is allowed" separate from
"how persistence occurs".
"""

from typing import Dict, Set
from mms.business.core.errors import InvalidTransition


class InspectionStateMachine:
    """
    Journey phases of an inspection.

    The stored status only has Scheduled/InProgress/Completed/Cancelled; the
    draft flag splits InProgress into an editable draft phase and a final
    phase that is ready for completion.
    """

    # Stored statuses
    SCHEDULED = 'Scheduled'
    IN_PROGRESS = 'InProgress'
    COMPLETED = 'Completed'
    CANCELLED = 'Cancelled'

    STATUSES = (SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED)

    # Journey phases
    DRAFT = 'InProgress(draft)'
    FINAL = 'InProgress(final)'

    TERMINAL_STATES = {COMPLETED, CANCELLED}

    TRANSITIONS: Dict[str, Set[str]] = {
        SCHEDULED: {DRAFT, FINAL, CANCELLED},
        DRAFT: {FINAL, CANCELLED},
        FINAL: {DRAFT, COMPLETED, CANCELLED},
        # COMPLETED and CANCELLED are terminal
    }

    @classmethod
    def phase_of(cls, inspection) -> str:
        """Journey phase of an inspection row"""
        if inspection.status == cls.IN_PROGRESS:
            return cls.DRAFT if inspection.is_draft else cls.FINAL
        return inspection.status

    @classmethod
    def can_transition(cls, from_phase: str, to_phase: str) -> bool:
        """
        Check if transition is valid.

        Args:
            from_phase: Current phase
            to_phase: Target phase

        Returns:
            bool: True if transition is allowed
        """
        if from_phase in cls.TERMINAL_STATES:
            return False

        # Staying in the same non-terminal phase (saving again) is a no-op
        if from_phase == to_phase:
            return True

        return to_phase in cls.TRANSITIONS.get(from_phase, set())

    @classmethod
    def validate_transition(cls, from_phase: str, to_phase: str) -> None:
        """
        Raises:
            InvalidTransition: If transition is not allowed
        """
        if not cls.can_transition(from_phase, to_phase):
            raise InvalidTransition(f"Invalid inspection transition: {from_phase} → {to_phase}")

    @classmethod
    def get_allowed_transitions(cls, from_phase: str) -> Set[str]:
        """Get set of allowed target phases from current phase"""
        if from_phase in cls.TERMINAL_STATES:
            return set()
        return cls.TRANSITIONS.get(from_phase, set())
