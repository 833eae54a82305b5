"""
Domain exceptions for the maintenance lifecycle engine

These exceptions represent business rule violations and domain-specific errors.
They are raised by the business layer before any state is persisted.
"""


class MaintenanceDomainError(Exception):
    """Base exception for all maintenance domain errors"""
    pass


class ValidationError(MaintenanceDomainError):
    """Raised for a missing required reference or a bad enum value"""
    pass


class HierarchyViolation(ValidationError):
    """Raised when a parent/level relationship would break the equipment tree"""
    pass


class NotFound(MaintenanceDomainError):
    """Raised when a referenced entity does not exist (or is soft-deleted)"""

    def __init__(self, entity_name, entity_id):
        self.entity_name = entity_name
        self.entity_id = entity_id
        super().__init__(f"{entity_name} {entity_id} not found")


class InvalidTransition(MaintenanceDomainError):
    """Raised when a state transition is invalid or not allowed"""
    pass


class IncompleteSafetyChecks(InvalidTransition):
    """Raised when an inspection is started before every safety check is acknowledged"""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Safety checks not acknowledged: {self.missing}")


class IncompleteMandatoryCheckpoints(InvalidTransition):
    """Raised when an inspection is completed with mandatory checkpoints outstanding"""

    def __init__(self, missing):
        self.missing = sorted(missing)
        super().__init__(f"Mandatory checkpoints not completed: {self.missing}")


class HasActiveChildren(MaintenanceDomainError):
    """Raised when deleting equipment that still has non-deleted children"""

    def __init__(self, equipment_code, child_codes):
        self.child_codes = list(child_codes)
        super().__init__(f"Equipment {equipment_code} has active children: {self.child_codes}")


class ConcurrentModification(MaintenanceDomainError):
    """Raised when optimistic-version retries are exhausted"""
    pass
