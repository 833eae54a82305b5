"""
Batch Result Data Structure
Outcome of a partial-failure batch: what succeeded and what failed (with cause).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class BatchFailure:
    """One failed batch item"""
    reference: Any
    error: str
    error_type: str

    def to_dict(self) -> Dict:
        return {'reference': self.reference, 'error': self.error, 'error_type': self.error_type}


@dataclass
class BatchResult:
    """Result of a batch operation where every item is attempted independently"""
    operation: str
    succeeded: List[Any] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)
    skipped: List[Any] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def record_success(self, item: Any) -> None:
        self.succeeded.append(item)

    def record_failure(self, reference: Any, error: Exception) -> None:
        self.failed.append(BatchFailure(reference=reference, error=str(error), error_type=type(error).__name__))

    def record_skip(self, reference: Any) -> None:
        self.skipped.append(reference)

    def to_dict(self) -> Dict:
        """Convert BatchResult to dictionary for serialization"""
        return {
            'operation': self.operation,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'succeeded': [getattr(item, 'code', item) for item in self.succeeded],
            'failed': [failure.to_dict() for failure in self.failed],
            'skipped': list(self.skipped),
        }
