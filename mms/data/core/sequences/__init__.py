"""
Sequence code managers
Atomic counters for entity codes
"""

from mms.data.core.sequences.code_managers import (
    BacklogCodeManager,
    WorkOrderCodeManager,
    InspectionCodeManager,
    PMScheduleCodeManager,
    RuleCodeManager,
    EquipmentCodeManager,
)

ALL_CODE_MANAGERS = [
    BacklogCodeManager,
    WorkOrderCodeManager,
    InspectionCodeManager,
    PMScheduleCodeManager,
    RuleCodeManager,
    EquipmentCodeManager,
]

__all__ = [
    'BacklogCodeManager',
    'WorkOrderCodeManager',
    'InspectionCodeManager',
    'PMScheduleCodeManager',
    'RuleCodeManager',
    'EquipmentCodeManager',
    'ALL_CODE_MANAGERS',
]
