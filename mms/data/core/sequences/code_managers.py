"""
Entity code managers
One counter per code family
"""

from mms.data.core.virtual_sequence_generator import VirtualSequenceGenerator


class BacklogCodeManager(VirtualSequenceGenerator):
    """Allocates BL-000001 style backlog codes"""

    code_prefix = "BL"

    @classmethod
    def get_sequence_table_name(cls):
        return "_sequence_backlog_code"


class WorkOrderCodeManager(VirtualSequenceGenerator):
    """Allocates WO-000001 style work order codes"""

    code_prefix = "WO"

    @classmethod
    def get_sequence_table_name(cls):
        return "_sequence_work_order_code"


class InspectionCodeManager(VirtualSequenceGenerator):
    """Allocates INSP-000001 style inspection codes"""

    code_prefix = "INSP"

    @classmethod
    def get_sequence_table_name(cls):
        return "_sequence_inspection_code"


class PMScheduleCodeManager(VirtualSequenceGenerator):
    """Allocates PM-000001 style schedule codes"""

    code_prefix = "PM"

    @classmethod
    def get_sequence_table_name(cls):
        return "_sequence_pm_schedule_code"


class RuleCodeManager(VirtualSequenceGenerator):
    """Allocates RULE-0001 style auto work order rule codes"""

    code_prefix = "RULE"
    code_width = 4

    @classmethod
    def get_sequence_table_name(cls):
        return "_sequence_rule_code"


class EquipmentCodeManager(VirtualSequenceGenerator):
    """
    Allocates equipment codes when none is supplied.

    The counter is shared across equipment types and the prefix comes from
    the type: an assembly gets "ASS-0007", the next component "COM-0008".
    """

    code_prefix = "EQ"
    code_width = 4

    @classmethod
    def get_sequence_table_name(cls):
        return "_sequence_equipment_code"

    @classmethod
    def next_code_for_type(cls, equipment_type: str) -> str:
        prefix = (equipment_type or cls.code_prefix).replace('-', '')[:3].upper()
        return f"{prefix}-{cls.get_next_id():0{cls.code_width}d}"
