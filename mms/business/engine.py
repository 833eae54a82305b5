"""
Maintenance Engine
Wires every lifecycle component to one shared event publisher.
"""

from typing import Optional
from flask import current_app, has_app_context
from mms.business.core.events import EventLogSink, EventPublisher, EventSink, NullEventSink
from mms.business.equipment.equipment_context import EquipmentContext
from mms.business.equipment.hierarchy_manager import EquipmentHierarchyManager
from mms.business.inspections.inspection_context import InspectionContext
from mms.business.maintenance.backlog_manager import BacklogManager
from mms.business.maintenance.finding_backlog_generator import FindingBacklogGenerator
from mms.business.maintenance.planning.pm_scheduler import PMScheduler
from mms.business.maintenance.rules.rule_engine import RuleEngine
from mms.business.maintenance.work_order_context import WorkOrderContext
from mms.business.maintenance.work_order_generator import WorkOrderGenerator


def default_event_sink() -> EventSink:
    """Audit-table sink when MMS_PERSIST_EVENTS is on, otherwise a null sink"""
    if has_app_context() and current_app.config.get('MMS_PERSIST_EVENTS'):
        return EventLogSink()
    return NullEventSink()


class MaintenanceEngine:
    """
    Entry point used by the CRUD layer and the background poller.

    Components are plain attributes; they share `self.events`, so a sink
    passed here receives everything the engine publishes.
    """

    def __init__(self, event_sink: Optional[EventSink] = None):
        self.events = EventPublisher(event_sink if event_sink is not None else default_event_sink())

        self.hierarchy = EquipmentHierarchyManager(publisher=self.events)
        self.equipment = EquipmentContext(publisher=self.events)
        self.inspections = InspectionContext(publisher=self.events)
        self.finding_backlogs = FindingBacklogGenerator(publisher=self.events)
        self.backlogs = BacklogManager(publisher=self.events)
        self.work_order_generator = WorkOrderGenerator(publisher=self.events)
        self.work_orders = WorkOrderContext(publisher=self.events)
        self.pm = PMScheduler(publisher=self.events)
        self.rules = RuleEngine(publisher=self.events)

    def __repr__(self):
        return f'<MaintenanceEngine sink={type(self.events.sink).__name__}>'
