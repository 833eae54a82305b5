"""
LifecycleNarrator - human-readable text for lifecycle events

Separates narrative formatting from transition logic. Used for the audit
trail and for the description stored on rule-spawned work orders.
"""

from typing import Optional


class LifecycleNarrator:
    """
    Composes machine-generated descriptions for lifecycle events.
    """

    @staticmethod
    def describe_event(event) -> str:
        """Audit description for a published LifecycleEvent"""
        payload = event.payload or {}
        label = payload.get('code') or f"#{event.entity_id}"
        entity, _, action = event.event_type.partition('.')
        if action == 'bulkUpdated':
            action = 'bulk updated'
        text = f"{entity.capitalize()} {label} {action}"
        if payload.get('status'):
            text += f" (status: {payload['status']})"
        return text

    @staticmethod
    def running_hours_trigger(current_delta: float, threshold: float) -> str:
        return (
            f"Running hours since last maintenance ({current_delta:g} h) "
            f"reached threshold of {threshold:g} h"
        )

    @staticmethod
    def calendar_trigger(days_since: Optional[float], threshold: float) -> str:
        if days_since is None:
            return f"Calendar rule never triggered before (interval {threshold:g} days)"
        return f"{days_since:g} days since last trigger reached interval of {threshold:g} days"

    @staticmethod
    def condition_trigger(health_score: float, threshold: float) -> str:
        return f"Health score {health_score:g} dropped below threshold of {threshold:g}"

    @staticmethod
    def inspection_finding_trigger(finding_count: int, threshold: float, inspection_code: str) -> str:
        return (
            f"Inspection {inspection_code} produced {finding_count} qualifying finding(s), "
            f"threshold {threshold:g}"
        )

    @staticmethod
    def backlog_work_order_title(category: str, issue: str) -> str:
        """Title for a work order promoted from a backlog item"""
        return f"{category} Work: {issue[:50]}..."

    @staticmethod
    def status_changed(code: str, from_status: str, to_status: str, reason: Optional[str] = None) -> str:
        text = f"{code} status changed: {from_status} → {to_status}"
        if reason:
            text += f" | Reason: {reason}"
        return text
