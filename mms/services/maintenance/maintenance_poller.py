"""
Maintenance Poller
Background cadence for rule evaluation and PM overdue refresh.
"""

import threading
from datetime import datetime
from typing import Dict, Optional
from mms.business.core.events import EventSink
from mms.business.core.settings import engine_setting
from mms.business.engine import MaintenanceEngine
from mms.logger import get_logger

logger = get_logger("mms.services.maintenance.poller")


class MaintenancePoller:
    """
    Runs one maintenance cycle every `interval` seconds on a daemon thread.

    Each cycle opens its own app context, so it never shares a session
    with request-serving threads. A failing cycle is logged and the next
    cycle is the retry.
    """

    def __init__(self, app, interval: Optional[float] = None, event_sink: Optional[EventSink] = None):
        self.app = app
        if interval is None:
            with app.app_context():
                interval = engine_setting('MMS_POLL_INTERVAL_SECONDS')
        self.interval = interval
        self.event_sink = event_sink
        self.cycles_run = 0
        self.last_cycle: Optional[Dict] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[datetime] = None, evaluate_rules: bool = True, refresh_pm: bool = True) -> Dict:
        """
        Run one cycle synchronously.

        Args:
            now: Reference time
            evaluate_rules: Run the rule engine poll
            refresh_pm: Run the PM overdue refresh

        Returns:
            {'rules': ..., 'pm': ...} as BatchResult dictionaries, built
            before the cycle's session is torn down
        """
        summary = {}
        with self.app.app_context():
            engine = MaintenanceEngine(event_sink=self.event_sink)
            if evaluate_rules:
                summary['rules'] = engine.rules.evaluate_all(now=now).to_dict()
            if refresh_pm:
                summary['pm'] = engine.pm.refresh_overdue(now=now).to_dict()

        self.cycles_run += 1
        self.last_cycle = summary
        logger.info(
            f"Maintenance cycle {self.cycles_run}: "
            + ", ".join(f"{name} {result['success_count']} ok / {result['failure_count']} failed" for name, result in summary.items())
        )
        return summary

    def _loop(self) -> None:
        logger.info(f"Maintenance poller started (every {self.interval}s)")
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Maintenance cycle failed: {e}")
            self._stop_event.wait(self.interval)
        logger.info("Maintenance poller stopped")

    def start(self) -> None:
        if self.is_running:
            logger.warning("Maintenance poller already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name='mms-maintenance-poller', daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_forever(self) -> None:
        """Foreground loop for the command line; returns on KeyboardInterrupt"""
        try:
            self._loop()
        except KeyboardInterrupt:
            logger.info("Maintenance poller interrupted")
