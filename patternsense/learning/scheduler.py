"""
Periodic maintenance: temporal decay, cleanup of failed patterns, ranking.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..config import SchedulerConfig
from ..utils import logger, days_between
from .models import AdaptationReason, Pattern
from .store import PatternStore, StoreTransaction


@dataclass
class MaintenanceReport:
    """What one maintenance sweep did."""
    ran_at: datetime
    decayed: int = 0
    removed: List[str] = field(default_factory=list)
    top: List[Pattern] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ran_at': self.ran_at.isoformat(),
            'decayed': self.decayed,
            'removed': list(self.removed),
            'top': [
                {
                    'pattern_id': p.pattern_id,
                    'kind': p.kind.value,
                    'content': p.content,
                    'confidence': p.confidence,
                }
                for p in self.top
            ],
        }


class MaintenanceScheduler:
    """Runs maintenance sweeps against a pattern store in a background thread.

    The first sweep runs ``initial_delay`` seconds after ``start()``, then one
    every ``interval`` seconds until ``stop()``.
    """

    def __init__(
        self,
        store: PatternStore,
        config: Optional[SchedulerConfig] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.model = store.model
        self.config = config or SchedulerConfig()
        self.clock = clock or store.clock

        self.scheduler_thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()
        self.last_report: Optional[MaintenanceReport] = None
        self.run_count = 0

    @property
    def is_running(self) -> bool:
        return self.scheduler_thread is not None and self.scheduler_thread.is_alive()

    def start(self):
        """Start the maintenance loop."""
        if self.is_running:
            logger.info("Maintenance scheduler is already running")
            return

        self.stop_event.clear()
        self.scheduler_thread = threading.Thread(
            target=self._maintenance_loop,
            name=f"maintenance-{self.store.domain}"
        )
        self.scheduler_thread.daemon = True
        self.scheduler_thread.start()

        logger.info(f"Maintenance scheduler started for domain '{self.store.domain}'")

    def stop(self):
        """Stop the maintenance loop."""
        if not self.is_running:
            return

        self.stop_event.set()
        if self.scheduler_thread:
            self.scheduler_thread.join(timeout=10)

        logger.info(f"Maintenance scheduler stopped for domain '{self.store.domain}'")

    def _maintenance_loop(self):
        """Main loop running in background thread."""
        if self.stop_event.wait(self.config.initial_delay):
            return

        while not self.stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in maintenance loop: {e}")
            self.stop_event.wait(self.config.interval)

    def run_once(self, now: Optional[datetime] = None) -> MaintenanceReport:
        """Run decay, cleanup and ranking once."""
        now = now or self.clock()
        report = MaintenanceReport(ran_at=now)

        report.decayed = self.store.execute(lambda txn: self._decay_pass(txn, now))
        report.removed = self.store.execute(self._cleanup_pass)
        report.top = self.rank(self.config.top_n)

        self.last_report = report
        self.run_count += 1

        logger.info(
            f"Maintenance for '{self.store.domain}': decayed {report.decayed}, "
            f"removed {len(report.removed)}, {len(self.store)} patterns remain"
        )
        for position, pattern in enumerate(report.top, start=1):
            logger.info(
                f"  {position}. [{pattern.kind.value}] {pattern.content} "
                f"(confidence {pattern.confidence:.2f})"
            )
        return report

    def _decay_pass(self, txn: StoreTransaction, now: datetime) -> int:
        """Apply the decay owed since each pattern was last used or decayed."""
        rate = self.model.config.decay_rate_per_day
        materiality = self.model.config.materiality_threshold
        decayed = 0

        for pattern_id in txn.pattern_ids():
            pattern = txn.get(pattern_id)
            if days_between(pattern.usage.last_used, now) <= 1:
                continue

            anchor = pattern.usage.last_used
            if pattern.usage.last_decayed_at and pattern.usage.last_decayed_at > anchor:
                anchor = pattern.usage.last_decayed_at
            pending_days = days_between(anchor, now)
            if pending_days <= 0:
                continue

            old_confidence = pattern.confidence
            new_confidence = self.model.clamp(old_confidence - rate * pending_days)
            pattern.confidence = new_confidence
            pattern.usage.last_decayed_at = now

            if abs(new_confidence - old_confidence) > materiality:
                pattern.record_adaptation(
                    AdaptationReason.TEMPORAL_CHANGE,
                    old_confidence,
                    new_confidence,
                    f"Temporal decay after {pending_days:.1f} idle days",
                    now
                )
            if new_confidence != old_confidence:
                decayed += 1
                logger.debug(
                    f"Pattern {pattern_id} decayed: {old_confidence:.2f} -> {new_confidence:.2f}"
                )
            txn.put(pattern)

        return decayed

    def _cleanup_pass(self, txn: StoreTransaction) -> List[str]:
        """Remove patterns stuck at the floor after many suggestions."""
        floor = self.model.min_confidence
        threshold = self.model.config.cleanup_threshold
        removed = []

        for pattern_id in txn.pattern_ids():
            pattern = txn.get(pattern_id)
            if pattern.confidence <= floor and pattern.usage.suggested_count > threshold:
                txn.remove(pattern_id)
                removed.append(pattern_id)
                logger.debug(f"Removed low-confidence pattern {pattern_id}")

        return removed

    def rank(self, limit: int) -> List[Pattern]:
        """Highest-confidence patterns, ties in insertion order."""
        ranked = sorted(self.store.all(), key=lambda p: p.confidence, reverse=True)
        return ranked[:limit]
