"""
Alert evaluation engine.

Orchestrates the registered rule evaluators over a subject's stored history
and keeps the resulting alerts in an append-only, engine-owned log.

Concurrency model:
- At most one evaluation per subject in flight (per-subject evaluation lock,
  distinct from the store's data locks)
- Different subjects evaluate in parallel (evaluate_all uses a thread pool)
- One mutex guards the alert log; every log operation is a single mutation

Repeated evaluation of unchanged data re-emits the same alerts. Callers that
need current-state semantics must de-duplicate on their side.
"""

import threading
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

import structlog

from vitalwatch.config import AppConfig, EngineConfig, get_config
from vitalwatch.domain.models import Alert, AlertSource
from vitalwatch.services.alerts import build_alert
from vitalwatch.services.record_store import PatientRecordStore
from vitalwatch.services.rules import RuleEvaluator, default_evaluators

logger = structlog.get_logger(__name__)


class AlertEvaluationEngine:
    """
    Applies rule evaluators to patient histories and accumulates alerts.

    Rule-origin alerts and manually triggered alerts share the log; the
    Alert.source field tells them apart.
    """

    def __init__(
        self,
        store: PatientRecordStore,
        evaluators: Iterable[RuleEvaluator] | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.store = store
        self.evaluators: list[RuleEvaluator] = (
            list(evaluators) if evaluators is not None else default_evaluators()
        )
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="alert_engine")

        self._alerts: list[Alert] = []
        self._log_lock = threading.Lock()

        self._evaluation_locks: dict[int, threading.Lock] = {}
        self._evaluation_locks_guard = threading.Lock()

        for evaluator in self.evaluators:
            if not isinstance(evaluator, RuleEvaluator):
                raise TypeError(f"Evaluator {evaluator!r} must implement RuleEvaluator protocol")

    @classmethod
    def from_config(
        cls, store: PatientRecordStore, config: AppConfig | None = None
    ) -> "AlertEvaluationEngine":
        """Build an engine with the built-in rules tuned by application config."""
        config = config or get_config()
        return cls(store, default_evaluators(config.rules), config.engine)

    def _evaluation_lock(self, subject_id: int) -> threading.Lock:
        with self._evaluation_locks_guard:
            lock = self._evaluation_locks.get(subject_id)
            if lock is None:
                lock = threading.Lock()
                self._evaluation_locks[subject_id] = lock
            return lock

    def evaluate(self, subject_id: int) -> list[Alert]:
        """
        Run every evaluator, in registration order, over the subject's history.

        Produced alerts are appended to the log only after all evaluators have
        completed; an evaluator error propagates and leaves the log untouched.

        Returns:
            list[Alert]: the alerts produced by this call.
        """
        start_time = time.perf_counter()

        # Unknown subjects have no history; no evaluation lock is created for them
        if subject_id not in self.store:
            return []

        with self._evaluation_lock(subject_id):
            window = self.store.history(subject_id)
            produced: list[Alert] = []
            for evaluator in self.evaluators:
                evaluator.check(subject_id, window, produced)

            if produced:
                with self._log_lock:
                    self._alerts.extend(produced)

        for alert in produced:
            self.logger.info(
                "alert_raised",
                subject_id=alert.subject_id,
                condition=alert.condition,
                severity=alert.severity.value,
                timestamp=alert.timestamp,
            )

        self.logger.debug(
            "evaluation_completed",
            subject_id=subject_id,
            observations=len(window),
            alerts=len(produced),
            duration_seconds=round(time.perf_counter() - start_time, 4),
        )
        return produced

    def evaluate_all(self) -> list[Alert]:
        """Evaluate every known subject concurrently; results in subject order."""
        subject_ids = self.store.subject_ids()
        if not subject_ids:
            return []

        workers = min(self.config.max_concurrent_evaluations, len(subject_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="evaluate") as pool:
            futures = [pool.submit(self.evaluate, subject_id) for subject_id in subject_ids]
            produced: list[Alert] = []
            for future in futures:
                produced.extend(future.result())

        self.logger.info(
            "evaluation_sweep_completed", subjects=len(subject_ids), alerts=len(produced)
        )
        return produced

    def get_alerts(self) -> list[Alert]:
        """Snapshot of the alert log, safe to iterate without holding any lock."""
        with self._log_lock:
            return list(self._alerts)

    def alerts_for(self, subject_id: int) -> list[Alert]:
        with self._log_lock:
            return [alert for alert in self._alerts if alert.subject_id == subject_id]

    def trigger_external(self, subject_id: int, condition: str, timestamp: int) -> Alert | None:
        """
        Append a manually sourced alert, bypassing the evaluators.

        Unknown subjects are ignored with a warning; nothing is raised.
        """
        if subject_id not in self.store:
            self.logger.warning(
                "external_trigger_ignored", subject_id=subject_id, condition=condition
            )
            return None

        alert = build_alert(subject_id, condition, timestamp, source=AlertSource.EXTERNAL)
        with self._log_lock:
            self._alerts.append(alert)

        self.logger.info(
            "external_alert_triggered",
            subject_id=subject_id,
            condition=condition,
            severity=alert.severity.value,
        )
        return alert

    def untrigger(self, subject_id: int, condition: str) -> int:
        """Remove every alert matching both subject and condition; idempotent."""
        with self._log_lock:
            kept = [alert for alert in self._alerts if not alert.matches(subject_id, condition)]
            removed = len(self._alerts) - len(kept)
            self._alerts = kept

        if removed:
            self.logger.info(
                "alerts_untriggered", subject_id=subject_id, condition=condition, removed=removed
            )
        return removed

    def reset(self) -> None:
        """Drop every alert from the log."""
        with self._log_lock:
            self._alerts.clear()
        self.logger.info("alert_log_reset")
