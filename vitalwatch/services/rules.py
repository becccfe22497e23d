"""
Rule evaluators for vital-sign alerts.

Each evaluator satisfies the RuleEvaluator protocol: given a subject's
timestamp-ordered observation window, append zero or more Alerts to a shared
output list. New rules join by implementing the protocol and being added to
the engine's evaluator list; there is no base class to extend.
"""

from bisect import bisect_left
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from vitalwatch.config import RuleThresholds
from vitalwatch.domain.models import (
    ABNORMAL_ECG,
    CRITICAL_BLOOD_PRESSURE,
    DECREASING_BP_TREND,
    HIGH_HEART_RATE,
    HYPOTENSIVE_HYPOXEMIA,
    INCREASING_BP_TREND,
    LOW_SATURATION,
    RAPID_SATURATION_DROP,
    Alert,
    Observation,
    VitalCategory,
)
from vitalwatch.services.alerts import build_alert


@runtime_checkable
class RuleEvaluator(Protocol):
    """
    Protocol for a single alerting rule.

    Why Protocol over ABC: structural typing, easy test doubles, no coupling.
    Implementations must not mutate the window.
    """

    rule_name: str

    def check(
        self, subject_id: int, window: Sequence[Observation], alerts: list[Alert]
    ) -> None: ...


def _readings(window: Sequence[Observation], category: VitalCategory) -> list[Observation]:
    return [o for o in window if o.category is category]


@dataclass(frozen=True)
class HeartRateRule:
    """Any heart rate above the limit."""

    thresholds: RuleThresholds = field(default_factory=RuleThresholds)
    rule_name = "heart_rate"

    def check(
        self, subject_id: int, window: Sequence[Observation], alerts: list[Alert]
    ) -> None:
        for reading in _readings(window, VitalCategory.HEART_RATE):
            if reading.value > self.thresholds.heart_rate_max:
                alerts.append(build_alert(subject_id, HIGH_HEART_RATE, reading.timestamp))


@dataclass(frozen=True)
class BloodPressureCriticalRule:
    """Systolic or diastolic reading outside its safe band, one alert per reading."""

    thresholds: RuleThresholds = field(default_factory=RuleThresholds)
    rule_name = "blood_pressure_critical"

    def _is_critical(self, reading: Observation) -> bool:
        t = self.thresholds
        if reading.category is VitalCategory.SYSTOLIC:
            return reading.value > t.systolic_max or reading.value < t.systolic_min
        if reading.category is VitalCategory.DIASTOLIC:
            return reading.value > t.diastolic_max or reading.value < t.diastolic_min
        return False

    def check(
        self, subject_id: int, window: Sequence[Observation], alerts: list[Alert]
    ) -> None:
        for reading in window:
            if self._is_critical(reading):
                alerts.append(
                    build_alert(subject_id, CRITICAL_BLOOD_PRESSURE, reading.timestamp)
                )


@dataclass(frozen=True)
class BloodPressureTrendRule:
    """
    Monotonic run over the most recent same-category readings.

    Systolic and diastolic are judged independently. Every consecutive delta
    must strictly exceed ``trend_delta`` in the same direction; a delta equal
    to the threshold breaks the trend.
    """

    thresholds: RuleThresholds = field(default_factory=RuleThresholds)
    rule_name = "blood_pressure_trend"

    def check(
        self, subject_id: int, window: Sequence[Observation], alerts: list[Alert]
    ) -> None:
        length = self.thresholds.trend_length
        limit = self.thresholds.trend_delta

        for category in (VitalCategory.SYSTOLIC, VitalCategory.DIASTOLIC):
            recent = _readings(window, category)[-length:]
            if len(recent) < length:
                continue

            deltas = [b.value - a.value for a, b in zip(recent, recent[1:])]
            if all(d > limit for d in deltas):
                condition = INCREASING_BP_TREND
            elif all(-d > limit for d in deltas):
                condition = DECREASING_BP_TREND
            else:
                continue
            alerts.append(build_alert(subject_id, condition, recent[-1].timestamp))


@dataclass(frozen=True)
class OxygenSaturationLowRule:
    """Any saturation reading below the floor."""

    thresholds: RuleThresholds = field(default_factory=RuleThresholds)
    rule_name = "oxygen_saturation_low"

    def check(
        self, subject_id: int, window: Sequence[Observation], alerts: list[Alert]
    ) -> None:
        for reading in _readings(window, VitalCategory.SATURATION):
            if reading.value < self.thresholds.saturation_min:
                alerts.append(build_alert(subject_id, LOW_SATURATION, reading.timestamp))


@dataclass(frozen=True)
class OxygenSaturationRapidDropRule:
    """
    Net saturation drop inside a trailing window.

    For each saturation reading, the window is [timestamp - window_ms,
    timestamp] inclusive. The first sample of that window is compared with
    the current one; intermediate samples are ignored, so a slow multi-step
    decline counts when the net drop reaches the threshold.
    """

    thresholds: RuleThresholds = field(default_factory=RuleThresholds)
    rule_name = "oxygen_saturation_rapid_drop"

    def check(
        self, subject_id: int, window: Sequence[Observation], alerts: list[Alert]
    ) -> None:
        readings = _readings(window, VitalCategory.SATURATION)
        timestamps = [r.timestamp for r in readings]
        span = self.thresholds.saturation_window_ms

        for index, current in enumerate(readings):
            first = bisect_left(timestamps, current.timestamp - span)
            if first >= index:
                continue
            if readings[first].value - current.value >= self.thresholds.saturation_drop:
                alerts.append(
                    build_alert(subject_id, RAPID_SATURATION_DROP, current.timestamp)
                )


@dataclass(frozen=True)
class ECGAbnormalRule:
    """Any ECG amplitude above the limit."""

    thresholds: RuleThresholds = field(default_factory=RuleThresholds)
    rule_name = "ecg_abnormal"

    def check(
        self, subject_id: int, window: Sequence[Observation], alerts: list[Alert]
    ) -> None:
        for reading in _readings(window, VitalCategory.ECG):
            if reading.value > self.thresholds.ecg_max:
                alerts.append(build_alert(subject_id, ABNORMAL_ECG, reading.timestamp))


@dataclass(frozen=True)
class HypotensiveHypoxemiaRule:
    """
    Low systolic pressure together with low saturation in the same window.

    Fires once per window, stamped with the latest contributing reading.
    """

    thresholds: RuleThresholds = field(default_factory=RuleThresholds)
    rule_name = "hypotensive_hypoxemia"

    def check(
        self, subject_id: int, window: Sequence[Observation], alerts: list[Alert]
    ) -> None:
        low_systolic = [
            r
            for r in _readings(window, VitalCategory.SYSTOLIC)
            if r.value < self.thresholds.systolic_min
        ]
        low_saturation = [
            r
            for r in _readings(window, VitalCategory.SATURATION)
            if r.value < self.thresholds.saturation_min
        ]
        if not low_systolic or not low_saturation:
            return

        timestamp = max(low_systolic[-1].timestamp, low_saturation[-1].timestamp)
        alerts.append(build_alert(subject_id, HYPOTENSIVE_HYPOXEMIA, timestamp))


def default_evaluators(thresholds: RuleThresholds | None = None) -> list[RuleEvaluator]:
    """The built-in rule set in registration order."""
    thresholds = thresholds or RuleThresholds()
    return [
        HeartRateRule(thresholds),
        BloodPressureCriticalRule(thresholds),
        BloodPressureTrendRule(thresholds),
        OxygenSaturationLowRule(thresholds),
        OxygenSaturationRapidDropRule(thresholds),
        ECGAbnormalRule(thresholds),
        HypotensiveHypoxemiaRule(thresholds),
    ]
