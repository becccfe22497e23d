"""
Alert construction.

Severity is a pure lookup on the condition label. Every built-in condition is
currently critical; LOW and MEDIUM are reserved for future trend notices.
"""

from types import MappingProxyType

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
    AlertSource,
    Severity,
)

CONDITION_SEVERITY = MappingProxyType(
    {
        HIGH_HEART_RATE: Severity.HIGH,
        CRITICAL_BLOOD_PRESSURE: Severity.HIGH,
        INCREASING_BP_TREND: Severity.HIGH,
        DECREASING_BP_TREND: Severity.HIGH,
        LOW_SATURATION: Severity.HIGH,
        RAPID_SATURATION_DROP: Severity.HIGH,
        ABNORMAL_ECG: Severity.HIGH,
        HYPOTENSIVE_HYPOXEMIA: Severity.HIGH,
    }
)

# Externally supplied labels are treated as critical until classified
DEFAULT_SEVERITY = Severity.HIGH


def severity_for(condition: str) -> Severity:
    return CONDITION_SEVERITY.get(condition, DEFAULT_SEVERITY)


def build_alert(
    subject_id: int,
    condition: str,
    timestamp: int,
    source: AlertSource = AlertSource.RULE,
) -> Alert:
    """Create an immutable Alert with severity resolved from its condition."""
    return Alert(
        subject_id=subject_id,
        condition=condition,
        timestamp=timestamp,
        severity=severity_for(condition),
        source=source,
    )
