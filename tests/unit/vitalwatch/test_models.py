"""Test domain models and the condition-to-severity mapping."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from vitalwatch.domain.errors import InvalidCategory
from vitalwatch.domain.models import (
    HIGH_HEART_RATE,
    AlertSource,
    Observation,
    Severity,
    VitalCategory,
)
from vitalwatch.services.alerts import CONDITION_SEVERITY, build_alert, severity_for


class TestObservation:
    @given(value=st.floats(allow_nan=False), timestamp=st.integers(min_value=0, max_value=2**62))
    def test_creation_with_random_data(self, value: float, timestamp: int) -> None:
        observation = Observation(
            subject_id=1, category="HeartRate", value=value, timestamp=timestamp
        )

        assert observation.value == value
        assert observation.category is VitalCategory.HEART_RATE

    def test_immutability(self) -> None:
        observation = Observation(subject_id=1, category="ECG", value=0.5, timestamp=0)

        with pytest.raises(ValueError, match="frozen"):
            observation.value = 2.0  # type: ignore[misc]

    def test_rejects_unknown_category(self) -> None:
        with pytest.raises(ValueError):
            Observation(subject_id=1, category="Mood", value=1.0, timestamp=0)


class TestVitalCategory:
    def test_parse_accepts_members_and_labels(self) -> None:
        assert VitalCategory.parse(VitalCategory.ECG) is VitalCategory.ECG
        assert VitalCategory.parse("Saturation") is VitalCategory.SATURATION

    @pytest.mark.parametrize("label", ["", None, "saturation", "Pulse"])
    def test_parse_rejects(self, label: str | None) -> None:
        with pytest.raises(InvalidCategory) as excinfo:
            VitalCategory.parse(label)
        assert excinfo.value.category == label


class TestAlertConstruction:
    def test_every_builtin_condition_is_high(self) -> None:
        assert set(CONDITION_SEVERITY.values()) == {Severity.HIGH}

    def test_unknown_condition_defaults_to_high(self) -> None:
        assert severity_for("Nurse Call") is Severity.HIGH

    def test_build_alert(self) -> None:
        alert = build_alert(3, HIGH_HEART_RATE, 42)

        assert (alert.subject_id, alert.condition, alert.timestamp) == (3, HIGH_HEART_RATE, 42)
        assert alert.severity is Severity.HIGH
        assert alert.source is AlertSource.RULE
        assert alert.matches(3, HIGH_HEART_RATE)
        assert not alert.matches(4, HIGH_HEART_RATE)

    def test_alert_is_immutable(self) -> None:
        alert = build_alert(1, HIGH_HEART_RATE, 0)

        with pytest.raises(ValueError, match="frozen"):
            alert.condition = "changed"  # type: ignore[misc]

    def test_severity_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            CONDITION_SEVERITY["New"] = Severity.LOW  # type: ignore[index]
