"""
Domain models for patient vital-sign monitoring.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation and are frozen once created.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vitalwatch.domain.errors import InvalidCategory

# Epoch-millis bounds of a signed 64-bit timestamp
MIN_TIMESTAMP = -(2**63)
MAX_TIMESTAMP = 2**63 - 1

# Condition labels raised by the built-in rules
HIGH_HEART_RATE = "High Heart Rate"
CRITICAL_BLOOD_PRESSURE = "Critical Blood Pressure"
INCREASING_BP_TREND = "Increasing Blood Pressure Trend"
DECREASING_BP_TREND = "Decreasing Blood Pressure Trend"
LOW_SATURATION = "Low Blood Saturation"
RAPID_SATURATION_DROP = "Rapid Blood Saturation Drop"
ABNORMAL_ECG = "Abnormal ECG"
HYPOTENSIVE_HYPOXEMIA = "Hypotensive Hypoxemia Alert"


class VitalCategory(str, Enum):
    """Vital-sign channels an observation can belong to."""

    HEART_RATE = "HeartRate"
    SYSTOLIC = "Systolic"
    DIASTOLIC = "Diastolic"
    SATURATION = "Saturation"
    ECG = "ECG"
    BLOOD_PRESSURE = "BloodPressure"
    TEMPERATURE = "Temperature"
    CHOLESTEROL = "Cholesterol"
    WHITE_BLOOD_CELLS = "WhiteBloodCells"
    RED_BLOOD_CELLS = "RedBloodCells"

    @classmethod
    def parse(cls, category: "str | VitalCategory | None") -> "VitalCategory":
        """Resolve a raw label to a category, raising InvalidCategory otherwise."""
        if isinstance(category, cls):
            return category
        if not category or not isinstance(category, str):
            raise InvalidCategory(category)
        try:
            return cls(category)
        except ValueError:
            raise InvalidCategory(category) from None


class Severity(str, Enum):
    """Alert severity levels. Low and medium are reserved for non-critical notices."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertSource(str, Enum):
    """Where an alert came from."""

    RULE = "rule"
    EXTERNAL = "external"


class Observation(BaseModel):
    """One timestamped vital-sign reading for a subject."""

    model_config = ConfigDict(frozen=True)

    subject_id: int
    category: VitalCategory
    value: float
    timestamp: int = Field(
        ge=MIN_TIMESTAMP, le=MAX_TIMESTAMP, description="Epoch milliseconds"
    )

    @field_validator("category", mode="before")
    @classmethod
    def recognized_category(cls, v: object) -> VitalCategory:
        return VitalCategory.parse(v)  # type: ignore[arg-type]


class Alert(BaseModel):
    """Record that a condition was detected for a subject at a point in time."""

    model_config = ConfigDict(frozen=True)

    subject_id: int
    condition: str = Field(min_length=1)
    timestamp: int
    severity: Severity
    source: AlertSource = AlertSource.RULE

    def matches(self, subject_id: int, condition: str) -> bool:
        return self.subject_id == subject_id and self.condition == condition
