"""Attribution result, computation error and update outcome models."""

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field

from attribution_engine.models.base import AttributionBaseModel, utc_now
from attribution_engine.models.configuration import ModelConfiguration
from attribution_engine.models.validation import ValidationError


class ComputationErrorCode(str, Enum):
    """Reasons a sequence could not be attributed."""

    EMPTY_SEQUENCE = "EMPTY_SEQUENCE"
    UNKNOWN_MODEL = "UNKNOWN_MODEL"
    INVALID_SEQUENCE = "INVALID_SEQUENCE"
    WEIGHT_SUM_VIOLATION = "WEIGHT_SUM_VIOLATION"


class ComputationError(AttributionBaseModel):
    """Per-sequence computation failure, returned in place of a result."""

    model_config = ConfigDict(frozen=True)

    sequence_id: Optional[str] = None
    code: ComputationErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationStatus(str, Enum):
    """Confidence grade of an attributed touchpoint or result."""

    VALID = "VALID"
    PARTIAL = "PARTIAL"
    INVALID = "INVALID"
    PENDING_VALIDATION = "PENDING_VALIDATION"


# Lower is worse.
_STATUS_SEVERITY = {
    ValidationStatus.INVALID: 0,
    ValidationStatus.PENDING_VALIDATION: 1,
    ValidationStatus.PARTIAL: 2,
    ValidationStatus.VALID: 3,
}


def worst_status(statuses: Iterable[str]) -> ValidationStatus:
    """Lowest grade among ``statuses``; VALID when there are none."""
    grades = [ValidationStatus(status) for status in statuses]
    return min(grades, key=_STATUS_SEVERITY.__getitem__, default=ValidationStatus.VALID)


class JourneyMetrics(AttributionBaseModel):
    """Shape of the journey behind a result."""

    model_config = ConfigDict(frozen=True)

    touchpoint_count: int = Field(default=0, ge=0)
    channel_diversity: int = Field(default=0, ge=0, description="Distinct channels")
    duration_seconds: float = Field(default=0.0, ge=0.0)
    average_time_gap_seconds: float = Field(default=0.0, ge=0.0)


class AttributionResult(AttributionBaseModel):
    """Credit assigned to the touchpoints of one sequence under one configuration.

    ``touchpoint_weights`` keeps the sequence order and sums to 1.0.
    Revenue maps are in currency units rounded to the cent and sum exactly
    to the conversion value. ``validation_status`` is the worst grade in
    ``touchpoint_status``.
    """

    model_config = ConfigDict(frozen=True)

    sequence_id: str = Field(..., description="Attributed sequence")
    config_id: str = Field(..., description="Configuration used")
    model: str = Field(..., description="Attribution model kind")
    touchpoint_weights: dict[str, float] = Field(default_factory=dict)
    channel_weights: dict[str, float] = Field(default_factory=dict)
    touchpoint_revenue: dict[str, float] = Field(default_factory=dict)
    channel_revenue: dict[str, float] = Field(default_factory=dict)
    total_attributed_revenue: float = Field(default=0.0, ge=0.0)
    confidence_scores: dict[str, float] = Field(
        default_factory=dict, description="Per-touchpoint confidence in [0, 1]"
    )
    touchpoint_status: dict[str, ValidationStatus] = Field(default_factory=dict)
    confidence_score: float = Field(default=1.0, ge=0.0, le=1.0)
    validation_status: ValidationStatus = ValidationStatus.VALID
    journey_metrics: Optional[JourneyMetrics] = None
    computed_at: datetime = Field(default_factory=utc_now)

    @property
    def weights(self) -> list[float]:
        """Touchpoint weights in sequence order."""
        return list(self.touchpoint_weights.values())


class UpdateStatus(str, Enum):
    """Outcome of a configuration update."""

    APPLIED = "applied"
    REJECTED = "rejected"
    BUSY = "busy"
    FAILED = "failed"


class ConfigurationUpdateResult(AttributionBaseModel):
    """Outcome of a configuration update request."""

    model_config = ConfigDict(frozen=True)

    status: UpdateStatus
    configuration: Optional[ModelConfiguration] = Field(
        None, description="Configuration active after the call"
    )
    errors: list[ValidationError] = Field(default_factory=list)
    code: Optional[str] = Field(None, description="Failure code for BUSY/FAILED")
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == UpdateStatus.APPLIED


class ModelPerformanceMetrics(AttributionBaseModel):
    """Accuracy figures the store reports for an attribution model."""

    model_config = ConfigDict(frozen=True)

    model_id: Optional[str] = None
    accuracy: float = Field(default=0.0, ge=0.0, le=1.0)
    precision: float = Field(default=0.0, ge=0.0, le=1.0)
    recall: float = Field(default=0.0, ge=0.0, le=1.0)
    f1_score: float = Field(default=0.0, ge=0.0, le=1.0)
    custom_metrics: dict[str, float] = Field(default_factory=dict)
