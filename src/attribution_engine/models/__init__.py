"""Data models for the attribution engine."""

from attribution_engine.models.base import AttributionBaseModel, ensure_utc, utc_now
from attribution_engine.models.configuration import (
    DEFAULT_CHANNEL_WEIGHTS,
    DEFAULT_VALIDATION_RULES,
    AttributionModelType,
    AttributionWindow,
    ModelConfiguration,
    ModelParameters,
    ModelStatus,
    TimeRange,
    ValidationRules,
    default_configuration,
)
from attribution_engine.models.results import (
    AttributionResult,
    ComputationError,
    ComputationErrorCode,
    ConfigurationUpdateResult,
    JourneyMetrics,
    ModelPerformanceMetrics,
    UpdateStatus,
    ValidationStatus,
    worst_status,
)
from attribution_engine.models.touchpoint import (
    Channel,
    Conversion,
    Touchpoint,
    TouchpointMetadata,
    TouchpointSequence,
)
from attribution_engine.models.validation import ValidationError, ValidationErrorCode

__all__ = [
    "AttributionBaseModel",
    "AttributionModelType",
    "AttributionResult",
    "AttributionWindow",
    "Channel",
    "ComputationError",
    "ComputationErrorCode",
    "ConfigurationUpdateResult",
    "Conversion",
    "DEFAULT_CHANNEL_WEIGHTS",
    "DEFAULT_VALIDATION_RULES",
    "JourneyMetrics",
    "ModelConfiguration",
    "ModelParameters",
    "ModelPerformanceMetrics",
    "ModelStatus",
    "TimeRange",
    "Touchpoint",
    "TouchpointMetadata",
    "TouchpointSequence",
    "UpdateStatus",
    "ValidationError",
    "ValidationErrorCode",
    "ValidationRules",
    "ValidationStatus",
    "default_configuration",
    "ensure_utc",
    "utc_now",
    "worst_status",
]
