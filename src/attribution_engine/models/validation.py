"""Validation error models."""

from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field

from attribution_engine.models.base import AttributionBaseModel


class ValidationErrorCode(str, Enum):
    """Machine-readable validation failure codes."""

    INVALID_WEIGHT_RANGE = "INVALID_WEIGHT_RANGE"
    INVALID_WEIGHT_SUM = "INVALID_WEIGHT_SUM"
    INVALID_WINDOW_RANGE = "INVALID_WINDOW_RANGE"
    INVALID_WINDOW_ORDER = "INVALID_WINDOW_ORDER"
    INVALID_DECAY_HALF_LIFE = "INVALID_DECAY_HALF_LIFE"
    INVALID_POSITION_SPLIT = "INVALID_POSITION_SPLIT"
    UNKNOWN_MODEL = "UNKNOWN_MODEL"
    UNKNOWN_CHANNEL = "UNKNOWN_CHANNEL"
    VALIDATION_FAILURE = "VALIDATION_FAILURE"


class ValidationError(AttributionBaseModel):
    """A rule violation found in a configuration.

    This is a value returned by the validator, not an exception.
    """

    model_config = ConfigDict(frozen=True)

    field: Optional[str] = Field(None, description="Offending field, if any")
    messages: list[str] = Field(..., min_length=1, description="Human readable messages")
    code: ValidationErrorCode = Field(..., description="Failure code")

    @property
    def message(self) -> str:
        return "; ".join(self.messages)

    def __str__(self) -> str:
        if self.field:
            return f"{self.code}: {self.message} ({self.field})"
        return f"{self.code}: {self.message}"
