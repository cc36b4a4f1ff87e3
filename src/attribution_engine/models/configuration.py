"""Attribution model configuration and validation rule models."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import ConfigDict, Field, computed_field, field_validator, model_validator

from attribution_engine.models.base import AttributionBaseModel, ensure_utc, utc_now
from attribution_engine.models.touchpoint import Channel

DEFAULT_ATTRIBUTION_WINDOW_DAYS = 30
DEFAULT_DECAY_HALF_LIFE_DAYS = 7.0
DEFAULT_POSITION_FIRST_WEIGHT = 0.4
DEFAULT_POSITION_LAST_WEIGHT = 0.4

# Percent split used when no channel weights are supplied; sums to 100.
DEFAULT_CHANNEL_WEIGHTS: dict[str, float] = {
    Channel.SOCIAL_ORGANIC.value: 15.0,
    Channel.SOCIAL_PAID.value: 15.0,
    Channel.EMAIL_MARKETING.value: 15.0,
    Channel.EMAIL_TRANSACTIONAL.value: 5.0,
    Channel.PAID_SEARCH.value: 15.0,
    Channel.ORGANIC_SEARCH.value: 10.0,
    Channel.DIRECT.value: 5.0,
    Channel.REFERRAL.value: 5.0,
    Channel.DISPLAY.value: 5.0,
    Channel.VIDEO.value: 5.0,
    Channel.AFFILIATE.value: 3.0,
    Channel.CONTENT_SYNDICATION.value: 2.0,
}


class AttributionModelType(str, Enum):
    """Attribution model kinds."""

    FIRST_TOUCH = "first_touch"
    LAST_TOUCH = "last_touch"
    LINEAR = "linear"
    TIME_DECAY = "time_decay"
    POSITION_BASED = "position_based"  # 40/20/40 by default
    CUSTOM = "custom"


class ModelStatus(str, Enum):
    """Lifecycle of a model configuration."""

    DRAFT = "draft"
    VALIDATED = "validated"
    ACTIVE = "active"
    ARCHIVED = "archived"


class ValidationRules(AttributionBaseModel):
    """Static bounds a configuration must satisfy. Global and read-only."""

    model_config = ConfigDict(frozen=True)

    min_channel_weight: float = Field(default=0.0)
    max_channel_weight: float = Field(default=100.0)
    total_weight_sum: float = Field(default=100.0)
    weight_sum_tolerance: float = Field(default=0.01, ge=0.0)
    min_days: float = Field(default=1.0)
    max_days: float = Field(default=365.0)
    min_decay_half_life: float = Field(default=1.0)
    max_decay_half_life: float = Field(default=90.0)


DEFAULT_VALIDATION_RULES = ValidationRules()


class AttributionWindow(AttributionBaseModel):
    """Trailing time span during which touchpoints are eligible for credit."""

    model_config = ConfigDict(frozen=True)

    start: datetime = Field(..., description="Window start")
    end: datetime = Field(..., description="Window end")

    @field_validator("start", "end")
    @classmethod
    def normalize_bounds(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def days(self) -> float:
        """Window length in days (negative when end precedes start)."""
        return (self.end - self.start).total_seconds() / 86400

    @classmethod
    def trailing(cls, days: float, end: Optional[datetime] = None) -> "AttributionWindow":
        """Build a window of ``days`` ending at ``end`` (now by default)."""
        end = ensure_utc(end) if end is not None else utc_now()
        return cls(start=end - timedelta(days=days), end=end)


class TimeRange(AttributionBaseModel):
    """Closed time range used to query touchpoints and results."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalize_bounds(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_order(self) -> "TimeRange":
        if self.end < self.start:
            raise ValueError("end must not precede start")
        return self

    def as_query(self) -> str:
        """Render as the ``start,end`` ISO-8601 pair used in request parameters."""
        return f"{self.start.isoformat()},{self.end.isoformat()}"


class ModelParameters(AttributionBaseModel):
    """Model-specific parameters (``customRules`` on the wire)."""

    model_config = ConfigDict(frozen=True)

    decay_half_life_days: float = Field(
        default=DEFAULT_DECAY_HALF_LIFE_DAYS,
        description="Days after which a time-decay contribution halves",
    )
    position_first_weight: float = Field(
        default=DEFAULT_POSITION_FIRST_WEIGHT,
        description="Share of credit for the first touch in position-based models",
    )
    position_last_weight: float = Field(
        default=DEFAULT_POSITION_LAST_WEIGHT,
        description="Share of credit for the last touch in position-based models",
    )

    @property
    def position_middle_weight(self) -> float:
        """Share of credit split evenly among middle touches."""
        return 1.0 - self.position_first_weight - self.position_last_weight


class ModelConfiguration(AttributionBaseModel):
    """An attribution model configuration.

    ``model`` is kept as the raw (normalized) string so that an unknown kind
    reaches the validator as a reportable error instead of failing to parse.
    """

    model_config = ConfigDict(frozen=True)

    config_id: str = Field(default_factory=lambda: str(uuid4()), alias="id")
    name: str = Field(default="Attribution Model")
    model: str = Field(..., description="Attribution model kind")
    channel_weights: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_CHANNEL_WEIGHTS),
        description="Per-channel weight in percent",
    )
    window: AttributionWindow = Field(
        default_factory=lambda: AttributionWindow.trailing(
            DEFAULT_ATTRIBUTION_WINDOW_DAYS
        ),
        alias="attributionWindow",
    )
    parameters: ModelParameters = Field(
        default_factory=ModelParameters, alias="customRules"
    )
    validation_rules: ValidationRules = Field(default_factory=ValidationRules)
    status: ModelStatus = Field(default=ModelStatus.DRAFT)
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="before")
    @classmethod
    def window_from_days(cls, data: Any) -> Any:
        """Accept the persisted shape that only carries ``attributionWindowDays``."""
        if not isinstance(data, dict):
            return data
        if "window" in data or "attributionWindow" in data:
            return data
        days = data.get("attributionWindowDays", data.get("attribution_window_days"))
        if days is not None:
            data = dict(data)
            data["window"] = AttributionWindow.trailing(float(days))
        return data

    @field_validator("model", mode="before")
    @classmethod
    def normalize_model(cls, v: Any) -> Any:
        if isinstance(v, Enum):
            v = v.value
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_").replace(" ", "_")
        return v

    @computed_field(alias="attributionWindowDays")  # type: ignore[prop-decorator]
    @property
    def attribution_window_days(self) -> float:
        """Window length in days."""
        return self.window.days

    @property
    def model_type(self) -> Optional[AttributionModelType]:
        """The model kind, or None if it is not a known kind."""
        try:
            return AttributionModelType(self.model)
        except ValueError:
            return None

    def with_status(self, status: ModelStatus) -> "ModelConfiguration":
        """Copy of this configuration in a new lifecycle state."""
        return self.model_copy(update={"status": status, "updated_at": utc_now()})


def default_configuration() -> ModelConfiguration:
    """Linear configuration with the default channel split and a 30-day window."""
    return ModelConfiguration(
        name="Default Attribution Model",
        model=AttributionModelType.LINEAR,
        status=ModelStatus.ACTIVE,
    )
