"""Touchpoint data models for conversion journeys."""

from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import uuid4

from pydantic import ConfigDict, Field, field_validator, model_validator

from attribution_engine.models.base import AttributionBaseModel, ensure_utc

ExtraValue = Union[str, int, float, bool]


class Channel(str, Enum):
    """Marketing source/medium a touchpoint is attributed to."""

    SOCIAL_ORGANIC = "social_organic"
    SOCIAL_PAID = "social_paid"
    EMAIL_MARKETING = "email_marketing"
    EMAIL_TRANSACTIONAL = "email_transactional"
    PAID_SEARCH = "paid_search"
    ORGANIC_SEARCH = "organic_search"
    DIRECT = "direct"
    REFERRAL = "referral"
    DISPLAY = "display"
    VIDEO = "video"
    AFFILIATE = "affiliate"
    CONTENT_SYNDICATION = "content_syndication"

    @classmethod
    def parse(cls, value: str) -> Optional["Channel"]:
        """Look up a channel from loose input (``PAID_SEARCH``, ``paid-search``)."""
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            return None


class TouchpointMetadata(AttributionBaseModel):
    """Campaign context of a touchpoint.

    Known attributes have fixed fields; anything else the event collector
    sends is kept in ``extra`` so newer payloads still parse.
    """

    model_config = ConfigDict(frozen=True)

    campaign: Optional[str] = Field(None, description="Campaign name")
    cost: Optional[float] = Field(None, ge=0.0, description="Cost of the interaction")
    source: Optional[str] = Field(None, description="Traffic source")
    medium: Optional[str] = Field(None, description="Traffic medium")
    extra: dict[str, ExtraValue] = Field(
        default_factory=dict, description="Additional collector attributes"
    )


class Touchpoint(AttributionBaseModel):
    """One recorded marketing interaction. Read-only to the engine."""

    model_config = ConfigDict(frozen=True)

    touchpoint_id: str = Field(default_factory=lambda: str(uuid4()))
    journey_id: str = Field(..., description="Conversion journey this touch belongs to")
    visitor_id: str = Field(..., description="Visitor identifier")
    session_id: Optional[str] = Field(None, description="Session identifier")
    channel: Channel = Field(..., description="Marketing channel")
    timestamp: datetime = Field(..., description="When the interaction occurred")
    metadata: TouchpointMetadata = Field(default_factory=TouchpointMetadata)

    @field_validator("channel", mode="before")
    @classmethod
    def normalize_channel(cls, v):
        if isinstance(v, str) and not isinstance(v, Channel):
            return Channel.parse(v) or v
        return v

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Conversion(AttributionBaseModel):
    """Terminal value-bearing event a journey leads to."""

    model_config = ConfigDict(frozen=True)

    journey_id: str = Field(..., description="Journey identifier")
    converted_at: datetime = Field(..., description="Conversion timestamp")
    value: float = Field(default=0.0, ge=0.0, description="Monetary value")

    @field_validator("converted_at")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class TouchpointSequence(AttributionBaseModel):
    """Ordered touchpoints belonging to one conversion journey.

    Touchpoints are always stored sorted by timestamp (stable for ties). An
    empty list is accepted here so a single bad record does not fail a whole
    batch; the calculator rejects it.
    """

    sequence_id: str = Field(..., description="Journey / conversion identifier")
    touchpoints: list[Touchpoint] = Field(default_factory=list)
    converted: bool = Field(default=False)
    conversion_value: float = Field(default=0.0, ge=0.0)
    conversion_at: Optional[datetime] = Field(
        None, description="Conversion timestamp; defaults to the last touchpoint"
    )

    @field_validator("touchpoints")
    @classmethod
    def sort_touchpoints(cls, v: list[Touchpoint]) -> list[Touchpoint]:
        """Keep touchpoints non-decreasing by timestamp."""
        return sorted(v, key=lambda touch: touch.timestamp)

    @field_validator("conversion_at")
    @classmethod
    def normalize_conversion_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else v

    @model_validator(mode="after")
    def default_conversion_at(self) -> "TouchpointSequence":
        if self.conversion_at is None and self.touchpoints:
            # object.__setattr__ avoids re-running validate_assignment
            object.__setattr__(self, "conversion_at", self.touchpoints[-1].timestamp)
        return self

    @property
    def reference_time(self) -> Optional[datetime]:
        """Time touchpoint ages are measured against."""
        return self.conversion_at

    @property
    def channels(self) -> list[str]:
        """Channels of the touchpoints in order."""
        return [touch.channel for touch in self.touchpoints]
