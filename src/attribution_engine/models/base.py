"""Base model with common fields and configuration."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AttributionBaseModel(BaseModel):
    """Base model for all attribution engine models.

    Fields are exposed on the wire in camelCase (``channelWeights``) while
    Python code keeps snake_case names.
    """

    model_config = ConfigDict(
        # Use enum values instead of names
        use_enum_values=True,
        # Validate on assignment
        validate_assignment=True,
        # Allow population by field name as well as by alias
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict:
        """Serialize to the camelCase JSON-compatible shape used by external services."""
        return self.model_dump(mode="json", by_alias=True)
