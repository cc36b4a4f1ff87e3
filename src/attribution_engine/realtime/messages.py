"""Push-channel wire messages and subscriber events."""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from attribution_engine.models.base import AttributionBaseModel, utc_now
from attribution_engine.models.configuration import ModelConfiguration
from attribution_engine.models.results import AttributionResult

logger = logging.getLogger(__name__)

HEARTBEAT_MESSAGE = {"type": "heartbeat"}


class MessageType(str, Enum):
    """Push-channel message types."""

    HEARTBEAT = "heartbeat"
    ATTRIBUTION_UPDATE = "attribution_update"


def parse_message(raw: str | bytes) -> Optional[dict]:
    """Decode a push-channel frame.

    Returns:
        The decoded object, or None for frames that are not JSON objects
        with a string ``type``
    """
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug("Ignoring malformed push-channel frame")
        return None
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        logger.debug("Ignoring push-channel frame without a message type")
        return None
    return message


def parse_results(message: dict) -> list[AttributionResult]:
    """Extract the valid results of an ``attribution_update`` message.

    Malformed entries are skipped so one bad result does not drop the batch.
    """
    raw_results = message.get("results")
    if not isinstance(raw_results, list):
        logger.warning("attribution_update message without a results list")
        return []

    results = []
    for raw in raw_results:
        try:
            results.append(AttributionResult.model_validate(raw))
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed attribution result: {e.error_count()} errors")
    return results


class ChannelEventType(str, Enum):
    """Events delivered to channel subscribers."""

    ATTRIBUTION_UPDATE = "attribution_update"
    CONFIGURATION_UPDATE = "configuration_update"
    ERROR = "error"


class ChannelEvent(AttributionBaseModel):
    """Notification delivered to realtime channel subscribers."""

    type: ChannelEventType
    results: list[AttributionResult] = Field(default_factory=list)
    configuration: Optional[ModelConfiguration] = None
    error: Optional[str] = None
    emitted_at: datetime = Field(default_factory=utc_now)
