"""Validation rules evaluator for attribution model configurations."""

import logging
import math
from collections.abc import Callable
from typing import List, Optional

from attribution_engine.models.configuration import (
    DEFAULT_VALIDATION_RULES,
    AttributionModelType,
    ModelConfiguration,
    ValidationRules,
)
from attribution_engine.models.touchpoint import Channel
from attribution_engine.models.validation import ValidationError, ValidationErrorCode

logger = logging.getLogger(__name__)

Check = Callable[[ModelConfiguration, ValidationRules], List[ValidationError]]


def _error(
    code: ValidationErrorCode, message: str, field: Optional[str] = None
) -> ValidationError:
    return ValidationError(field=field, messages=[message], code=code)


def check_weight_range(
    config: ModelConfiguration, rules: ValidationRules
) -> List[ValidationError]:
    """Every channel weight must lie within the configured bounds."""
    errors = []
    for channel, weight in config.channel_weights.items():
        if not (rules.min_channel_weight <= weight <= rules.max_channel_weight):
            errors.append(
                _error(
                    ValidationErrorCode.INVALID_WEIGHT_RANGE,
                    f"Weight for {channel} must be between "
                    f"{rules.min_channel_weight:g}% and {rules.max_channel_weight:g}%, "
                    f"got {weight:g}",
                    field=f"channelWeights.{channel}",
                )
            )
    return errors


def check_weight_sum(
    config: ModelConfiguration, rules: ValidationRules
) -> List[ValidationError]:
    """Channel weights must add up to the required total."""
    total = math.fsum(config.channel_weights.values())
    if abs(total - rules.total_weight_sum) > rules.weight_sum_tolerance:
        return [
            _error(
                ValidationErrorCode.INVALID_WEIGHT_SUM,
                f"Channel weights must sum to {rules.total_weight_sum:g}%, "
                f"currently {total:.2f}%",
                field="channelWeights",
            )
        ]
    return []


def check_window(
    config: ModelConfiguration, rules: ValidationRules
) -> List[ValidationError]:
    """Window must be ordered and its length within bounds."""
    errors = []
    window = config.window
    if window.end < window.start:
        errors.append(
            _error(
                ValidationErrorCode.INVALID_WINDOW_ORDER,
                "Attribution window end must not precede its start",
                field="attributionWindow",
            )
        )
    if not (rules.min_days <= window.days <= rules.max_days):
        errors.append(
            _error(
                ValidationErrorCode.INVALID_WINDOW_RANGE,
                f"Attribution window must be between {rules.min_days:g} and "
                f"{rules.max_days:g} days, got {window.days:g}",
                field="attributionWindowDays",
            )
        )
    return errors


def check_decay_half_life(
    config: ModelConfiguration, rules: ValidationRules
) -> List[ValidationError]:
    """Time-decay half-life must lie within bounds."""
    if config.model_type != AttributionModelType.TIME_DECAY:
        return []
    half_life = config.parameters.decay_half_life_days
    if not (rules.min_decay_half_life <= half_life <= rules.max_decay_half_life):
        return [
            _error(
                ValidationErrorCode.INVALID_DECAY_HALF_LIFE,
                f"Decay half-life must be between {rules.min_decay_half_life:g} and "
                f"{rules.max_decay_half_life:g} days, got {half_life:g}",
                field="customRules.decayHalfLifeDays",
            )
        ]
    return []


def check_position_split(
    config: ModelConfiguration, rules: ValidationRules
) -> List[ValidationError]:
    """Position-based shares must be non-negative and leave a middle share."""
    if config.model_type != AttributionModelType.POSITION_BASED:
        return []
    params = config.parameters
    first, last = params.position_first_weight, params.position_last_weight
    if first < 0 or last < 0 or first + last > 1.0:
        return [
            _error(
                ValidationErrorCode.INVALID_POSITION_SPLIT,
                "First and last touch shares must be non-negative and sum to at "
                f"most 1.0, got {first:g} and {last:g}",
                field="customRules",
            )
        ]
    return []


def check_model(
    config: ModelConfiguration, rules: ValidationRules
) -> List[ValidationError]:
    """Model kind must be a known attribution model."""
    if config.model_type is None:
        known = ", ".join(kind.value for kind in AttributionModelType)
        return [
            _error(
                ValidationErrorCode.UNKNOWN_MODEL,
                f"Unknown attribution model '{config.model}'; expected one of {known}",
                field="model",
            )
        ]
    return []


def check_channels(
    config: ModelConfiguration, rules: ValidationRules
) -> List[ValidationError]:
    """Weight keys must name known channels."""
    known = {channel.value for channel in Channel}
    return [
        _error(
            ValidationErrorCode.UNKNOWN_CHANNEL,
            f"Unknown channel '{channel}'",
            field=f"channelWeights.{channel}",
        )
        for channel in config.channel_weights
        if channel not in known
    ]


CHECKS: tuple[Check, ...] = (
    check_weight_range,
    check_weight_sum,
    check_window,
    check_decay_half_life,
    check_position_split,
    check_model,
    check_channels,
)


def validate(
    config: ModelConfiguration, rules: Optional[ValidationRules] = None
) -> List[ValidationError]:
    """Check a candidate configuration against the validation rules.

    All checks run; an empty list means the configuration is acceptable.
    Never raises: a check that fails unexpectedly is reported as a
    ``VALIDATION_FAILURE`` error.

    Args:
        config: Candidate configuration
        rules: Bounds to check against (global defaults when omitted)

    Returns:
        Every rule violation found
    """
    rules = rules or DEFAULT_VALIDATION_RULES
    errors: List[ValidationError] = []
    for check in CHECKS:
        try:
            errors.extend(check(config, rules))
        except Exception as e:
            logger.exception(f"Validation check {check.__name__} failed")
            errors.append(
                _error(
                    ValidationErrorCode.VALIDATION_FAILURE,
                    f"Check {check.__name__} could not be evaluated: {e}",
                )
            )
    return errors


def is_config_valid(
    config: ModelConfiguration, rules: Optional[ValidationRules] = None
) -> bool:
    """Whether the configuration passes every validation rule."""
    return not validate(config, rules)
