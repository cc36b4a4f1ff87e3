"""Attribution calculator: per-model weight assignment over touchpoint sequences."""

import logging
import math
from collections.abc import Callable
from datetime import datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Dict, List, Union

from attribution_engine.models.base import utc_now
from attribution_engine.models.configuration import (
    AttributionModelType,
    ModelConfiguration,
    ModelParameters,
)
from attribution_engine.models.results import (
    AttributionResult,
    ComputationError,
    ComputationErrorCode,
    JourneyMetrics,
    ValidationStatus,
    worst_status,
)
from attribution_engine.models.touchpoint import Touchpoint, TouchpointSequence

logger = logging.getLogger(__name__)

WEIGHT_SUM_TOLERANCE = 1e-6

CENT = Decimal("0.01")
# Fractional cents closer than this are treated as tied.
_TIE_PRECISION = Decimal("1e-9")

# Confidence falls linearly with touchpoint age, from 1.0 at the reference
# time to CONFIDENCE_FLOOR at CONFIDENCE_HORIZON_DAYS and beyond.
CONFIDENCE_FLOOR = 0.7
CONFIDENCE_HORIZON_DAYS = 90.0
VALID_CONFIDENCE = 0.95
PARTIAL_CONFIDENCE = VALID_CONFIDENCE * 0.8

ComputationOutcome = Union[AttributionResult, ComputationError]


class _SequenceRejected(Exception):
    """Internal signal carrying a computation error out of a model function."""

    def __init__(self, code: ComputationErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class AttributionCalculator:
    """Assign fractional credit to the touchpoints of a sequence.

    Every model produces weights in [0, 1] that sum to 1.0; a sequence that
    cannot be weighted yields a ``ComputationError`` instead of a result.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        """Initialize the calculator.

        Args:
            clock: Source of the ``computed_at`` stamp
        """
        self._clock = clock

    def compute_weights(
        self, sequence: TouchpointSequence, config: ModelConfiguration
    ) -> ComputationOutcome:
        """Calculate attribution weights for one sequence.

        Args:
            sequence: Touchpoint sequence to attribute
            config: Attribution model configuration

        Returns:
            Attribution result, or a computation error describing why the
            sequence was not attributed
        """
        if not sequence.touchpoints:
            return self._error(
                sequence,
                ComputationErrorCode.EMPTY_SEQUENCE,
                "Sequence has no touchpoints",
            )

        model_type = config.model_type
        if model_type is None:
            return self._error(
                sequence,
                ComputationErrorCode.UNKNOWN_MODEL,
                f"Unknown attribution model '{config.model}'",
            )

        touches = sorted(sequence.touchpoints, key=lambda touch: touch.timestamp)
        touchpoint_ids = [touch.touchpoint_id for touch in touches]
        if len(set(touchpoint_ids)) != len(touchpoint_ids):
            return self._error(
                sequence,
                ComputationErrorCode.INVALID_SEQUENCE,
                "Sequence contains duplicate touchpoint identifiers",
            )

        try:
            if model_type == AttributionModelType.FIRST_TOUCH:
                weights = self._calculate_first_touch(touches)
            elif model_type == AttributionModelType.LAST_TOUCH:
                weights = self._calculate_last_touch(touches)
            elif model_type == AttributionModelType.LINEAR:
                weights = self._calculate_linear(touches)
            elif model_type == AttributionModelType.TIME_DECAY:
                weights = self._calculate_time_decay(
                    touches,
                    sequence.conversion_at or touches[-1].timestamp,
                    config.parameters.decay_half_life_days,
                )
            elif model_type == AttributionModelType.POSITION_BASED:
                weights = self._calculate_position_based(touches, config.parameters)
            else:
                weights = self._calculate_custom(touches, config.channel_weights)
        except _SequenceRejected as e:
            return self._error(sequence, e.code, e.message)

        total = math.fsum(weights)
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE or any(
            w < -WEIGHT_SUM_TOLERANCE or w > 1.0 + WEIGHT_SUM_TOLERANCE
            for w in weights
        ):
            return self._error(
                sequence,
                ComputationErrorCode.WEIGHT_SUM_VIOLATION,
                f"Weights must lie in [0, 1] and sum to 1.0, got sum {total:.9f}",
            )

        value = sequence.conversion_value if sequence.converted else 0.0
        revenue = allocate_revenue(value, weights)

        channel_weights: Dict[str, float] = {}
        channel_revenue: Dict[str, Decimal] = {}
        for touch, weight, amount in zip(touches, weights, revenue):
            channel = str(touch.channel)
            channel_weights[channel] = channel_weights.get(channel, 0.0) + weight
            channel_revenue[channel] = channel_revenue.get(channel, Decimal(0)) + amount

        confidence = score_confidence(
            touches, sequence.conversion_at or touches[-1].timestamp
        )
        statuses = [grade_confidence(score) for score in confidence]

        logger.debug(
            f"Attributed sequence {sequence.sequence_id} with {model_type.value} "
            f"over {len(touches)} touchpoints"
        )

        return AttributionResult(
            sequence_id=sequence.sequence_id,
            config_id=config.config_id,
            model=model_type.value,
            touchpoint_weights=dict(zip(touchpoint_ids, weights)),
            channel_weights=channel_weights,
            touchpoint_revenue={
                tid: float(amount) for tid, amount in zip(touchpoint_ids, revenue)
            },
            channel_revenue={ch: float(amount) for ch, amount in channel_revenue.items()},
            total_attributed_revenue=float(sum(revenue, Decimal(0))),
            confidence_scores=dict(zip(touchpoint_ids, confidence)),
            touchpoint_status=dict(zip(touchpoint_ids, statuses)),
            confidence_score=math.fsum(confidence) / len(confidence),
            validation_status=worst_status(statuses),
            journey_metrics=journey_metrics(sequence),
            computed_at=self._clock(),
        )

    def _calculate_first_touch(self, touches: List[Touchpoint]) -> List[float]:
        """Give all credit to the earliest touchpoint."""
        return [1.0] + [0.0] * (len(touches) - 1)

    def _calculate_last_touch(self, touches: List[Touchpoint]) -> List[float]:
        """Give all credit to the latest touchpoint."""
        return [0.0] * (len(touches) - 1) + [1.0]

    def _calculate_linear(self, touches: List[Touchpoint]) -> List[float]:
        """Split credit evenly."""
        return [1.0 / len(touches)] * len(touches)

    def _calculate_time_decay(
        self,
        touches: List[Touchpoint],
        conversion_at: datetime,
        half_life_days: float,
    ) -> List[float]:
        """Calculate time-decay attribution weights.

        Args:
            touches: Sorted touchpoints
            conversion_at: Time ages are measured against
            half_life_days: Half-life for exponential decay
        """
        if half_life_days <= 0:
            raise _SequenceRejected(
                ComputationErrorCode.INVALID_SEQUENCE,
                f"Decay half-life must be positive, got {half_life_days}",
            )

        ages = [
            max((conversion_at - touch.timestamp).total_seconds() / 86400, 0.0)
            for touch in touches
        ]

        # Shift by the youngest age: the largest raw score is 1.0.
        youngest = min(ages)
        raw = [math.pow(2, -(age - youngest) / half_life_days) for age in ages]
        return self._normalize(raw)

    def _calculate_position_based(
        self,
        touches: List[Touchpoint],
        parameters: ModelParameters,
    ) -> List[float]:
        """Calculate position-based attribution weights (default 40/20/40).

        Args:
            touches: Sorted touchpoints
            parameters: First, last and middle shares
        """
        first_weight = parameters.position_first_weight
        last_weight = parameters.position_last_weight
        if len(touches) == 1:
            return [1.0]

        if len(touches) == 2:
            edges = first_weight + last_weight
            if edges <= 0:
                return [0.5, 0.5]
            return [first_weight / edges, last_weight / edges]

        weight_per_middle = parameters.position_middle_weight / (len(touches) - 2)
        return [first_weight] + [weight_per_middle] * (len(touches) - 2) + [last_weight]

    def _calculate_custom(
        self, touches: List[Touchpoint], channel_weights: Dict[str, float]
    ) -> List[float]:
        """Apply per-channel multipliers, then normalize.

        Args:
            touches: Sorted touchpoints
            channel_weights: Multiplier per channel
        """
        raw = [max(channel_weights.get(str(touch.channel), 0.0), 0.0) for touch in touches]
        if math.fsum(raw) <= 0:
            raise _SequenceRejected(
                ComputationErrorCode.INVALID_SEQUENCE,
                "No touchpoint channel carries a positive custom weight",
            )
        return self._normalize(raw)

    @staticmethod
    def _normalize(raw: List[float]) -> List[float]:
        total = math.fsum(raw)
        return [score / total for score in raw]

    @staticmethod
    def _error(
        sequence: TouchpointSequence, code: ComputationErrorCode, message: str
    ) -> ComputationError:
        return ComputationError(
            sequence_id=sequence.sequence_id, code=code, message=message
        )


def allocate_revenue(value: float, weights: List[float]) -> List[Decimal]:
    """Split a monetary value by weight, to the cent, summing exactly to the value.

    Uses largest-remainder allocation: every share is rounded down to the
    cent and the leftover cents go to the largest fractional remainders,
    the later touchpoint winning ties.

    Args:
        value: Conversion value
        weights: Normalized weights

    Returns:
        Amount allocated to each weight, in the same order
    """
    total_cents = int(
        (Decimal(str(value)) / CENT).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    )
    if total_cents <= 0 or not weights:
        return [Decimal("0.00") for _ in weights]

    shares = [Decimal(str(weight)) for weight in weights]
    share_total = sum(shares, Decimal(0))
    if share_total <= 0:
        return [Decimal("0.00") for _ in weights]
    exact = [share / share_total * total_cents for share in shares]
    floors = [int(share.to_integral_value(rounding=ROUND_DOWN)) for share in exact]
    remaining = total_cents - sum(floors)

    remainders = [
        (share - floor).quantize(_TIE_PRECISION) for share, floor in zip(exact, floors)
    ]
    order = sorted(
        range(len(weights)), key=lambda i: (remainders[i], i), reverse=True
    )
    for i in order[:remaining]:
        floors[i] += 1

    return [(Decimal(cents) * CENT).quantize(CENT) for cents in floors]


def score_confidence(touches: List[Touchpoint], reference_time: datetime) -> List[float]:
    """Confidence of each touchpoint's credit, by age at the reference time."""
    horizon = CONFIDENCE_HORIZON_DAYS * 86400
    scores = []
    for touch in touches:
        age = max((reference_time - touch.timestamp).total_seconds(), 0.0)
        scores.append(1.0 - min(age / horizon, 1.0) * (1.0 - CONFIDENCE_FLOOR))
    return scores


def grade_confidence(score: float) -> ValidationStatus:
    if score >= VALID_CONFIDENCE:
        return ValidationStatus.VALID
    if score >= PARTIAL_CONFIDENCE:
        return ValidationStatus.PARTIAL
    return ValidationStatus.INVALID


def journey_metrics(sequence: TouchpointSequence) -> JourneyMetrics:
    """Summarize the length and spread of a journey.

    Duration runs from the first to the last touchpoint; the average gap is
    the mean spacing between consecutive touchpoints. Both are zero for a
    journey with fewer than two touchpoints.
    """
    touches = sequence.touchpoints
    duration = 0.0
    average_gap = 0.0
    if len(touches) >= 2:
        duration = (touches[-1].timestamp - touches[0].timestamp).total_seconds()
        average_gap = duration / (len(touches) - 1)
    return JourneyMetrics(
        touchpoint_count=len(touches),
        channel_diversity=len(set(sequence.channels)),
        duration_seconds=duration,
        average_time_gap_seconds=average_gap,
    )


_default_calculator = AttributionCalculator()


def compute_weights(
    sequence: TouchpointSequence, config: ModelConfiguration
) -> ComputationOutcome:
    """Calculate attribution weights with a shared calculator instance."""
    return _default_calculator.compute_weights(sequence, config)
