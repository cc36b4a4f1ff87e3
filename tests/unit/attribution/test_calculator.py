"""Tests for the attribution calculator."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from attribution_engine.attribution.engine import (
    AttributionCalculator,
    CONFIDENCE_FLOOR,
    allocate_revenue,
    compute_weights,
    grade_confidence,
)
from attribution_engine.models import (
    AttributionModelType,
    AttributionResult,
    Channel,
    ComputationError,
    ComputationErrorCode,
    ModelParameters,
    TouchpointSequence,
    ValidationStatus,
)

ALL_MODELS = list(AttributionModelType)
CHANNEL_CYCLE = [
    Channel.SOCIAL_ORGANIC,
    Channel.EMAIL_MARKETING,
    Channel.PAID_SEARCH,
    Channel.DISPLAY,
    Channel.DIRECT,
]


@pytest.fixture
def calculator():
    """Calculator with a fixed clock."""
    return AttributionCalculator(
        clock=lambda: datetime(2025, 2, 1, tzinfo=timezone.utc)
    )


@pytest.fixture
def build_sequence(make_touchpoint, t0):
    """Factory for sequences of N touchpoints one day apart."""

    def _build(length: int, converted: bool = True, value: float = 100.0):
        return TouchpointSequence(
            sequence_id=f"journey-{length}",
            touchpoints=[
                make_touchpoint(
                    CHANNEL_CYCLE[i % len(CHANNEL_CYCLE)],
                    t0 + timedelta(days=i),
                    f"tp-{i}",
                )
                for i in range(length)
            ],
            converted=converted,
            conversion_value=value,
        )

    return _build


class TestModelWeights:
    """Weight assignment per model kind."""

    def test_linear_example(self, calculator, sample_sequence, linear_config):
        """Three touchpoints share credit evenly and revenue to the cent."""
        result = calculator.compute_weights(sample_sequence, linear_config)

        assert isinstance(result, AttributionResult)
        assert result.weights == pytest.approx([1 / 3, 1 / 3, 1 / 3])
        assert result.touchpoint_revenue == {
            "tp-social": 33.33,
            "tp-email": 33.33,
            "tp-ppc": 33.34,
        }
        assert result.total_attributed_revenue == 100.0

    def test_position_based_example(self, calculator, sample_sequence, position_config):
        """Default split gives 40/20/40."""
        result = calculator.compute_weights(sample_sequence, position_config)

        assert result.touchpoint_weights["tp-social"] == pytest.approx(0.4)
        assert result.touchpoint_weights["tp-email"] == pytest.approx(0.2)
        assert result.touchpoint_weights["tp-ppc"] == pytest.approx(0.4)
        assert result.touchpoint_revenue == {
            "tp-social": 40.0,
            "tp-email": 20.0,
            "tp-ppc": 40.0,
        }

    def test_first_touch(self, calculator, sample_sequence, make_config):
        result = calculator.compute_weights(
            sample_sequence, make_config(AttributionModelType.FIRST_TOUCH)
        )
        assert result.weights == [1.0, 0.0, 0.0]
        assert result.channel_revenue[Channel.SOCIAL_ORGANIC.value] == 100.0

    def test_last_touch(self, calculator, sample_sequence, make_config):
        result = calculator.compute_weights(
            sample_sequence, make_config(AttributionModelType.LAST_TOUCH)
        )
        assert result.weights == [0.0, 0.0, 1.0]
        assert result.channel_revenue[Channel.PAID_SEARCH.value] == 100.0

    def test_time_decay_favours_recent_touchpoints(
        self, calculator, sample_sequence, time_decay_config
    ):
        """Ages 5, 3 and 0 days with a 7 day half-life."""
        result = calculator.compute_weights(sample_sequence, time_decay_config)

        raw = [2 ** (-5 / 7), 2 ** (-3 / 7), 1.0]
        expected = [score / sum(raw) for score in raw]
        assert result.weights == pytest.approx(expected)

    def test_time_decay_uses_conversion_time(
        self, calculator, sample_sequence, time_decay_config, t0
    ):
        """Ages are measured from the conversion, not the last touchpoint."""
        sequence = sample_sequence.model_copy(
            update={"conversion_at": t0 + timedelta(days=40)}
        )
        result = calculator.compute_weights(sequence, time_decay_config)

        raw = [2 ** (-40 / 7), 2 ** (-38 / 7), 2 ** (-35 / 7)]
        expected = [score / sum(raw) for score in raw]
        assert result.weights == pytest.approx(expected)

    def test_time_decay_monotonic_in_age(self, calculator, build_sequence, make_config):
        """Older touchpoints never receive more credit than newer ones."""
        for half_life in (1, 7, 30, 90):
            config = make_config(
                AttributionModelType.TIME_DECAY,
                parameters=ModelParameters(decay_half_life_days=half_life),
            )
            weights = calculator.compute_weights(build_sequence(6), config).weights
            assert weights == sorted(weights)

    def test_time_decay_very_old_touchpoints_do_not_underflow(
        self, calculator, make_touchpoint, time_decay_config, t0
    ):
        sequence = TouchpointSequence(
            sequence_id="old",
            touchpoints=[
                make_touchpoint(Channel.DIRECT, t0, "a"),
                make_touchpoint(Channel.DIRECT, t0 + timedelta(days=1), "b"),
            ],
            conversion_at=t0 + timedelta(days=20000),
        )
        result = calculator.compute_weights(sequence, time_decay_config)

        assert isinstance(result, AttributionResult)
        assert sum(result.weights) == pytest.approx(1.0)

    def test_custom_channel_multipliers(self, calculator, sample_sequence, make_config):
        config = make_config(
            AttributionModelType.CUSTOM,
            channel_weights={
                Channel.SOCIAL_ORGANIC.value: 50.0,
                Channel.EMAIL_MARKETING.value: 25.0,
                Channel.PAID_SEARCH.value: 25.0,
            },
        )
        result = calculator.compute_weights(sample_sequence, config)

        assert result.weights == pytest.approx([0.5, 0.25, 0.25])
        assert result.touchpoint_revenue["tp-social"] == 50.0

    def test_custom_with_no_weighted_channels_is_an_error(
        self, calculator, sample_sequence, make_config
    ):
        config = make_config(
            AttributionModelType.CUSTOM,
            channel_weights={Channel.VIDEO.value: 100.0},
        )
        result = calculator.compute_weights(sample_sequence, config)

        assert isinstance(result, ComputationError)
        assert result.code == ComputationErrorCode.INVALID_SEQUENCE
        assert result.sequence_id == "journey-1"


class TestShortSequences:
    """Edge cases for sequences of one and two touchpoints."""

    @pytest.mark.parametrize("model", ALL_MODELS)
    def test_single_touchpoint_gets_all_credit(
        self, calculator, build_sequence, make_config, model
    ):
        result = calculator.compute_weights(build_sequence(1), make_config(model))
        assert result.weights == pytest.approx([1.0])

    def test_position_based_pair_splits_between_edges(
        self, calculator, build_sequence, position_config
    ):
        result = calculator.compute_weights(build_sequence(2), position_config)
        assert result.weights == pytest.approx([0.5, 0.5])

    def test_position_based_pair_renormalizes_uneven_split(
        self, calculator, build_sequence, make_config
    ):
        config = make_config(
            AttributionModelType.POSITION_BASED,
            parameters=ModelParameters(position_first_weight=0.3, position_last_weight=0.5),
        )
        result = calculator.compute_weights(build_sequence(2), config)
        assert result.weights == pytest.approx([0.375, 0.625])

    def test_position_based_middle_share_split_evenly(
        self, calculator, build_sequence, position_config
    ):
        result = calculator.compute_weights(build_sequence(5), position_config)
        assert result.weights == pytest.approx([0.4, 0.2 / 3, 0.2 / 3, 0.2 / 3, 0.4])


class TestInvariants:
    """Properties that hold for every model."""

    @pytest.mark.parametrize("model", ALL_MODELS)
    @pytest.mark.parametrize("length", [1, 2, 3, 7])
    def test_weights_sum_to_one(self, calculator, build_sequence, make_config, model, length):
        result = calculator.compute_weights(build_sequence(length), make_config(model))

        assert isinstance(result, AttributionResult)
        assert sum(result.weights) == pytest.approx(1.0, abs=1e-6)
        assert all(0.0 <= w <= 1.0 for w in result.weights)
        assert sum(result.channel_weights.values()) == pytest.approx(1.0, abs=1e-6)

    @pytest.mark.parametrize("model", ALL_MODELS)
    def test_revenue_sums_to_conversion_value(
        self, calculator, build_sequence, make_config, model
    ):
        result = calculator.compute_weights(
            build_sequence(7, value=99.99), make_config(model)
        )
        total = sum(Decimal(str(v)) for v in result.touchpoint_revenue.values())
        assert total == Decimal("99.99")
        assert result.total_attributed_revenue == pytest.approx(99.99)

    @pytest.mark.parametrize(
        "model", [AttributionModelType.FIRST_TOUCH, AttributionModelType.LAST_TOUCH]
    )
    def test_first_and_last_touch_ignore_input_order(
        self, calculator, sample_sequence, make_config, model
    ):
        """Unsorted input yields the same result as sorted input."""
        config = make_config(model)
        shuffled = TouchpointSequence.model_construct(
            sequence_id=sample_sequence.sequence_id,
            touchpoints=list(reversed(sample_sequence.touchpoints)),
            converted=True,
            conversion_value=100.0,
            conversion_at=sample_sequence.conversion_at,
        )

        expected = calculator.compute_weights(sample_sequence, config)
        actual = calculator.compute_weights(shuffled, config)

        assert actual.touchpoint_weights == expected.touchpoint_weights
        assert actual.touchpoint_revenue == expected.touchpoint_revenue

    def test_non_converted_sequence_has_no_revenue(
        self, calculator, build_sequence, linear_config
    ):
        result = calculator.compute_weights(build_sequence(3, converted=False), linear_config)

        assert sum(result.weights) == pytest.approx(1.0)
        assert set(result.touchpoint_revenue.values()) == {0.0}
        assert result.total_attributed_revenue == 0.0

    def test_channel_weights_aggregate_repeated_channels(
        self, calculator, make_touchpoint, linear_config, t0
    ):
        sequence = TouchpointSequence(
            sequence_id="repeat",
            touchpoints=[
                make_touchpoint(Channel.SOCIAL_PAID, t0, "a"),
                make_touchpoint(Channel.DIRECT, t0 + timedelta(hours=1), "b"),
                make_touchpoint(Channel.SOCIAL_PAID, t0 + timedelta(hours=2), "c"),
                make_touchpoint(Channel.SOCIAL_PAID, t0 + timedelta(hours=3), "d"),
            ],
            converted=True,
            conversion_value=10.0,
        )
        result = calculator.compute_weights(sequence, linear_config)

        assert result.channel_weights[Channel.SOCIAL_PAID.value] == pytest.approx(0.75)
        assert result.channel_revenue == {
            Channel.SOCIAL_PAID.value: 7.5,
            Channel.DIRECT.value: 2.5,
        }

    def test_computed_at_comes_from_clock(self, calculator, sample_sequence, linear_config):
        result = calculator.compute_weights(sample_sequence, linear_config)
        assert result.computed_at == datetime(2025, 2, 1, tzinfo=timezone.utc)
        assert result.config_id == linear_config.config_id
        assert result.model == "linear"


class TestComputationErrors:
    """Sequences that cannot be attributed."""

    def test_empty_sequence(self, calculator, linear_config):
        result = calculator.compute_weights(
            TouchpointSequence(sequence_id="empty"), linear_config
        )
        assert isinstance(result, ComputationError)
        assert result.code == ComputationErrorCode.EMPTY_SEQUENCE

    def test_unknown_model(self, calculator, sample_sequence, make_config):
        result = calculator.compute_weights(sample_sequence, make_config("shapley"))
        assert isinstance(result, ComputationError)
        assert result.code == ComputationErrorCode.UNKNOWN_MODEL
        assert "shapley" in result.message

    def test_duplicate_touchpoint_ids(
        self, calculator, make_touchpoint, linear_config, t0
    ):
        sequence = TouchpointSequence(
            sequence_id="dupes",
            touchpoints=[
                make_touchpoint(Channel.DIRECT, t0, "same"),
                make_touchpoint(Channel.REFERRAL, t0 + timedelta(days=1), "same"),
            ],
        )
        result = calculator.compute_weights(sequence, linear_config)
        assert result.code == ComputationErrorCode.INVALID_SEQUENCE

    def test_position_split_beyond_one_violates_weight_bounds(
        self, calculator, build_sequence, make_config
    ):
        config = make_config(
            AttributionModelType.POSITION_BASED,
            parameters=ModelParameters(position_first_weight=0.7, position_last_weight=0.7),
        )
        result = calculator.compute_weights(build_sequence(3), config)
        assert isinstance(result, ComputationError)
        assert result.code == ComputationErrorCode.WEIGHT_SUM_VIOLATION


class TestConfidence:
    """Per-touchpoint confidence and the result grade."""

    def test_recent_journey_is_valid(self, calculator, sample_sequence, linear_config):
        result = calculator.compute_weights(sample_sequence, linear_config)

        assert result.confidence_scores["tp-ppc"] == 1.0
        assert result.confidence_scores["tp-social"] == pytest.approx(1 - 5 / 90 * 0.3)
        assert set(result.touchpoint_status.values()) == {ValidationStatus.VALID}
        assert result.validation_status == ValidationStatus.VALID

    def test_result_takes_worst_touchpoint_grade(
        self, calculator, make_touchpoint, linear_config, t0
    ):
        sequence = TouchpointSequence(
            sequence_id="journey-old",
            touchpoints=[
                make_touchpoint(Channel.DISPLAY, t0, "tp-old"),
                make_touchpoint(Channel.DIRECT, t0 + timedelta(days=30), "tp-new"),
            ],
        )

        result = calculator.compute_weights(sequence, linear_config)

        assert result.confidence_scores["tp-old"] == pytest.approx(0.9)
        assert result.touchpoint_status == {
            "tp-old": ValidationStatus.PARTIAL,
            "tp-new": ValidationStatus.VALID,
        }
        assert result.validation_status == ValidationStatus.PARTIAL
        assert result.confidence_score == pytest.approx(0.95)

    def test_confidence_bottoms_out_past_horizon(
        self, calculator, make_touchpoint, linear_config, t0
    ):
        sequence = TouchpointSequence(
            sequence_id="journey-ancient",
            touchpoints=[make_touchpoint(Channel.DISPLAY, t0, "tp-1")],
            conversion_at=t0 + timedelta(days=400),
        )

        result = calculator.compute_weights(sequence, linear_config)

        assert result.confidence_scores["tp-1"] == pytest.approx(CONFIDENCE_FLOOR)
        assert result.validation_status == ValidationStatus.INVALID

    @pytest.mark.parametrize(
        "score,status",
        [
            (1.0, ValidationStatus.VALID),
            (0.95, ValidationStatus.VALID),
            (0.9, ValidationStatus.PARTIAL),
            (0.77, ValidationStatus.PARTIAL),
            (0.75, ValidationStatus.INVALID),
        ],
    )
    def test_grade_thresholds(self, score, status):
        assert grade_confidence(score) == status


class TestJourneyMetrics:
    def test_sample_journey(self, calculator, sample_sequence, linear_config):
        result = calculator.compute_weights(sample_sequence, linear_config)
        metrics = result.journey_metrics

        assert metrics.touchpoint_count == 3
        assert metrics.channel_diversity == 3
        assert metrics.duration_seconds == 5 * 86400
        assert metrics.average_time_gap_seconds == 2.5 * 86400

    def test_repeated_channels_count_once(
        self, calculator, make_touchpoint, linear_config, t0
    ):
        sequence = TouchpointSequence(
            sequence_id="journey-email",
            touchpoints=[
                make_touchpoint(
                    Channel.EMAIL_MARKETING, t0 + timedelta(hours=h), f"tp-{h}"
                )
                for h in (0, 1, 3)
            ],
        )

        metrics = calculator.compute_weights(sequence, linear_config).journey_metrics

        assert metrics.channel_diversity == 1
        assert metrics.average_time_gap_seconds == 1.5 * 3600

    def test_single_touchpoint_has_no_duration(
        self, calculator, make_touchpoint, linear_config, t0
    ):
        sequence = TouchpointSequence(
            sequence_id="journey-single",
            touchpoints=[make_touchpoint(Channel.DIRECT, t0, "tp-1")],
        )

        metrics = calculator.compute_weights(sequence, linear_config).journey_metrics

        assert metrics.touchpoint_count == 1
        assert metrics.duration_seconds == 0.0
        assert metrics.average_time_gap_seconds == 0.0


class TestAllocateRevenue:
    """Cent allocation of conversion value."""

    def test_leftover_cent_goes_to_latest_tie(self):
        shares = allocate_revenue(10.0, [1 / 3, 1 / 3, 1 / 3])
        assert shares == [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")]

    def test_largest_remainder_wins(self):
        shares = allocate_revenue(1.0, [0.666, 0.334])
        assert shares == [Decimal("0.67"), Decimal("0.33")]

    def test_zero_value(self):
        assert allocate_revenue(0.0, [0.5, 0.5]) == [Decimal("0.00"), Decimal("0.00")]

    def test_sum_is_exact(self):
        weights = [0.1] * 7 + [0.3]
        shares = allocate_revenue(123.45, weights)
        assert sum(shares) == Decimal("123.45")


def test_module_level_compute_weights(sample_sequence, linear_config):
    result = compute_weights(sample_sequence, linear_config)
    assert isinstance(result, AttributionResult)
    assert result.sequence_id == "journey-1"
