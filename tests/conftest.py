"""Pytest configuration and shared fixtures for attribution engine tests."""

from datetime import datetime, timedelta, timezone

import pytest

from attribution_engine.models import (
    AttributionModelType,
    AttributionWindow,
    Channel,
    ModelConfiguration,
    ModelParameters,
    Touchpoint,
    TouchpointSequence,
)

T0 = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def _touchpoint(
    channel: Channel,
    timestamp: datetime,
    touchpoint_id: str | None = None,
    journey_id: str = "journey-1",
) -> Touchpoint:
    """Build a touchpoint with sensible defaults."""
    fields = {
        "journey_id": journey_id,
        "visitor_id": "visitor-1",
        "channel": channel,
        "timestamp": timestamp,
    }
    if touchpoint_id is not None:
        fields["touchpoint_id"] = touchpoint_id
    return Touchpoint(**fields)


def _config(
    model: AttributionModelType | str = AttributionModelType.LINEAR, **overrides
) -> ModelConfiguration:
    """Build a valid configuration for the given model kind."""
    fields = {
        "config_id": f"cfg-{model.value if isinstance(model, AttributionModelType) else model}",
        "model": model,
        "window": AttributionWindow.trailing(30, end=T0 + timedelta(days=30)),
    }
    fields.update(overrides)
    return ModelConfiguration(**fields)


@pytest.fixture
def make_touchpoint():
    """Factory for touchpoints."""
    return _touchpoint


@pytest.fixture
def make_config():
    """Factory for valid configurations."""
    return _config


@pytest.fixture
def t0():
    """Reference timestamp for journeys."""
    return T0


@pytest.fixture
def sample_sequence():
    """Social at t0, email two days later, paid search at day five; $100 conversion."""
    return TouchpointSequence(
        sequence_id="journey-1",
        touchpoints=[
            _touchpoint(Channel.SOCIAL_ORGANIC, T0, "tp-social"),
            _touchpoint(Channel.EMAIL_MARKETING, T0 + timedelta(days=2), "tp-email"),
            _touchpoint(Channel.PAID_SEARCH, T0 + timedelta(days=5), "tp-ppc"),
        ],
        converted=True,
        conversion_value=100.0,
    )


@pytest.fixture
def linear_config():
    """Linear configuration with the default channel split."""
    return _config(AttributionModelType.LINEAR)


@pytest.fixture
def position_config():
    """Position-based configuration with the default 40/20/40 split."""
    return _config(AttributionModelType.POSITION_BASED)


@pytest.fixture
def time_decay_config():
    """Time-decay configuration with a seven day half-life."""
    return _config(
        AttributionModelType.TIME_DECAY,
        parameters=ModelParameters(decay_half_life_days=7),
    )
