"""Attribution configuration and computation."""

from attribution_engine.attribution.engine import (
    AttributionCalculator,
    allocate_revenue,
    compute_weights,
)
from attribution_engine.attribution.manager import ConfigurationManager
from attribution_engine.attribution.pipeline import AttributionPipeline, PipelineRun
from attribution_engine.attribution.sequence_processor import (
    TouchpointSequenceProcessor,
    conversions_from_dataframe,
    touchpoints_from_dataframe,
)
from attribution_engine.attribution.validation import is_config_valid, validate

__all__ = [
    "AttributionCalculator",
    "AttributionPipeline",
    "ConfigurationManager",
    "PipelineRun",
    "TouchpointSequenceProcessor",
    "allocate_revenue",
    "compute_weights",
    "conversions_from_dataframe",
    "is_config_valid",
    "touchpoints_from_dataframe",
    "validate",
]
