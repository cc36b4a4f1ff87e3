"""Touchpoint sequence processor.

Groups raw touchpoints into per-journey ``TouchpointSequence`` values, ordered
by time and trimmed to the attribution window before any weighting happens.
"""

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator, Mapping
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Union

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from attribution_engine.models.base import ensure_utc
from attribution_engine.models.configuration import ModelConfiguration
from attribution_engine.models.touchpoint import (
    Conversion,
    Touchpoint,
    TouchpointMetadata,
    TouchpointSequence,
)

logger = logging.getLogger(__name__)

TouchpointSource = Union[Iterable[Touchpoint], Callable[[], Iterable[Touchpoint]]]

_TOUCHPOINT_COLUMNS = {
    "touchpoint_id",
    "journey_id",
    "visitor_id",
    "session_id",
    "channel",
    "timestamp",
}
_METADATA_COLUMNS = {"campaign", "cost", "source", "medium"}


class TouchpointSequenceProcessor:
    """Lazy, restartable producer of touchpoint sequences.

    Each iteration replays the source from the start, so results can be
    re-derived at any time without side effects. The source is either a
    re-iterable collection or a zero-argument callable returning a fresh
    iterable.
    """

    def __init__(
        self,
        source: TouchpointSource,
        conversions: Optional[Mapping[str, Conversion]] = None,
        window_days: float = 30,
        include_non_converting: bool = True,
    ):
        """Initialize the processor.

        Args:
            source: Raw touchpoints, or a factory producing them
            conversions: Conversion per journey identifier
            window_days: Touchpoints older than this many days before the
                conversion are dropped
            include_non_converting: Whether to emit journeys without a conversion
        """
        if window_days <= 0:
            raise ValueError(f"window_days must be positive, got {window_days}")
        self._source = source
        self.conversions: Mapping[str, Conversion] = conversions or {}
        self.window_days = window_days
        self.include_non_converting = include_non_converting

    @classmethod
    def for_configuration(
        cls,
        source: TouchpointSource,
        config: ModelConfiguration,
        conversions: Optional[Mapping[str, Conversion]] = None,
        **kwargs,
    ) -> "TouchpointSequenceProcessor":
        """Build a processor using the configuration's attribution window."""
        return cls(source, conversions, window_days=config.window.days, **kwargs)

    def __iter__(self) -> Iterator[TouchpointSequence]:
        return self.sequences()

    def sequences(self) -> Iterator[TouchpointSequence]:
        """Yield one sequence per journey with at least one eligible touchpoint."""
        grouped = self._group_by_journey(self._touchpoints())

        for journey_id, touches in grouped.items():
            touches.sort(key=lambda touch: touch.timestamp)
            conversion = self.conversions.get(journey_id)

            if conversion is None and not self.include_non_converting:
                continue

            reference_time = (
                conversion.converted_at if conversion else touches[-1].timestamp
            )
            eligible = self._within_window(touches, reference_time)
            dropped = len(touches) - len(eligible)
            if dropped:
                logger.debug(
                    f"Dropped {dropped} touchpoints outside the attribution window "
                    f"for journey {journey_id}"
                )

            if not eligible:
                logger.warning(
                    f"Skipping journey {journey_id}: no touchpoints within "
                    f"{self.window_days:g} days of conversion"
                )
                continue

            yield TouchpointSequence(
                sequence_id=journey_id,
                touchpoints=eligible,
                converted=conversion is not None,
                conversion_value=conversion.value if conversion else 0.0,
                conversion_at=reference_time,
            )

    def _touchpoints(self) -> Iterable[Touchpoint]:
        if callable(self._source):
            return self._source()
        return self._source

    @staticmethod
    def _group_by_journey(
        touches: Iterable[Touchpoint],
    ) -> Dict[str, List[Touchpoint]]:
        grouped: Dict[str, List[Touchpoint]] = defaultdict(list)
        for touch in touches:
            grouped[touch.journey_id].append(touch)
        return grouped

    def _within_window(
        self, touches: List[Touchpoint], reference_time: datetime
    ) -> List[Touchpoint]:
        earliest = reference_time - timedelta(days=self.window_days)
        return [
            touch for touch in touches if earliest <= touch.timestamp <= reference_time
        ]


def touchpoints_from_dataframe(df: pd.DataFrame) -> List[Touchpoint]:
    """Build touchpoints from an event-store export.

    Required columns: ``journey_id``, ``visitor_id``, ``channel`` and
    ``timestamp``. ``touchpoint_id``, ``session_id``, ``campaign``, ``cost``,
    ``source`` and ``medium`` are optional; any other column is kept in the
    metadata ``extra`` map. Rows that do not form a valid touchpoint are
    skipped and logged.

    Args:
        df: Touchpoint rows

    Returns:
        Parsed touchpoints in row order
    """
    if df.empty:
        return []

    missing = {"journey_id", "visitor_id", "channel", "timestamp"} - set(df.columns)
    if missing:
        raise ValueError(f"Touchpoint frame is missing columns: {sorted(missing)}")

    df = df.copy()
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    extra_columns = [
        column
        for column in df.columns
        if column not in _TOUCHPOINT_COLUMNS and column not in _METADATA_COLUMNS
    ]

    touches = []
    skipped = 0
    for index, row in df.iterrows():
        if pd.isna(row["timestamp"]):
            skipped += 1
            logger.warning(f"Skipping touchpoint row {index}: invalid timestamp")
            continue

        fields = {
            "journey_id": str(row["journey_id"]),
            "visitor_id": str(row["visitor_id"]),
            "session_id": _optional_str(row, "session_id"),
            "channel": str(row["channel"]),
            "timestamp": ensure_utc(row["timestamp"].to_pydatetime()),
        }
        touchpoint_id = _optional_str(row, "touchpoint_id")
        if touchpoint_id is not None:
            fields["touchpoint_id"] = touchpoint_id

        try:
            metadata = TouchpointMetadata(
                campaign=_optional_str(row, "campaign"),
                cost=_optional(row, "cost"),
                source=_optional_str(row, "source"),
                medium=_optional_str(row, "medium"),
                extra={
                    column: _native(row[column])
                    for column in extra_columns
                    if not pd.isna(row[column])
                },
            )
            touches.append(Touchpoint(**fields, metadata=metadata))
        except PydanticValidationError as e:
            skipped += 1
            logger.warning(f"Skipping touchpoint row {index}: {e.error_count()} errors")

    logger.info(f"Built {len(touches)} touchpoints from frame ({skipped} skipped)")
    return touches


def conversions_from_dataframe(df: pd.DataFrame) -> Dict[str, Conversion]:
    """Build the journey to conversion map from ``journey_id``, ``converted_at``
    and ``value`` columns. The latest conversion wins for repeated journeys."""
    if df.empty:
        return {}

    df = df.copy()
    df["converted_at"] = pd.to_datetime(df["converted_at"], utc=True, errors="coerce")
    df = df.dropna(subset=["converted_at"]).sort_values("converted_at")

    conversions = {}
    for _, row in df.iterrows():
        journey_id = str(row["journey_id"])
        conversions[journey_id] = Conversion(
            journey_id=journey_id,
            converted_at=row["converted_at"].to_pydatetime(),
            value=float(_optional(row, "value") or 0.0),
        )
    return conversions


def _optional(row: pd.Series, column: str):
    if column not in row.index or pd.isna(row[column]):
        return None
    return _native(row[column])


def _optional_str(row: pd.Series, column: str) -> Optional[str]:
    value = _optional(row, column)
    return None if value is None else str(value)


def _native(value):
    """Unwrap numpy scalars so pydantic sees plain Python values."""
    return value.item() if hasattr(value, "item") else value
