"""Linear conversion between provider and canonical numeric ranges."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .errors import ConfigurationError


def round_half_up(value: float) -> int:
    """Round ``value`` to the nearest integer, ties away from negative infinity."""

    return math.floor(value + 0.5)


def clamp(value: float, low: float, high: float) -> tuple[float, bool]:
    """Return ``value`` limited to ``[low, high]`` and whether it moved."""

    if value < low:
        return low, True
    if value > high:
        return high, True
    return value, False


@dataclass(frozen=True)
class RangeMapper:
    """Bidirectional linear interpolation between two closed ranges.

    No clamping happens here; callers decide how to treat values that fall
    outside the canonical range.
    """

    source_start: float
    source_end: float
    target_start: float
    target_end: float

    def __post_init__(self) -> None:
        if self.source_start == self.source_end:
            raise ConfigurationError(
                f"Degenerate source range {self.source_start}..{self.source_end}"
            )
        if self.target_start == self.target_end:
            raise ConfigurationError(
                f"Degenerate target range {self.target_start}..{self.target_end}"
            )

    @classmethod
    def map(
        cls,
        source_start: float,
        source_end: float,
        target_start: float,
        target_end: float,
    ) -> RangeMapper:
        """Build a mapper for ``[source_start, source_end] -> [target_start, target_end]``."""

        return cls(source_start, source_end, target_start, target_end)

    def to_target(self, value: float) -> float:
        """Convert a source-range value into the target range."""

        scale = (self.target_end - self.target_start) / (
            self.source_end - self.source_start
        )
        return self.target_start + (value - self.source_start) * scale

    def to_source(self, value: float) -> float:
        """Convert a target-range value back into the source range."""

        scale = (self.source_end - self.source_start) / (
            self.target_end - self.target_start
        )
        return self.source_start + (value - self.target_start) * scale
