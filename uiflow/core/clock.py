"""
Engine clock.

All timestamps in the engine are integer milliseconds produced by
``Clock.now()``: the wall clock multiplied by an acceleration factor.
The factor (and the time source) can be overridden for simulation and
tests, and is always restored afterwards.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Callable, Iterator

from loguru import logger


def wall_clock_ms() -> int:
    """Current wall clock time in milliseconds."""
    return time.time_ns() // 1_000_000


class Clock:
    """Accelerable millisecond clock."""

    def __init__(
        self,
        acceleration: float = 1.0,
        time_source: Callable[[], float] = wall_clock_ms,
    ):
        """
        Initialize clock.

        Args:
            acceleration: Multiplier applied to the time source (must be > 0)
            time_source: Callable returning milliseconds
        """
        self._time_source = time_source
        self._acceleration = 1.0
        self.acceleration = acceleration

    @property
    def acceleration(self) -> float:
        return self._acceleration

    @acceleration.setter
    def acceleration(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"Acceleration factor must be positive, got {value}")
        self._acceleration = float(value)

    def now(self) -> int:
        """Accelerated time in milliseconds."""
        return int(self._time_source() * self._acceleration)

    @contextmanager
    def accelerated(self, factor: float) -> Iterator[Clock]:
        """Temporarily run the clock at ``factor``; the prior factor is restored on exit."""
        with self.override(acceleration=factor):
            yield self

    @contextmanager
    def override(
        self,
        time_source: Callable[[], float] | None = None,
        acceleration: float | None = None,
    ) -> Iterator[Clock]:
        """Temporarily replace the time source and/or acceleration."""
        prior_source = self._time_source
        prior_acceleration = self._acceleration
        try:
            if time_source is not None:
                self._time_source = time_source
            if acceleration is not None:
                self.acceleration = acceleration
            yield self
        finally:
            self._time_source = prior_source
            self._acceleration = prior_acceleration
            logger.debug("Clock restored (acceleration: {})", prior_acceleration)
