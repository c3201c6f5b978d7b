"""Inferred recenter gesture.

The platform gives no explicit "user recentered" signal. What it does do is
push an update for the origin anchor each time the user long-presses the
recenter button, so a burst of origin updates spaced between roughly half a
second and a second and a half apart is read as a deliberate
press-press-press. Ordinary tracking noise rarely produces that rhythm, but
nothing guarantees it never will; the detector can be disabled in config.
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class RecenterGestureDetector:
    def __init__(
        self,
        min_gap_s: float = 0.5,
        max_gap_s: float = 1.5,
        trigger_count: int = 2,
        enabled: bool = True,
    ):
        if min_gap_s < 0.0 or max_gap_s <= min_gap_s:
            raise ValueError(
                f"recenter gap window must satisfy 0 <= min < max, got ({min_gap_s}, {max_gap_s})"
            )
        if trigger_count < 1:
            raise ValueError(f"recenter trigger count must be >= 1, got {trigger_count}")
        self.min_gap_s = float(min_gap_s)
        self.max_gap_s = float(max_gap_s)
        self.trigger_count = int(trigger_count)
        self.enabled = bool(enabled)
        self._last_ts: Optional[float] = None
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def last_timestamp(self) -> Optional[float]:
        return self._last_ts

    def reset(self) -> None:
        self._last_ts = None
        self._count = 0

    def observe(self, timestamp: float) -> bool:
        """Feed one origin-anchor update; True when the gesture completes."""
        ts = float(timestamp)
        if self._last_ts is not None and self.min_gap_s < ts - self._last_ts < self.max_gap_s:
            self._count += 1
        else:
            self._count = 0
        self._last_ts = ts

        if not self.enabled or self._count < self.trigger_count:
            return False

        logger.info("[RECENTER] gesture detected at t=%.3f", ts)
        self._count = 0
        return True
