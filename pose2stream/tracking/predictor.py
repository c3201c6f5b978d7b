"""Device pose prediction with bounded walk-back.

The platform only predicts the head pose a limited distance into the future
and answers nothing beyond that. Rather than guess the limit, the requested
timestamp is stepped back until the platform can answer.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import NoAnchorAvailable
from .anchors import Anchor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PredictionResult:
    anchor: Anchor
    timestamp: float
    attempts: int
    fell_back: bool = False


class PosePredictor:
    def __init__(
        self,
        query: Callable[[float], Optional[Anchor]],
        step_s: float = 0.005,
        max_attempts: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        if step_s <= 0.0:
            raise ValueError(f"prediction step must be > 0, got {step_s}")
        if max_attempts < 1:
            raise ValueError(f"prediction attempts must be >= 1, got {max_attempts}")
        self.query = query
        self.step_s = float(step_s)
        self.max_attempts = int(max_attempts)
        self.clock = clock

    def resolve(self, target_timestamp: float) -> PredictionResult:
        """Find the furthest-ahead answerable device anchor at or before target_timestamp.

        Tries ``max_attempts`` timestamps spaced ``step_s`` apart, starting at
        the target. If none answers, the original target is queried once more
        and the achieved timestamp is reported as "now".
        """
        target = float(target_timestamp)
        for attempt in range(1, self.max_attempts + 1):
            ts = target - (attempt - 1) * self.step_s
            anchor = self.query(ts)
            if anchor is not None:
                if attempt > 1:
                    logger.debug(
                        "[PREDICT] walked back %.1fms in %d attempts",
                        (target - ts) * 1000.0,
                        attempt,
                    )
                return PredictionResult(anchor=anchor, timestamp=ts, attempts=attempt)

        now = self.clock()
        anchor = self.query(target)
        if anchor is not None:
            logger.debug("[PREDICT] walk-back exhausted; fallback query answered")
            return PredictionResult(
                anchor=anchor,
                timestamp=now,
                attempts=self.max_attempts + 1,
                fell_back=True,
            )

        raise NoAnchorAvailable(
            f"no device anchor for t={target_timestamp:.4f} after "
            f"{self.max_attempts} walk-back attempts and a fallback query"
        )
