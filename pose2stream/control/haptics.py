"""Controller haptics: pulse shaping and per-hand engine management."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from ..tracking.anchors import LEFT, RIGHT

logger = logging.getLogger(__name__)

LOCALITY_ALL = "all"
LOCALITY_HANDLE = {
    LEFT: "left handle",
    RIGHT: "right handle",
}
LOCALITY_HINT = {
    LEFT: "(l)",
    RIGHT: "(r)",
}


@dataclass(slots=True)
class HapticRequest:
    start: float = 0.0
    end: float = 0.0
    amplitude: float = 0.0
    frequency: float = 0.0


@dataclass(frozen=True)
class HapticRequestEvent:
    """A haptic request for one hand as it arrives from the stream."""

    side: str
    start: float
    end: float
    amplitude: float
    frequency: float = 0.0


@dataclass(frozen=True)
class HapticPulse:
    amplitude: float
    duration_s: float
    sharpness: float = 1.0


def shape_pulse(
    request: HapticRequest,
    now: float,
    min_duration_s: float = 0.032,
    max_duration_s: float = 0.5,
) -> HapticPulse:
    """Turn the latest request into one continuous pulse.

    Stale requests (negative window, or already over) still play, silently, at
    the minimum duration.
    """
    duration = request.end - request.start
    amplitude = request.amplitude
    if duration < 0.0 or request.end < now:
        amplitude = 0.0
        duration = min_duration_s
    duration = min(max(duration, min_duration_s), max_duration_s)
    amplitude = min(max(float(amplitude), 0.0), 1.0)
    return HapticPulse(amplitude=amplitude, duration_s=float(duration))


class HapticEngine:
    """One playback engine bound to a controller locality."""

    def start(self) -> None:
        pass

    def play(self, pulse: HapticPulse) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        pass


class HapticsCapability:
    """Haptics exposed by one controller."""

    def supported_localities(self) -> List[str]:
        return [LOCALITY_ALL]

    def create_engine(self, locality: str) -> Optional[HapticEngine]:
        raise NotImplementedError


class HapticScheduler:
    """Latest-request-wins haptics per hand.

    Requests overwrite each other; ``service`` plays whatever is current for
    the given sides. A failed playback drops the engine, and the next tick
    builds a new one.
    """

    def __init__(
        self,
        min_duration_ms: float = 32.0,
        max_duration_ms: float = 500.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_duration_s = float(min_duration_ms) / 1000.0
        self.max_duration_s = float(max_duration_ms) / 1000.0
        self.clock = clock
        self._lock = threading.Lock()
        self._requests: Dict[str, HapticRequest] = {LEFT: HapticRequest(), RIGHT: HapticRequest()}
        self._engines: Dict[str, Optional[HapticEngine]] = {LEFT: None, RIGHT: None}

    def submit(self, side: str, start: float, end: float, amplitude: float, frequency: float = 0.0) -> None:
        if side not in self._requests:
            raise ValueError(f"unknown hand {side!r}")
        req = HapticRequest(
            start=float(start),
            end=float(end),
            amplitude=min(max(float(amplitude), 0.0), 1.0),
            frequency=float(frequency),
        )
        with self._lock:
            self._requests[side] = req

    def request(self, side: str) -> HapticRequest:
        with self._lock:
            r = self._requests[side]
            return HapticRequest(r.start, r.end, r.amplitude, r.frequency)

    def engine(self, side: str) -> Optional[HapticEngine]:
        return self._engines[side]

    def _acquire_engine(self, side: str, haptics: HapticsCapability) -> Optional[HapticEngine]:
        engine = self._engines[side]
        if engine is not None:
            return engine

        engine = haptics.create_engine(LOCALITY_HANDLE[side])
        if engine is None:
            hint = LOCALITY_HINT[side]
            for locality in haptics.supported_localities():
                if hint in locality.lower():
                    engine = haptics.create_engine(locality)
                    if engine is not None:
                        break
        if engine is None:
            engine = haptics.create_engine(LOCALITY_ALL)
        if engine is None:
            return None

        try:
            engine.start()
        except Exception as exc:  # noqa: BLE001
            logger.warning("[HAPTICS] failed to start %s engine: %s", side, exc)
        self._engines[side] = engine
        logger.debug("[HAPTICS] created %s engine", side)
        return engine

    def service(
        self,
        haptics: HapticsCapability,
        sides: Iterable[str],
        now: Optional[float] = None,
    ) -> Dict[str, HapticPulse]:
        """Play the current request for each side; returns the pulses played."""
        if now is None:
            now = self.clock()
        played: Dict[str, HapticPulse] = {}
        for side in sides:
            engine = self._acquire_engine(side, haptics)
            if engine is None:
                continue
            pulse = shape_pulse(self.request(side), now, self.min_duration_s, self.max_duration_s)
            try:
                engine.play(pulse)
            except Exception as exc:  # noqa: BLE001
                logger.warning("[HAPTICS] %s playback failed, dropping engine: %s", side, exc)
                try:
                    engine.stop()
                except Exception as stop_exc:  # noqa: BLE001
                    logger.debug("[HAPTICS] %s engine stop failed: %s", side, stop_exc)
                self._engines[side] = None
                continue
            played[side] = pulse
        return played

    def close(self) -> None:
        for side, engine in self._engines.items():
            if engine is None:
                continue
            try:
                engine.stop()
            except Exception as exc:  # noqa: BLE001
                logger.debug("[HAPTICS] %s engine stop failed: %s", side, exc)
            self._engines[side] = None
