import pytest

from pose2stream.control.haptics import (
    HapticEngine,
    HapticRequest,
    HapticScheduler,
    HapticsCapability,
    shape_pulse,
)
from pose2stream.tracking.anchors import LEFT, RIGHT


def test_negative_duration_plays_silent_minimum_pulse():
    pulse = shape_pulse(HapticRequest(start=2.0, end=1.9, amplitude=0.8), now=0.0)
    assert pulse.amplitude == 0.0
    assert pulse.duration_s == pytest.approx(0.032)
    assert pulse.sharpness == 1.0


def test_expired_request_is_silent():
    pulse = shape_pulse(HapticRequest(start=1.0, end=1.2, amplitude=0.8), now=5.0)
    assert pulse.amplitude == 0.0
    assert pulse.duration_s == pytest.approx(0.032)


def test_duration_is_clamped():
    long = shape_pulse(HapticRequest(start=1.0, end=3.0, amplitude=0.5), now=1.0)
    short = shape_pulse(HapticRequest(start=1.0, end=1.001, amplitude=0.5), now=1.0)
    assert long.duration_s == pytest.approx(0.5)
    assert long.amplitude == 0.5
    assert short.duration_s == pytest.approx(0.032)


class _DummyEngine(HapticEngine):
    def __init__(self, locality, fail=False):
        self.locality = locality
        self.fail = fail
        self.started = False
        self.stopped = False
        self.played = []

    def start(self):
        self.started = True

    def play(self, pulse):
        if self.fail:
            raise RuntimeError("engine reset")
        self.played.append(pulse)

    def stop(self):
        self.stopped = True


class _DummyHaptics(HapticsCapability):
    def __init__(self, localities, fail_first=0):
        self.localities = localities
        self.fail_first = fail_first
        self.created = []

    def supported_localities(self):
        return list(self.localities)

    def create_engine(self, locality):
        if locality not in self.localities:
            return None
        engine = _DummyEngine(locality, fail=len(self.created) < self.fail_first)
        self.created.append(engine)
        return engine


def test_engine_locality_preference():
    sched = HapticScheduler()
    sched.service(_DummyHaptics(["left handle", "right handle", "all"]), [LEFT, RIGHT], now=0.0)
    assert sched.engine(LEFT).locality == "left handle"
    assert sched.engine(RIGHT).locality == "right handle"

    sched = HapticScheduler()
    sched.service(_DummyHaptics(["Joy-Con (L)", "Joy-Con (R)", "all"]), [LEFT, RIGHT], now=0.0)
    assert sched.engine(LEFT).locality == "Joy-Con (L)"
    assert sched.engine(RIGHT).locality == "Joy-Con (R)"

    sched = HapticScheduler()
    sched.service(_DummyHaptics(["all"]), [RIGHT], now=0.0)
    assert sched.engine(RIGHT).locality == "all"
    assert sched.engine(RIGHT).started is True


def test_latest_request_wins():
    sched = HapticScheduler()
    haptics = _DummyHaptics(["all"])
    sched.submit(LEFT, 1.0, 1.1, 0.2)
    sched.submit(LEFT, 1.0, 1.2, 0.7)
    played = sched.service(haptics, [LEFT], now=1.0)
    assert played[LEFT].amplitude == 0.7
    assert played[LEFT].duration_s == pytest.approx(0.2)


def test_failed_playback_drops_engine_and_recreates_next_tick():
    sched = HapticScheduler()
    haptics = _DummyHaptics(["all"], fail_first=1)
    sched.submit(RIGHT, 1.0, 1.1, 0.5)

    assert sched.service(haptics, [RIGHT], now=1.0) == {}
    assert haptics.created[0].stopped is True
    assert sched.engine(RIGHT) is None

    played = sched.service(haptics, [RIGHT], now=1.0)
    assert len(haptics.created) == 2
    assert played[RIGHT].amplitude == 0.5


def test_submit_clamps_amplitude_and_rejects_unknown_hand():
    sched = HapticScheduler()
    sched.submit(LEFT, 0.0, 1.0, 3.0)
    assert sched.request(LEFT).amplitude == 1.0
    with pytest.raises(ValueError):
        sched.submit("middle", 0.0, 1.0, 0.5)
