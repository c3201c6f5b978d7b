import pytest

from pose2stream.tracking.recenter import RecenterGestureDetector


def _feed(detector, timestamps):
    return [detector.observe(ts) for ts in timestamps]


def test_three_evenly_spaced_updates_trigger_once():
    det = RecenterGestureDetector()
    assert _feed(det, [0.0, 1.0, 2.0]) == [False, False, True]
    assert det.count == 0


def test_gap_outside_window_resets_count():
    det = RecenterGestureDetector()
    assert _feed(det, [0.0, 1.0, 3.0]) == [False, False, False]
    assert det.count == 0


def test_window_bounds_are_exclusive():
    det = RecenterGestureDetector()
    assert _feed(det, [0.0, 0.5, 1.0]) == [False, False, False]
    det.reset()
    assert _feed(det, [0.0, 1.5, 3.0]) == [False, False, False]


def test_disabled_detector_never_triggers():
    det = RecenterGestureDetector(enabled=False)
    assert _feed(det, [0.0, 1.0, 2.0, 3.0]) == [False, False, False, False]


def test_trigger_count_is_tunable():
    det = RecenterGestureDetector(trigger_count=3)
    assert _feed(det, [0.0, 1.0, 2.0, 3.0]) == [False, False, False, True]


def test_rejects_invalid_window():
    with pytest.raises(ValueError):
        RecenterGestureDetector(min_gap_s=1.0, max_gap_s=1.0)
