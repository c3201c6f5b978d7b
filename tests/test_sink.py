import json
import socket

import numpy as np

from pose2stream.control.input_mapper import ButtonValue
from pose2stream.control.pose import DeviceMotion, Fov, TrackingPayload, ViewParams, identity_pose
from pose2stream.control.sink import LoggingSink, UdpJsonSink, payload_to_dict


def _payload():
    views = (ViewParams(identity_pose(), Fov()), ViewParams(identity_pose(), Fov()))
    motion = DeviceMotion(device="/user/hand/left", pose=identity_pose(), linear_velocity=np.array([0.1, 0.0, 0.0]))
    return TrackingPayload(
        target_timestamp_ns=123,
        views=views,
        device_motions=[motion],
        skeleton_left=tuple(identity_pose() for _ in range(26)),
    )


def test_payload_to_dict_is_json_serializable():
    d = payload_to_dict(_payload())
    text = json.dumps(d)
    assert d["target_timestamp_ns"] == 123
    assert d["device_motions"][0]["linear_velocity"] == [0.1, 0.0, 0.0]
    assert len(d["skeleton_left"]) == 26
    assert d["skeleton_right"] is None
    assert d["views"][0]["fov"]["left"] == -0.9
    assert "orientation_wxyz" in text


def test_logging_sink_counts_payloads():
    sink = LoggingSink()
    sink.send_tracking(_payload())
    sink.send_fake_tracking(1, _payload().views)
    sink.send_button("/user/hand/left/input/a/click", ButtonValue.of_bool(True))
    assert sink.tracking_count == 1
    assert sink.fake_count == 1


def test_udp_sink_sends_json_datagrams():
    recv = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    recv.bind(("127.0.0.1", 0))
    recv.settimeout(2.0)
    port = recv.getsockname()[1]
    sink = UdpJsonSink(host="127.0.0.1", port=port)
    try:
        sink.send_button("/user/hand/right/input/trigger/value", ButtonValue.of_scalar(0.25))
        data, _ = recv.recvfrom(65535)
    finally:
        sink.close()
        recv.close()
    assert json.loads(data) == {
        "type": "button",
        "path": "/user/hand/right/input/trigger/value",
        "value": 0.25,
    }


def test_udp_sink_drops_non_finite_messages():
    recv = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    recv.bind(("127.0.0.1", 0))
    recv.settimeout(2.0)
    port = recv.getsockname()[1]
    sink = UdpJsonSink(host="127.0.0.1", port=port)
    try:
        sink.send_button("/user/hand/left/input/trigger/value", ButtonValue.of_scalar(float("nan")))
        sink.send_button("/user/hand/left/input/trigger/value", ButtonValue.of_scalar(0.5))
        data, _ = recv.recvfrom(65535)
    finally:
        sink.close()
        recv.close()
    assert sink.dropped == 1
    assert json.loads(data)["value"] == 0.5
