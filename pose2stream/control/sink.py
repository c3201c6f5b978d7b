"""Streaming sinks receiving the final pose and button stream."""

from __future__ import annotations

import json
import logging
import socket
from typing import Optional, Sequence

from .pose import Pose6D, TrackingPayload, ViewParams

logger = logging.getLogger(__name__)


def _pose_to_dict(pose: Pose6D) -> dict:
    return {
        "position": [float(v) for v in pose.position],
        "orientation_wxyz": [float(v) for v in pose.quaternion],
    }


def _view_to_dict(view: ViewParams) -> dict:
    return {
        "pose": _pose_to_dict(view.pose),
        "fov": {
            "left": view.fov.left,
            "right": view.fov.right,
            "up": view.fov.up,
            "down": view.fov.down,
        },
    }


def _skeleton_to_list(skeleton: Optional[Sequence[Pose6D]]) -> Optional[list]:
    if skeleton is None:
        return None
    return [_pose_to_dict(p) for p in skeleton]


def payload_to_dict(payload: TrackingPayload) -> dict:
    return {
        "type": "tracking",
        "target_timestamp_ns": int(payload.target_timestamp_ns),
        "views": [_view_to_dict(v) for v in payload.views],
        "device_motions": [
            {
                "device": m.device,
                "pose": _pose_to_dict(m.pose),
                "linear_velocity": [float(v) for v in m.linear_velocity],
                "angular_velocity": [float(v) for v in m.angular_velocity],
            }
            for m in payload.device_motions
        ],
        "skeleton_left": _skeleton_to_list(payload.skeleton_left),
        "skeleton_right": _skeleton_to_list(payload.skeleton_right),
    }


class StreamingSink:
    """Fire-and-forget consumer of tracking and button data."""

    def send_tracking(self, payload: TrackingPayload) -> None:
        raise NotImplementedError

    def send_fake_tracking(self, target_timestamp_ns: int, views: Sequence[ViewParams]) -> None:
        raise NotImplementedError

    def send_button(self, path: str, value) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LoggingSink(StreamingSink):
    """Logs what would be streamed; used when no renderer is attached."""

    def __init__(self):
        self.tracking_count = 0
        self.fake_count = 0

    def send_tracking(self, payload: TrackingPayload) -> None:
        self.tracking_count += 1
        head = payload.views[0].pose.position
        logger.debug(
            "[SINK] tracking t=%d devices=%d skel=(%s,%s) eye0=[%.3f, %.3f, %.3f]",
            payload.target_timestamp_ns,
            len(payload.device_motions),
            payload.skeleton_left is not None,
            payload.skeleton_right is not None,
            head[0],
            head[1],
            head[2],
        )

    def send_fake_tracking(self, target_timestamp_ns: int, views: Sequence[ViewParams]) -> None:
        self.fake_count += 1
        if self.fake_count == 1:
            logger.info("[SINK] sending placeholder tracking until real poses are available")

    def send_button(self, path: str, value) -> None:
        logger.info("[SINK] button %s = %s", path, value.raw())


class UdpJsonSink(StreamingSink):
    """JSON datagrams to a downstream streaming process.

    Packet schema (one object per datagram):
      {"type": "tracking", "target_timestamp_ns": ..., "views": [...],
       "device_motions": [...], "skeleton_left": [...]|null, "skeleton_right": ...}
      {"type": "fake_tracking", "target_timestamp_ns": ..., "views": [...]}
      {"type": "button", "path": "/user/hand/left/input/a/click", "value": true}
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 24568):
        self.host = str(host)
        self.port = int(port)
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._send_errors = 0
        self.dropped = 0
        logger.info("[SINK] udp sink -> %s:%s", self.host, self.port)

    def _send(self, message: dict) -> None:
        try:
            data = json.dumps(message, separators=(",", ":"), allow_nan=False).encode("utf-8")
        except ValueError as exc:
            self.dropped += 1
            logger.warning("[SINK] dropped %s message with non-finite values: %s", message.get("type"), exc)
            return
        try:
            self.sock.sendto(data, (self.host, self.port))
        except OSError as exc:
            self._send_errors += 1
            if self._send_errors == 1 or self._send_errors % 100 == 0:
                logger.warning("[SINK] send failed (%d so far): %s", self._send_errors, exc)

    def send_tracking(self, payload: TrackingPayload) -> None:
        self._send(payload_to_dict(payload))

    def send_fake_tracking(self, target_timestamp_ns: int, views: Sequence[ViewParams]) -> None:
        self._send(
            {
                "type": "fake_tracking",
                "target_timestamp_ns": int(target_timestamp_ns),
                "views": [_view_to_dict(v) for v in views],
            }
        )

    def send_button(self, path: str, value) -> None:
        self._send({"type": "button", "path": path, "value": value.raw()})

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass
