"""Spatial platform capability via an external bridge process.

This provider does not talk to a headset runtime directly. A bridge process
on the device owns the platform session and forwards anchor updates, device
poses, controller input and haptic requests as UDP JSON packets; anchor
mutations and haptic pulses go back to the last address a packet came from.
"""

from __future__ import annotations

import json
import logging
import queue
import socket
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from ..control.haptics import LOCALITY_ALL, HapticEngine, HapticPulse, HapticRequestEvent, HapticsCapability
from ..control.input_mapper import ControllerElementEvent, ControllerInfo, ControllerSnapshot
from ..control.spatial_provider import SpatialProvider
from ..errors import SessionBootstrapError
from ..math3d.transform import as_transform
from ..tracking.anchors import (
    CHIRALITIES,
    DEVICE,
    HAND,
    MESH,
    PLANE,
    REMOVED,
    UPDATE_EVENTS,
    WORLD,
    Anchor,
    AnchorUpdate,
    HandAnchor,
    HandAnchorPair,
    HandJoint,
    HandSkeleton,
    PlaneAnchor,
)

logger = logging.getLogger(__name__)

_FEED_KINDS = (WORLD, PLANE, HAND, MESH)
_CLOSED = object()


@dataclass(frozen=True, eq=False)
class DeviceSample:
    timestamp: float
    transform: np.ndarray


def _parse_transform(value) -> Optional[np.ndarray]:
    if value is None:
        return None
    try:
        t = as_transform(value)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(t).all():
        return None
    return t


def _parse_skeleton(items) -> Optional[HandSkeleton]:
    if items is None:
        return None
    if not isinstance(items, list):
        return None
    joints = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            return None
        t = _parse_transform(item.get("transform"))
        tracked = _parse_flag(item, "tracked", True)
        if t is None or tracked is None:
            return None
        joints.append(HandJoint(name=item["name"], anchor_from_joint=t, tracked=tracked))
    return HandSkeleton(joints=tuple(joints))


def _parse_finite(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        v = float(value)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(v):
        return None
    return v


def _parse_flag(payload: dict, key: str, default: bool) -> Optional[bool]:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        return None
    return value


def _parse_timestamp(payload: dict) -> Optional[float]:
    return _parse_finite(payload.get("timestamp", 0.0))


def _parse_anchor_payload(payload: dict) -> Optional[AnchorUpdate]:
    kind = payload.get("kind")
    event = payload.get("event")
    anchor_id = payload.get("id")
    if kind not in _FEED_KINDS or event not in UPDATE_EVENTS:
        return None
    if not isinstance(anchor_id, str) or not anchor_id:
        return None
    ts = _parse_timestamp(payload)
    if ts is None:
        return None

    t = _parse_transform(payload.get("transform"))
    if t is None:
        if event != REMOVED:
            return None
        t = np.eye(4, dtype=np.float64)
    tracked = _parse_flag(payload, "tracked", True)
    if tracked is None:
        return None

    if kind == PLANE:
        anchor: Anchor = PlaneAnchor(
            anchor_id=anchor_id,
            transform=t,
            tracked=tracked,
            timestamp=ts,
            classification=str(payload.get("classification", "unknown")),
        )
    elif kind == HAND:
        chirality = payload.get("chirality")
        if chirality not in CHIRALITIES:
            return None
        skeleton = None
        if "joints" in payload:
            skeleton = _parse_skeleton(payload.get("joints"))
            if skeleton is None and payload.get("joints") is not None:
                return None
        anchor = HandAnchor(
            anchor_id=anchor_id,
            transform=t,
            tracked=tracked,
            timestamp=ts,
            chirality=chirality,
            skeleton=skeleton,
        )
    else:
        anchor = Anchor(anchor_id=anchor_id, transform=t, tracked=tracked, timestamp=ts, kind=kind)

    return AnchorUpdate(event=event, anchor=anchor, timestamp=ts)


def _parse_device_payload(payload: dict) -> Optional[DeviceSample]:
    ts = _parse_timestamp(payload)
    t = _parse_transform(payload.get("transform"))
    if ts is None or t is None:
        return None
    return DeviceSample(timestamp=ts, transform=t)


def _parse_controller_info(payload: dict) -> Optional[ControllerInfo]:
    controller_id = payload.get("id")
    if not isinstance(controller_id, str) or not controller_id:
        return None
    extended = _parse_flag(payload, "extended", False)
    if extended is None:
        return None
    localities = payload.get("localities")
    if not isinstance(localities, list):
        localities = [LOCALITY_ALL]
    return ControllerInfo(
        controller_id=controller_id,
        vendor_name=str(payload.get("vendor", "")),
        extended=extended,
        localities=tuple(str(v) for v in localities),
    )


def _parse_controller_payload(payload: dict):
    info = _parse_controller_info(payload)
    if info is None:
        return None
    if "buttons" in payload:
        buttons = payload.get("buttons")
        if not isinstance(buttons, dict) or not all(isinstance(v, bool) for v in buttons.values()):
            return None
        return ControllerSnapshot(controller=info, buttons={str(k): v for k, v in buttons.items()})

    element = payload.get("element")
    if not isinstance(element, str) or not element:
        return None
    pressed = _parse_flag(payload, "pressed", False)
    value = _parse_finite(payload.get("value", 0.0))
    x = _parse_finite(payload.get("x", 0.0))
    y = _parse_finite(payload.get("y", 0.0))
    if pressed is None or value is None or x is None or y is None:
        return None
    return ControllerElementEvent(controller=info, element=element, pressed=pressed, value=value, x=x, y=y)


def _parse_haptic_request_payload(payload: dict) -> Optional[HapticRequestEvent]:
    side = payload.get("side")
    if side not in CHIRALITIES:
        return None
    start = _parse_finite(payload.get("start"))
    end = _parse_finite(payload.get("end"))
    amplitude = _parse_finite(payload.get("amplitude"))
    frequency = _parse_finite(payload.get("frequency", 0.0))
    if start is None or end is None or amplitude is None or frequency is None:
        return None
    return HapticRequestEvent(side=side, start=start, end=end, amplitude=amplitude, frequency=frequency)


def _parse_bridge_payload(payload: dict) -> Optional[Tuple[str, object]]:
    kind = payload.get("type")
    if kind == "anchor":
        item = _parse_anchor_payload(payload)
    elif kind == "device":
        item = _parse_device_payload(payload)
    elif kind == "controller":
        item = _parse_controller_payload(payload)
    elif kind == "haptic_request":
        item = _parse_haptic_request_payload(payload)
    else:
        return None
    if item is None:
        return None
    return kind, item


def _parse_bridge_packet(data: bytes) -> Optional[Tuple[str, object]]:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return _parse_bridge_payload(payload)


class _BridgeHapticEngine(HapticEngine):
    def __init__(self, provider: "UdpBridgeProvider", controller_id: str, locality: str):
        self.provider = provider
        self.controller_id = controller_id
        self.locality = locality

    def play(self, pulse: HapticPulse) -> None:
        self.provider.send_command(
            {
                "cmd": "haptic",
                "controller": self.controller_id,
                "locality": self.locality,
                "amplitude": pulse.amplitude,
                "duration_s": pulse.duration_s,
                "sharpness": pulse.sharpness,
            }
        )


class _BridgeHaptics(HapticsCapability):
    def __init__(self, provider: "UdpBridgeProvider", controller_id: str, localities: List[str]):
        self.provider = provider
        self.controller_id = controller_id
        self.localities = list(localities)

    def supported_localities(self) -> List[str]:
        return list(self.localities)

    def create_engine(self, locality: str) -> Optional[HapticEngine]:
        if locality not in self.localities:
            return None
        return _BridgeHapticEngine(self.provider, self.controller_id, locality)


class UdpBridgeProvider(SpatialProvider):
    """Spatial capability fed by bridge messages over UDP.

    Expected JSON packet schema (one object per datagram):
    {"type": "anchor", "kind": "world|plane|hand|mesh", "event": "added|updated|removed",
     "id": "...", "timestamp": 12.5, "tracked": true, "transform": [16 floats, row-major],
     "classification": "floor",                      # planes
     "chirality": "left", "joints": [{"name": "wrist", "transform": [...]}]}  # hands
    {"type": "device", "timestamp": 12.5, "transform": [...]}
    {"type": "controller", "id": "...", "vendor": "...", "extended": true,
     "element": "buttonA", "pressed": true, "value": 1.0, "x": 0.0, "y": 0.0,
     "localities": ["left handle", "right handle", "all"]}
    {"type": "controller", "id": "...", "vendor": "Joy-Con (L)", "buttons": {"Button A": true}}
    {"type": "haptic_request", "side": "left", "start": 12.5, "end": 12.6,
     "amplitude": 0.8, "frequency": 0.0}               # platform clock seconds

    Device poses are answered from recent samples: a query is answerable from
    the oldest sample up to ``prediction_horizon_s`` past the newest one.
    """

    def __init__(
        self,
        bridge_host: str = "127.0.0.1",
        bridge_port: int = 24567,
        prediction_horizon_s: float = 0.030,
        history: int = 512,
        recv_timeout_s: float = 0.2,
    ):
        self.bridge_host = str(bridge_host)
        self.bridge_port = int(bridge_port)
        self.prediction_horizon_s = float(prediction_horizon_s)
        self.recv_timeout_s = float(recv_timeout_s)

        self.sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._closed = False
        self._lock = threading.Lock()
        self._queues: Dict[str, "queue.Queue"] = {kind: queue.Queue() for kind in _FEED_KINDS}
        self._controller_queue: "queue.Queue" = queue.Queue()
        self._haptic_queue: "queue.Queue" = queue.Queue()
        self._samples: deque = deque(maxlen=int(history))
        self._last_sample_recv = 0.0
        self._hands: Dict[str, Optional[HandAnchor]] = {c: None for c in CHIRALITIES}
        self._controllers: Dict[str, ControllerInfo] = {}
        self._peer: Optional[Tuple[str, int]] = None
        self._recv_count = 0

    def start(self) -> None:
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind((self.bridge_host, self.bridge_port))
        except OSError as exc:
            raise SessionBootstrapError(
                f"cannot bind bridge socket {self.bridge_host}:{self.bridge_port}: {exc}"
            ) from exc
        sock.settimeout(self.recv_timeout_s)
        self.sock = sock
        self._thread = threading.Thread(target=self._receive_loop, name="bridge-recv", daemon=True)
        self._thread.start()
        logger.info(
            "[BRIDGE] provider=udp-bridge (host=%s, port=%s, horizon_ms=%.1f)",
            self.bridge_host,
            self.bridge_port,
            self.prediction_horizon_s * 1000.0,
        )

    def _receive_loop(self) -> None:
        last_wait_log = time.monotonic()
        while not self._closed:
            try:
                data, addr = self.sock.recvfrom(65535)
            except socket.timeout:
                now = time.monotonic()
                if self._recv_count == 0 and now - last_wait_log > 2.0:
                    logger.info(
                        "[BRIDGE] waiting for bridge packets on %s:%s",
                        self.bridge_host,
                        self.bridge_port,
                    )
                    last_wait_log = now
                continue
            except OSError as exc:
                if not self._closed:
                    logger.warning("[BRIDGE] receive failed, stopping: %s", exc)
                break
            self.handle_packet(data, addr)

    def handle_packet(self, data: bytes, addr: Optional[Tuple[str, int]] = None) -> bool:
        """Route one datagram; returns False when it was dropped as malformed."""
        parsed = _parse_bridge_packet(data)
        if parsed is None:
            logger.debug("[BRIDGE] dropped malformed packet (%d bytes)", len(data))
            return False

        self._recv_count += 1
        if self._recv_count == 1:
            logger.info("[BRIDGE] first bridge packet received")
        if addr is not None:
            self._peer = addr

        kind, item = parsed
        if kind == "anchor":
            self._route_anchor(item)
        elif kind == "device":
            with self._lock:
                self._samples.append(item)
                self._last_sample_recv = time.monotonic()
        elif kind == "haptic_request":
            self._haptic_queue.put(item)
        else:
            self._route_controller(item)
        return True

    def _route_anchor(self, update: AnchorUpdate) -> None:
        anchor = update.anchor
        if anchor.kind == HAND:
            with self._lock:
                self._hands[anchor.chirality] = None if update.event == REMOVED else anchor
        self._queues[anchor.kind].put(update)

    def _route_controller(self, event) -> None:
        info = event.controller
        with self._lock:
            if info.controller_id not in self._controllers:
                logger.info("[BRIDGE] controller connected: %s (%s)", info.vendor_name, info.controller_id)
            self._controllers[info.controller_id] = info
        self._controller_queue.put(event)

    def now(self) -> float:
        with self._lock:
            if not self._samples:
                return time.monotonic()
            return self._samples[-1].timestamp + (time.monotonic() - self._last_sample_recv)

    def _drain(self, q: "queue.Queue") -> Iterator:
        while True:
            item = q.get()
            if item is _CLOSED:
                return
            yield item

    def world_updates(self):
        return self._drain(self._queues[WORLD])

    def plane_updates(self):
        return self._drain(self._queues[PLANE])

    def hand_updates(self):
        return self._drain(self._queues[HAND])

    def mesh_updates(self):
        return self._drain(self._queues[MESH])

    def controller_events(self):
        return self._drain(self._controller_queue)

    def haptic_requests(self):
        return self._drain(self._haptic_queue)

    def query_device_anchor(self, timestamp: float) -> Optional[Anchor]:
        ts = float(timestamp)
        with self._lock:
            if not self._samples:
                return None
            if ts < self._samples[0].timestamp:
                return None
            if ts > self._samples[-1].timestamp + self.prediction_horizon_s:
                return None
            chosen = None
            for sample in reversed(self._samples):
                if sample.timestamp <= ts:
                    chosen = sample
                    break
        if chosen is None:
            return None
        return Anchor(anchor_id="device", transform=chosen.transform.copy(), timestamp=ts, kind=DEVICE)

    def latest_hand_anchors(self) -> HandAnchorPair:
        with self._lock:
            return HandAnchorPair(left=self._hands["left"], right=self._hands["right"])

    def controllers(self) -> List[ControllerInfo]:
        with self._lock:
            return list(self._controllers.values())

    def haptics_for(self, controller_id: str) -> Optional[HapticsCapability]:
        with self._lock:
            info = self._controllers.get(controller_id)
        if info is None:
            return None
        return _BridgeHaptics(self, controller_id, list(info.localities))

    def send_command(self, message: dict) -> None:
        peer = self._peer
        if peer is None or self.sock is None:
            raise ConnectionError("no bridge peer connected yet")
        self.sock.sendto(json.dumps(message, separators=(",", ":"), allow_nan=False).encode("utf-8"), peer)

    def add_anchor(self, anchor: Anchor) -> None:
        self.send_command(
            {
                "cmd": "add_anchor",
                "id": anchor.anchor_id,
                "transform": [float(v) for v in np.asarray(anchor.transform).reshape(-1)],
            }
        )

    def remove_anchor(self, anchor: Anchor) -> None:
        self.send_command({"cmd": "remove_anchor", "id": anchor.anchor_id})

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for q in list(self._queues.values()) + [self._controller_queue, self._haptic_queue]:
            q.put(_CLOSED)
        if self.sock is not None:
            try:
                self.sock.close()
            except OSError:
                pass
        if self._thread is not None:
            self._thread.join(timeout=1.0)

