"""
Pose streaming client:
- Spatial platform capability (anchors, device poses, controllers) via UDP bridge
- World origin stabilized against platform recenters
- Head/eye poses predicted ~30 ms ahead with bounded walk-back
- Palm poses and 28-slot hand skeletons retargeted to the output convention
- Controller input folded onto a two-hand controller layout; haptics pulses
- Streaming sink (log/udp) receives the final pose and button stream

Deps:
  uv add numpy pyyaml
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Tuple

import numpy as np

from .config import parse_args
from .control.session import TrackingSession
from .control.sink import LoggingSink, UdpJsonSink
from .errors import SessionBootstrapError
from .math3d.transform import translation_transform
from .spatial_providers.udp_bridge import UdpBridgeProvider

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def default_view_transforms(ipd_m: float) -> Tuple[np.ndarray, np.ndarray]:
    """Head-from-eye transforms for two eyes ipd_m apart, no canting."""
    half = float(ipd_m) / 2.0
    return translation_transform(-half, 0.0, 0.0), translation_transform(half, 0.0, 0.0)


def build_sink(cfg):
    if cfg.sink == "log":
        sink = LoggingSink()
    elif cfg.sink == "udp":
        sink = UdpJsonSink(host=cfg.sink_host, port=cfg.sink_port)
    else:
        raise RuntimeError(f"Unsupported sink: {cfg.sink}")
    logger.info("[SINK] sink=%s", cfg.sink)
    return sink


def build_spatial_provider(cfg):
    return UdpBridgeProvider(
        bridge_host=cfg.bridge_host,
        bridge_port=cfg.bridge_port,
        prediction_horizon_s=cfg.prediction_ms / 1000.0,
    )


def run_tracking_loop(session: TrackingSession, cfg, stop: Optional[threading.Event] = None) -> None:
    """Stream poses at cfg.tracking_hz until stop is set."""
    period = 1.0 / cfg.tracking_hz
    views = default_view_transforms(cfg.ipd_m)
    horizon_s = cfg.prediction_ms / 1000.0
    stop = stop or threading.Event()
    while not stop.is_set():
        t0 = time.monotonic()
        target = session.platform.now() + horizon_s
        payload = session.send_tracking(views, target)
        if payload is None and not session.has_sent_tracking:
            session.send_fake_tracking(target)
        session.service_haptics()
        stop.wait(max(0.0, period - (time.monotonic() - t0)))


def main(argv=None):
    cfg = parse_args(argv)
    configure_logging(cfg.log_level)

    sink = build_sink(cfg)
    platform = build_spatial_provider(cfg)
    session = TrackingSession(platform, sink, cfg)
    try:
        try:
            session.start()
        except SessionBootstrapError:
            logger.exception("[SESSION] failed to start spatial tracking")
            raise SystemExit(1)
        logger.info(
            "[SESSION] streaming at %.1f Hz (keep_center_fixed=%s, recenter_gesture=%s)",
            cfg.tracking_hz,
            cfg.keep_center_fixed,
            cfg.recenter_gesture,
        )
        try:
            run_tracking_loop(session, cfg)
        except KeyboardInterrupt:
            logger.info("[SESSION] interrupted")
    finally:
        try:
            platform.close()
        finally:
            session.close()
            sink.close()


if __name__ == "__main__":
    main()
