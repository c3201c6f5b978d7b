"""Per-session tracking context.

Everything the pose path shares lives on one TrackingSession: it is built when
a streaming session starts, owns the feed workers and executors, and is closed
when the session ends.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..config import AppConfig
from ..errors import NoAnchorAvailable
from ..tracking.anchor_store import AnchorStore
from ..tracking.anchors import LEFT, REMOVED, RIGHT, AnchorUpdate
from ..tracking.mutations import AnchorMutationDispatcher
from ..tracking.origin import OriginStabilizer
from ..tracking.predictor import PosePredictor
from ..tracking.recenter import RecenterGestureDetector
from ..tracking.skeleton import SkeletonRetargeter
from ..tracking.transformer import HandMotionEstimator, PoseTransformer
from .haptics import HapticRequestEvent, HapticScheduler
from .input_mapper import InputMapper, controller_sides
from .pose import (
    DEVICE_LEFT_ELBOW,
    DEVICE_LEFT_FOREARM,
    DEVICE_RIGHT_ELBOW,
    DEVICE_RIGHT_FOREARM,
    DeviceMotion,
    Fov,
    TrackingPayload,
    ViewParams,
    identity_pose,
    seconds_to_ns,
)
from .sink import StreamingSink
from .spatial_provider import SpatialProvider

logger = logging.getLogger(__name__)

SKIPPED_PLANE_CLASSIFICATIONS = {"window"}

ARM_DEVICES = {
    LEFT: (DEVICE_LEFT_FOREARM, DEVICE_LEFT_ELBOW),
    RIGHT: (DEVICE_RIGHT_FOREARM, DEVICE_RIGHT_ELBOW),
}


class TrackingSession:
    def __init__(
        self,
        platform: SpatialProvider,
        sink: StreamingSink,
        cfg: Optional[AppConfig] = None,
        on_tracking_lost: Optional[Callable[[str], None]] = None,
        synchronous: bool = False,
    ):
        cfg = cfg or AppConfig()
        self.cfg = cfg
        self.platform = platform
        self.sink = sink
        self._on_tracking_lost = on_tracking_lost

        self.store = AnchorStore()
        self.mutations = AnchorMutationDispatcher(platform, synchronous=synchronous)
        self.detector = RecenterGestureDetector(
            min_gap_s=cfg.recenter_min_gap_s,
            max_gap_s=cfg.recenter_max_gap_s,
            trigger_count=cfg.recenter_trigger_count,
            enabled=cfg.recenter_gesture,
        )
        self.stabilizer = OriginStabilizer(
            self.store,
            self.mutations,
            keep_center_fixed=cfg.keep_center_fixed,
            radius_m=cfg.origin_radius_m,
            force_origin_after_poses=cfg.force_origin_after_poses,
            detector=self.detector,
            on_tracking_lost=self.signal_tracking_lost,
        )
        self.transformer = PoseTransformer(self.stabilizer)
        self.retargeter = SkeletonRetargeter(self.transformer, cfg.limb_surface_offset_m)
        self.predictor = PosePredictor(
            platform.query_device_anchor,
            step_s=cfg.prediction_step_ms / 1000.0,
            max_attempts=cfg.prediction_max_attempts,
            clock=platform.now,
        )
        self.motion = HandMotionEstimator()
        self.input_mapper = InputMapper(sink)
        self.haptics = HapticScheduler(cfg.haptic_min_ms, cfg.haptic_max_ms, clock=platform.now)

        self._synchronous = bool(synchronous)
        self._sink_executor: Optional[ThreadPoolExecutor] = (
            None if synchronous else ThreadPoolExecutor(max_workers=1, thread_name_prefix="sink")
        )
        self._workers: List[threading.Thread] = []
        self._has_sent_tracking = False

    @property
    def has_sent_tracking(self) -> bool:
        return self._has_sent_tracking

    def signal_tracking_lost(self, reason: str) -> None:
        logger.warning("[SESSION] tracking lost: %s", reason)
        if self._on_tracking_lost is not None:
            self._on_tracking_lost(reason)

    def start(self) -> None:
        """Start the platform and one worker per update feed.

        SessionBootstrapError from the platform propagates unchanged.
        """
        self.stabilizer.reset()
        self.platform.start()
        feeds: List[Tuple[str, Callable[[], Iterable], Callable]] = [
            ("world", self.platform.world_updates, self.stabilizer.handle_world_update),
            ("plane", self.platform.plane_updates, self.handle_plane_update),
            ("hand", self.platform.hand_updates, self.handle_hand_update),
            ("mesh", self.platform.mesh_updates, self.handle_mesh_update),
            ("controller", self.platform.controller_events, self.input_mapper.handle),
            ("haptics", self.platform.haptic_requests, self.handle_haptic_request),
        ]
        for name, stream, handler in feeds:
            t = threading.Thread(
                target=self._drain_feed,
                args=(name, stream(), handler),
                name=f"feed-{name}",
                daemon=True,
            )
            t.start()
            self._workers.append(t)
        logger.info("[SESSION] started %d feed workers", len(self._workers))

    def _drain_feed(self, name: str, stream: Iterable, handler: Callable) -> None:
        for item in stream:
            try:
                handler(item)
            except Exception:  # noqa: BLE001
                logger.exception("[SESSION] %s feed handler failed", name)
        logger.debug("[SESSION] %s feed ended", name)

    def handle_plane_update(self, update: AnchorUpdate) -> None:
        anchor = update.anchor
        if update.event == REMOVED:
            self.store.remove(anchor.anchor_id)
            return
        if getattr(anchor, "classification", None) in SKIPPED_PLANE_CLASSIFICATIONS:
            return
        self.store.upsert(anchor)

    def handle_hand_update(self, update: AnchorUpdate) -> None:
        if update.event == REMOVED:
            self.store.remove(update.anchor.anchor_id)
            return
        self.motion.note_hands_updated(update.timestamp)
        self.store.upsert(update.anchor)

    def handle_mesh_update(self, update: AnchorUpdate) -> None:
        if update.event == REMOVED:
            self.store.remove(update.anchor.anchor_id)
            return
        self.store.upsert(update.anchor)

    def _views(self, poses, fovs: Optional[Sequence[Fov]]) -> Tuple[ViewParams, ViewParams]:
        fovs = fovs or (Fov(), Fov())
        return (
            ViewParams(pose=poses[0], fov=fovs[0]),
            ViewParams(pose=poses[1], fov=fovs[1]),
        )

    def _dispatch(self, fn: Callable, *args) -> None:
        if self._sink_executor is None:
            fn(*args)
            return
        try:
            self._sink_executor.submit(fn, *args)
        except RuntimeError:
            logger.debug("[SINK] dropped payload after shutdown")

    def send_tracking(
        self,
        view_transforms: Sequence[np.ndarray],
        target_timestamp: float,
        reported_timestamp: Optional[float] = None,
        fovs: Optional[Sequence[Fov]] = None,
    ) -> Optional[TrackingPayload]:
        """Build the pose set for one frame and hand it to the sink.

        view_transforms are the two head-from-eye transforms. Returns None when
        no device pose could be resolved.
        """
        try:
            prediction = self.predictor.resolve(target_timestamp)
        except NoAnchorAvailable as exc:
            logger.debug("[PREDICT] %s", exc)
            if self.stabilizer.sent_poses > self.cfg.tracking_loss_warmup_poses:
                self.signal_tracking_lost("device anchor unavailable")
            return None

        self.stabilizer.note_pose_sent()
        reference = self.stabilizer.reference_transform()

        eye_poses = self.transformer.view_poses(prediction.anchor.transform, view_transforms, reference)
        motions: List[DeviceMotion] = []
        skeletons: Dict[str, tuple] = {}
        for hand in self.platform.latest_hand_anchors().tracked():
            palm = self.transformer.hand_palm_pose(hand, reference)
            motions.append(self.motion.motion(hand.chirality, palm))
            frame = self.retargeter.to_skeleton_frame(hand, reference)
            if frame is None:
                continue
            skeletons[hand.chirality] = frame.streamed_joints()
            forearm_device, elbow_device = ARM_DEVICES[hand.chirality]
            motions.append(DeviceMotion(device=forearm_device, pose=frame.forearm))
            motions.append(DeviceMotion(device=elbow_device, pose=frame.elbow))

        if reported_timestamp is None:
            reported_timestamp = target_timestamp
        payload = TrackingPayload(
            target_timestamp_ns=seconds_to_ns(reported_timestamp),
            views=self._views(eye_poses, fovs),
            device_motions=motions,
            skeleton_left=skeletons.get(LEFT),
            skeleton_right=skeletons.get(RIGHT),
        )
        self.motion.mark_sent()
        if not self._has_sent_tracking:
            logger.info("[SESSION] first tracking payload sent")
        self._has_sent_tracking = True
        self._dispatch(self.sink.send_tracking, payload)
        return payload

    def send_fake_tracking(self, target_timestamp: float, fovs: Optional[Sequence[Fov]] = None) -> None:
        views = self._views((identity_pose(), identity_pose()), fovs)
        self._dispatch(self.sink.send_fake_tracking, seconds_to_ns(target_timestamp), views)

    def view_to_platform(self, view: ViewParams, view_transform: np.ndarray) -> np.ndarray:
        """Platform transform for an eye pose the renderer echoed back."""
        return self.transformer.to_platform_transform(view.pose, view_transform)

    def submit_haptics(self, side: str, start: float, end: float, amplitude: float, frequency: float = 0.0) -> None:
        self.haptics.submit(side, start, end, amplitude, frequency)

    def handle_haptic_request(self, event: HapticRequestEvent) -> None:
        self.submit_haptics(event.side, event.start, event.end, event.amplitude, event.frequency)

    def service_haptics(self) -> None:
        for controller in self.platform.controllers():
            capability = self.platform.haptics_for(controller.controller_id)
            if capability is None:
                continue
            self.haptics.service(capability, controller_sides(controller))

    def close(self) -> None:
        self.haptics.close()
        self.mutations.close(wait=False)
        if self._sink_executor is not None:
            self._sink_executor.shutdown(wait=True)
        logger.info("[SESSION] closed")
