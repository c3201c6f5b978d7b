"""World-origin stabilization.

The platform silently re-centers its own coordinate system whenever the user
long-presses the recenter button. To keep the streamed world still, one
world anchor near the start point is adopted as "world zero" and every output
pose is re-expressed relative to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from ..math3d.transform import distance_from_origin, identity_transform
from .anchor_store import AnchorStore
from .anchors import UPDATED, REMOVED, WORLD, Anchor, AnchorUpdate, identity_world_anchor
from .mutations import AnchorMutationDispatcher
from .recenter import RecenterGestureDetector

logger = logging.getLogger(__name__)


@dataclass
class OriginState:
    origin: Anchor
    adopted: bool
    reference: np.ndarray
    recenter_count: int
    last_update_ts: Optional[float]
    sent_poses: int


class OriginStabilizer:
    def __init__(
        self,
        store: AnchorStore,
        mutations: AnchorMutationDispatcher,
        keep_center_fixed: bool = True,
        radius_m: float = 3.5,
        force_origin_after_poses: int = 300,
        detector: Optional[RecenterGestureDetector] = None,
        on_tracking_lost: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.mutations = mutations
        self.keep_center_fixed = bool(keep_center_fixed)
        self.radius_m = float(radius_m)
        self.force_origin_after_poses = int(force_origin_after_poses)
        self.detector = detector or RecenterGestureDetector()
        self.on_tracking_lost = on_tracking_lost
        self.resets = 0

        self._origin = identity_world_anchor()
        self._adopted = False
        self._reference = identity_transform()
        self._sent_poses = 0

    def reset(self) -> None:
        """Forget the adopted origin; called at session start."""
        with self.store.lock:
            self._origin = identity_world_anchor()
            self._adopted = False
            self._reference = identity_transform()
            self._sent_poses = 0
            self.detector.reset()
        logger.info("[ORIGIN] playspace reset")

    def reference_transform(self) -> np.ndarray:
        with self.store.lock:
            return self._reference.copy()

    def state(self) -> OriginState:
        with self.store.lock:
            return OriginState(
                origin=self._origin,
                adopted=self._adopted,
                reference=self._reference.copy(),
                recenter_count=self.detector.count,
                last_update_ts=self.detector.last_timestamp,
                sent_poses=self._sent_poses,
            )

    def handle_world_update(self, update: AnchorUpdate) -> None:
        anchor = update.anchor
        if update.event == REMOVED:
            self.store.remove(anchor.anchor_id)
            return

        to_remove: List[Anchor] = []
        to_add: List[Anchor] = []
        lost = False

        with self.store.lock:
            self.store.upsert(anchor)

            if not self._adopted:
                dist = distance_from_origin(anchor.transform)
                logger.debug(
                    "[ORIGIN] candidate %s dist=%.3fm tracked=%s",
                    anchor.anchor_id,
                    dist,
                    anchor.tracked,
                )
                if anchor.tracked and dist < self.radius_m:
                    to_remove.append(self._origin)
                    self._origin = anchor
                    self._adopted = True
                    logger.info("[ORIGIN] adopted anchor %s (%.3fm from start)", anchor.anchor_id, dist)

            if anchor.anchor_id == self._origin.anchor_id:
                self._origin = anchor
                if not anchor.tracked:
                    # Seen when the headset is taken off or the app closes.
                    lost = True
                else:
                    if self.keep_center_fixed:
                        self._reference = anchor.transform.copy()
                    if update.event == UPDATED and self.detector.observe(update.timestamp):
                        to_remove.extend(self._recenter_locked(anchor))
                        to_add.append(self._origin)

        for a in to_remove:
            self.mutations.remove(a)
        for a in to_add:
            self.mutations.add(a)
        if lost:
            logger.warning("[ORIGIN] origin anchor %s lost tracking", anchor.anchor_id)
            if self.on_tracking_lost is not None:
                self.on_tracking_lost("origin anchor untracked")

    def _recenter_locked(self, anchor: Anchor) -> List[Anchor]:
        purged = self.store.pop_within(anchor.transform, self.radius_m, kind=WORLD)
        self._origin = identity_world_anchor()
        self._adopted = True
        if self.keep_center_fixed:
            self._reference = anchor.transform.copy()
        self.resets += 1
        logger.info(
            "[ORIGIN] recenter: purged %d anchors, new origin %s",
            len(purged),
            self._origin.anchor_id,
        )
        return purged

    def note_pose_sent(self) -> None:
        """Count a sent pose; force-adopt the platform origin once enough have gone out.

        The platform only accepts new anchors while tracking is running, and the
        pose path is where that is known to be true.
        """
        force = None
        with self.store.lock:
            if not self._adopted and self._sent_poses > self.force_origin_after_poses:
                self._adopted = True
                force = self._origin
            self._sent_poses += 1
        if force is not None:
            logger.info("[ORIGIN] no nearby anchor found; adopting platform origin %s", force.anchor_id)
            self.mutations.add(force)

    @property
    def sent_poses(self) -> int:
        with self.store.lock:
            return self._sent_poses
