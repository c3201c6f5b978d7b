"""Platform transforms -> output-space poses.

Output space is the platform space re-expressed relative to the stabilized
origin: ``reference^-1 * raw``. Hand orientations additionally get a fixed
per-chirality correction that maps the platform's hand axes onto the
downstream controller convention.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..control.pose import DEVICE_LEFT_HAND, DEVICE_RIGHT_HAND, DeviceMotion, Pose6D, identity_pose
from ..math3d.quaternion import q_from_to, q_mul, q_normalize, rotmat_to_q
from ..math3d.transform import make_transform, rigid_inverse
from .anchors import LEFT, RIGHT, HandAnchor

X_AXIS = np.array([1.0, 0.0, 0.0], dtype=np.float64)
Y_AXIS = np.array([0.0, 1.0, 0.0], dtype=np.float64)
Z_AXIS = np.array([0.0, 0.0, 1.0], dtype=np.float64)

LEFT_HAND_CORRECTION = q_mul(q_from_to(X_AXIS, -X_AXIS), q_from_to(X_AXIS, -Z_AXIS))
RIGHT_HAND_CORRECTION = q_mul(q_from_to(Z_AXIS, -Z_AXIS), q_from_to(X_AXIS, Z_AXIS))

HAND_CORRECTIONS = {
    LEFT: LEFT_HAND_CORRECTION,
    RIGHT: RIGHT_HAND_CORRECTION,
}

WRIST_JOINT = "wrist"
PALM_JOINTS = ("middleFingerMetacarpal", "middleFingerKnuckle")


def _pose_from_transform(t: np.ndarray, correction: Optional[np.ndarray] = None) -> Pose6D:
    q = rotmat_to_q(t[:3, :3])
    if correction is not None:
        q = q_normalize(q_mul(q, correction))
    return Pose6D(position=np.asarray(t[:3, 3], dtype=np.float64).copy(), quaternion=q)


class PoseTransformer:
    """Re-expresses raw platform transforms in output space.

    ``reference_source`` is anything with a ``reference_transform()`` method,
    normally the OriginStabilizer. Callers producing several poses for one
    frame should read the reference once and pass it in, so a concurrent
    recenter cannot split a frame across two reference frames.
    """

    def __init__(self, reference_source):
        self.reference_source = reference_source

    def _reference(self, reference: Optional[np.ndarray]) -> np.ndarray:
        if reference is None:
            return self.reference_source.reference_transform()
        return reference

    def relative(self, raw_transform: np.ndarray, reference: Optional[np.ndarray] = None) -> np.ndarray:
        return rigid_inverse(self._reference(reference)) @ np.asarray(raw_transform, dtype=np.float64)

    def to_output_pose(
        self,
        raw_transform: np.ndarray,
        chirality: Optional[str] = None,
        reference: Optional[np.ndarray] = None,
    ) -> Pose6D:
        t = self.relative(raw_transform, reference)
        correction = HAND_CORRECTIONS[chirality] if chirality is not None else None
        return _pose_from_transform(t, correction)

    def hand_wrist_pose(self, hand: HandAnchor, reference: Optional[np.ndarray] = None) -> Pose6D:
        """Pose straight from the hand anchor transform; used when no skeleton is present."""
        return self.to_output_pose(hand.transform, hand.chirality, reference)

    def hand_palm_pose(self, hand: HandAnchor, reference: Optional[np.ndarray] = None) -> Pose6D:
        """Controller-style palm pose.

        Position is the midpoint of the middle-finger metacarpal and proximal
        joints; orientation comes from the wrist joint.
        """
        skeleton = hand.skeleton
        if skeleton is None:
            return self.hand_wrist_pose(hand, reference)
        wrist = skeleton.joint(WRIST_JOINT)
        metacarpal = skeleton.joint(PALM_JOINTS[0])
        proximal = skeleton.joint(PALM_JOINTS[1])
        if wrist is None or metacarpal is None or proximal is None:
            return self.hand_wrist_pose(hand, reference)

        base = self.relative(hand.transform, reference)
        p0 = (base @ metacarpal.anchor_from_joint)[:3, 3]
        p1 = (base @ proximal.anchor_from_joint)[:3, 3]
        pose = _pose_from_transform(base @ wrist.anchor_from_joint, HAND_CORRECTIONS[hand.chirality])
        pose.position = (p0 + p1) / 2.0
        return pose

    def view_poses(
        self,
        device_transform: np.ndarray,
        view_transforms: Sequence[np.ndarray],
        reference: Optional[np.ndarray] = None,
    ) -> List[Pose6D]:
        head = self.relative(device_transform, reference)
        return [_pose_from_transform(head @ np.asarray(v, dtype=np.float64)) for v in view_transforms]

    def to_platform_transform(
        self,
        pose: Pose6D,
        view_transform: np.ndarray,
        reference: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """Map an output-space view pose (as echoed by the renderer) back to a platform device transform."""
        t = rigid_inverse(np.asarray(view_transform, dtype=np.float64)) @ make_transform(
            pose.quaternion, pose.position
        )
        return self._reference(reference) @ t


class HandMotionEstimator:
    """Finite-difference linear velocity for the palm poses.

    dt is the time between the latest hand-feed update and the hand update
    that was current when poses were last sent. Angular velocity is not
    estimated.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_pose: Dict[str, Pose6D] = {LEFT: identity_pose(), RIGHT: identity_pose()}
        self._last_updated_ts = 0.0
        self._last_sent_ts = 0.0

    def note_hands_updated(self, timestamp: float) -> None:
        with self._lock:
            self._last_updated_ts = float(timestamp)

    def motion(self, chirality: str, pose: Pose6D) -> DeviceMotion:
        with self._lock:
            last = self._last_pose[chirality]
            dt = self._last_updated_ts - self._last_sent_ts
            self._last_pose[chirality] = pose.copy()
        if dt > 0.0:
            velocity = (pose.position - last.position) / dt
        else:
            velocity = np.zeros(3, dtype=np.float64)
        device = DEVICE_LEFT_HAND if chirality == LEFT else DEVICE_RIGHT_HAND
        return DeviceMotion(device=device, pose=pose, linear_velocity=velocity)

    def mark_sent(self) -> None:
        with self._lock:
            self._last_sent_ts = self._last_updated_ts
