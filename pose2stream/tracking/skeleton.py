"""Hand skeleton retargeting onto the 28-slot output joint array.

Slots 1-25 follow the downstream hand-bone order (wrist, then four or five
bones per finger). Slot 0 is the hand root. The platform's two arm joints are
stashed in slots 26 and 27, where the session lifts them out as forearm and
elbow trackers.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import numpy as np

from ..control.pose import SKELETON_SLOTS, Pose6D, SkeletonFrame
from ..math3d.quaternion import q_from_to, q_identity, q_mul, q_normalize, rotmat_to_q
from .anchors import LEFT, RIGHT, HandAnchor
from .transformer import X_AXIS, Y_AXIS, Z_AXIS, PoseTransformer

logger = logging.getLogger(__name__)

FOREARM_SLOT = 26
ELBOW_SLOT = 27

JOINT_SLOTS: Dict[str, int] = {
    "wrist": 1,
    "thumbKnuckle": 2,
    "thumbIntermediateBase": 3,
    "thumbIntermediateTip": 4,
    "thumbTip": 5,
    "indexFingerMetacarpal": 6,
    "indexFingerKnuckle": 7,
    "indexFingerIntermediateBase": 8,
    "indexFingerIntermediateTip": 9,
    "indexFingerTip": 10,
    "middleFingerMetacarpal": 11,
    "middleFingerKnuckle": 12,
    "middleFingerIntermediateBase": 13,
    "middleFingerIntermediateTip": 14,
    "middleFingerTip": 15,
    "ringFingerMetacarpal": 16,
    "ringFingerKnuckle": 17,
    "ringFingerIntermediateBase": 18,
    "ringFingerIntermediateTip": 19,
    "ringFingerTip": 20,
    "littleFingerMetacarpal": 21,
    "littleFingerKnuckle": 22,
    "littleFingerIntermediateBase": 23,
    "littleFingerIntermediateTip": 24,
    "littleFingerTip": 25,
    "forearmWrist": FOREARM_SLOT,
    "forearmArm": ELBOW_SLOT,
}

# Joint axes -> bone axes, applied to every joint before the chirality flip.
JOINT_BASE_CORRECTION = q_from_to(X_AXIS, Z_AXIS)
JOINT_CHIRALITY_CORRECTION = {
    LEFT: q_from_to(X_AXIS, -X_AXIS),
    RIGHT: q_from_to(Z_AXIS, -Z_AXIS),
}
# Turns the arm trackers to face outward from the arm.
_FOREARM_CORRECTION = q_mul(q_from_to(X_AXIS, Z_AXIS), q_from_to(Y_AXIS, Z_AXIS))
FOREARM_CORRECTION = {
    LEFT: _FOREARM_CORRECTION,
    RIGHT: _FOREARM_CORRECTION,
}


class SkeletonRetargeter:
    """Builds a SkeletonFrame from a hand anchor with a skeleton.

    The elbow is not articulated: the platform reports it with the wrist's
    orientation, which downstream IK turns into an unnatural full-range
    forearm twist, so the elbow orientation is clamped to identity before the
    outward-facing correction. This is an approximation to revisit only with
    a real elbow model.
    """

    def __init__(self, transformer: PoseTransformer, limb_surface_offset_m: float = 0.025):
        self.transformer = transformer
        self.limb_surface_offset_m = float(limb_surface_offset_m)

    def to_skeleton_frame(
        self,
        hand: HandAnchor,
        reference: Optional[np.ndarray] = None,
    ) -> Optional[SkeletonFrame]:
        skeleton = hand.skeleton
        if skeleton is None:
            return None

        if reference is None:
            reference = self.transformer.reference_source.reference_transform()
        root = self.transformer.hand_palm_pose(hand, reference)
        if not root.is_finite():
            logger.debug("[SKELETON] non-finite root pose for %s hand", hand.chirality)
            return None
        poses = [root.copy() for _ in range(SKELETON_SLOTS)]

        base = self.transformer.relative(hand.transform, reference)
        outward = 1.0 if hand.chirality == RIGHT else -1.0
        for joint in skeleton.joints:
            slot = JOINT_SLOTS.get(joint.name, -1)
            if slot < 0 or slot >= SKELETON_SLOTS:
                continue

            t = base @ joint.anchor_from_joint
            q = q_mul(rotmat_to_q(t[:3, :3]), JOINT_BASE_CORRECTION)
            q = q_mul(q, JOINT_CHIRALITY_CORRECTION[hand.chirality])
            if slot == ELBOW_SLOT:
                q = q_identity()
            position = t[:3, 3].copy()
            if slot in (FOREARM_SLOT, ELBOW_SLOT):
                q = q_mul(q, FOREARM_CORRECTION[hand.chirality])
                # Lift the tracker onto the arm surface along the joint's local up axis.
                position = position + t[:3, 1] * (self.limb_surface_offset_m * outward)

            pose = Pose6D(position=position, quaternion=q_normalize(q))
            if not pose.is_finite():
                logger.debug("[SKELETON] skipping non-finite joint %s", joint.name)
                continue
            poses[slot] = pose

        return SkeletonFrame(chirality=hand.chirality, poses=tuple(poses))
