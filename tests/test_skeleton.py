import numpy as np

from pose2stream.math3d.quaternion import q_identity, q_mul, q_to_rotmat
from pose2stream.math3d.transform import translation_transform
from pose2stream.tracking.anchors import LEFT, RIGHT, HandAnchor, HandJoint, HandSkeleton
from pose2stream.tracking.skeleton import (
    ELBOW_SLOT,
    FOREARM_CORRECTION,
    FOREARM_SLOT,
    JOINT_BASE_CORRECTION,
    JOINT_CHIRALITY_CORRECTION,
    JOINT_SLOTS,
    SkeletonRetargeter,
)
from pose2stream.tracking.transformer import PoseTransformer


class _FixedReference:
    def reference_transform(self):
        return np.eye(4)


def _retargeter():
    return SkeletonRetargeter(PoseTransformer(_FixedReference()), limb_surface_offset_m=0.025)


def _full_skeleton():
    joints = []
    for i, name in enumerate(JOINT_SLOTS):
        joints.append(HandJoint(name, translation_transform(0.0, 0.0, -0.01 * i)))
    return HandSkeleton(joints=tuple(joints))


def _hand(side, skeleton):
    return HandAnchor(
        anchor_id=f"hand-{side}",
        transform=translation_transform(0.0, 1.0, -0.3),
        chirality=side,
        skeleton=skeleton,
    )


def _same_rotation(q_a, q_b):
    np.testing.assert_allclose(q_to_rotmat(q_a), q_to_rotmat(q_b), atol=1e-9)


def test_no_skeleton_returns_none():
    hand = HandAnchor(anchor_id="h", transform=np.eye(4), chirality=LEFT)
    assert _retargeter().to_skeleton_frame(hand) is None


def test_frame_has_28_finite_entries():
    for side in (LEFT, RIGHT):
        frame = _retargeter().to_skeleton_frame(_hand(side, _full_skeleton()))
        assert len(frame) == 28
        for pose in frame.poses:
            assert pose.is_finite()
            np.testing.assert_allclose(np.linalg.norm(pose.quaternion), 1.0, atol=1e-9)


def test_unmapped_slots_hold_root_pose():
    skeleton = HandSkeleton(
        joints=(
            HandJoint("wrist", np.eye(4)),
            HandJoint("middleFingerMetacarpal", translation_transform(0.0, 0.0, -0.02)),
            HandJoint("middleFingerKnuckle", translation_transform(0.0, 0.0, -0.06)),
        )
    )
    rt = _retargeter()
    hand = _hand(LEFT, skeleton)
    frame = rt.to_skeleton_frame(hand)
    root = rt.transformer.hand_palm_pose(hand)
    for slot in (0, 2, 20, 25):
        np.testing.assert_allclose(frame[slot].position, root.position)
        np.testing.assert_allclose(frame[slot].quaternion, root.quaternion)


def test_joint_orientation_corrections():
    frame = _retargeter().to_skeleton_frame(_hand(RIGHT, _full_skeleton()))
    expected = q_mul(JOINT_BASE_CORRECTION, JOINT_CHIRALITY_CORRECTION[RIGHT])
    _same_rotation(frame[JOINT_SLOTS["indexFingerTip"]].quaternion, expected)
    np.testing.assert_allclose(
        frame[JOINT_SLOTS["indexFingerTip"]].position,
        np.array([0.0, 1.0, -0.3 - 0.01 * list(JOINT_SLOTS).index("indexFingerTip")]),
        atol=1e-12,
    )


def test_forearm_and_elbow_offsets_and_elbow_clamp():
    for side, outward in ((RIGHT, 1.0), (LEFT, -1.0)):
        frame = _retargeter().to_skeleton_frame(_hand(side, _full_skeleton()))
        for slot, name in ((FOREARM_SLOT, "forearmWrist"), (ELBOW_SLOT, "forearmArm")):
            z = -0.3 - 0.01 * list(JOINT_SLOTS).index(name)
            np.testing.assert_allclose(
                frame[slot].position,
                np.array([0.0, 1.0 + 0.025 * outward, z]),
                atol=1e-12,
            )
        forearm_q = q_mul(
            q_mul(JOINT_BASE_CORRECTION, JOINT_CHIRALITY_CORRECTION[side]),
            FOREARM_CORRECTION[side],
        )
        _same_rotation(frame.forearm.quaternion, forearm_q)
        _same_rotation(frame.elbow.quaternion, q_mul(q_identity(), FOREARM_CORRECTION[side]))


def test_non_finite_joint_keeps_root_pose():
    joints = list(_full_skeleton().joints)
    bad = np.eye(4)
    bad[0, 3] = np.nan
    joints[JOINT_SLOTS["thumbTip"] - 1] = HandJoint("thumbTip", bad)
    frame = _retargeter().to_skeleton_frame(_hand(LEFT, HandSkeleton(joints=tuple(joints))))
    assert frame[JOINT_SLOTS["thumbTip"]].is_finite()
    np.testing.assert_allclose(frame[JOINT_SLOTS["thumbTip"]].position, frame[0].position)


def test_streamed_joints_drop_arm_slots():
    frame = _retargeter().to_skeleton_frame(_hand(LEFT, _full_skeleton()))
    assert len(frame.streamed_joints()) == 26
