import numpy as np

from pose2stream.control.pose import Pose6D
from pose2stream.math3d.quaternion import q_from_to, q_to_rotmat
from pose2stream.math3d.transform import make_transform, translation_transform
from pose2stream.tracking.anchors import LEFT, RIGHT, HandAnchor, HandJoint, HandSkeleton
from pose2stream.tracking.transformer import (
    HAND_CORRECTIONS,
    HandMotionEstimator,
    PoseTransformer,
)


class _FixedReference:
    def __init__(self, transform=None):
        self.transform = np.eye(4) if transform is None else transform

    def reference_transform(self):
        return self.transform.copy()


def _raw():
    return make_transform(q_from_to(np.array([0.2, 1.0, -0.4]), np.array([0.5, 0.3, 0.8])), np.array([0.3, 1.4, -0.6]))


def _same_rotation(q_a, q_b):
    np.testing.assert_allclose(q_to_rotmat(q_a), q_to_rotmat(q_b), atol=1e-9)


def test_identity_reference_is_identity_map():
    tr = PoseTransformer(_FixedReference())
    raw = _raw()
    pose = tr.to_output_pose(raw)
    np.testing.assert_allclose(pose.position, raw[:3, 3])
    np.testing.assert_allclose(q_to_rotmat(pose.quaternion), raw[:3, :3], atol=1e-9)


def test_chirality_correction_applied_on_top():
    tr = PoseTransformer(_FixedReference())
    raw = _raw()
    for side in (LEFT, RIGHT):
        pose = tr.to_output_pose(raw, side)
        np.testing.assert_allclose(pose.position, raw[:3, 3])
        np.testing.assert_allclose(
            q_to_rotmat(pose.quaternion),
            raw[:3, :3] @ q_to_rotmat(HAND_CORRECTIONS[side]),
            atol=1e-9,
        )


def test_poses_are_relative_to_reference():
    tr = PoseTransformer(_FixedReference(translation_transform(0.0, 0.0, 1.0)))
    pose = tr.to_output_pose(translation_transform(1.0, 0.0, 1.0))
    np.testing.assert_allclose(pose.position, np.array([1.0, 0.0, 0.0]), atol=1e-12)


def test_hand_without_skeleton_falls_back_to_raw_transform():
    tr = PoseTransformer(_FixedReference())
    hand = HandAnchor(anchor_id="h", transform=_raw(), chirality=RIGHT)
    palm = tr.hand_palm_pose(hand)
    direct = tr.to_output_pose(hand.transform, RIGHT)
    np.testing.assert_allclose(palm.position, direct.position)
    _same_rotation(palm.quaternion, direct.quaternion)
    assert palm.is_finite()


def _palm_skeleton():
    return HandSkeleton(
        joints=(
            HandJoint("wrist", np.eye(4)),
            HandJoint("middleFingerMetacarpal", translation_transform(0.0, 0.0, 0.02)),
            HandJoint("middleFingerKnuckle", translation_transform(0.0, 0.0, 0.06)),
        )
    )


def test_palm_pose_is_metacarpal_knuckle_midpoint():
    tr = PoseTransformer(_FixedReference())
    hand = HandAnchor(
        anchor_id="h",
        transform=translation_transform(0.1, 1.0, 0.0),
        chirality=LEFT,
        skeleton=_palm_skeleton(),
    )
    palm = tr.hand_palm_pose(hand)
    np.testing.assert_allclose(palm.position, np.array([0.1, 1.0, 0.04]), atol=1e-12)
    _same_rotation(palm.quaternion, HAND_CORRECTIONS[LEFT])


def test_palm_pose_with_missing_joint_falls_back():
    tr = PoseTransformer(_FixedReference())
    skeleton = HandSkeleton(joints=(HandJoint("wrist", np.eye(4)),))
    hand = HandAnchor(anchor_id="h", transform=_raw(), chirality=LEFT, skeleton=skeleton)
    palm = tr.hand_palm_pose(hand)
    np.testing.assert_allclose(palm.position, hand.transform[:3, 3])


def test_view_poses_and_platform_round_trip():
    ref = translation_transform(0.5, 0.0, 0.0)
    tr = PoseTransformer(_FixedReference(ref))
    device = translation_transform(0.5, 1.6, -0.2)
    views = [translation_transform(-0.0315, 0.0, 0.0), translation_transform(0.0315, 0.0, 0.0)]
    left, right = tr.view_poses(device, views)
    np.testing.assert_allclose(left.position, np.array([-0.0315, 1.6, -0.2]), atol=1e-12)
    np.testing.assert_allclose(right.position, np.array([0.0315, 1.6, -0.2]), atol=1e-12)

    back = tr.to_platform_transform(left, views[0])
    np.testing.assert_allclose(back, device, atol=1e-12)


def _pose(x):
    return Pose6D(position=np.array([x, 0.0, 0.0]), quaternion=np.array([1.0, 0.0, 0.0, 0.0]))


def test_hand_velocity_from_update_interval():
    est = HandMotionEstimator()
    est.note_hands_updated(1.0)
    est.motion(LEFT, _pose(0.0))
    est.mark_sent()

    est.note_hands_updated(1.1)
    m = est.motion(LEFT, _pose(0.01))
    np.testing.assert_allclose(m.linear_velocity, np.array([0.1, 0.0, 0.0]), atol=1e-9)
    np.testing.assert_allclose(m.angular_velocity, np.zeros(3))
    assert m.device == "/user/hand/left"


def test_hand_velocity_is_zero_without_new_update():
    est = HandMotionEstimator()
    est.note_hands_updated(1.0)
    est.mark_sent()
    m = est.motion(RIGHT, _pose(0.3))
    np.testing.assert_allclose(m.linear_velocity, np.zeros(3))
    assert np.isfinite(m.linear_velocity).all()
