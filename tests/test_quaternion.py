import numpy as np

from pose2stream.math3d.quaternion import (
    q_from_to,
    q_mul,
    q_normalize,
    q_to_rotmat,
    rotmat_to_q,
)


def test_q_normalize_zero_returns_identity():
    q = q_normalize(np.zeros(4, dtype=np.float64))
    np.testing.assert_allclose(q, np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64))


def test_rotmat_identity_to_quaternion():
    q = rotmat_to_q(np.eye(3, dtype=np.float64))
    np.testing.assert_allclose(q, np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64), atol=1e-8)


def test_rotmat_round_trip():
    q = q_from_to(np.array([0.3, -1.0, 0.5]), np.array([1.0, 0.2, 0.4]))
    r = q_to_rotmat(q)
    np.testing.assert_allclose(q_to_rotmat(rotmat_to_q(r)), r, atol=1e-9)


def test_q_from_to_rotates_source_onto_target():
    a = np.array([1.0, 0.0, 0.0])
    b = np.array([0.0, 0.0, 1.0])
    np.testing.assert_allclose(q_to_rotmat(q_from_to(a, b)) @ a, b, atol=1e-9)


def test_q_from_to_same_direction_is_identity():
    q = q_from_to(np.array([0.0, 1.0, 0.0]), np.array([0.0, 2.0, 0.0]))
    np.testing.assert_allclose(q, np.array([1.0, 0.0, 0.0, 0.0]), atol=1e-9)


def test_q_from_to_antiparallel_x_turns_about_z():
    q = q_from_to(np.array([1.0, 0.0, 0.0]), np.array([-1.0, 0.0, 0.0]))
    np.testing.assert_allclose(q, np.array([0.0, 0.0, 0.0, 1.0]), atol=1e-9)


def test_q_from_to_antiparallel_z_turns_about_y():
    q = q_from_to(np.array([0.0, 0.0, 1.0]), np.array([0.0, 0.0, -1.0]))
    np.testing.assert_allclose(q, np.array([0.0, 0.0, 1.0, 0.0]), atol=1e-9)


def test_q_mul_composes_rotations():
    # Quarter turn about +y takes +z onto +x; twice takes it onto -z.
    yaw = q_from_to(np.array([0.0, 0.0, 1.0]), np.array([1.0, 0.0, 0.0]))
    v = q_to_rotmat(q_mul(yaw, yaw)) @ np.array([0.0, 0.0, 1.0])
    np.testing.assert_allclose(v, np.array([0.0, 0.0, -1.0]), atol=1e-9)
