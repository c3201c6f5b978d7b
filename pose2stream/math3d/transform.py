"""Rigid 4x4 transform helpers (column-vector convention, translation in column 3)."""

from __future__ import annotations

import numpy as np

from .quaternion import q_to_rotmat, rotmat_to_q


def identity_transform() -> np.ndarray:
    return np.eye(4, dtype=np.float64)


def as_transform(m) -> np.ndarray:
    """Coerce a nested list / flat 16-vector / array into a 4x4 float64 matrix.

    Flat input is read row-major.
    """
    t = np.asarray(m, dtype=np.float64)
    if t.size != 16:
        raise ValueError(f"Expected 16 values for a 4x4 transform, got {t.size}")
    return t.reshape(4, 4).copy()


def make_transform(quaternion: np.ndarray, position: np.ndarray) -> np.ndarray:
    t = np.eye(4, dtype=np.float64)
    t[:3, :3] = q_to_rotmat(quaternion)
    t[:3, 3] = np.asarray(position, dtype=np.float64).reshape(3)
    return t


def translation_transform(x: float, y: float, z: float) -> np.ndarray:
    t = np.eye(4, dtype=np.float64)
    t[:3, 3] = (x, y, z)
    return t


def rigid_inverse(t: np.ndarray) -> np.ndarray:
    """Inverse of a rotation+translation transform without a general matrix solve."""
    r = t[:3, :3]
    inv = np.eye(4, dtype=np.float64)
    inv[:3, :3] = r.T
    inv[:3, 3] = -r.T @ t[:3, 3]
    return inv


def translation_of(t: np.ndarray) -> np.ndarray:
    return np.asarray(t[:3, 3], dtype=np.float64).copy()


def rotation_of(t: np.ndarray) -> np.ndarray:
    return rotmat_to_q(t[:3, :3])


def distance_from_origin(t: np.ndarray) -> float:
    return float(np.linalg.norm(t[:3, 3]))


def distance_between(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(a[:3, 3] - b[:3, 3]))

