"""Pose data structures for the output (streamed) coordinate space."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

SKELETON_SLOTS = 28
# Slots 26/27 are carried as separate forearm/elbow devices downstream.
STREAMED_SKELETON_SLOTS = 26

DEVICE_LEFT_HAND = "/user/hand/left"
DEVICE_RIGHT_HAND = "/user/hand/right"
# No forearm path exists downstream; the knee trackers stand in for it.
DEVICE_LEFT_FOREARM = "/user/body/left_knee"
DEVICE_RIGHT_FOREARM = "/user/body/right_knee"
DEVICE_LEFT_ELBOW = "/user/body/left_elbow"
DEVICE_RIGHT_ELBOW = "/user/body/right_elbow"


@dataclass(slots=True)
class Pose6D:
    """Pose in output space.

    position:
      3D translation [x, y, z], meters.
    quaternion:
      Orientation quaternion [w, x, y, z], unit length.
    """

    position: np.ndarray
    quaternion: np.ndarray

    def is_finite(self) -> bool:
        return bool(np.isfinite(self.position).all() and np.isfinite(self.quaternion).all())

    def copy(self) -> "Pose6D":
        return Pose6D(position=self.position.copy(), quaternion=self.quaternion.copy())


def identity_pose() -> Pose6D:
    return Pose6D(
        position=np.zeros(3, dtype=np.float64),
        quaternion=np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64),
    )


@dataclass(slots=True)
class DeviceMotion:
    device: str
    pose: Pose6D
    linear_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    angular_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))


@dataclass(frozen=True)
class Fov:
    """Field of view as tangent-space angles in radians (left/down negative)."""

    left: float = -0.9
    right: float = 0.9
    up: float = 0.9
    down: float = -0.9


@dataclass(slots=True)
class ViewParams:
    pose: Pose6D
    fov: Fov


@dataclass(slots=True)
class SkeletonFrame:
    """Fixed 28-slot joint array in the output joint convention."""

    chirality: str
    poses: Tuple[Pose6D, ...]

    def __post_init__(self):
        if len(self.poses) != SKELETON_SLOTS:
            raise ValueError(
                f"skeleton frame needs {SKELETON_SLOTS} poses, got {len(self.poses)}"
            )

    def __len__(self) -> int:
        return len(self.poses)

    def __getitem__(self, idx: int) -> Pose6D:
        return self.poses[idx]

    @property
    def forearm(self) -> Pose6D:
        return self.poses[26]

    @property
    def elbow(self) -> Pose6D:
        return self.poses[27]

    def streamed_joints(self) -> Tuple[Pose6D, ...]:
        return self.poses[:STREAMED_SKELETON_SLOTS]


@dataclass(slots=True)
class TrackingPayload:
    target_timestamp_ns: int
    views: Tuple[ViewParams, ViewParams]
    device_motions: list
    skeleton_left: Optional[Tuple[Pose6D, ...]] = None
    skeleton_right: Optional[Tuple[Pose6D, ...]] = None


def seconds_to_ns(t: float) -> int:
    return int(round(float(t) * 1e9))
