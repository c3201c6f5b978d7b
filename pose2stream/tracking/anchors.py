"""Anchor snapshots delivered by the spatial platform.

Anchors are immutable: each update from the platform replaces the previous
snapshot for the same id wholesale.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..math3d.transform import identity_transform

WORLD = "world"
PLANE = "plane"
HAND = "hand"
MESH = "mesh"
DEVICE = "device"

ADDED = "added"
UPDATED = "updated"
REMOVED = "removed"
UPDATE_EVENTS = (ADDED, UPDATED, REMOVED)

LEFT = "left"
RIGHT = "right"
CHIRALITIES = (LEFT, RIGHT)


def new_anchor_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, eq=False)
class Anchor:
    anchor_id: str
    transform: np.ndarray
    tracked: bool = True
    timestamp: float = 0.0
    kind: str = WORLD


@dataclass(frozen=True, eq=False)
class PlaneAnchor(Anchor):
    classification: str = "unknown"
    kind: str = PLANE


@dataclass(frozen=True, eq=False)
class HandJoint:
    name: str
    anchor_from_joint: np.ndarray
    tracked: bool = True


@dataclass(frozen=True)
class HandSkeleton:
    joints: Tuple[HandJoint, ...] = ()

    def joint(self, name: str) -> Optional[HandJoint]:
        for j in self.joints:
            if j.name == name:
                return j
        return None


@dataclass(frozen=True, eq=False)
class HandAnchor(Anchor):
    chirality: str = LEFT
    skeleton: Optional[HandSkeleton] = None
    kind: str = HAND


@dataclass(frozen=True)
class AnchorUpdate:
    event: str
    anchor: Anchor
    timestamp: float


def identity_world_anchor() -> Anchor:
    """Fresh world anchor sitting exactly on the platform origin."""
    return Anchor(anchor_id=new_anchor_id(), transform=identity_transform(), kind=WORLD)


@dataclass(frozen=True)
class HandAnchorPair:
    left: Optional[HandAnchor] = None
    right: Optional[HandAnchor] = None

    def tracked(self) -> list:
        return [h for h in (self.left, self.right) if h is not None and h.tracked]
