"""Latest-known anchor snapshots, shared between the update feeds and the render cadence."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

import numpy as np

from ..math3d.transform import distance_between
from .anchors import Anchor


class AnchorStore:
    """Thread-safe anchor table keyed by anchor id.

    One coarse re-entrant lock guards every read and write, and is shared
    with the origin state (see ``lock``). Update volume is human-timescale so
    contention is not a concern. Callers must never hold the lock across
    platform or network calls; all methods here return copies of the
    containers, never live views.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._anchors: Dict[str, Anchor] = {}

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def upsert(self, anchor: Anchor) -> None:
        with self._lock:
            self._anchors[anchor.anchor_id] = anchor

    def remove(self, anchor_id: str) -> Optional[Anchor]:
        with self._lock:
            return self._anchors.pop(anchor_id, None)

    def get(self, anchor_id: str) -> Optional[Anchor]:
        with self._lock:
            return self._anchors.get(anchor_id)

    def all(self, kind: Optional[str] = None) -> List[Anchor]:
        with self._lock:
            anchors = list(self._anchors.values())
        if kind is None:
            return anchors
        return [a for a in anchors if a.kind == kind]

    def pop_within(self, center_transform: np.ndarray, radius_m: float, kind: Optional[str] = None) -> List[Anchor]:
        """Remove and return every anchor positioned within radius_m of center_transform."""
        with self._lock:
            doomed = [
                a
                for a in self._anchors.values()
                if (kind is None or a.kind == kind)
                and distance_between(a.transform, center_transform) < radius_m
            ]
            for a in doomed:
                del self._anchors[a.anchor_id]
        return doomed

    def __len__(self) -> int:
        with self._lock:
            return len(self._anchors)
