"""Spatial platform capability interfaces."""

from __future__ import annotations

import time
from typing import Iterable, List, Optional

from ..tracking.anchors import Anchor, AnchorUpdate, HandAnchorPair


class SpatialProvider:
    """Base interface for the spatial-computing platform.

    Update feeds are ordered, unbounded and not restartable: each one is drained
    by exactly one worker for the lifetime of the session.
    """

    def start(self) -> None:
        """Bring up world/hand/plane tracking.

        Raises SessionBootstrapError when a required capability is missing or
        was denied.
        """
        raise NotImplementedError

    def now(self) -> float:
        """Current time on the platform clock, seconds."""
        return time.monotonic()

    def world_updates(self) -> Iterable[AnchorUpdate]:
        raise NotImplementedError

    def plane_updates(self) -> Iterable[AnchorUpdate]:
        return iter(())

    def hand_updates(self) -> Iterable[AnchorUpdate]:
        return iter(())

    def mesh_updates(self) -> Iterable[AnchorUpdate]:
        return iter(())

    def query_device_anchor(self, timestamp: float) -> Optional[Anchor]:
        """Predicted device anchor at timestamp, or None if the platform cannot answer."""
        raise NotImplementedError

    def add_anchor(self, anchor: Anchor) -> None:
        raise NotImplementedError

    def remove_anchor(self, anchor: Anchor) -> None:
        raise NotImplementedError

    def latest_hand_anchors(self) -> HandAnchorPair:
        return HandAnchorPair()

    def controllers(self) -> List:
        """Currently connected controllers (ControllerInfo)."""
        return []

    def controller_events(self) -> Iterable:
        """Push channel of ControllerElementEvent / ControllerSnapshot items."""
        return iter(())

    def haptic_requests(self) -> Iterable:
        """Push channel of HapticRequestEvent items."""
        return iter(())

    def haptics_for(self, controller_id: str):
        """HapticsCapability for a controller, or None if it has no haptics."""
        return None

    def close(self) -> None:
        pass
