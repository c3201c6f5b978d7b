"""Fire-and-forget platform anchor mutations.

Adding or removing anchors on the platform is only housekeeping: the origin
state always holds some reference frame whether or not these calls land, so
failures are logged and dropped instead of retried or propagated.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .anchors import Anchor

logger = logging.getLogger(__name__)


def run_best_effort(what: str, fn: Callable[..., object], *args) -> bool:
    try:
        fn(*args)
    except Exception as exc:  # noqa: BLE001
        logger.debug("[ANCHORS] best-effort %s failed: %s", what, exc)
        return False
    return True


class AnchorMutationDispatcher:
    """Runs anchor add/remove calls off the caller's thread.

    ``synchronous=True`` runs them inline, which tests and single-threaded
    drivers use.
    """

    def __init__(self, platform, synchronous: bool = False):
        self.platform = platform
        self._executor: Optional[ThreadPoolExecutor] = (
            None
            if synchronous
            else ThreadPoolExecutor(max_workers=1, thread_name_prefix="anchor-mutations")
        )

    def _submit(self, what: str, fn: Callable[..., object], anchor: Anchor) -> None:
        if self._executor is None:
            run_best_effort(what, fn, anchor)
            return
        try:
            self._executor.submit(run_best_effort, what, fn, anchor)
        except RuntimeError:
            # Executor already shut down; session is ending.
            logger.debug("[ANCHORS] dropped %s after shutdown", what)

    def add(self, anchor: Anchor) -> None:
        self._submit(f"add {anchor.anchor_id}", self.platform.add_anchor, anchor)

    def remove(self, anchor: Anchor) -> None:
        self._submit(f"remove {anchor.anchor_id}", self.platform.remove_anchor, anchor)

    def close(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
