"""Exceptions raised across the tracking pipeline."""

from __future__ import annotations


class NoAnchorAvailable(RuntimeError):
    """The platform could not answer a device-anchor query, even after walk-back."""


class SessionBootstrapError(RuntimeError):
    """A required spatial capability is unavailable or was denied."""
