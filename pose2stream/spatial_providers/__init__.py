"""Spatial platform provider implementations."""

from .udp_bridge import UdpBridgeProvider

__all__ = [
    "UdpBridgeProvider",
]
