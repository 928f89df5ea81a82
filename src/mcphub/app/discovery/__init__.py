"""Local discovery surfaces: the ``~/.mcp`` mirror and the loopback endpoint."""

from .lifecycle import DiscoveryController, DiscoveryStatus
from .mirror import DiscoveryMirror, MirrorError
from .web import BindError, DiscoveryServerHandle, is_port_available, start_discovery_server

__all__ = [
    "BindError",
    "DiscoveryController",
    "DiscoveryMirror",
    "DiscoveryServerHandle",
    "DiscoveryStatus",
    "MirrorError",
    "is_port_available",
    "start_discovery_server",
]
