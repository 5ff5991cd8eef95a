"""HTTP and WebSocket surfaces."""

from sei_analytics.server.app import create_app
from sei_analytics.server.connections import ConnectionManager

__all__ = ["ConnectionManager", "create_app"]
