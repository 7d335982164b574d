"""
WebSocket connection manager.

Keeps track of every open ClientConnection so the server can report how
many clients are connected.
"""

import asyncio
from typing import Dict

from server.src.api.connection import ClientConnection
from server.src.core.logging_config import get_logger
from server.src.core.metrics import metrics

logger = get_logger(__name__)


class ConnectionManager:
    """
    Registry of open connections.

    ``_connection_lock`` protects connect and disconnect so the active count
    reported to metrics matches the table.
    """

    def __init__(self):
        self.connections: Dict[str, ClientConnection] = {}
        self._connection_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.connections)

    async def connect(self, connection: ClientConnection) -> None:
        async with self._connection_lock:
            self.connections[connection.connection_id] = connection
            metrics.set_active_connections(len(self.connections))
        logger.debug(
            "Connection registered",
            extra={"connection_id": connection.connection_id, "total": len(self.connections)},
        )

    async def disconnect(self, connection: ClientConnection) -> None:
        """Drop ``connection`` and release its session binding."""
        async with self._connection_lock:
            self.connections.pop(connection.connection_id, None)
            connection.unbind()
            metrics.set_active_connections(len(self.connections))
        logger.debug(
            "Connection removed",
            extra={"connection_id": connection.connection_id, "total": len(self.connections)},
        )
