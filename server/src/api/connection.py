"""
One socket connection and the session bound to it.
"""

import traceback
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

import msgpack
from bson import ObjectId
from fastapi import WebSocket
from starlette.websockets import WebSocketState

from server.src.core.logging_config import get_logger
from server.src.core.metrics import metrics
from server.src.models.session import Session
from server.src.services.session_registry import SessionRegistry
from common.src.protocol import SocketEvent

logger = get_logger(__name__)


def encode_store_value(value: Any) -> Any:
    """msgpack fallback for the store types that reach a response."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def pack_frame(event: SocketEvent, data: Optional[Dict[str, Any]] = None) -> bytes:
    return msgpack.packb(
        {"event": event.value, "data": data or {}},
        default=encode_store_value,
        use_bin_type=True,
    )


class ClientConnection:
    """
    Wraps an accepted WebSocket.

    Attributes:
        websocket: The WebSocket connection
        sessions: Session table the connection binds into
        session: Session bound by ``init`` (None until then)
    """

    def __init__(self, websocket: WebSocket, sessions: SessionRegistry):
        self.websocket = websocket
        self.sessions = sessions
        self.session: Optional[Session] = None
        self.connection_id = uuid.uuid4().hex[:8]

    def bind(self, session: Session) -> None:
        """Bind ``session`` to this connection, releasing any previous one."""
        if self.session is session:
            session.touch()
            return
        self.unbind()
        self.session = session
        self.sessions.attach(session)
        logger.debug(
            "Connection bound to session",
            extra={"connection_id": self.connection_id, "session_key": session.session_key},
        )

    def unbind(self) -> None:
        if self.session is not None:
            self.sessions.detach(self.session)
            self.session = None

    async def send_event(self, event: SocketEvent, data: Optional[Dict[str, Any]] = None) -> None:
        """
        Send one frame.

        Raises:
            ConnectionError: If the WebSocket is already closed
        """
        if self.websocket.client_state == WebSocketState.DISCONNECTED:
            logger.warning(
                "Attempted to send on closed WebSocket",
                extra={"connection_id": self.connection_id, "event": event.value},
            )
            raise ConnectionError("WebSocket connection is closed")

        packed = pack_frame(event, data)
        try:
            await self.websocket.send_bytes(packed)
            metrics.track_websocket_message(event.value, "outbound")
        except Exception as e:
            logger.error(
                "Error sending WebSocket message",
                extra={
                    "connection_id": self.connection_id,
                    "event": event.value,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "traceback": traceback.format_exc(),
                },
            )
            raise

    async def send_response(self, payload: Dict[str, Any]) -> None:
        await self.send_event(SocketEvent.RESPONSE, payload)
