"""
WebSocket endpoint for realtime client communication.
"""

import time

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from server.src.api.connection import ClientConnection
from server.src.core.logging_config import get_logger
from server.src.core.metrics import metrics, websocket_connection_duration_seconds
from common.src.protocol import SocketEvent

logger = get_logger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    The main WebSocket endpoint.
    - Accepts the connection and announces it with ``connected``.
    - Hands every binary frame to the request router.
    - Releases the session binding on disconnect.
    """
    container = websocket.app.state.container
    request_router = websocket.app.state.request_router
    manager = websocket.app.state.connection_manager

    connection = ClientConnection(websocket, container.sessions)
    connection_start_time = None
    registered = False
    try:
        await websocket.accept()
        metrics.track_websocket_connection("accepted")
        connection_start_time = time.time()

        await manager.connect(connection)
        registered = True
        logger.info("Client connected", extra={"connection_id": connection.connection_id})
        await connection.send_event(SocketEvent.CONNECTED)

        # Main message loop
        while True:
            data = await websocket.receive_bytes()
            await request_router.dispatch(connection, data)

    except WebSocketDisconnect as e:
        logger.info(
            "Client disconnected",
            extra={
                "connection_id": connection.connection_id,
                "reason": e.reason or "Normal disconnect",
            },
        )
        metrics.track_websocket_connection("disconnected")
    except ConnectionError:
        logger.info(
            "Connection closed while sending",
            extra={"connection_id": connection.connection_id},
        )
        metrics.track_websocket_connection("disconnected")
    except Exception as e:
        logger.error(
            "Unexpected error in WebSocket handler",
            extra={
                "connection_id": connection.connection_id,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        metrics.track_websocket_connection("error")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        if connection_start_time:
            websocket_connection_duration_seconds.observe(time.time() - connection_start_time)
        if registered:
            await manager.disconnect(connection)
        else:
            connection.unbind()
