"""
Request routing for socket events.

A ``request`` frame is validated, matched to a handler by
(category, action) and handed a single-use Responder. ``init`` binds a
session to the connection and ``session`` runs login or account creation.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import msgpack
from pydantic import ValidationError

from server.src.api.connection import ClientConnection
from server.src.core.errors import (
    EnvelopeValidationError,
    StorageFaultError,
    UnknownRouteError,
)
from server.src.core.logging_config import get_logger
from server.src.core.metrics import metrics
from server.src.models.session import Session
from server.src.services.login_service import LoginService
from server.src.services.session_registry import SessionRegistry
from common.src.protocol import (
    SESSION_ACTION_KINDS,
    ErrorMessages,
    ErrorPayload,
    InitEnvelope,
    ReadyPayload,
    RequestEnvelope,
    SessionAction,
    SessionEnvelope,
    SessionResultPayload,
    SocketEvent,
    SocketFrame,
    wrap_response,
)

logger = get_logger(__name__)

ResponseData = Union[Dict[str, Any], List[Any]]


class Responder:
    """
    Single-use reply continuation handed to a request handler.

    Only the first call sends a response. Later calls are dropped with a
    warning.
    """

    def __init__(self, connection: ClientConnection, category: str, action: Optional[str]):
        self._connection = connection
        self.category = category
        self.action = action
        self.responded = False
        self.error: Optional[str] = None

    async def __call__(self, data: ResponseData, type_: Optional[str] = None) -> None:
        if self.responded:
            logger.warning(
                "Handler responded more than once",
                extra={
                    "connection_id": self._connection.connection_id,
                    "category": self.category,
                    "action": self.action,
                },
            )
            return
        self.responded = True
        payload = wrap_response(data, type_)
        self.error = payload.get("error")
        await self._connection.send_response(payload)

    async def error_response(self, message: str) -> None:
        await self(ErrorPayload(error=message).model_dump())


Handler = Callable[[ClientConnection, RequestEnvelope, Responder], Awaitable[None]]


class HandlerRegistry:
    """Maps (category, action) pairs to request handlers."""

    def __init__(self):
        self._routes: Dict[str, Dict[str, Handler]] = {}

    def register(self, category: str, action: str, handler: Handler) -> None:
        actions = self._routes.setdefault(category, {})
        if action in actions:
            raise ValueError(f"Handler already registered for {category}.{action}")
        actions[action] = handler

    def register_group(self, group) -> None:
        """Register every action exposed by a handler group."""
        for action, handler in group.handlers().items():
            self.register(group.category, action, handler)

    def resolve(self, category: str, action: Optional[str]) -> Handler:
        """
        Raises:
            UnknownRouteError: If the category or the action is not registered
        """
        handler = self._routes.get(category, {}).get(action or "")
        if handler is None:
            raise UnknownRouteError(category, action)
        return handler

    def routes(self) -> List[Tuple[str, str]]:
        return [
            (category, action)
            for category, actions in self._routes.items()
            for action in actions
        ]


def parse_request(data: Dict[str, Any]) -> RequestEnvelope:
    """
    Raises:
        EnvelopeValidationError: If ``category`` or ``sessionKey`` is missing
    """
    try:
        return RequestEnvelope.model_validate(data)
    except ValidationError as e:
        raise EnvelopeValidationError(str(e)) from e


def decode_frame(raw: bytes) -> SocketFrame:
    """
    Raises:
        EnvelopeValidationError: If the bytes are not a valid ``{event, data}`` map
    """
    try:
        message = msgpack.unpackb(raw, raw=False)
    except (msgpack.exceptions.UnpackException, ValueError) as e:
        raise EnvelopeValidationError(f"Undecodable frame: {e}") from e
    if not isinstance(message, dict):
        raise EnvelopeValidationError("Frame is not a map")
    try:
        return SocketFrame.model_validate(message)
    except ValidationError as e:
        raise EnvelopeValidationError(str(e)) from e


class RequestRouter:
    """Dispatches decoded socket frames to the session table and handlers."""

    def __init__(
        self,
        registry: HandlerRegistry,
        sessions: SessionRegistry,
        login: LoginService,
    ):
        self.registry = registry
        self.sessions = sessions
        self.login = login

    async def dispatch(self, connection: ClientConnection, raw: bytes) -> None:
        try:
            frame = decode_frame(raw)
        except EnvelopeValidationError as e:
            logger.warning(
                "Malformed frame",
                extra={"connection_id": connection.connection_id, "error": str(e)},
            )
            metrics.track_error("router", "malformed_message")
            await connection.send_response({"error": ErrorMessages.MALFORMED_MESSAGE})
            return

        metrics.track_websocket_message(frame.event.value, "inbound")
        if frame.event == SocketEvent.INIT:
            await self.handle_init(connection, frame.data)
        elif frame.event == SocketEvent.REQUEST:
            await self.handle_request(connection, frame.data)
        elif frame.event == SocketEvent.SESSION:
            await self.handle_session(connection, frame.data)
        else:
            # Server-to-client events sent back by the client
            await connection.send_response({"error": ErrorMessages.MALFORMED_MESSAGE})

    # =========================================================================
    # init
    # =========================================================================

    async def handle_init(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        try:
            envelope = InitEnvelope.model_validate(data)
        except ValidationError:
            await connection.send_response({"error": ErrorMessages.MALFORMED_MESSAGE})
            return

        if not envelope.session_key:
            await connection.send_event(
                SocketEvent.READY, ReadyPayload(session=False).model_dump()
            )
            return

        session, created = self.sessions.get_or_create(envelope.session_key)
        connection.bind(session)
        logger.info(
            "Session bound",
            extra={
                "connection_id": connection.connection_id,
                "session_key": session.session_key,
                "new_session": created,
            },
        )
        await connection.send_event(
            SocketEvent.READY, ReadyPayload(session=True).model_dump()
        )

    # =========================================================================
    # request
    # =========================================================================

    def _resolve_session(
        self, connection: ClientConnection, envelope: RequestEnvelope
    ) -> Optional[Session]:
        if connection.session is not None:
            connection.session.touch()
            return connection.session
        session = self.sessions.get(envelope.session_key)
        if session is not None:
            connection.bind(session)
        return session

    async def handle_request(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        start = time.time()
        try:
            envelope = parse_request(data)
        except EnvelopeValidationError:
            logger.warning(
                "Rejected request envelope",
                extra={"connection_id": connection.connection_id, "keys": sorted(data)},
            )
            metrics.track_request("invalid", "invalid", "rejected", time.time() - start)
            await connection.send_response({"error": ErrorMessages.INVALID_REQUEST})
            return

        category, action = envelope.category, envelope.action
        session = self._resolve_session(connection, envelope)
        if session is None:
            metrics.track_request(category, action or "", "unknown_session", time.time() - start)
            await connection.send_response({"error": ErrorMessages.UNKNOWN_SESSION})
            return

        try:
            handler = self.registry.resolve(category, action)
        except UnknownRouteError as e:
            logger.warning(
                "Unknown request route",
                extra={"connection_id": connection.connection_id, "route": str(e)},
            )
            metrics.track_request(category, action or "", "unknown_route", time.time() - start)
            await connection.send_response({"error": ErrorMessages.UNKNOWN_REQUEST})
            return

        respond = Responder(connection, category, action)
        outcome = "ok"
        try:
            await handler(connection, envelope, respond)
        except StorageFaultError as e:
            outcome = "storage_fault"
            logger.error(
                "Storage fault while handling request",
                extra={"category": category, "action": action, "error": str(e)},
            )
            if not respond.responded:
                await respond.error_response(ErrorMessages.STORAGE_UNAVAILABLE)
        except ConnectionError:
            raise
        except Exception as e:
            outcome = "error"
            logger.error(
                "Error handling request",
                extra={
                    "category": category,
                    "action": action,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            metrics.track_error("router", "handler_exception")
            if not respond.responded:
                await respond.error_response(ErrorMessages.REQUEST_FAILED)

        if not respond.responded:
            outcome = "no_response"
            logger.error(
                "Handler finished without responding",
                extra={"category": category, "action": action},
            )
            await respond.error_response(ErrorMessages.NO_RESPONSE)
        elif outcome == "ok" and respond.error:
            outcome = "rejected"

        metrics.track_request(category, action or "", outcome, time.time() - start)

    # =========================================================================
    # session (login / account creation)
    # =========================================================================

    async def handle_session(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        try:
            envelope = SessionEnvelope.model_validate(data)
        except ValidationError:
            await connection.send_response({"error": ErrorMessages.MALFORMED_MESSAGE})
            return

        try:
            action = SessionAction(envelope.action)
        except ValueError:
            logger.warning("Unknown session action", extra={"action": envelope.action})
            await connection.send_response({"error": ErrorMessages.UNKNOWN_REQUEST})
            return

        kind = SESSION_ACTION_KINDS[action]
        try:
            user = await self.login.check_or_create(
                envelope.username,
                envelope.password,
                allow_create=action is SessionAction.CREATE_USER,
            )
        except StorageFaultError:
            metrics.track_session_login(kind, "storage_fault")
            await connection.send_response({"error": ErrorMessages.STORAGE_UNAVAILABLE})
            return

        if user:
            metrics.track_session_login(kind, "success")
            payload = SessionResultPayload(type=f"{kind}_success", sessionKey=user["sessionKey"])
        else:
            metrics.track_session_login(kind, "failure")
            payload = SessionResultPayload(type=f"{kind}_failure")
        await connection.send_response(payload.model_dump(exclude_none=True))
