"""Common protocol definitions shared between client and server."""

from .protocol import (
    # Frame structure
    SocketFrame,
    SocketEvent,
    SessionAction,
    SESSION_ACTION_KINDS,
    ErrorMessages,
    # Inbound envelopes
    InitEnvelope,
    RequestEnvelope,
    SessionEnvelope,
    # Outbound payloads
    ReadyPayload,
    SessionResultPayload,
    ErrorPayload,
    wrap_response,
)

__version__ = "1.0.0"
