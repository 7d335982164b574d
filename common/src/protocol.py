"""
Shared protocol definitions.
Using Pydantic models for structure and validation.

Every socket frame is a binary msgpack map ``{"event": <SocketEvent>, "data": {...}}``.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SocketEvent(str, Enum):
    # Client to Server
    INIT = "init"
    REQUEST = "request"
    SESSION = "session"

    # Server to Client
    CONNECTED = "connected"
    READY = "ready"
    RESPONSE = "response"


class SessionAction(str, Enum):
    LOGIN = "getUserExists"
    CREATE_USER = "createUser"


# Response "type" prefix for each session action
SESSION_ACTION_KINDS: Dict[SessionAction, str] = {
    SessionAction.LOGIN: "login",
    SessionAction.CREATE_USER: "create_user",
}


class ErrorMessages:
    """Error strings sent back in ``{"error": ...}`` responses."""

    INVALID_REQUEST = "Invalid Request Type or Client Key"
    UNKNOWN_REQUEST = "Unknown request"
    UNKNOWN_SESSION = "Unknown session"
    MALFORMED_MESSAGE = "Malformed message"
    STORAGE_UNAVAILABLE = "Storage unavailable"
    NO_RESPONSE = "No response"
    REQUEST_FAILED = "Request failed"
    DUPLICATE_CHARACTER = "Character name already exists"
    MISSING_CHARACTER_NAME = "Character template requires a name"
    CHARACTER_NAME_REQUIRED = "Character name required"
    NOT_AUTHENTICATED = "Session has no identity"
    NO_CHARACTER_SELECTED = "No character selected"
    COMBAT_UNAVAILABLE = "Combat unavailable"
    MISSING_OPPONENT_ACTION = "Missing opponent action"


class SocketFrame(BaseModel):
    event: SocketEvent
    data: Dict[str, Any] = {}


# --- Inbound envelopes ---


class InitEnvelope(BaseModel):
    session_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sessionKey", "clientKey")
    )


class RequestEnvelope(BaseModel):
    """
    A routed request. Action specific fields are kept as extras so handlers
    can read them straight off the envelope.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    category: str = Field(
        min_length=1, validation_alias=AliasChoices("category", "requestType")
    )
    session_key: str = Field(
        min_length=1, validation_alias=AliasChoices("sessionKey", "clientKey")
    )
    action: Optional[str] = None

    def field(self, name: str, default: Any = None) -> Any:
        """Read an action specific field."""
        extra = self.model_extra or {}
        return extra.get(name, default)


class SessionEnvelope(BaseModel):
    action: str
    username: str = ""
    password: str = ""


# --- Outbound payloads ---


class ReadyPayload(BaseModel):
    session: bool


class SessionResultPayload(BaseModel):
    type: str
    sessionKey: Optional[str] = None


class ErrorPayload(BaseModel):
    error: str


def wrap_response(data: Union[Dict[str, Any], List[Any]], type_: Optional[str] = None) -> Dict[str, Any]:
    """
    Build a response payload. Sequences are wrapped as ``{"items": [...]}``
    and ``type_``, when given, is added as the ``type`` field.
    """
    if isinstance(data, (list, tuple)):
        payload: Dict[str, Any] = {"items": list(data)}
    else:
        payload = dict(data)
    if type_:
        payload["type"] = type_
    return payload
