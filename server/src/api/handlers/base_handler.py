"""
Base class for request handler groups.

A group serves one request category. ``actions`` maps each action name the
client sends to the coroutine method that handles it.
"""

from typing import Awaitable, Callable, Dict, Optional

from server.src.api.connection import ClientConnection
from server.src.api.router import Responder
from server.src.core.container import ServiceContainer
from server.src.core.logging_config import get_logger
from server.src.models.session import Session
from server.src.services.session_bootstrap import SessionBootstrap
from common.src.protocol import ErrorMessages, RequestEnvelope

logger = get_logger(__name__)


class BaseHandlerGroup:
    """
    Shared plumbing for handler groups.

    Subclasses set ``category`` and ``actions``.
    """

    category: str = ""
    actions: Dict[str, str] = {}

    def __init__(self, container: ServiceContainer):
        self.container = container
        self.store = container.store
        self.sessions = container.sessions

    def handlers(
        self,
    ) -> Dict[str, Callable[[ClientConnection, RequestEnvelope, Responder], Awaitable[None]]]:
        return {action: getattr(self, method) for action, method in self.actions.items()}

    def _bootstrap(self, session: Session) -> Optional[SessionBootstrap]:
        return self.sessions.get_bootstrap(session)

    async def _require_identity(
        self, session: Session, respond: Responder
    ) -> Optional[str]:
        """Return the session identity, or answer with an error when it is not loaded."""
        if session.identity is None:
            logger.info(
                "Request needs an identity",
                extra={"session_key": session.session_key, "stage": session.stage.value},
            )
            await respond.error_response(ErrorMessages.NOT_AUTHENTICATED)
            return None
        return session.identity

    @staticmethod
    def _session(connection: ClientConnection) -> Session:
        # The router binds a session before any handler runs
        assert connection.session is not None
        return connection.session
