"""Session handlers."""

from server.src.api.connection import ClientConnection
from server.src.api.handlers.base_handler import BaseHandlerGroup
from server.src.api.router import Responder
from common.src.protocol import RequestEnvelope


class SessionHandlers(BaseHandlerGroup):
    """Handles the ``session`` request category."""

    category = "session"
    actions = {
        "getStatus": "_handle_get_status",
    }

    async def _handle_get_status(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        """Report how far the session bootstrap has got."""
        session = self._session(connection)
        status = session.to_status()
        if session.bootstrap_error:
            status["bootstrapError"] = session.bootstrap_error
        await respond(status, "session_status")
