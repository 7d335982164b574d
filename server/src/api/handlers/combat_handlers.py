"""
Combat handlers.

Resolution is delegated to the configured CombatResolver; this group only
checks the session can fight and tracks the in-combat flag.
"""

from server.src.api.connection import ClientConnection
from server.src.api.handlers.base_handler import BaseHandlerGroup
from server.src.api.router import Responder
from server.src.core.logging_config import get_logger
from common.src.protocol import ErrorMessages, RequestEnvelope

logger = get_logger(__name__)


class CombatHandlers(BaseHandlerGroup):
    """Handles the ``combat`` request category."""

    category = "combat"
    actions = {
        "resolveAction": "_handle_resolve_action",
        "leaveCombat": "_handle_leave_combat",
    }

    async def _handle_resolve_action(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        combat = self.container.combat
        if not combat.available:
            await respond.error_response(ErrorMessages.COMBAT_UNAVAILABLE)
            return

        session = self._session(connection)
        template = session.get_selected_template()
        if template is None:
            await respond.error_response(ErrorMessages.NO_CHARACTER_SELECTED)
            return

        opponent_action = envelope.field("opponentAction")
        if not opponent_action:
            await respond.error_response(ErrorMessages.MISSING_OPPONENT_ACTION)
            return

        result = await combat.resolve(
            template,
            opponent_action,
            opponent_name=envelope.field("opponentName", "Opponent"),
        )
        session.in_combat = not result["finished"]
        if result["finished"]:
            logger.info(
                "Combat finished",
                extra={"session_key": session.session_key, "character": template.get("name")},
            )
        await respond(result, "combat_result")

    async def _handle_leave_combat(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        session = self._session(connection)
        session.in_combat = False
        await respond({}, "combat_left")
