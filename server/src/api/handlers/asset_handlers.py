"""
Asset handlers: prototypes and character management.
"""

from server.src.api.connection import ClientConnection
from server.src.api.handlers.base_handler import BaseHandlerGroup
from server.src.api.router import Responder
from server.src.core.constants import CHARACTER_PROTOTYPE_TYPE, Collection
from server.src.core.logging_config import get_logger
from common.src.protocol import ErrorMessages, RequestEnvelope

logger = get_logger(__name__)


class AssetHandlers(BaseHandlerGroup):
    """Handles the ``assets`` request category."""

    category = "assets"
    actions = {
        "getAssetPrototype": "_handle_get_asset_prototype",
        "createCharacter": "_handle_create_character",
        "deleteCharacter": "_handle_delete_character",
        "getCharacterList": "_handle_get_character_list",
        "selectCharacter": "_handle_select_character",
        "getCharacter": "_handle_get_character",
    }

    async def _handle_get_asset_prototype(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        """Character prototypes come from the session; anything else from the store."""
        session = self._session(connection)
        prototype_type = envelope.field("prototypeType")

        if prototype_type == CHARACTER_PROTOTYPE_TYPE:
            await respond(
                {"prototype": session.capability_template}, "character_prototype"
            )
            return

        prototypes = await self.store.find(
            Collection.PROTOTYPES, {"type": prototype_type}, None
        )
        await respond(prototypes)

    async def _handle_create_character(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        session = self._session(connection)
        owner = await self._require_identity(session, respond)
        if owner is None:
            return

        template = envelope.field("template")
        name = template.get("name") if isinstance(template, dict) else None
        if not name:
            await respond.error_response(ErrorMessages.MISSING_CHARACTER_NAME)
            return

        async with session.lock:
            if session.find_character(name) is not None:
                await respond.error_response(ErrorMessages.DUPLICATE_CHARACTER)
                return
            ack = await self.store.insert(
                Collection.CHARACTERS, {"owner": owner, "template": template}
            )

        if ack.conflict:
            await respond.error_response(ErrorMessages.DUPLICATE_CHARACTER)
            return

        # reload_characters takes the session lock itself
        bootstrap = self._bootstrap(session)
        if bootstrap is not None:
            await bootstrap.reload_characters()

        logger.info(
            "Character created",
            extra={"session_key": session.session_key, "owner": owner, "character_name": name},
        )
        await respond({}, "character_create")

    async def _handle_delete_character(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        session = self._session(connection)
        owner = await self._require_identity(session, respond)
        if owner is None:
            return

        name = envelope.field("characterName")
        if not name:
            await respond.error_response(ErrorMessages.CHARACTER_NAME_REQUIRED)
            return

        async with session.lock:
            ack = await self.store.remove(
                Collection.CHARACTERS, {"owner": owner, "template.name": name}
            )

        bootstrap = self._bootstrap(session)
        if bootstrap is not None:
            await bootstrap.reload_characters()

        logger.info(
            "Character deleted",
            extra={
                "session_key": session.session_key,
                "character_name": name,
                "deleted": ack.deleted_count,
            },
        )
        await respond({}, "character_delete")

    async def _handle_get_character_list(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        session = self._session(connection)
        await respond({"characters": session.characters}, "character_list")

    async def _handle_select_character(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        session = self._session(connection)
        name = envelope.field("name")
        async with session.lock:
            session.selected_character_name = name
        await respond({"characterName": name}, "select_character")

    async def _handle_get_character(
        self, connection: ClientConnection, envelope: RequestEnvelope, respond: Responder
    ) -> None:
        session = self._session(connection)
        await respond({"character": session.get_selected_character()}, "current_character")
