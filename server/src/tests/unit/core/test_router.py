"""
Unit tests for the handler registry and the single-use responder.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from server.src.api.router import HandlerRegistry, Responder
from server.src.core.errors import UnknownRouteError


def _connection():
    connection = MagicMock()
    connection.connection_id = "test"
    connection.send_response = AsyncMock()
    return connection


class TestHandlerRegistry:
    def test_resolve_registered_handler(self):
        registry = HandlerRegistry()
        handler = AsyncMock()
        registry.register("assets", "getCharacter", handler)

        assert registry.resolve("assets", "getCharacter") is handler
        assert registry.routes() == [("assets", "getCharacter")]

    def test_unknown_category(self):
        registry = HandlerRegistry()

        with pytest.raises(UnknownRouteError):
            registry.resolve("weather", "getForecast")

    def test_unknown_action_in_known_category(self):
        registry = HandlerRegistry()
        registry.register("assets", "getCharacter", AsyncMock())

        with pytest.raises(UnknownRouteError) as exc_info:
            registry.resolve("assets", None)

        assert isinstance(exc_info.value, LookupError)

    def test_duplicate_registration_is_rejected(self):
        registry = HandlerRegistry()
        registry.register("assets", "getCharacter", AsyncMock())

        with pytest.raises(ValueError):
            registry.register("assets", "getCharacter", AsyncMock())


class TestResponder:
    @pytest.mark.asyncio
    async def test_first_call_sends_wrapped_payload(self):
        connection = _connection()
        respond = Responder(connection, "assets", "getCharacterList")

        await respond([{"name": "Brute"}])

        connection.send_response.assert_awaited_once_with({"items": [{"name": "Brute"}]})
        assert respond.responded is True

    @pytest.mark.asyncio
    async def test_second_call_is_dropped(self):
        connection = _connection()
        respond = Responder(connection, "assets", "getCharacter")

        await respond({"character": {}}, "current_character")
        await respond({"character": {}}, "current_character")

        assert connection.send_response.await_count == 1

    @pytest.mark.asyncio
    async def test_error_response_is_remembered(self):
        connection = _connection()
        respond = Responder(connection, "combat", "resolveAction")

        await respond.error_response("Combat unavailable")

        connection.send_response.assert_awaited_once_with({"error": "Combat unavailable"})
        assert respond.error == "Combat unavailable"
