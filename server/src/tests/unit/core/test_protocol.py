"""
Unit tests for the wire protocol models and frame decoding.
"""

import msgpack
import pytest
from pydantic import ValidationError

from server.src.api.router import decode_frame, parse_request
from server.src.core.errors import EnvelopeValidationError
from common.src.protocol import (
    InitEnvelope,
    RequestEnvelope,
    SocketEvent,
    wrap_response,
)


class TestRequestEnvelope:
    def test_accepts_current_field_names(self):
        envelope = RequestEnvelope.model_validate(
            {"category": "assets", "sessionKey": "k", "action": "getCharacter"}
        )

        assert envelope.category == "assets"
        assert envelope.session_key == "k"
        assert envelope.action == "getCharacter"

    def test_accepts_legacy_field_names(self):
        envelope = RequestEnvelope.model_validate(
            {"requestType": "assets", "clientKey": "k", "action": "getCharacterList"}
        )

        assert envelope.category == "assets"
        assert envelope.session_key == "k"

    def test_action_fields_are_kept(self):
        envelope = RequestEnvelope.model_validate(
            {"category": "assets", "sessionKey": "k", "characterName": "Brute"}
        )

        assert envelope.field("characterName") == "Brute"
        assert envelope.field("missing", "default") == "default"

    @pytest.mark.parametrize(
        "data",
        [
            {"category": "assets"},
            {"sessionKey": "k"},
            {"category": "", "sessionKey": "k"},
            {"category": "assets", "sessionKey": ""},
        ],
    )
    def test_missing_category_or_key_is_invalid(self, data):
        with pytest.raises(ValidationError):
            RequestEnvelope.model_validate(data)

    def test_parse_request_raises_envelope_error(self):
        with pytest.raises(EnvelopeValidationError):
            parse_request({"category": "assets"})


class TestInitEnvelope:
    def test_key_is_optional(self):
        assert InitEnvelope.model_validate({}).session_key is None

    def test_legacy_client_key(self):
        assert InitEnvelope.model_validate({"clientKey": "k"}).session_key == "k"


class TestWrapResponse:
    def test_lists_are_wrapped_in_items(self):
        assert wrap_response([1, 2]) == {"items": [1, 2]}

    def test_type_is_added(self):
        assert wrap_response({"a": 1}, "thing") == {"a": 1, "type": "thing"}

    def test_input_is_not_mutated(self):
        data = {"a": 1}
        wrap_response(data, "thing")

        assert data == {"a": 1}


class TestDecodeFrame:
    def test_valid_frame(self):
        raw = msgpack.packb({"event": "init", "data": {"sessionKey": "k"}}, use_bin_type=True)

        frame = decode_frame(raw)

        assert frame.event is SocketEvent.INIT
        assert frame.data == {"sessionKey": "k"}

    def test_garbage_bytes_are_rejected(self):
        with pytest.raises(EnvelopeValidationError):
            decode_frame(b"\xc1\xc1\xc1")

    def test_non_map_is_rejected(self):
        with pytest.raises(EnvelopeValidationError):
            decode_frame(msgpack.packb([1, 2, 3]))

    def test_unknown_event_is_rejected(self):
        with pytest.raises(EnvelopeValidationError):
            decode_frame(msgpack.packb({"event": "teleport", "data": {}}))
