"""
Unit tests for the Session model.
"""

from server.src.models.session import BootstrapStage, Session


def _session_with(*names):
    session = Session(session_key="k")
    session.characters = [{"template": {"name": name}} for name in names]
    return session


class TestSelectedCharacter:
    def test_selected_name_wins(self):
        session = _session_with("Brute", "Scout")
        session.selected_character_name = "Scout"

        assert session.get_selected_character()["template"]["name"] == "Scout"

    def test_unmatched_selection_falls_back_to_first(self):
        session = _session_with("Brute", "Scout")
        session.selected_character_name = "Nobody"

        assert session.get_selected_character()["template"]["name"] == "Brute"

    def test_no_characters_gives_empty_document(self):
        session = _session_with()

        assert session.get_selected_character() == {}
        assert session.get_selected_template() is None

    def test_characters_not_loaded_gives_empty_document(self):
        assert Session(session_key="k").get_selected_character() == {}


class TestStatus:
    def test_fresh_session_status(self):
        status = Session(session_key="k").to_status()

        assert status == {
            "stage": "START",
            "ready": False,
            "identity": None,
            "characterCount": None,
            "selectedCharacterName": None,
            "inCombat": False,
        }

    def test_ready_session_status(self):
        session = _session_with("Brute")
        session.identity = "alice"
        session.stage = BootstrapStage.READY

        status = session.to_status()

        assert status["ready"] is True
        assert status["characterCount"] == 1

    def test_touch_moves_last_seen_forward(self):
        session = Session(session_key="k")
        session.last_seen = 0.0

        session.touch()

        assert session.last_seen > 0.0
