"""
In-memory session state for one player.

A Session is created the first time a connection presents an unknown session
key and lives in the SessionRegistry until idle eviction removes it.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class BootstrapStage(str, Enum):
    START = "START"
    IDENTITY_LOADING = "IDENTITY_LOADING"
    IDENTITY_READY = "IDENTITY_READY"
    TEMPLATE_READY = "TEMPLATE_READY"
    CHARACTERS_READY = "CHARACTERS_READY"
    TEMPLATE_MIGRATING = "TEMPLATE_MIGRATING"
    READY = "READY"


class BootstrapSignal(str, Enum):
    LOAD_STARTED = "load_started"
    IDENTITY_READY = "identity_ready"
    PROTOTYPE_SET = "prototype_set"
    CHARACTERS_SET = "characters_set"
    MIGRATION_STARTED = "migration_started"
    MIGRATION_FINISHED = "migration_finished"
    MIGRATION_SKIPPED = "migration_skipped"


@dataclass
class Session:
    """
    Server-held state for one player.

    ``characters`` is ``None`` until the character stage has run. Requests
    are served before the bootstrap finishes and see whatever is populated.

    ``lock`` serialises changes to ``characters`` and
    ``selected_character_name`` (character load, create, delete, select).
    Reads do not take it and may observe the list while it is replaced.
    """

    session_key: str
    identity: Optional[str] = None
    capability_template: Optional[Dict[str, Any]] = None
    characters: Optional[List[Dict[str, Any]]] = None
    selected_character_name: Optional[str] = None
    in_combat: bool = False

    stage: BootstrapStage = BootstrapStage.START
    signals: List[BootstrapSignal] = field(default_factory=list)
    bootstrap_error: Optional[str] = None

    connection_count: int = 0
    last_seen: float = field(default_factory=time.monotonic)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)
    ready: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def is_ready(self) -> bool:
        return self.stage is BootstrapStage.READY

    def touch(self) -> None:
        """Record activity for idle eviction."""
        self.last_seen = time.monotonic()

    def find_character(self, name: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return the character whose template name is ``name``."""
        for character in self.characters or []:
            if character.get("template", {}).get("name") == name:
                return character
        return None

    def get_selected_character(self) -> Dict[str, Any]:
        """
        Return the selected character document.

        Falls back to the first character when the selection does not match,
        and to ``{}`` when there are no characters.
        """
        character = self.find_character(self.selected_character_name)
        if character is not None:
            return character
        if self.characters:
            return self.characters[0]
        return {}

    def get_selected_template(self) -> Optional[Dict[str, Any]]:
        """Template of the selected character, or None if there is none."""
        return self.get_selected_character().get("template")

    def to_status(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "ready": self.is_ready,
            "identity": self.identity,
            "characterCount": len(self.characters) if self.characters is not None else None,
            "selectedCharacterName": self.selected_character_name,
            "inCombat": self.in_combat,
        }
