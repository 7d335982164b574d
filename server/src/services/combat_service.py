"""
Seam to the combat-resolution engine.

The engine itself lives outside this server. It is handed the acting
character's template and the opponent's chosen action and returns an outcome
plus a narrative line with placeholders that this module fills in.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

from server.src.core.logging_config import get_logger

logger = get_logger(__name__)

ACTOR_PLACEHOLDER = ":me:"
TARGET_PLACEHOLDER = ":them:"
DAMAGE_PLACEHOLDER = ":damage:"


@dataclass
class CombatOutcome:
    """Result of resolving one exchange"""
    outcome: Dict[str, Any]
    text: str  # Narrative with :me:, :them: and :damage: placeholders
    damage: int = 0
    finished: bool = False  # Combat is over after this exchange
    extra: Dict[str, Any] = field(default_factory=dict)


class CombatResolver(Protocol):
    """Anything that can resolve an exchange between a character and an opponent."""

    async def resolve(
        self, template: Mapping[str, Any], opponent_action: str
    ) -> CombatOutcome:
        ...


def render_narrative(text: str, actor: str, target: str, damage: int) -> str:
    """Substitute the narrative placeholders."""
    return (
        text.replace(ACTOR_PLACEHOLDER, actor)
        .replace(TARGET_PLACEHOLDER, target)
        .replace(DAMAGE_PLACEHOLDER, str(damage))
    )


class CombatService:
    """Invokes the configured resolver and renders its narrative."""

    def __init__(self, resolver: Optional[CombatResolver] = None):
        self.resolver = resolver

    @property
    def available(self) -> bool:
        return self.resolver is not None

    async def resolve(
        self,
        template: Mapping[str, Any],
        opponent_action: str,
        opponent_name: str = "Opponent",
    ) -> Dict[str, Any]:
        """
        Resolve one exchange for ``template`` against ``opponent_action``.

        Raises:
            RuntimeError: If no resolver is configured
        """
        if self.resolver is None:
            raise RuntimeError("No combat resolver configured")

        result = await self.resolver.resolve(template, opponent_action)
        actor = template.get("name", "Unknown")
        text = render_narrative(result.text, actor, opponent_name, result.damage)

        logger.debug(
            "Combat exchange resolved",
            extra={
                "actor": actor,
                "opponent_action": opponent_action,
                "damage": result.damage,
                "finished": result.finished,
            },
        )
        return {
            "outcome": result.outcome,
            "text": text,
            "damage": result.damage,
            "finished": result.finished,
        }
