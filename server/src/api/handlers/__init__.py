"""
Request handler groups.

Each group serves one request category. ``build_handler_registry`` registers
every group against a HandlerRegistry.
"""

from server.src.api.handlers.base_handler import BaseHandlerGroup
from server.src.api.handlers.asset_handlers import AssetHandlers
from server.src.api.handlers.session_handlers import SessionHandlers
from server.src.api.handlers.combat_handlers import CombatHandlers
from server.src.api.router import HandlerRegistry
from server.src.core.container import ServiceContainer

HANDLER_GROUPS = (AssetHandlers, SessionHandlers, CombatHandlers)


def build_handler_registry(container: ServiceContainer) -> HandlerRegistry:
    registry = HandlerRegistry()
    for group_class in HANDLER_GROUPS:
        registry.register_group(group_class(container))
    return registry


__all__ = [
    "BaseHandlerGroup",
    "AssetHandlers",
    "SessionHandlers",
    "CombatHandlers",
    "HANDLER_GROUPS",
    "build_handler_registry",
]
