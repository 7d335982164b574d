"""
Service container.

Built once at startup and stored on ``app.state.container``. Every component
receives what it needs from here through its constructor.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from server.src.core.config import Settings
from server.src.core.database import create_mongo_client, get_database
from server.src.services.combat_service import CombatResolver, CombatService
from server.src.services.data_access_service import DataAccessService
from server.src.services.login_service import LoginService
from server.src.services.reference_data import load_reference_template
from server.src.services.session_registry import SessionRegistry


@dataclass
class ServiceContainer:
    settings: Settings
    store: DataAccessService
    login: LoginService
    sessions: SessionRegistry
    combat: CombatService
    reference_template: Optional[Dict[str, Any]] = None
    mongo_client: Optional[AsyncIOMotorClient] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        database: Optional[AsyncIOMotorDatabase] = None,
        combat_resolver: Optional[CombatResolver] = None,
        reference_template: Optional[Dict[str, Any]] = None,
    ) -> "ServiceContainer":
        """
        Wire the services together. Without ``database`` a Motor client is
        created from ``settings`` and owned by the container.
        """
        mongo_client = None
        if database is None:
            mongo_client = create_mongo_client(settings)
            database = get_database(mongo_client, settings)

        if reference_template is None:
            reference_template = load_reference_template(settings.REFERENCE_TEMPLATE_PATH)

        store = DataAccessService(database)
        sessions = SessionRegistry(
            store,
            reference_template=reference_template,
            update_template=settings.UPDATE_TEMPLATE,
            idle_timeout=settings.SESSION_IDLE_TIMEOUT,
        )
        return cls(
            settings=settings,
            store=store,
            login=LoginService(store),
            sessions=sessions,
            combat=CombatService(combat_resolver),
            reference_template=reference_template,
            mongo_client=mongo_client,
        )

    async def close(self) -> None:
        await self.sessions.close()
        await self.store.wait_for_background_tasks()
        if self.mongo_client is not None:
            self.mongo_client.close()
