"""
Identity management: login and account creation.

Both go through the same store call. A login only refreshes the session key
of an existing user; account creation upserts the user when none matches.
"""

from typing import Any, Dict, Optional

from server.src.core.constants import Collection
from server.src.core.logging_config import get_logger
from server.src.core.security import create_session_key
from server.src.services.data_access_service import DataAccessService

logger = get_logger(__name__)


class LoginService:
    """Checks or creates users and hands out session keys."""

    def __init__(self, store: DataAccessService):
        self.store = store

    async def check_or_create(
        self, username: str, password: str, allow_create: bool = False
    ) -> Optional[Dict[str, Any]]:
        """
        Find the user matching the credentials and give it a fresh session key.

        Args:
            username: Account name
            password: Account password, compared as stored
            allow_create: Create the user when no document matches

        Returns:
            The user document after the update, or None when no user matched
            (or the username is taken, for account creation)
        """
        if not username or not password:
            return None

        session_key = create_session_key()
        user = await self.store.find_and_update(
            Collection.USERS,
            {"username": username, "password": password},
            {"$set": {"sessionKey": session_key}},
            None,
            upsert=allow_create,
        )

        logger.info(
            "Session request processed",
            extra={
                "username": username,
                "allow_create": allow_create,
                "success": user is not None,
            },
        )
        return user

    async def login(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        return await self.check_or_create(username, password, allow_create=False)

    async def create_user(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        return await self.check_or_create(username, password, allow_create=True)
