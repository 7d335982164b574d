"""
Session table keyed by session key.

Owns every in-memory Session and the bootstrap that hydrates it. Sessions
are created on the first ``init`` that presents an unknown key and removed
by the idle sweeper once no connection has been bound to them for
``idle_timeout`` seconds.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Tuple

from server.src.core.logging_config import get_logger
from server.src.core.metrics import metrics
from server.src.models.session import Session
from server.src.services.data_access_service import DataAccessService
from server.src.services.session_bootstrap import SessionBootstrap

logger = get_logger(__name__)


class SessionRegistry:
    """In-memory session table with idle eviction."""

    def __init__(
        self,
        store: DataAccessService,
        reference_template: Optional[Dict[str, Any]] = None,
        update_template: bool = False,
        idle_timeout: float = 1800.0,
    ):
        self.store = store
        self.reference_template = reference_template
        self.update_template = update_template
        self.idle_timeout = idle_timeout
        self._sessions: Dict[str, Session] = {}
        self._bootstraps: Dict[str, SessionBootstrap] = {}
        self._sweeper_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_key: str) -> bool:
        return session_key in self._sessions

    def get(self, session_key: Optional[str]) -> Optional[Session]:
        if not session_key:
            return None
        return self._sessions.get(session_key)

    def get_bootstrap(self, session: Session) -> Optional[SessionBootstrap]:
        return self._bootstraps.get(session.session_key)

    def get_or_create(self, session_key: str) -> Tuple[Session, bool]:
        """
        Return the session for ``session_key`` and whether it was created.
        A new session has its bootstrap started immediately.
        """
        session = self._sessions.get(session_key)
        if session is not None:
            session.touch()
            return session, False

        session = Session(session_key=session_key)
        bootstrap = SessionBootstrap(
            session,
            self.store,
            reference_template=self.reference_template,
            update_template=self.update_template,
        )
        self._sessions[session_key] = session
        self._bootstraps[session_key] = bootstrap
        bootstrap.start()
        metrics.set_active_sessions(len(self._sessions))
        logger.info("Session created", extra={"session_key": session_key})
        return session, True

    def attach(self, session: Session) -> None:
        """A connection was bound to ``session``."""
        session.connection_count += 1
        session.touch()

    def detach(self, session: Session) -> None:
        """A connection bound to ``session`` went away."""
        session.connection_count = max(0, session.connection_count - 1)
        session.touch()

    def remove(self, session_key: str) -> Optional[Session]:
        session = self._sessions.pop(session_key, None)
        bootstrap = self._bootstraps.pop(session_key, None)
        if bootstrap is not None:
            bootstrap.cancel()
        metrics.set_active_sessions(len(self._sessions))
        return session

    def evict_idle(self, now: Optional[float] = None) -> List[str]:
        """Remove sessions with no connection that have been idle too long."""
        now = time.monotonic() if now is None else now
        expired = [
            key
            for key, session in self._sessions.items()
            if session.connection_count == 0 and now - session.last_seen >= self.idle_timeout
        ]
        for key in expired:
            self.remove(key)

        if expired:
            metrics.track_session_eviction(len(expired))
            logger.info(
                "Evicted idle sessions",
                extra={"count": len(expired), "remaining": len(self._sessions)},
            )
        return expired

    # =========================================================================
    # Sweeper lifecycle
    # =========================================================================

    async def run_sweeper(self, interval: float) -> None:
        """Evict idle sessions every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                self.evict_idle()
            except Exception as e:
                logger.error(
                    "Error in session sweeper",
                    extra={"error": str(e), "error_type": type(e).__name__},
                    exc_info=True,
                )

    def start_sweeper(self, interval: float) -> asyncio.Task:
        if self._sweeper_task is None or self._sweeper_task.done():
            self._sweeper_task = asyncio.create_task(
                self.run_sweeper(interval), name="session-sweeper"
            )
        return self._sweeper_task

    async def close(self) -> None:
        """Stop the sweeper and cancel every running bootstrap."""
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            try:
                await self._sweeper_task
            except asyncio.CancelledError:
                pass
            self._sweeper_task = None

        for key in list(self._sessions):
            self.remove(key)
