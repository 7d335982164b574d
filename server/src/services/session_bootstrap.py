"""
Session bootstrap pipeline.

Turns a session key into a hydrated Session through a strict chain of store
lookups:

    START -> IDENTITY_LOADING -> IDENTITY_READY -> TEMPLATE_READY
          -> CHARACTERS_READY -> (TEMPLATE_MIGRATING) -> READY

Each stage awaits its store call and then emits a signal; the pure
``advance`` function decides the next stage. The whole chain runs as one
asyncio task per session, so stages of one session never overlap while
different sessions interleave freely.

A session key with no matching user leaves the session in IDENTITY_LOADING.
Nothing is reported to the connection and nothing is retried. A storage
fault, or any other error, halts the chain at the stage where it happened
and is recorded on the session.
"""

import asyncio
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from server.src.core.constants import CHARACTER_PROTOTYPE_TYPE, Collection
from server.src.core.errors import InvalidTransitionError, StorageFaultError
from server.src.core.logging_config import get_logger
from server.src.core.metrics import metrics
from server.src.models.session import BootstrapSignal, BootstrapStage, Session
from server.src.services.data_access_service import DataAccessService
from server.src.services.schema_merge import reconcile_characters

logger = get_logger(__name__)

_TRANSITIONS = {
    (BootstrapStage.START, BootstrapSignal.LOAD_STARTED): BootstrapStage.IDENTITY_LOADING,
    (BootstrapStage.IDENTITY_LOADING, BootstrapSignal.IDENTITY_READY): BootstrapStage.IDENTITY_READY,
    (BootstrapStage.IDENTITY_READY, BootstrapSignal.PROTOTYPE_SET): BootstrapStage.TEMPLATE_READY,
    (BootstrapStage.TEMPLATE_READY, BootstrapSignal.CHARACTERS_SET): BootstrapStage.CHARACTERS_READY,
    (BootstrapStage.CHARACTERS_READY, BootstrapSignal.MIGRATION_STARTED): BootstrapStage.TEMPLATE_MIGRATING,
    (BootstrapStage.CHARACTERS_READY, BootstrapSignal.MIGRATION_SKIPPED): BootstrapStage.READY,
    (BootstrapStage.TEMPLATE_MIGRATING, BootstrapSignal.MIGRATION_FINISHED): BootstrapStage.READY,
}


def advance(stage: BootstrapStage, signal: BootstrapSignal) -> BootstrapStage:
    """Return the stage that follows ``stage`` when ``signal`` is emitted."""
    try:
        return _TRANSITIONS[(stage, signal)]
    except KeyError:
        raise InvalidTransitionError(stage.value, signal.value) from None


class SessionBootstrap:
    """Runs the bootstrap chain for one session."""

    def __init__(
        self,
        session: Session,
        store: DataAccessService,
        reference_template: Optional[Dict[str, Any]] = None,
        update_template: bool = False,
    ):
        self.session = session
        self.store = store
        self.reference_template = reference_template
        self.update_template = update_template
        self._task: Optional[asyncio.Task] = None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self) -> asyncio.Task:
        """Schedule the chain. Calling it again returns the running task."""
        if self._task is None:
            self._task = asyncio.create_task(
                self.run(), name=f"bootstrap:{self.session.session_key[:8]}"
            )
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(self) -> BootstrapStage:
        """Run every stage in order and return the stage reached."""
        try:
            self._emit(BootstrapSignal.LOAD_STARTED)
            if not await self._load_identity():
                return self.session.stage
            await self._load_prototype()
            await self._load_characters()
            await self._migrate_template()
        except StorageFaultError as e:
            self._halt("storage_fault", str(e))
        except Exception as e:
            self._halt("unexpected_error", f"{type(e).__name__}: {e}", exc_info=True)
        return self.session.stage

    async def reload_characters(self) -> None:
        """
        Re-run the character stage alone, after a character was created or
        deleted. Does not move the state machine.
        """
        if self.session.identity is None:
            return
        async with self.session.lock:
            characters = await self.store.find(
                Collection.CHARACTERS, {"owner": self.session.identity}, None
            )
            self.session.characters = reconcile_characters(
                self.session.capability_template, characters
            )
        logger.debug(
            "Characters reloaded",
            extra={
                "session_key": self.session.session_key,
                "count": len(self.session.characters),
            },
        )

    # =========================================================================
    # Stages
    # =========================================================================

    async def _load_identity(self) -> bool:
        with self._timed(BootstrapStage.IDENTITY_LOADING):
            users = await self.store.find(
                Collection.USERS, {"sessionKey": self.session.session_key}, None
            )

        if not users:
            logger.warning(
                "No user for session key, session will not advance",
                extra={"session_key": self.session.session_key},
            )
            metrics.track_bootstrap_halt(self.session.stage.value, "unknown_session_key")
            return False

        self.session.identity = users[0].get("username")
        self._emit(BootstrapSignal.IDENTITY_READY)
        return True

    async def _load_prototype(self) -> None:
        with self._timed(BootstrapStage.IDENTITY_READY):
            prototypes = await self.store.find(
                Collection.PROTOTYPES, {"type": CHARACTER_PROTOTYPE_TYPE}, None
            )

        self.session.capability_template = prototypes[0] if prototypes else None
        if self.session.capability_template is None:
            logger.warning(
                "No character prototype in store, characters will not be reconciled",
                extra={"session_key": self.session.session_key},
            )
        self._emit(BootstrapSignal.PROTOTYPE_SET)

    async def _load_characters(self) -> None:
        with self._timed(BootstrapStage.TEMPLATE_READY):
            async with self.session.lock:
                characters = await self.store.find(
                    Collection.CHARACTERS, {"owner": self.session.identity}, None
                )
                self.session.characters = reconcile_characters(
                    self.session.capability_template, characters
                )
        self._emit(BootstrapSignal.CHARACTERS_SET)

    async def _migrate_template(self) -> None:
        if not self.update_template or self.reference_template is None:
            if self.update_template:
                logger.warning("Template update requested but no reference template is loaded")
            self._emit(BootstrapSignal.MIGRATION_SKIPPED)
            return

        self._emit(BootstrapSignal.MIGRATION_STARTED)
        logger.info(
            "Updating stored character template from reference",
            extra={"session_key": self.session.session_key},
        )
        try:
            with self._timed(BootstrapStage.TEMPLATE_MIGRATING):
                await self.store.update(
                    Collection.PROTOTYPES,
                    {"type": CHARACTER_PROTOTYPE_TYPE},
                    self.reference_template,
                )
        except StorageFaultError as e:
            # Session is servable whatever the migration outcome
            self.session.bootstrap_error = str(e)
        self._emit(BootstrapSignal.MIGRATION_FINISHED)

    # =========================================================================
    # State machine plumbing
    # =========================================================================

    def _emit(self, signal: BootstrapSignal) -> None:
        previous = self.session.stage
        self.session.stage = advance(previous, signal)
        self.session.signals.append(signal)
        logger.debug(
            "Bootstrap signal",
            extra={
                "session_key": self.session.session_key,
                "signal": signal.value,
                "from_stage": previous.value,
                "to_stage": self.session.stage.value,
            },
        )
        if self.session.stage is BootstrapStage.READY:
            self.session.ready.set()

    def _halt(self, reason: str, detail: str, exc_info: bool = False) -> None:
        self.session.bootstrap_error = detail
        metrics.track_bootstrap_halt(self.session.stage.value, reason)
        logger.error(
            "Session bootstrap halted",
            extra={
                "session_key": self.session.session_key,
                "stage": self.session.stage.value,
                "reason": reason,
                "detail": detail,
            },
            exc_info=exc_info,
        )

    @contextmanager
    def _timed(self, stage: BootstrapStage):
        start = time.perf_counter()
        try:
            yield
        finally:
            metrics.track_bootstrap_stage(stage.value, time.perf_counter() - start)
